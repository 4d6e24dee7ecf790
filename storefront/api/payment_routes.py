"""
Payment API routes - Razorpay checkout support.

Every failure is a JSON body of the form {"success": false, "error": ...}.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from storefront.api.dependencies import get_app_settings, get_payment_broker
from storefront.config import Settings
from storefront.exceptions import (
    GatewayError,
    InvalidAmountError,
    MissingParametersError,
    SignatureMismatchError,
)
from storefront.models.api import (
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    OrderResponse,
    PaymentKeyResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from storefront.services.payments import PaymentBroker

logger = get_logger(__name__)
router = APIRouter(prefix="/api/payment", tags=["payment"])

GENERIC_ORDER_ERROR = "Failed to create order"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


@router.get("/key", response_model=PaymentKeyResponse)
async def get_payment_key(
    broker: PaymentBroker = Depends(get_payment_broker),
) -> PaymentKeyResponse:
    """Public key id for the checkout widget."""
    return PaymentKeyResponse(key=broker.key_id)


@router.post(
    "/order",
    response_model=CreateOrderResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_order(
    body: CreateOrderRequest,
    broker: PaymentBroker = Depends(get_payment_broker),
    app_settings: Settings = Depends(get_app_settings),
) -> CreateOrderResponse | JSONResponse:
    """
    Create an auto-captured Razorpay order.

    ``amount`` is in major units (rupees); the order is created in paise.
    """
    try:
        order = await broker.create_order(body.amount, body.currency, body.receipt)
    except InvalidAmountError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except GatewayError as e:
        logger.error(
            "create_order_failed",
            error=e.message,
            gateway_status=e.status_code,
        )
        # Gateway detail is only shown outside production
        message = GENERIC_ORDER_ERROR if app_settings.is_production else e.message
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, message)

    return CreateOrderResponse(order=OrderResponse.from_domain(order))


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    responses={400: {"model": ErrorResponse}},
)
async def verify_payment(
    body: VerifyPaymentRequest,
    broker: PaymentBroker = Depends(get_payment_broker),
) -> JSONResponse:
    """Verify the checkout signature for a completed payment."""
    try:
        verification = broker.confirm_payment(body.order_id, body.payment_id, body.signature)
    except MissingParametersError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except SignatureMismatchError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))

    response = VerifyPaymentResponse(
        payment_id=verification.payment_id,
        order_id=verification.order_id,
    )
    return JSONResponse(content=response.model_dump(by_alias=True))
