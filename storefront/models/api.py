"""
API Models - Pydantic models for request/response validation.

Payment endpoints keep the camelCase field names the checkout frontend
already sends and expects.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.domain import PaymentOrder

# ============================================================================
# Payment Models
# ============================================================================


class PaymentKeyResponse(BaseModel):
    """GET /api/payment/key response. Only the public key id, never the secret."""

    key: str


class CreateOrderRequest(BaseModel):
    """POST /api/payment/order request body."""

    # Validated by the payment broker so a bad amount is a 400, not a 422
    amount: Any = None
    currency: str = Field("INR", min_length=1, max_length=8)
    receipt: str | None = Field(None, max_length=40)


class OrderResponse(BaseModel):
    """Razorpay order object as returned to the checkout frontend.

    Fields the gateway adds beyond the ones listed here pass through unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    entity: str
    amount: int
    amount_paid: int
    amount_due: int
    currency: str
    receipt: str | None
    offer_id: str | None
    status: str
    attempts: int
    notes: dict[str, Any] | list[Any]
    created_at: int | None

    @classmethod
    def from_domain(cls, order: PaymentOrder) -> "OrderResponse":
        return cls.model_validate(
            {
                **order.raw,
                "id": order.order_id,
                "entity": order.entity,
                "amount": order.amount,
                "amount_paid": order.amount_paid,
                "amount_due": order.amount_due,
                "currency": order.currency,
                "receipt": order.receipt,
                "offer_id": order.offer_id,
                "status": order.status,
                "attempts": order.attempts,
                "notes": order.notes,
                "created_at": order.created_at,
            }
        )


class CreateOrderResponse(BaseModel):
    """POST /api/payment/order success response."""

    success: bool = True
    order: OrderResponse


class VerifyPaymentRequest(BaseModel):
    """POST /api/payment/verify request body."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str | None = Field(None, alias="orderId")
    payment_id: str | None = Field(None, alias="paymentId")
    signature: str | None = None


class VerifyPaymentResponse(BaseModel):
    """POST /api/payment/verify success response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    payment_id: str = Field(..., serialization_alias="paymentId")
    order_id: str = Field(..., serialization_alias="orderId")


class ErrorResponse(BaseModel):
    """Error body for every payment failure."""

    success: bool = False
    error: str
