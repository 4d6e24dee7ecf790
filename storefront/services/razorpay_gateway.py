"""
Razorpay Payment Gateway Implementation.

Talks to the Razorpay Orders REST API with HTTP basic auth (key id / key
secret). Outbound calls are never retried; a failure is surfaced at once.
"""

from typing import Any

import httpx
from structlog import get_logger

from storefront.exceptions import GatewayError
from storefront.models.domain import OrderRequest, PaymentOrder

logger = get_logger(__name__)


class RazorpayGateway:
    """
    Razorpay gateway implementation.

    Implements the PaymentGateway protocol.
    """

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Initialize Razorpay gateway.

        Args:
            key_id: Public key id, safe to hand to the checkout frontend
            key_secret: Secret key, used for API auth and payment signatures
            http_client: Optional preconfigured client (tests inject a mock transport)
            timeout: Request timeout in seconds
        """
        self.key_id = key_id
        self._key_secret = key_secret
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def create_order(self, request: OrderRequest) -> PaymentOrder:
        """
        Create a Razorpay order.

        Raises:
            GatewayError: On network failure, non-2xx status or a malformed body
        """
        payload = {
            "amount": request.amount_minor,
            "currency": request.currency,
            "receipt": request.receipt,
            "payment_capture": 1 if request.payment_capture else 0,
        }

        logger.info(
            "creating_razorpay_order",
            amount_minor=request.amount_minor,
            currency=request.currency,
            receipt=request.receipt,
        )

        try:
            response = await self.http_client.post(
                f"{self.BASE_URL}/orders",
                json=payload,
                auth=(self.key_id, self._key_secret),
            )
            response.raise_for_status()
            order = self._parse_order(response.json(), request.payment_capture)

        except httpx.HTTPStatusError as exc:
            message = _error_description(exc.response)
            logger.error(
                "razorpay_order_failed",
                status=exc.response.status_code,
                error=message,
            )
            raise GatewayError(message, status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "razorpay_order_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise GatewayError(f"Could not reach payment gateway: {type(exc).__name__}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("razorpay_order_unparseable", error=str(exc))
            raise GatewayError("Unexpected response from payment gateway") from exc

        logger.info(
            "razorpay_order_created",
            order_id=order.order_id,
            status=order.status,
        )
        return order

    @staticmethod
    def _parse_order(data: dict[str, Any], payment_capture: bool) -> PaymentOrder:
        return PaymentOrder(
            order_id=data["id"],
            amount=int(data["amount"]),
            currency=data["currency"],
            receipt=data.get("receipt"),
            status=data.get("status", "created"),
            payment_capture=payment_capture,
            entity=data.get("entity", "order"),
            amount_paid=int(data.get("amount_paid", 0)),
            amount_due=int(data.get("amount_due", data["amount"])),
            attempts=int(data.get("attempts", 0)),
            offer_id=data.get("offer_id"),
            notes=data.get("notes") or {},
            created_at=data.get("created_at"),
            raw=dict(data),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


def _error_description(response: httpx.Response) -> str:
    """Razorpay error bodies look like {"error": {"code": ..., "description": ...}}."""
    try:
        error = response.json().get("error") or {}
        description = error.get("description")
    except (ValueError, AttributeError):
        description = None
    return description or f"Gateway returned HTTP {response.status_code}"
