"""
Payment Broker - order creation and payment signature verification.

The two operations share nothing but configuration. Verification trusts the
gateway's HMAC alone and never calls back to the gateway, so its soundness
rests entirely on RAZORPAY_KEY_SECRET staying confidential.
"""

import hashlib
import hmac
import math
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from structlog import get_logger

from storefront.exceptions import (
    GatewayError,
    InvalidAmountError,
    MissingParametersError,
    SignatureMismatchError,
)
from storefront.models.domain import (
    OrderRequest,
    PaymentOrder,
    PaymentVerdict,
    PaymentVerification,
)
from storefront.observability.metrics import metrics
from storefront.observability.tracing import trace_operation
from storefront.services.payment_provider import PaymentGateway

logger = get_logger(__name__)

MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: object) -> int:
    """
    Convert a major-unit amount (rupees) to minor units (paise).

    Accepts int, float or a numeric string. Booleans, non-finite values and
    anything that is not strictly positive after conversion are rejected.
    """
    if amount is None or isinstance(amount, bool):
        raise InvalidAmountError(amount)
    if isinstance(amount, float) and not math.isfinite(amount):
        raise InvalidAmountError(amount)
    if not isinstance(amount, (int, float, str, Decimal)):
        raise InvalidAmountError(amount)

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(amount) from exc

    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(amount)

    minor = int((value * MINOR_UNITS_PER_MAJOR).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if minor <= 0:
        raise InvalidAmountError(amount)
    return minor


def generate_receipt() -> str:
    """Time-based receipt reference, unique enough to tell retries apart."""
    return f"receipt_{time.time_ns() // 1_000_000}"


def compute_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` keyed with the gateway secret."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentBroker:
    """Creates gateway orders and verifies checkout signatures."""

    def __init__(
        self,
        gateway: PaymentGateway,
        key_secret: str,
        default_currency: str = "INR",
    ) -> None:
        self.gateway = gateway
        self._key_secret = key_secret
        self.default_currency = default_currency

    @property
    def key_id(self) -> str:
        """Public key id for the checkout frontend. Never the secret."""
        return self.gateway.key_id

    async def create_order(
        self,
        amount: object,
        currency: str | None = None,
        receipt: str | None = None,
    ) -> PaymentOrder:
        """
        Create an auto-captured order for ``amount`` major units.

        Raises:
            InvalidAmountError: Before any gateway call
            GatewayError: If the gateway rejects or cannot be reached
        """
        try:
            amount_minor = to_minor_units(amount)
        except InvalidAmountError:
            metrics.record_payment_order(False, error_type="invalid_amount")
            logger.warning("payment_order_invalid_amount", amount=repr(amount)[:50])
            raise

        request = OrderRequest(
            amount_minor=amount_minor,
            currency=currency or self.default_currency,
            receipt=receipt or generate_receipt(),
            payment_capture=True,
        )

        with trace_operation(
            "payment_order_create",
            amount_minor=request.amount_minor,
            currency=request.currency,
        ) as span:
            try:
                order = await self.gateway.create_order(request)
            except GatewayError as exc:
                metrics.record_payment_order(False, error_type="gateway")
                metrics.record_error(type(exc).__name__, "payment_order_create")
                raise
            span.set_attribute("order_id", order.order_id)

        metrics.record_payment_order(True, amount_minor=order.amount)
        logger.info(
            "payment_order_created",
            order_id=order.order_id,
            amount_minor=order.amount,
            currency=order.currency,
            receipt=order.receipt,
        )
        return order

    def verify_payment(
        self,
        order_id: str | None,
        payment_id: str | None,
        signature: str | None,
    ) -> PaymentVerdict:
        """
        Check the gateway signature for ``order_id|payment_id``.

        Same inputs always give the same verdict. The comparison is constant
        time and the expected value is never logged.

        Raises:
            MissingParametersError: If any of the three fields is absent or empty
        """
        missing = [
            name
            for name, value in (
                ("orderId", order_id),
                ("paymentId", payment_id),
                ("signature", signature),
            )
            if not value
        ]
        if missing:
            metrics.record_payment_verification("missing_parameters")
            raise MissingParametersError(missing)

        # mypy: narrowed by the check above
        assert order_id and payment_id and signature

        with trace_operation("payment_verify", order_id=order_id):
            expected = compute_signature(order_id, payment_id, self._key_secret)
            matches = hmac.compare_digest(
                expected.encode("utf-8"), signature.encode("utf-8")
            )

        verdict = PaymentVerdict.VERIFIED if matches else PaymentVerdict.REJECTED
        metrics.record_payment_verification(verdict.value)

        if verdict is PaymentVerdict.VERIFIED:
            logger.info("payment_verified", order_id=order_id, payment_id=payment_id)
        else:
            logger.warning("payment_signature_rejected", order_id=order_id, payment_id=payment_id)
        return verdict

    def confirm_payment(
        self,
        order_id: str | None,
        payment_id: str | None,
        signature: str | None,
    ) -> PaymentVerification:
        """
        Verify and return the accepted proof.

        Raises:
            MissingParametersError: If any field is absent
            SignatureMismatchError: If the signature is rejected
        """
        verdict = self.verify_payment(order_id, payment_id, signature)
        if verdict is not PaymentVerdict.VERIFIED:
            raise SignatureMismatchError(order_id or "")
        assert order_id and payment_id and signature
        return PaymentVerification(order_id=order_id, payment_id=payment_id, signature=signature)
