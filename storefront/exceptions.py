"""
Exception Classes - Strongly typed exception hierarchy.

Every error has typed attributes so the HTTP boundary can decide what is
safe to show to the caller.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class StoreUnavailableError(StorefrontError):
    """Raised when the session store cannot be reached or written."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Session store unavailable: {message}")


class ProviderExchangeError(StorefrontError):
    """Raised when the identity provider handshake fails (denied, bad code, network)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Identity provider exchange failed: {message}")


class InvalidAmountError(StorefrontError):
    """Raised when an order amount is missing, non-numeric or not positive."""

    def __init__(self, amount: object) -> None:
        self.amount = amount
        super().__init__("Invalid amount")


class MissingParametersError(StorefrontError):
    """Raised when required request parameters are absent."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required parameters: {', '.join(missing)}")


class SignatureMismatchError(StorefrontError):
    """Raised when a payment signature does not match. Never carries the expected value."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__("Invalid payment signature")


class GatewayError(StorefrontError):
    """Raised when the payment gateway call fails (network, auth, quota)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(f"Payment gateway error: {message}")
