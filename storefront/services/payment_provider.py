"""
Payment Gateway Protocol - Provider-agnostic interface.

The broker only depends on this protocol; the Razorpay client is the one
production implementation.
"""

from typing import Protocol

from storefront.models.domain import OrderRequest, PaymentOrder


class PaymentGateway(Protocol):
    """
    Payment gateway protocol.

    The gateway is the system of record for orders; nothing it returns is
    stored locally.
    """

    key_id: str

    async def create_order(self, request: OrderRequest) -> PaymentOrder:
        """
        Create an order with the gateway.

        Args:
            request: Amount in minor units, currency, receipt and capture mode

        Returns:
            The gateway's order

        Raises:
            GatewayError: If the gateway call fails for any reason
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
