"""
Tests for the Razorpay gateway client.

Outbound calls go through an httpx MockTransport.
"""

import base64
import json
from collections.abc import Callable

import httpx
import pytest
from conftest import razorpay_order_json

from storefront.exceptions import GatewayError
from storefront.models.api import OrderResponse
from storefront.models.domain import OrderRequest
from storefront.services.razorpay_gateway import RazorpayGateway


def make_gateway(handler: Callable[[httpx.Request], httpx.Response]) -> RazorpayGateway:
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def order_request(amount_minor: int = 50000) -> OrderRequest:
    return OrderRequest(amount_minor=amount_minor, currency="INR", receipt="receipt_1700000000000")


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_posts_order_with_basic_auth(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=razorpay_order_json())

        await make_gateway(handler).create_order(order_request())

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.razorpay.com/v1/orders"
        expected_auth = base64.b64encode(b"rzp_test_key:rzp_test_secret").decode()
        assert request.headers["authorization"] == f"Basic {expected_auth}"
        assert json.loads(request.content) == {
            "amount": 50000,
            "currency": "INR",
            "receipt": "receipt_1700000000000",
            "payment_capture": 1,
        }

    @pytest.mark.asyncio
    async def test_parses_order(self):
        gateway = make_gateway(lambda request: httpx.Response(200, text=razorpay_order_json()))

        order = await gateway.create_order(order_request())

        assert order.order_id == "order_Nx1aBcDeFgHiJk"
        assert order.amount == 50000
        assert order.amount_due == 50000
        assert order.currency == "INR"
        assert order.status == "created"
        assert order.payment_capture is True
        assert order.created_at == 1700000000

    @pytest.mark.asyncio
    async def test_manual_capture_flag(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=razorpay_order_json())

        request = OrderRequest(
            amount_minor=50000, currency="INR", receipt="r1", payment_capture=False
        )
        await make_gateway(handler).create_order(request)

        assert json.loads(seen[0].content)["payment_capture"] == 0

    @pytest.mark.asyncio
    async def test_gateway_error_description_is_surfaced(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401,
                json={
                    "error": {
                        "code": "BAD_REQUEST_ERROR",
                        "description": "Authentication failed",
                    }
                },
            )

        with pytest.raises(GatewayError) as exc_info:
            await make_gateway(handler).create_order(order_request())

        assert exc_info.value.message == "Authentication failed"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        gateway = make_gateway(lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_order(order_request())

        assert exc_info.value.message == "Gateway returned HTTP 502"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(GatewayError) as exc_info:
            await make_gateway(handler).create_order(order_request())

        assert "Could not reach payment gateway" in exc_info.value.message
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"entity": "order"}))

        with pytest.raises(GatewayError, match="Unexpected response"):
            await gateway.create_order(order_request())

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, json={"error": {"description": "Server error"}})

        with pytest.raises(GatewayError):
            await make_gateway(handler).create_order(order_request())

        assert len(calls) == 1


class TestOrderPassThrough:
    @pytest.mark.asyncio
    async def test_unmodelled_fields_reach_the_response(self):
        payload = json.loads(razorpay_order_json())
        payload["partial_payment"] = False
        payload["notes"] = {"cart": {"items": 2}, "coupon": None}
        gateway = make_gateway(lambda request: httpx.Response(200, json=payload))

        order = await gateway.create_order(order_request())
        body = OrderResponse.from_domain(order).model_dump()

        assert order.raw == payload
        assert body["partial_payment"] is False
        assert body["notes"] == {"cart": {"items": 2}, "coupon": None}
        assert body == payload
