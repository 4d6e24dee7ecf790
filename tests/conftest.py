"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- Settings built from the test environment
- In-memory session store and session manager
- Google OAuth provider backed by an httpx mock transport
- Mock payment gateway
- API test client around a fully wired app
"""

import json
import os
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set required environment variables BEFORE importing storefront modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-client-secret")
os.environ.setdefault("GOOGLE_CALLBACK_URL", "http://testserver/auth/login-callback")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-for-cookie-signing-32")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_1234567890")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_razorpay_secret")
os.environ.setdefault("SESSION_STORE_URL", "")

from storefront.config import Settings
from storefront.models.domain import Identity, PaymentOrder
from storefront.services.google_oauth import GoogleOAuthProvider
from storefront.services.session_store import MemorySessionStore
from storefront.services.sessions import SessionManager

TEST_KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]

GOOGLE_PROFILE: dict[str, Any] = {
    "sub": "109876543210",
    "name": "Asha Rao",
    "email": "asha@example.com",
    "picture": "https://lh3.googleusercontent.com/a/photo.jpg",
}

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings from the test environment (development mode, memory store)."""
    return Settings()


# ============================================================================
# Session Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def session_manager(memory_store: MemorySessionStore) -> SessionManager:
    return SessionManager("unit-test-secret", memory_store)


@pytest.fixture
def identity() -> Identity:
    """Identity as mapped from GOOGLE_PROFILE."""
    return Identity(
        provider_id=GOOGLE_PROFILE["sub"],
        display_name=GOOGLE_PROFILE["name"],
        emails=(GOOGLE_PROFILE["email"],),
        photos=(GOOGLE_PROFILE["picture"],),
    )


# ============================================================================
# Google OAuth Fixtures
# ============================================================================


def make_google_handler(
    token_status: int = 200,
    userinfo_status: int = 200,
    profile: dict[str, Any] | None = None,
    calls: list[httpx.Request] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Build a MockTransport handler imitating Google's token and userinfo endpoints."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)

        if request.url.path == "/token":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["authorization_code"]
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-for-{form['code'][0]}",
                    "token_type": "Bearer",
                    "expires_in": 3599,
                    "id_token": "header.payload.signature",
                },
            )

        if request.url.path == "/oauth2/v3/userinfo":
            if userinfo_status != 200:
                return httpx.Response(userinfo_status, json={"error": "invalid_token"})
            return httpx.Response(200, json=GOOGLE_PROFILE if profile is None else profile)

        return httpx.Response(404)

    return handler


def make_oauth_provider(
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
) -> GoogleOAuthProvider:
    return GoogleOAuthProvider(
        client_id=os.environ["GOOGLE_CLIENT_ID"],
        client_secret=os.environ["GOOGLE_CLIENT_SECRET"],
        callback_url=os.environ["GOOGLE_CALLBACK_URL"],
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler or make_google_handler())),
    )


@pytest.fixture
def google_calls() -> list[httpx.Request]:
    """Requests seen by the mocked Google endpoints."""
    return []


@pytest.fixture
def oauth_provider(google_calls: list[httpx.Request]) -> GoogleOAuthProvider:
    return make_oauth_provider(make_google_handler(calls=google_calls))


# ============================================================================
# Payment Fixtures
# ============================================================================


def make_order(amount: int = 50000, receipt: str = "receipt_1700000000000") -> PaymentOrder:
    return PaymentOrder(
        order_id="order_Nx1aBcDeFgHiJk",
        amount=amount,
        currency="INR",
        receipt=receipt,
        status="created",
        amount_due=amount,
        created_at=1700000000,
    )


@pytest.fixture
def payment_gateway() -> MagicMock:
    """Mock gateway that echoes the requested amount and receipt back as an order."""
    gateway = MagicMock()
    gateway.key_id = os.environ["RAZORPAY_KEY_ID"]

    async def create_order(request: Any) -> PaymentOrder:
        return make_order(amount=request.amount_minor, receipt=request.receipt)

    gateway.create_order = AsyncMock(side_effect=create_order)
    gateway.close = AsyncMock()
    return gateway


def razorpay_order_json(amount: int = 50000, receipt: str = "receipt_1700000000000") -> str:
    return json.dumps(
        {
            "id": "order_Nx1aBcDeFgHiJk",
            "entity": "order",
            "amount": amount,
            "amount_paid": 0,
            "amount_due": amount,
            "currency": "INR",
            "receipt": receipt,
            "offer_id": None,
            "status": "created",
            "attempts": 0,
            "notes": [],
            "created_at": 1700000000,
        }
    )


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def app(
    test_settings: Settings,
    memory_store: MemorySessionStore,
    oauth_provider: GoogleOAuthProvider,
    payment_gateway: MagicMock,
) -> FastAPI:
    """Fully wired app with in-memory sessions and mocked outbound calls."""
    from storefront.main import create_app

    return create_app(
        test_settings,
        session_store=memory_store,
        oauth_provider=oauth_provider,
        payment_gateway=payment_gateway,
    )


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Synchronous test client; redirects are asserted, not followed."""
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


def login(client: TestClient, code: str = "auth-code-123") -> httpx.Response:
    """Run the full redirect handshake and return the callback response."""
    start = client.get("/auth/login-start")
    state = parse_qs(httpx.URL(start.headers["location"]).query.decode())["state"][0]
    return client.get("/auth/login-callback", params={"code": code, "state": state})
