"""
FastAPI Dependencies - request-scoped access to long-lived collaborators.

Everything here is built once by the application factory and parked on
``app.state``; handlers only ever read it.
"""

from fastapi import Request

from storefront.config import Settings
from storefront.models.domain import Session
from storefront.services.auth import AuthService
from storefront.services.payments import PaymentBroker
from storefront.services.sessions import SessionManager


def get_session(request: Request) -> Session:
    """The Session resolved by SessionMiddleware for this request."""
    session: Session = request.state.session
    return session


def get_session_manager(request: Request) -> SessionManager:
    manager: SessionManager = request.app.state.session_manager
    return manager


def get_auth_service(request: Request) -> AuthService:
    auth_service: AuthService = request.app.state.auth_service
    return auth_service


def get_payment_broker(request: Request) -> PaymentBroker:
    broker: PaymentBroker = request.app.state.payment_broker
    return broker


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with (tests build apps with their own)."""
    app_settings: Settings = request.app.state.settings
    return app_settings
