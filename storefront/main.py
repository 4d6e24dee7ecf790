"""
Main Application - FastAPI application setup.
"""

import asyncio
import sys
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from storefront.api.auth_routes import router as auth_router
from storefront.api.payment_routes import router as payment_router
from storefront.api.status_routes import router as status_router
from storefront.config import Settings, settings
from storefront.db.migration_runner import run_migrations
from storefront.db.session import close_engines, get_store_engine, get_store_session_factory
from storefront.exceptions import StoreUnavailableError
from storefront.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from storefront.observability.tracing import instrument_fastapi, instrument_sqlalchemy
from storefront.services.auth import AuthService
from storefront.services.google_oauth import GoogleOAuthProvider
from storefront.services.payment_provider import PaymentGateway
from storefront.services.payments import PaymentBroker
from storefront.services.razorpay_gateway import RazorpayGateway
from storefront.services.session_store import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionStore,
)
from storefront.services.sessions import SessionManager, SessionMiddleware

# Setup logging before anything else
setup_logging()
setup_tracing()
logger = get_logger(__name__)

# Exit status when the server never finished starting
STARTUP_FAILED_EXIT_CODE = 3


async def open_session_store(app_settings: Settings) -> SessionStore:
    """
    Open the configured session store.

    Without SESSION_STORE_URL the volatile memory store is used. An
    unreachable durable store is fatal in production and degrades to memory
    otherwise.
    """
    if not app_settings.session_store_url:
        logger.warning("session_store_volatile", reason="SESSION_STORE_URL not set")
        return MemorySessionStore()

    try:
        store = DatabaseSessionStore(get_store_session_factory(app_settings.session_store_url))
        await store.ping()
        if app_settings.session_store_auto_migrate:
            await asyncio.to_thread(run_migrations, app_settings.session_store_url)
        await store.purge_expired()
    except (StoreUnavailableError, SQLAlchemyError, RuntimeError) as e:
        if app_settings.is_production:
            logger.critical("session_store_unavailable", error=str(e))
            raise
        logger.warning("session_store_fallback_to_memory", error=str(e))
        await close_engines()
        return MemorySessionStore()

    instrument_sqlalchemy(get_store_engine())
    logger.info("session_store_ready", backend=store.backend)
    return store


def _endpoint_label(request: Request) -> str:
    """Route template for metric labels; raw paths would explode cardinality."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return str(getattr(route, "path", "unmatched"))
    return "unmatched"


async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    endpoint = _endpoint_label(request)
    method = request.method

    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    with log_context(request_id=request_id):
        logger.info("request_started", method=method, path=request.url.path)

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            metrics.record_http_request(endpoint, method, response.status_code, duration)

            logger.info(
                "request_completed",
                method=method,
                path=request.url.path,
                status_code=response.status_code,
                duration_seconds=duration,
            )

            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_http_request(endpoint, method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")

            logger.error(
                "request_failed",
                method=method,
                path=request.url.path,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise
        finally:
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Unmatched routes get a JSON 404; other HTTP errors keep the default body."""
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Route not found"})
    return await http_exception_handler(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    """Log validation errors; malformed payment bodies are a plain 400."""
    sanitized_errors = [
        {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
        for error in exc.errors()
    ]
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )

    if request.url.path.startswith("/api/"):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body"},
        )
    return await request_validation_exception_handler(request, exc)


async def store_unavailable_handler(request: Request, exc: Exception) -> Response:
    logger.error("session_store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Session store unavailable"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Last resort: log with traceback and answer with a generic 500."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    session_store: SessionStore | None = None,
    oauth_provider: GoogleOAuthProvider | None = None,
    payment_gateway: PaymentGateway | None = None,
) -> FastAPI:
    """
    Build the application and its long-lived collaborators.

    Collaborators not passed in are built from settings. An injected session
    store is used as-is; otherwise the store is opened during startup.
    """
    app_settings = app_settings or settings

    session_manager = SessionManager(
        app_settings.session_secret,
        session_store,
        cookie_name=app_settings.session_cookie_name,
        max_age_seconds=app_settings.session_max_age_seconds,
        touch_after_seconds=app_settings.session_touch_after_seconds,
        cookie_secure=app_settings.is_production,
        cookie_same_site="lax",
    )
    oauth_provider = oauth_provider or GoogleOAuthProvider(
        client_id=app_settings.google_client_id,
        client_secret=app_settings.google_client_secret,
        callback_url=app_settings.google_callback_url,
        timeout=app_settings.gateway_timeout_seconds,
    )
    payment_gateway = payment_gateway or RazorpayGateway(
        key_id=app_settings.razorpay_key_id,
        key_secret=app_settings.razorpay_key_secret,
        timeout=app_settings.gateway_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_starting",
            service=app_settings.api_title,
            version=app_settings.api_version,
            environment=app_settings.environment,
            tracing_enabled=app_settings.tracing_enabled,
            metrics_enabled=app_settings.metrics_enabled,
        )

        if session_store is None:
            session_manager.store = await open_session_store(app_settings)

        yield

        logger.info("application_shutting_down")
        await oauth_provider.close()
        await payment_gateway.close()
        await session_manager.store.close()
        await close_engines()
        logger.info("application_stopped")

    app = FastAPI(
        title=app_settings.api_title,
        version=app_settings.api_version,
        description=app_settings.api_description,
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.session_manager = session_manager
    app.state.auth_service = AuthService(
        oauth_provider=oauth_provider,
        sessions=session_manager,
        state_secret=app_settings.session_secret,
    )
    app.state.payment_broker = PaymentBroker(
        gateway=payment_gateway,
        key_secret=app_settings.razorpay_key_secret,
        default_currency=app_settings.default_currency,
    )

    app.add_exception_handler(StarletteHTTPException, not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    instrument_fastapi(app)

    # Last added runs first: logging -> session
    app.add_middleware(SessionMiddleware, manager=session_manager)
    app.add_middleware(BaseHTTPMiddleware, dispatch=logging_middleware)

    app.include_router(auth_router)
    app.include_router(payment_router)
    app.include_router(status_router)

    if app_settings.metrics_enabled:

        @app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint() -> Response:
            """
            Prometheus metrics endpoint.

            Returns metrics in Prometheus text format.
            """
            return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


def run() -> None:
    """
    Serve the app until a signal or an escaped fault stops it.

    Exceptions that escape every request scope land in the event loop's
    exception handler, which asks uvicorn for an orderly shutdown. A server
    that never finished starting exits non-zero.
    """
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
    )
    server = uvicorn.Server(config)

    def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.critical(
            "unhandled_loop_exception",
            message=context.get("message"),
            error=str(exc) if exc else None,
            error_type=type(exc).__name__ if exc else None,
        )
        server.should_exit = True

    async def serve() -> None:
        asyncio.get_running_loop().set_exception_handler(handle_loop_exception)
        await server.serve()

    asyncio.run(serve())

    if not server.started:
        logger.critical("application_start_failed")
        sys.exit(STARTUP_FAILED_EXIT_CODE)


if __name__ == "__main__":
    run()
