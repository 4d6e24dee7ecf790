"""
Status API routes - Health check for the storefront's dependencies.

Public endpoint (no auth) for uptime monitors. Only the session store is
probed; the identity provider and the payment gateway are never called
outside a user request.
"""

import time
from datetime import UTC, datetime
from enum import Enum

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from structlog import get_logger

from storefront.api.dependencies import get_app_settings, get_session_manager
from storefront.config import Settings
from storefront.exceptions import StoreUnavailableError
from storefront.services.sessions import SessionManager

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

DEGRADED_LATENCY_THRESHOLD = 1000  # ms


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single dependency."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


async def check_session_store(manager: SessionManager) -> ProviderStatus:
    """Check session store connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        store = manager.store
        await store.ping()
    except StoreUnavailableError as e:
        logger.warning("session_store_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    latency_ms = int((time.perf_counter() - start) * 1000)
    if latency_ms > DEGRADED_LATENCY_THRESHOLD:
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=latency_ms,
            last_check=timestamp,
            message="High latency",
        )

    return ProviderStatus(
        status=StatusLevel.OPERATIONAL,
        latency_ms=latency_ms,
        last_check=timestamp,
        # Volatile fallback is reachable but not durable
        message="Volatile in-memory store" if store.backend == "memory" else None,
    )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(
    manager: SessionManager = Depends(get_session_manager),
    app_settings: Settings = Depends(get_app_settings),
) -> ServiceStatusResponse:
    """Get storefront service status."""
    providers = {"session_store": await check_session_store(manager)}

    return ServiceStatusResponse(
        service=app_settings.service_name,
        status=calculate_overall_status(providers),
        timestamp=datetime.now(UTC).isoformat(),
        version=app_settings.api_version,
        providers=providers,
    )
