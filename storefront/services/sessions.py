"""
Session Manager - server-side browser sessions behind a signed cookie.

The cookie carries only the session id, signed with SESSION_SECRET through
itsdangerous. Everything else lives in the session store.

Write policy:
- a fresh anonymous session that is never modified is never persisted and
  no cookie is sent for it (keeps bots and crawlers out of the store)
- a modified session is written once, after the handler returns
- an untouched persisted session is re-written lazily, only when its last
  write is older than ``touch_after``; each write slides the expiry
- ``touch_after`` is capped at half of ``max_age`` so an active session is
  always re-written before its record expires
"""

import secrets
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from itsdangerous import BadSignature, TimestampSigner
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp
from structlog import get_logger

from storefront.exceptions import StoreUnavailableError
from storefront.models.domain import Session
from storefront.services.session_store import SessionStore

logger = get_logger(__name__)

SESSION_ID_BYTES = 32


class SessionManager:
    """Issues, persists, touches and invalidates sessions."""

    def __init__(
        self,
        secret: str,
        store: SessionStore | None = None,
        *,
        cookie_name: str = "sid",
        max_age_seconds: int = 24 * 60 * 60,
        touch_after_seconds: int = 24 * 60 * 60,
        cookie_secure: bool = False,
        cookie_same_site: str = "lax",
    ) -> None:
        self._signer = TimestampSigner(secret, salt="storefront.session")
        self._store = store
        self.cookie_name = cookie_name
        self.max_age = timedelta(seconds=max_age_seconds)
        self.touch_after = min(timedelta(seconds=touch_after_seconds), self.max_age / 2)
        self.cookie_secure = cookie_secure
        self.cookie_same_site = cookie_same_site

    @property
    def store(self) -> SessionStore:
        if self._store is None:
            raise StoreUnavailableError("session store not initialized")
        return self._store

    @store.setter
    def store(self, store: SessionStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Cookie signing
    # ------------------------------------------------------------------

    def sign(self, session_id: str) -> str:
        return self._signer.sign(session_id).decode("utf-8")

    def unsign(self, cookie_value: str) -> str | None:
        """Return the session id, or None for a forged, corrupted or stale cookie."""
        try:
            return self._signer.unsign(
                cookie_value, max_age=int(self.max_age.total_seconds())
            ).decode("utf-8")
        except BadSignature:
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def new_session(self) -> Session:
        """Fresh anonymous session, held in memory until first modified."""
        now = datetime.now(UTC)
        return Session(
            session_id=secrets.token_urlsafe(SESSION_ID_BYTES),
            created_at=now,
            expires_at=now + self.max_age,
            is_new=True,
        )

    async def resolve(self, request: Request) -> Session:
        """Load the session named by the request cookie or start a new one."""
        cookie_value = request.cookies.get(self.cookie_name)
        if cookie_value:
            session_id = self.unsign(cookie_value)
            if session_id is None:
                logger.warning("session_cookie_rejected", path=request.url.path)
            else:
                session = await self.store.get(session_id)
                if session is not None:
                    return session
        return self.new_session()

    async def save(self, session: Session) -> None:
        """Write the session and slide its expiry."""
        now = datetime.now(UTC)
        session.last_written_at = now
        session.expires_at = now + self.max_age
        await self.store.set(session)
        session.is_new = False
        session.modified = False
        session.needs_cookie = True

    def should_touch(self, session: Session, now: datetime | None = None) -> bool:
        if session.is_new or session.last_written_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - session.last_written_at >= self.touch_after

    async def touch(self, session: Session) -> bool:
        """Lazily re-persist an unmodified session. Returns True if the store was written."""
        now = datetime.now(UTC)
        if not self.should_touch(session, now):
            return False
        expires_at = now + self.max_age
        await self.store.touch(session.session_id, now, expires_at)
        session.last_written_at = now
        session.expires_at = expires_at
        session.needs_cookie = True
        return True

    async def destroy(self, session: Session) -> None:
        """Invalidate the store record and tell the client to drop the cookie."""
        session.identity = None
        if not session.is_new:
            await self.store.destroy(session.session_id)
        session.destroyed = True
        session.modified = False
        session.needs_cookie = False
        logger.info("session_destroyed", session=session.session_id[:8])

    async def regenerate(self, session: Session) -> None:
        """Rotate the session id in place, dropping the old record."""
        if not session.is_new:
            await self.store.destroy(session.session_id)
        previous = session.session_id
        fresh = self.new_session()
        session.session_id = fresh.session_id
        session.created_at = fresh.created_at
        session.expires_at = fresh.expires_at
        session.last_written_at = None
        session.is_new = True
        session.destroyed = False
        logger.info("session_regenerated", previous=previous[:8], session=session.session_id[:8])

    async def commit(self, session: Session, response: Response) -> None:
        """Persist pending changes and emit the matching cookie header."""
        if session.destroyed:
            response.delete_cookie(
                self.cookie_name,
                path="/",
                secure=self.cookie_secure,
                httponly=True,
                samesite=self.cookie_same_site,  # type: ignore[arg-type]
            )
            return

        if session.modified:
            await self.save(session)
        elif not session.is_new:
            await self.touch(session)

        if session.needs_cookie:
            response.set_cookie(
                key=self.cookie_name,
                value=self.sign(session.session_id),
                max_age=int(self.max_age.total_seconds()),
                path="/",
                secure=self.cookie_secure,
                httponly=True,
                samesite=self.cookie_same_site,  # type: ignore[arg-type]
            )
            session.needs_cookie = False


class SessionMiddleware(BaseHTTPMiddleware):
    """Wraps every request with a resolved Session on ``request.state.session``."""

    def __init__(self, app: ASGIApp, manager: SessionManager) -> None:
        super().__init__(app)
        self.manager = manager

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            session = await self.manager.resolve(request)
        except StoreUnavailableError as exc:
            logger.error("session_resolve_failed", path=request.url.path, error=str(exc))
            return _store_error_response()

        request.state.session = session
        response = await call_next(request)

        try:
            await self.manager.commit(session, response)
        except StoreUnavailableError as exc:
            logger.error("session_commit_failed", path=request.url.path, error=str(exc))
            # Keep the handler's own error body
            if response.status_code >= 500:
                return response
            return _store_error_response()

        return response


def _store_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Session store unavailable"},
    )
