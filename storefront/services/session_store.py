"""
Session Store - durable and volatile persistence of browser sessions.

The durable store keeps one row per session in the SQL database named by
SESSION_STORE_URL. The memory store keeps sessions in process and loses
them on restart; it is only used outside production.

Every failure to reach the durable backend surfaces as StoreUnavailableError.
"""

from dataclasses import replace
from datetime import UTC, datetime
from typing import NoReturn, Protocol

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from storefront.db.models import WebSession
from storefront.exceptions import StoreUnavailableError
from storefront.models.domain import Identity, Session
from storefront.observability.metrics import metrics

logger = get_logger(__name__)

# Driver-level connection failures can escape SQLAlchemy wrapping
STORE_ERRORS = (SQLAlchemyError, OSError)


class SessionStore(Protocol):
    """
    Session store protocol.

    Implementations must provide per-key atomicity on their own; callers
    never take cross-request locks.
    """

    backend: str

    async def get(self, session_id: str) -> Session | None:
        """Return the stored, unexpired session or None."""
        ...

    async def set(self, session: Session) -> None:
        """Insert or replace the record for ``session.session_id``."""
        ...

    async def touch(self, session_id: str, written_at: datetime, expires_at: datetime) -> None:
        """Extend the expiry of an existing record without rewriting its data."""
        ...

    async def destroy(self, session_id: str) -> None:
        """Delete the record. Missing records are not an error."""
        ...

    async def ping(self) -> None:
        """Raise StoreUnavailableError when the backend is unreachable."""
        ...

    async def close(self) -> None:
        ...


def _snapshot(session: Session) -> Session:
    """Copy of the persisted fields with bookkeeping flags cleared."""
    return Session(
        session_id=session.session_id,
        created_at=session.created_at,
        expires_at=session.expires_at,
        last_written_at=session.last_written_at,
        identity=session.identity,
    )


class MemorySessionStore:
    """
    In-process session store.

    Data is lost on restart. Expired entries are dropped on lookup and swept
    on every write.
    """

    backend = "memory"

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, session_id: str) -> Session | None:
        stored = self._sessions.get(session_id)
        if stored is None:
            return None
        if stored.expires_at <= datetime.now(UTC):
            del self._sessions[session_id]
            return None
        return _snapshot(stored)

    async def set(self, session: Session) -> None:
        await self.purge_expired()
        self._sessions[session.session_id] = _snapshot(session)

    async def touch(self, session_id: str, written_at: datetime, expires_at: datetime) -> None:
        stored = self._sessions.get(session_id)
        if stored is not None:
            self._sessions[session_id] = replace(
                stored, last_written_at=written_at, expires_at=expires_at
            )

    async def destroy(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def purge_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = datetime.now(UTC)
        expired = [sid for sid, stored in self._sessions.items() if stored.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._sessions.clear()


class DatabaseSessionStore:
    """
    Durable session store backed by the ``web_sessions`` table.

    Writes use ``merge`` on the primary key so concurrent saves of the same
    session resolve to the last writer without client-side locking.
    """

    backend = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, session_id: str) -> Session | None:
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as db:
                stmt = select(WebSession).where(
                    WebSession.sid == session_id, WebSession.expires_at > now
                )
                result = await db.execute(stmt)
                row = result.scalar_one_or_none()
        except STORE_ERRORS as exc:
            self._fail("get", exc)

        metrics.record_session_store("get", True)
        if row is None:
            return None

        return Session(
            session_id=row.sid,
            created_at=row.created_at,
            expires_at=row.expires_at,
            last_written_at=row.updated_at,
            identity=Identity.from_dict(row.identity) if row.identity else None,
        )

    async def set(self, session: Session) -> None:
        record = WebSession(
            sid=session.session_id,
            identity=session.identity.to_dict() if session.identity else None,
            created_at=session.created_at,
            updated_at=session.last_written_at or datetime.now(UTC),
            expires_at=session.expires_at,
        )
        try:
            async with self._session_factory() as db:
                await db.merge(record)
                await db.commit()
        except STORE_ERRORS as exc:
            self._fail("set", exc)

        metrics.record_session_store("set", True)

    async def touch(self, session_id: str, written_at: datetime, expires_at: datetime) -> None:
        stmt = (
            update(WebSession)
            .where(WebSession.sid == session_id)
            .values(updated_at=written_at, expires_at=expires_at)
        )
        try:
            async with self._session_factory() as db:
                await db.execute(stmt)
                await db.commit()
        except STORE_ERRORS as exc:
            self._fail("touch", exc)

        metrics.record_session_store("touch", True)

    async def destroy(self, session_id: str) -> None:
        stmt = delete(WebSession).where(WebSession.sid == session_id)
        try:
            async with self._session_factory() as db:
                await db.execute(stmt)
                await db.commit()
        except STORE_ERRORS as exc:
            self._fail("destroy", exc)

        metrics.record_session_store("destroy", True)

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number of rows removed."""
        stmt = delete(WebSession).where(WebSession.expires_at <= datetime.now(UTC))
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
        except STORE_ERRORS as exc:
            self._fail("purge", exc)

        removed: int = result.rowcount or 0  # type: ignore[attr-defined]
        if removed:
            logger.info("expired_sessions_purged", count=removed)
        return removed

    async def ping(self) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
        except STORE_ERRORS as exc:
            self._fail("ping", exc)

    async def close(self) -> None:
        # Engine lifetime is owned by storefront.db.session.close_engines
        return None

    def _fail(self, operation: str, exc: Exception) -> NoReturn:
        metrics.record_session_store(operation, False)
        logger.error(
            "session_store_operation_failed",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise StoreUnavailableError(f"{operation} failed: {type(exc).__name__}") from exc
