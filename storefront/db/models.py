"""
Database Models - SQLAlchemy ORM models with strict typing.

Sessions are the only persisted state; users and orders are not stored.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class WebSession(Base):
    """
    ORM model for web_sessions table.

    One row per persisted browser session. Anonymous sessions that were
    never modified have no row.
    """

    __tablename__ = "web_sessions"

    # Primary Key - opaque session id carried (signed) in the cookie
    sid: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Serialized Identity, NULL for anonymous sessions
    identity: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    # Last time the row was written (save or touch)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_web_sessions_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        return f"<WebSession(sid={self.sid[:8]}..., expires_at={self.expires_at.isoformat()})>"
