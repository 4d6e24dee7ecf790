"""
Database Session Management - Async SQLAlchemy engine for the session store.

The engine is created lazily from SESSION_STORE_URL and disposed on shutdown.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.config import settings

# Global engine instance
_store_engine: AsyncEngine | None = None

# Session factory
_store_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_store_engine(database_url: str | None = None) -> AsyncEngine:
    """Get or create the session store engine."""
    global _store_engine
    if _store_engine is None:
        _store_engine = create_async_engine(
            database_url or settings.session_store_url,
            pool_size=settings.session_store_pool_size,
            pool_pre_ping=True,
            echo=settings.log_level == "DEBUG",
        )
    return _store_engine


def get_store_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the session store session factory."""
    global _store_session_factory
    if _store_session_factory is None:
        engine = get_store_engine(database_url)
        _store_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _store_session_factory


async def close_engines() -> None:
    """Close the session store engine (for graceful shutdown)."""
    global _store_engine, _store_session_factory

    if _store_engine:
        await _store_engine.dispose()
        _store_engine = None
        _store_session_factory = None
