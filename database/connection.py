"""
Async database engine and session management.

Usage:
    from database.connection import get_async_session

    async with get_async_session() as session:
        result = await session.execute(select(BookingRecord))

The engine is created lazily from DATABASE_URL so importing this module never
opens a connection (tests use the in-memory store and never touch it).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def normalize_database_url(url: str) -> str:
    """Force the asyncpg driver on PostgreSQL URLs."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql+psycopg://"):
        return url.replace("postgresql+psycopg://", "postgresql+asyncpg://", 1)
    return url


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            normalize_database_url(settings.DATABASE_URL),
            echo=settings.DATABASE_ECHO,
            pool_pre_ping=True,
        )
        logger.info("Database engine created")
    return _engine


def AsyncSessionLocal() -> AsyncSession:
    """New AsyncSession bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory()


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Session context manager: rolls back on error, always closes.

    Callers commit explicitly.
    """
    session = AsyncSessionLocal()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def dispose_engine() -> None:
    """Close all pooled connections (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
