"""Async SQLAlchemy 2.0 database setup."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from sellersync.core.config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine from settings."""
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )
    return engine


@lru_cache
def get_session_maker() -> SessionFactory:
    """Get the async session maker bound to the shared engine.

    Sync stages and teardown batches open their own sessions from this
    factory, one transaction each.
    """
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def dispose_engine() -> None:
    """Close the shared engine's pool and forget the cached factories."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_session_maker.cache_clear()
    get_engine.cache_clear()


@asynccontextmanager
async def transaction(session_maker: SessionFactory) -> AsyncIterator[AsyncSession]:
    """Open a session whose work commits on exit or rolls back on error.

    Args:
        session_maker: Factory to open the session from.

    Yields:
        AsyncSession bound to a fresh transaction.
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Yields:
        AsyncSession: Database session that auto-commits on success.
    """
    async with transaction(get_session_maker()) as session:
        yield session
