"""Shared pytest fixtures for SellerSync tests.

Database fixtures run on in-memory SQLite (aiosqlite) so the sync stages,
pipeline and teardown can be exercised without PostgreSQL.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import sellersync.features.cabinets.models  # noqa: F401
import sellersync.features.catalog.models  # noqa: F401
from sellersync.core.config import Settings
from sellersync.core.database import Base, SessionFactory, get_db, get_session_maker, transaction
from sellersync.features.cabinets.models import Cabinet
from sellersync.main import app


@pytest.fixture
async def session_maker() -> AsyncGenerator[SessionFactory, None]:
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_maker: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Session on the test database; rolled back after the test."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with pacing and retry delays zeroed."""
    return Settings(
        api_retry_delay_seconds=0,
        cards_page_interval_seconds=0,
        prices_batch_interval_seconds=0,
        stocks_item_interval_seconds=0,
        funnel_item_interval_seconds=0,
        campaign_stats_interval_seconds=0,
        auction_batch_interval_seconds=0,
        feedbacks_page_interval_seconds=0,
        teardown_batch_size=3,
    )


@pytest.fixture
def make_cabinet(session_maker: SessionFactory):
    """Factory inserting a cabinet and returning its id."""

    async def _make(
        name: str = "Main cabinet",
        api_key: str | None = "key-123",
        is_valid: bool | None = True,
    ) -> int:
        async with transaction(session_maker) as db:
            cabinet = Cabinet(name=name, api_key=api_key, is_valid=is_valid)
            db.add(cabinet)
            await db.flush()
            return cabinet.id

    return _make


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def db_client(session_maker: SessionFactory):
    """HTTP client whose database dependencies point at the SQLite test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with transaction(session_maker) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
