"""Fixtures for sync stage tests."""

import datetime
from unittest.mock import AsyncMock

import pytest

from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.ratelimit import RateLimiters
from sellersync.features.sync.stages import StageContext
from sellersync.features.sync.windows import DateWindow

TODAY = datetime.date(2024, 5, 11)


@pytest.fixture
def marketplace():
    """MarketplaceClient double; configure return values per test."""
    return AsyncMock(spec=MarketplaceClient)


@pytest.fixture
def make_ctx(marketplace, test_settings):
    """Factory building a StageContext around the client double."""

    def _make(
        cabinet_id: int,
        window: DateWindow | None = None,
        today: datetime.date = TODAY,
    ) -> StageContext:
        return StageContext(
            cabinet_id=cabinet_id,
            credential="key-123",
            client=marketplace,
            limiters=RateLimiters.from_settings(test_settings, sleep=AsyncMock()),
            window=window or DateWindow(datetime.date(2024, 5, 1), datetime.date(2024, 5, 10)),
            today=today,
        )

    return _make
