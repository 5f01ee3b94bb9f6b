"""Pacing of marketplace calls.

Upstream limits are per credential and per endpoint group, so a cabinet run
holds one limiter per group and awaits ``wait()`` before each paced call.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sellersync.core.config import Settings

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@runtime_checkable
class RateLimiter(Protocol):
    """Anything that can hold a caller until the next call is permitted."""

    async def wait(self) -> None:
        """Block until a call is allowed."""
        ...


class IntervalRateLimiter:
    """Enforce a minimum interval between consecutive permits.

    The first ``wait()`` returns immediately. Each later one sleeps until
    ``min_interval_seconds`` has passed since the previous permit. Concurrent
    awaiters are serialised by a lock.
    """

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError(f"min_interval_seconds must be >= 0, got {min_interval_seconds}")
        self.min_interval_seconds = min_interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_permit: float | None = None

    async def wait(self) -> None:
        async with self._lock:
            if self._last_permit is not None:
                remaining = self.min_interval_seconds - (self._clock() - self._last_permit)
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_permit = self._clock()


@dataclass
class RateLimiters:
    """Limiter set for one credential, one limiter per endpoint group."""

    cards: RateLimiter
    prices: RateLimiter
    stocks: RateLimiter
    funnel: RateLimiter
    campaign_stats: RateLimiter
    auction: RateLimiter
    feedbacks: RateLimiter

    @classmethod
    def from_settings(cls, settings: Settings, sleep: Sleeper = asyncio.sleep) -> RateLimiters:
        """Build a fresh limiter set paced by the configured intervals.

        Args:
            settings: Application settings.
            sleep: Sleep coroutine (injectable for tests).

        Returns:
            New RateLimiters with no permits issued yet.
        """
        return cls(
            cards=IntervalRateLimiter(settings.cards_page_interval_seconds, sleep=sleep),
            prices=IntervalRateLimiter(settings.prices_batch_interval_seconds, sleep=sleep),
            stocks=IntervalRateLimiter(settings.stocks_item_interval_seconds, sleep=sleep),
            funnel=IntervalRateLimiter(settings.funnel_item_interval_seconds, sleep=sleep),
            campaign_stats=IntervalRateLimiter(
                settings.campaign_stats_interval_seconds, sleep=sleep
            ),
            auction=IntervalRateLimiter(settings.auction_batch_interval_seconds, sleep=sleep),
            feedbacks=IntervalRateLimiter(settings.feedbacks_page_interval_seconds, sleep=sleep),
        )
