"""Incremental gap reconciliation for date-keyed daily records.

Given the days already stored for a subject (an item or a campaign), decide
whether anything must be fetched and, if so, the single span to fetch.

CRITICAL: the planned span runs from the first to the last missing day, even
when the missing days are scattered. Days inside the span that are already
stored get re-fetched but are never written again.
"""

from __future__ import annotations

import datetime
from collections.abc import Awaitable, Callable, Collection, Iterable
from dataclasses import dataclass

from sellersync.core.logging import get_logger
from sellersync.features.sync.windows import DateWindow

logger = get_logger(__name__)


def plan_gap_fetch(
    existing: Collection[datetime.date],
    window: DateWindow,
) -> DateWindow | None:
    """Compute the one span to fetch for a window.

    Args:
        existing: Days already stored for the subject.
        window: Requested inclusive window.

    Returns:
        [first missing day, last missing day], or None if nothing is missing.
    """
    missing = [day for day in window.days() if day not in existing]
    if not missing:
        return None
    return DateWindow(start=missing[0], end=missing[-1])


def filter_new_records[R](
    records: Iterable[R],
    *,
    window: DateWindow,
    existing: Collection[datetime.date],
    date_of: Callable[[R], datetime.date],
) -> tuple[list[R], int]:
    """Keep records dated inside the window on a day not stored yet.

    Returns:
        (records to persist, number of records dropped).
    """
    kept: list[R] = []
    dropped = 0
    for record in records:
        day = date_of(record)
        if day in window and day not in existing:
            kept.append(record)
        else:
            dropped += 1
    return kept, dropped


@dataclass
class GapReconcileResult:
    """Outcome of reconciling one subject over one window."""

    planned: DateWindow | None = None
    remote_calls: int = 0
    fetched: int = 0
    persisted: int = 0
    skipped: int = 0


async def reconcile_daily[R](
    window: DateWindow,
    *,
    load_existing: Callable[[DateWindow], Awaitable[set[datetime.date]]],
    fetch: Callable[[DateWindow], Awaitable[list[R]]],
    date_of: Callable[[R], datetime.date],
    persist: Callable[[list[R]], Awaitable[int]],
) -> GapReconcileResult:
    """Fill the missing days of one subject with at most one remote call.

    Args:
        window: Requested inclusive window.
        load_existing: Returns the stored days within the window.
        fetch: Fetches records for a span (exactly one remote call).
        date_of: Extracts a record's day.
        persist: Stores records; returns how many were written.

    Returns:
        GapReconcileResult with call and record counts.
    """
    existing = await load_existing(window)
    plan = plan_gap_fetch(existing, window)
    if plan is None:
        logger.debug("sync.gap_none", start=window.start.isoformat(), end=window.end.isoformat())
        return GapReconcileResult()

    records = await fetch(plan)
    new_records, dropped = filter_new_records(
        records, window=window, existing=existing, date_of=date_of
    )
    persisted = await persist(new_records) if new_records else 0

    logger.debug(
        "sync.gap_reconciled",
        plan_start=plan.start.isoformat(),
        plan_end=plan.end.isoformat(),
        fetched=len(records),
        persisted=persisted,
        skipped=dropped,
    )
    return GapReconcileResult(
        planned=plan,
        remote_calls=1,
        fetched=len(records),
        persisted=persisted,
        skipped=dropped,
    )
