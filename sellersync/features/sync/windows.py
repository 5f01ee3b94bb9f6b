"""Inclusive date windows used by sync runs."""

from __future__ import annotations

import datetime
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of calendar days."""

    start: datetime.date
    end: datetime.date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, day: object) -> bool:
        return isinstance(day, datetime.date) and self.start <= day <= self.end

    def days(self) -> Iterator[datetime.date]:
        for offset in range(len(self)):
            yield self.start + datetime.timedelta(days=offset)


def trailing_window(today: datetime.date, days: int) -> DateWindow:
    """Window of ``days`` days ending yesterday.

    Args:
        today: Current date.
        days: Window length, at least 1.

    Returns:
        DateWindow ending at today - 1.
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")
    end = today - datetime.timedelta(days=1)
    return DateWindow(start=end - datetime.timedelta(days=days - 1), end=end)


def full_update_window(today: datetime.date, days: int = 14) -> DateWindow:
    """Window for on-demand runs: the two weeks ending yesterday."""
    return trailing_window(today, days)


def last_week_window(today: datetime.date, days: int = 7) -> DateWindow:
    """Window for the nightly run: the week ending yesterday."""
    return trailing_window(today, days)


def split_window(window: DateWindow, max_days: int) -> list[DateWindow]:
    """Cut a window into consecutive pieces of at most ``max_days`` days.

    Pieces are anchored at the window end, so only the earliest one can be
    shorter. They are returned in chronological order.
    """
    if max_days < 1:
        raise ValueError(f"max_days must be >= 1, got {max_days}")
    pieces: list[DateWindow] = []
    end = window.end
    while end >= window.start:
        start = max(window.start, end - datetime.timedelta(days=max_days - 1))
        pieces.append(DateWindow(start=start, end=end))
        end = start - datetime.timedelta(days=1)
    return pieces[::-1]
