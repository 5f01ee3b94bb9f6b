"""Walkers that drain paginated marketplace listings."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sellersync.core.logging import get_logger
from sellersync.features.marketplace.errors import PaginationConfigError
from sellersync.features.marketplace.ratelimit import RateLimiter

logger = get_logger(__name__)


@dataclass(frozen=True)
class PageCursor:
    """Sort keys of the last element of a page."""

    updated_at: str | None
    item_id: int | None

    @property
    def is_set(self) -> bool:
        return self.updated_at is not None and self.item_id is not None


@dataclass(frozen=True)
class CursorPage[T]:
    """One page of a cursor listing.

    Attributes:
        items: Elements of the page.
        total: Element count the server reports for this page.
        cursor: Where the next page starts.
    """

    items: list[T]
    total: int
    cursor: PageCursor | None


async def walk_cursor_pages[T](
    fetch_page: Callable[[PageCursor | None], Awaitable[CursorPage[T]]],
    *,
    page_size: int,
    limiter: RateLimiter,
) -> list[T]:
    """Fetch every page of a cursor-paginated listing.

    The first request carries no cursor. While the last page reports a total
    of at least ``page_size``, the next request continues from that page's
    cursor. An empty page ends the walk.

    Args:
        fetch_page: Coroutine fetching the page that follows a cursor.
        page_size: Requested page size.
        limiter: Awaited between consecutive pages.

    Returns:
        All elements in page order.

    Raises:
        PaginationConfigError: If more pages are announced but the cursor is unset.
    """
    page = await fetch_page(None)
    results = list(page.items)
    pages = 1

    while page.items and page.total >= page_size:
        cursor = page.cursor
        if cursor is None or not cursor.is_set:
            raise PaginationConfigError(
                "Listing announced more pages but returned no cursor",
                details={"pages_fetched": pages, "total": page.total},
            )
        await limiter.wait()
        page = await fetch_page(cursor)
        results.extend(page.items)
        pages += 1
        logger.debug("marketplace.page_fetched", page=pages, page_items=len(page.items))

    logger.info("marketplace.cursor_walk_completed", pages=pages, items=len(results))
    return results


async def walk_offset_pages[T](
    fetch_page: Callable[[int, int], Awaitable[list[T]]],
    *,
    page_size: int,
    limiter: RateLimiter | None = None,
) -> list[T]:
    """Fetch every page of an offset-paginated listing.

    A page shorter than ``page_size`` is the last one.

    Args:
        fetch_page: Coroutine taking (offset, limit).
        page_size: Requested page size.
        limiter: Optional pacing between pages.

    Returns:
        All elements in page order.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    results: list[T] = []
    offset = 0
    while True:
        items = await fetch_page(offset, page_size)
        results.extend(items)
        if len(items) < page_size:
            return results
        offset += page_size
        if limiter is not None:
            await limiter.wait()
