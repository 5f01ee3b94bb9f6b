"""Ratings stage: average feedback rating per item."""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import CatalogItem
from sellersync.features.marketplace.client import FEEDBACKS_PAGE_SIZE
from sellersync.features.marketplace.errors import unwrap
from sellersync.features.marketplace.pagination import walk_offset_pages
from sellersync.features.marketplace.schemas import Feedback
from sellersync.features.sync.stages.base import StageContext
from sellersync.features.sync.upsert import UpsertResult

logger = get_logger(__name__)


def compute_rating(valuations: list[int]) -> Decimal | None:
    """Average of valuations, rounded half-up to 2 places."""
    if not valuations:
        return None
    average = Decimal(sum(valuations)) / Decimal(len(valuations))
    return average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def group_valuations(feedbacks: list[Feedback]) -> dict[int, list[int]]:
    grouped: dict[int, list[int]] = defaultdict(list)
    for feedback in feedbacks:
        if feedback.valuation is None or feedback.product is None:
            continue
        if feedback.product.item_id is None:
            continue
        grouped[feedback.product.item_id].append(feedback.valuation)
    return grouped


async def fetch_feedbacks(ctx: StageContext, *, is_answered: bool) -> list[Feedback]:
    """Drain answered or unanswered feedbacks.

    Raises:
        ApiCallError: If any page fails.
    """

    async def fetch_page(offset: int, limit: int) -> list[Feedback]:
        await ctx.limiters.feedbacks.wait()
        result = await ctx.client.get_feedbacks(
            ctx.credential, is_answered=is_answered, take=limit, skip=offset
        )
        response = unwrap(result, "feedbacks")
        return response.data.feedbacks if response.data else []

    return await walk_offset_pages(fetch_page, page_size=FEEDBACKS_PAGE_SIZE)


async def sync_ratings(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Recompute rating and review count of every cabinet item.

    Items without feedback end up with no rating and a count of zero.
    """
    feedbacks = await fetch_feedbacks(ctx, is_answered=True)
    feedbacks += await fetch_feedbacks(ctx, is_answered=False)
    grouped = group_valuations(feedbacks)

    stmt = select(CatalogItem).where(CatalogItem.cabinet_id == ctx.cabinet_id)
    items = list((await db.execute(stmt)).scalars())

    result = UpsertResult()
    for item in items:
        valuations = grouped.get(item.item_id, [])
        item.rating = compute_rating(valuations)
        item.reviews_count = len(valuations)
        result.updated += 1
    await db.flush()

    logger.info(
        "sync.ratings_synced",
        feedbacks=len(feedbacks),
        rated_items=sum(1 for item in items if item.rating is not None),
        **result.as_log_fields(),
    )
    return result
