"""Promotions stage: which items take part in today's calendar promotions."""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import PromotionParticipation
from sellersync.features.marketplace.client import CALENDAR_PAGE_SIZE
from sellersync.features.marketplace.errors import (
    ApiCallError,
    ValidationRejected,
    describe_failure,
    unwrap,
)
from sellersync.features.marketplace.pagination import walk_offset_pages
from sellersync.features.marketplace.schemas import CalendarPromotion, PromotionItem
from sellersync.features.sync.stages.base import StageContext, cabinet_item_ids
from sellersync.features.sync.upsert import UpsertResult

logger = get_logger(__name__)

AUTO_PROMOTION_TYPE = "auto"


@dataclass(frozen=True)
class ParticipationRecord:
    item_id: int
    promotion_id: int
    promotion_name: str | None


def day_bounds(day: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    """First and last second of a UTC day."""
    start = datetime.datetime.combine(day, datetime.time.min, tzinfo=datetime.UTC)
    end = datetime.datetime.combine(day, datetime.time(23, 59, 59), tzinfo=datetime.UTC)
    return start, end


def participation_records(
    promotion: CalendarPromotion,
    items: list[PromotionItem],
    cabinet_items: set[int],
) -> list[ParticipationRecord]:
    """Participations of the cabinet's own items in one promotion, deduplicated."""
    item_ids = sorted({item.item_id for item in items if item.item_id in cabinet_items})
    return [
        ParticipationRecord(
            item_id=item_id,
            promotion_id=promotion.promotion_id,
            promotion_name=promotion.name,
        )
        for item_id in item_ids
    ]


async def fetch_promotion_items(
    ctx: StageContext,
    promotion: CalendarPromotion,
) -> list[PromotionItem] | None:
    """Drain the item listing of one promotion.

    A promotion the upstream refuses to list (422) is skipped. Any other
    failure ends the stage before stored participations are replaced.

    Returns:
        The items, or None when the promotion has to be skipped.

    Raises:
        ApiCallError: On any failure other than a 422.
    """

    async def fetch_page(offset: int, limit: int) -> list[PromotionItem]:
        result = await ctx.client.get_promotion_items(
            ctx.credential, promotion.promotion_id, limit=limit, offset=offset
        )
        page = unwrap(result, "promotion_items")
        return page.data.nomenclatures if page.data else []

    try:
        return await walk_offset_pages(fetch_page, page_size=CALENDAR_PAGE_SIZE)
    except ApiCallError as e:
        if not isinstance(e.failure, ValidationRejected):
            logger.warning(
                "sync.promotion_items_failed",
                promotion_id=promotion.promotion_id,
                reason=describe_failure(e.failure),
            )
            raise
        logger.warning(
            "sync.promotion_rejected",
            promotion_id=promotion.promotion_id,
            promotion_type=promotion.type,
        )
        return None


async def replace_participations(
    db: AsyncSession,
    cabinet_id: int,
    records: list[ParticipationRecord],
) -> int:
    """Delete the cabinet's participations and insert the given ones."""
    await db.execute(
        delete(PromotionParticipation).where(PromotionParticipation.cabinet_id == cabinet_id)
    )
    unique = {(record.item_id, record.promotion_id): record for record in records}
    db.add_all(
        PromotionParticipation(
            cabinet_id=cabinet_id,
            item_id=record.item_id,
            promotion_id=record.promotion_id,
            promotion_name=record.promotion_name,
        )
        for record in unique.values()
    )
    await db.flush()
    return len(unique)


async def sync_promotions(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Rebuild the cabinet's participation in today's promotions.

    Raises:
        ApiCallError: If the calendar or an item listing fails (422 aside).
    """
    start, end = day_bounds(ctx.today)
    calendar = unwrap(
        await ctx.client.get_calendar_promotions(ctx.credential, start, end),
        "calendar_promotions",
    )
    promotions = calendar.data.promotions if calendar.data else []
    cabinet_items = set(await cabinet_item_ids(db, ctx.cabinet_id))

    result = UpsertResult()
    records: list[ParticipationRecord] = []
    if cabinet_items:
        for promotion in promotions:
            if promotion.type == AUTO_PROMOTION_TYPE:
                result.skipped += 1
                continue
            items = await fetch_promotion_items(ctx, promotion)
            if items is None:
                result.skipped += 1
                continue
            records.extend(participation_records(promotion, items, cabinet_items))

    result.created = await replace_participations(db, ctx.cabinet_id, records)
    logger.info(
        "sync.promotions_synced",
        promotions=len(promotions),
        **result.as_log_fields(),
    )
    return result
