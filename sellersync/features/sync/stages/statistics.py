"""Statistics stage: campaign daily statistics and item funnel analytics.

Both halves only fetch the days not stored yet (see ``reconciler``).
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import (
    Campaign,
    CampaignDailyMetric,
    CampaignStatus,
    ItemDailyMetric,
)
from sellersync.features.marketplace.chunking import chunked
from sellersync.features.marketplace.client import CAMPAIGN_STATS_BATCH_MAX, FUNNEL_MAX_WINDOW_DAYS
from sellersync.features.marketplace.schemas import CampaignStats, FunnelDay, StatsItem
from sellersync.features.sync.reconciler import (
    filter_new_records,
    plan_gap_fetch,
    reconcile_daily,
)
from sellersync.features.sync.stages.base import StageContext, cabinet_item_ids, check_batch
from sellersync.features.sync.upsert import UpsertResult, upsert_by_natural_key
from sellersync.features.sync.windows import DateWindow, split_window

logger = get_logger(__name__)

CENT = Decimal("0.01")


def cost_per_action(spend: Decimal | None, orders: int | None) -> Decimal | None:
    """Spend per order, rounded half-up to cents; None without orders."""
    if spend is None or not orders:
        return None
    return (spend / Decimal(orders)).quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# Campaign statistics
# =============================================================================


@dataclass(frozen=True)
class CampaignDayRecord:
    campaign_id: int
    date: datetime.date
    stats: StatsItem

    @property
    def key(self) -> tuple[int, int, datetime.date]:
        return (self.campaign_id, self.stats.item_id, self.date)


@dataclass(frozen=True)
class CampaignGap:
    """Stored days and the span to fetch for one campaign."""

    campaign_id: int
    existing: frozenset[datetime.date]
    plan: DateWindow


def campaign_day_records(stats: CampaignStats) -> list[CampaignDayRecord]:
    """Flatten days, apps and items of one campaign's statistics."""
    return [
        CampaignDayRecord(campaign_id=stats.campaign_id, date=day.day, stats=item)
        for day in stats.days
        for app in day.apps
        for item in app.items
    ]


async def plan_campaign_gaps(
    db: AsyncSession,
    cabinet_id: int,
    window: DateWindow,
) -> list[CampaignGap]:
    """Find non-finished campaigns with missing days in the window."""
    stmt = (
        select(Campaign.campaign_id)
        .where(
            Campaign.cabinet_id == cabinet_id,
            or_(Campaign.status.is_(None), Campaign.status != CampaignStatus.FINISHED.value),
        )
        .order_by(Campaign.campaign_id)
    )
    campaign_ids = list((await db.execute(stmt)).scalars())

    gaps: list[CampaignGap] = []
    for campaign_id in campaign_ids:
        dates_stmt = (
            select(CampaignDailyMetric.date)
            .where(
                CampaignDailyMetric.campaign_id == campaign_id,
                CampaignDailyMetric.date >= window.start,
                CampaignDailyMetric.date <= window.end,
            )
            .distinct()
        )
        existing = frozenset((await db.execute(dates_stmt)).scalars())
        plan = plan_gap_fetch(existing, window)
        if plan is not None:
            gaps.append(CampaignGap(campaign_id=campaign_id, existing=existing, plan=plan))
    return gaps


async def store_campaign_days(
    db: AsyncSession,
    cabinet_id: int,
    records: list[CampaignDayRecord],
) -> UpsertResult:
    """Upsert campaign statistics keyed by (campaign, item, date)."""

    async def find(
        session: AsyncSession, key: tuple[int, int, datetime.date]
    ) -> CampaignDailyMetric | None:
        campaign_id, item_id, day = key
        stmt = select(CampaignDailyMetric).where(
            CampaignDailyMetric.campaign_id == campaign_id,
            CampaignDailyMetric.item_id == item_id,
            CampaignDailyMetric.date == day,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def apply(row: CampaignDailyMetric, record: CampaignDayRecord) -> None:
        s = record.stats
        row.views = s.views
        row.clicks = s.clicks
        row.ctr = s.ctr
        row.cpc = s.cpc
        row.cr = s.cr
        row.spend = s.spend
        row.orders = s.orders
        row.orders_sum = s.orders_sum
        row.add_to_cart = s.add_to_cart
        row.canceled = s.canceled
        row.shks = s.shks
        row.cpa = cost_per_action(s.spend, s.orders)

    def build(record: CampaignDayRecord) -> CampaignDailyMetric:
        row = CampaignDailyMetric(
            cabinet_id=cabinet_id,
            campaign_id=record.campaign_id,
            item_id=record.stats.item_id,
            date=record.date,
        )
        apply(row, record)
        return row

    return await upsert_by_natural_key(
        db,
        records,
        cabinet_id=cabinet_id,
        entity="campaign_daily_metric",
        key_of=lambda record: record.key,
        find_existing=find,
        build=build,
        apply=apply,
    )


async def sync_campaign_statistics(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Fetch missing campaign days in batches of campaigns.

    Each batch makes one call spanning the union of its campaigns' planned
    spans; only days missing for a given campaign are written.
    """
    gaps = await plan_campaign_gaps(db, ctx.cabinet_id, ctx.window)
    total = UpsertResult()

    for batch in chunked(gaps, CAMPAIGN_STATS_BATCH_MAX):
        ids = [gap.campaign_id for gap in batch]
        start = min(gap.plan.start for gap in batch)
        end = max(gap.plan.end for gap in batch)

        await ctx.limiters.campaign_stats.wait()
        stats = check_batch(
            await ctx.client.get_campaign_stats(ctx.credential, ids, start, end),
            "campaign_stats",
            batch_size=len(ids),
        )
        if stats is None:
            continue

        by_campaign = {gap.campaign_id: gap for gap in batch}
        returned = {entry.campaign_id for entry in stats}
        missing = [campaign_id for campaign_id in ids if campaign_id not in returned]
        if missing:
            logger.info("sync.campaign_stats_missing", campaign_ids=missing)

        records: list[CampaignDayRecord] = []
        for entry in stats:
            gap = by_campaign.get(entry.campaign_id)
            if gap is None:
                continue
            kept, dropped = filter_new_records(
                campaign_day_records(entry),
                window=ctx.window,
                existing=gap.existing,
                date_of=lambda record: record.date,
            )
            records.extend(kept)
            total.skipped += dropped
        total.merge(await store_campaign_days(db, ctx.cabinet_id, records))

    logger.info("sync.campaign_statistics_synced", campaigns=len(gaps), **total.as_log_fields())
    return total


# =============================================================================
# Item funnel analytics
# =============================================================================


async def existing_funnel_days(
    db: AsyncSession,
    cabinet_id: int,
    item_id: int,
    window: DateWindow,
) -> set[datetime.date]:
    stmt = select(ItemDailyMetric.date).where(
        ItemDailyMetric.cabinet_id == cabinet_id,
        ItemDailyMetric.item_id == item_id,
        ItemDailyMetric.date >= window.start,
        ItemDailyMetric.date <= window.end,
    )
    return set((await db.execute(stmt)).scalars())


async def store_funnel_days(
    db: AsyncSession,
    cabinet_id: int,
    item_id: int,
    days: list[FunnelDay],
) -> UpsertResult:
    """Upsert funnel days of one item keyed by (item, date)."""

    async def find(session: AsyncSession, day: datetime.date) -> ItemDailyMetric | None:
        stmt = select(ItemDailyMetric).where(
            ItemDailyMetric.cabinet_id == cabinet_id,
            ItemDailyMetric.item_id == item_id,
            ItemDailyMetric.date == day,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def apply(row: ItemDailyMetric, record: FunnelDay) -> None:
        row.open_card = record.open_card
        row.add_to_cart = record.add_to_cart
        row.orders = record.orders
        row.orders_sum = record.orders_sum

    def build(record: FunnelDay) -> ItemDailyMetric:
        row = ItemDailyMetric(cabinet_id=cabinet_id, item_id=item_id, date=record.day)
        apply(row, record)
        return row

    return await upsert_by_natural_key(
        db,
        days,
        cabinet_id=cabinet_id,
        entity="item_daily_metric",
        key_of=lambda record: record.day,
        find_existing=find,
        build=build,
        apply=apply,
    )


async def sync_item_funnels(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Fill missing funnel days of every item.

    The analytics endpoint accepts at most ``FUNNEL_MAX_WINDOW_DAYS`` days
    per request, so the window is reconciled piece by piece. Each piece with
    a gap costs one paced call per item; complete pieces cost none.
    """
    item_ids = await cabinet_item_ids(db, ctx.cabinet_id)
    pieces = split_window(ctx.window, FUNNEL_MAX_WINDOW_DAYS)
    total = UpsertResult()
    remote_calls = 0

    for item_id in item_ids:

        async def load_existing(window: DateWindow, item_id: int = item_id) -> set[datetime.date]:
            return await existing_funnel_days(db, ctx.cabinet_id, item_id, window)

        async def fetch(plan: DateWindow, item_id: int = item_id) -> list[FunnelDay]:
            await ctx.limiters.funnel.wait()
            history = check_batch(
                await ctx.client.get_sales_funnel(
                    ctx.credential, item_id, plan.start, plan.end, today=ctx.today
                ),
                "sales_funnel",
                item_id=item_id,
            )
            if history is None:
                return []
            return [day for entry in history if entry.product.item_id == item_id for day in entry.history]

        async def persist(days: list[FunnelDay], item_id: int = item_id) -> int:
            result = await store_funnel_days(db, ctx.cabinet_id, item_id, days)
            total.merge(result)
            return result.created + result.updated

        for piece in pieces:
            outcome = await reconcile_daily(
                piece,
                load_existing=load_existing,
                fetch=fetch,
                date_of=lambda day: day.day,
                persist=persist,
            )
            remote_calls += outcome.remote_calls
            total.skipped += outcome.skipped

    logger.info(
        "sync.item_funnels_synced",
        items=len(item_ids),
        pieces=len(pieces),
        remote_calls=remote_calls,
        **total.as_log_fields(),
    )
    return total


async def sync_statistics(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Run campaign statistics, then item funnel analytics."""
    result = await sync_campaign_statistics(db, ctx)
    return result.merge(await sync_item_funnels(db, ctx))
