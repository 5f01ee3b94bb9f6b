"""Prices stage: yesterday's price snapshot plus customer discounts."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import PriceSnapshot
from sellersync.features.marketplace.chunking import chunked
from sellersync.features.marketplace.client import PRICES_BATCH_MAX
from sellersync.features.marketplace.schemas import Good, GoodSize, Order
from sellersync.features.sync.stages.base import StageContext, cabinet_item_ids, check_batch
from sellersync.features.sync.upsert import UpsertResult, upsert_by_natural_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceRecord:
    item_id: int
    date: datetime.date
    size_id: int | None
    tech_size_name: str | None
    price: Decimal
    discounted_price: Decimal
    club_discounted_price: Decimal
    discount: int
    club_discount: int
    editable_size_price: bool | None
    is_bad_turnover: bool | None

    @property
    def key(self) -> tuple[int, datetime.date, int | None]:
        return (self.item_id, self.date, self.size_id)


def price_records(good: Good, day: datetime.date) -> list[PriceRecord]:
    """Turn one priced good into snapshot records.

    A good needs an id, both discounts and at least one size. A size is
    usable when all three of its prices are present. If every usable size
    carries the same prices, one record with ``size_id=None`` stands for the
    whole item; otherwise each usable size gets its own record.

    Args:
        good: Upstream good.
        day: Snapshot date.

    Returns:
        Records to store (empty if the good is unusable).
    """
    item_id, discount, club_discount = good.item_id, good.discount, good.club_discount
    if item_id is None or discount is None or club_discount is None:
        return []

    usable: list[tuple[GoodSize, tuple[Decimal, Decimal, Decimal]]] = [
        (size, (size.price, size.discounted_price, size.club_discounted_price))
        for size in good.sizes
        if size.price is not None
        and size.discounted_price is not None
        and size.club_discounted_price is not None
    ]
    if not usable:
        return []

    def record(size: GoodSize | None, prices: tuple[Decimal, Decimal, Decimal]) -> PriceRecord:
        return PriceRecord(
            item_id=item_id,
            date=day,
            size_id=size.size_id if size else None,
            tech_size_name=size.tech_size_name if size else None,
            price=prices[0],
            discounted_price=prices[1],
            club_discounted_price=prices[2],
            discount=discount,
            club_discount=club_discount,
            editable_size_price=good.editable_size_price,
            is_bad_turnover=good.is_bad_turnover,
        )

    if len({prices for _, prices in usable}) == 1:
        return [record(None, usable[0][1])]
    return [record(size, prices) for size, prices in usable]


def customer_discounts(orders: list[Order]) -> dict[int, int]:
    """Latest customer discount per item from a day's orders.

    Items whose orders disagree are logged; the most recent order wins.
    """
    pairs = [
        (order.ordered_at, order.item_id, order.customer_discount)
        for order in orders
        if order.item_id is not None and order.customer_discount is not None
    ]
    # Orders without a timestamp keep their response position
    pairs.sort(key=lambda p: p[0].timestamp() if p[0] else float("-inf"))

    latest: dict[int, int] = {}
    seen: dict[int, set[int]] = {}
    for _, item_id, value in pairs:
        latest[item_id] = value
        seen.setdefault(item_id, set()).add(value)

    for item_id, values in seen.items():
        if len(values) > 1:
            logger.warning(
                "sync.customer_discount_varies",
                item_id=item_id,
                values=sorted(values),
                chosen=latest[item_id],
            )
    return latest


async def store_price_records(
    db: AsyncSession,
    cabinet_id: int,
    records: list[PriceRecord],
) -> UpsertResult:
    """Upsert snapshot rows keyed by (item, date, size)."""

    async def find(
        session: AsyncSession, key: tuple[int, datetime.date, int | None]
    ) -> PriceSnapshot | None:
        item_id, day, size_id = key
        size_clause = (
            PriceSnapshot.size_id.is_(None) if size_id is None else PriceSnapshot.size_id == size_id
        )
        stmt = select(PriceSnapshot).where(
            PriceSnapshot.cabinet_id == cabinet_id,
            PriceSnapshot.item_id == item_id,
            PriceSnapshot.date == day,
            size_clause,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def apply(row: PriceSnapshot, record: PriceRecord) -> None:
        row.tech_size_name = record.tech_size_name
        row.price = record.price
        row.discounted_price = record.discounted_price
        row.club_discounted_price = record.club_discounted_price
        row.discount = record.discount
        row.club_discount = record.club_discount
        row.editable_size_price = record.editable_size_price
        row.is_bad_turnover = record.is_bad_turnover

    def build(record: PriceRecord) -> PriceSnapshot:
        row = PriceSnapshot(
            cabinet_id=cabinet_id,
            item_id=record.item_id,
            date=record.date,
            size_id=record.size_id,
        )
        apply(row, record)
        return row

    return await upsert_by_natural_key(
        db,
        records,
        cabinet_id=cabinet_id,
        entity="price_snapshot",
        key_of=lambda record: record.key,
        find_existing=find,
        build=build,
        apply=apply,
    )


async def apply_customer_discounts(
    db: AsyncSession,
    cabinet_id: int,
    day: datetime.date,
    discounts: dict[int, int],
) -> int:
    """Write customer discounts onto the day's snapshot rows.

    Returns:
        Number of items whose rows were updated.
    """
    updated = 0
    for item_id, value in discounts.items():
        stmt = (
            update(PriceSnapshot)
            .where(
                PriceSnapshot.cabinet_id == cabinet_id,
                PriceSnapshot.item_id == item_id,
                PriceSnapshot.date == day,
            )
            .values(customer_discount=value)
        )
        result = await db.execute(stmt)
        if result.rowcount:
            updated += 1
    return updated


async def sync_prices(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Snapshot yesterday's prices of items not priced yet for that day.

    A failed batch is logged and the remaining batches still run.
    """
    day = ctx.yesterday
    item_ids = await cabinet_item_ids(db, ctx.cabinet_id)

    priced_stmt = select(PriceSnapshot.item_id).where(
        PriceSnapshot.cabinet_id == ctx.cabinet_id,
        PriceSnapshot.date == day,
    )
    priced = set((await db.execute(priced_stmt)).scalars())
    pending = [item_id for item_id in item_ids if item_id not in priced]

    total = UpsertResult(skipped=len(item_ids) - len(pending))
    failed_batches = 0
    for batch in chunked(pending, PRICES_BATCH_MAX):
        await ctx.limiters.prices.wait()
        response = check_batch(
            await ctx.client.get_prices(ctx.credential, batch),
            "prices",
            batch_size=len(batch),
        )
        if response is None:
            failed_batches += 1
            continue
        goods = response.data.list_goods if response.data else []
        records = [record for good in goods for record in price_records(good, day)]
        total.merge(await store_price_records(db, ctx.cabinet_id, records))

    orders = check_batch(await ctx.client.get_orders(ctx.credential, day), "orders")
    discounted = 0
    if orders is not None:
        discounted = await apply_customer_discounts(
            db, ctx.cabinet_id, day, customer_discounts(orders)
        )

    logger.info(
        "sync.prices_synced",
        date=day.isoformat(),
        pending=len(pending),
        failed_batches=failed_batches,
        customer_discounts=discounted,
        **total.as_log_fields(),
    )
    return total
