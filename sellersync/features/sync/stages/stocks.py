"""Stocks stage: last known stock per barcode and warehouse."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import ItemBarcode, StockSnapshot
from sellersync.features.marketplace.schemas import SizeStocksResponse
from sellersync.features.sync.stages.base import StageContext, cabinet_item_ids, check_batch
from sellersync.features.sync.upsert import UpsertResult, upsert_by_natural_key

logger = get_logger(__name__)

StockKey = tuple[int, int, str]


@dataclass(frozen=True)
class StockRecord:
    item_id: int
    warehouse_id: int
    barcode: str
    amount: int

    @property
    def key(self) -> StockKey:
        return (self.item_id, self.warehouse_id, self.barcode)


class BarcodeIndex:
    """Resolve stock rows to barcodes for one cabinet.

    A size id maps to its barcode. Rows without a size id fall back to the
    item's first barcode.
    """

    def __init__(self, barcodes: list[ItemBarcode]) -> None:
        self._by_size: dict[tuple[int, int], str] = {}
        self._first: dict[int, str] = {}
        for row in barcodes:
            if row.size_id is not None:
                self._by_size.setdefault((row.item_id, row.size_id), row.barcode)
            self._first.setdefault(row.item_id, row.barcode)

    @classmethod
    async def load(cls, db: AsyncSession, cabinet_id: int) -> BarcodeIndex:
        stmt = (
            select(ItemBarcode)
            .where(ItemBarcode.cabinet_id == cabinet_id)
            .order_by(ItemBarcode.id)
        )
        return cls(list((await db.execute(stmt)).scalars()))

    def resolve(self, item_id: int, size_id: int | None) -> str | None:
        if size_id is None:
            return self._first.get(item_id)
        return self._by_size.get((item_id, size_id))


def stock_records(
    item_id: int,
    response: SizeStocksResponse,
    barcodes: BarcodeIndex,
) -> tuple[list[StockRecord], int]:
    """Flatten a per-size stock report into records.

    Offices without an id or metrics are dropped, as are sizes whose barcode
    is unknown. A missing stock count reads as zero.

    Returns:
        (records, number of entries dropped).
    """
    records: list[StockRecord] = []
    dropped = 0
    sizes = response.data.sizes if response.data else []
    for size in sizes:
        barcode = barcodes.resolve(item_id, size.size_id)
        if barcode is None:
            logger.debug("sync.stock_barcode_unknown", item_id=item_id, size_id=size.size_id)
            dropped += 1
            continue
        for office in size.offices:
            if office.warehouse_id is None or office.metrics is None:
                dropped += 1
                continue
            records.append(
                StockRecord(
                    item_id=item_id,
                    warehouse_id=office.warehouse_id,
                    barcode=barcode,
                    amount=office.metrics.stock_count or 0,
                )
            )
    return records, dropped


async def store_stock_records(
    db: AsyncSession,
    cabinet_id: int,
    records: list[StockRecord],
) -> UpsertResult:
    """Overwrite stock rows in place.

    Existing rows take the new amount, zero included. A combination never
    seen before gets a row only when its amount is positive.
    """

    async def find(session: AsyncSession, key: StockKey) -> StockSnapshot | None:
        item_id, warehouse_id, barcode = key
        stmt = select(StockSnapshot).where(
            StockSnapshot.cabinet_id == cabinet_id,
            StockSnapshot.item_id == item_id,
            StockSnapshot.warehouse_id == warehouse_id,
            StockSnapshot.barcode == barcode,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def apply(row: StockSnapshot, record: StockRecord) -> None:
        row.amount = record.amount

    def build(record: StockRecord) -> StockSnapshot:
        return StockSnapshot(
            cabinet_id=cabinet_id,
            item_id=record.item_id,
            warehouse_id=record.warehouse_id,
            barcode=record.barcode,
            amount=record.amount,
        )

    return await upsert_by_natural_key(
        db,
        records,
        cabinet_id=cabinet_id,
        entity="stock_snapshot",
        key_of=lambda record: record.key,
        find_existing=find,
        build=build,
        apply=apply,
        creatable=lambda record: record.amount > 0,
    )


async def sync_stocks(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Refresh yesterday's stock levels, one item per paced call."""
    item_ids = await cabinet_item_ids(db, ctx.cabinet_id)
    barcodes = await BarcodeIndex.load(db, ctx.cabinet_id)

    total = UpsertResult()
    failed_items = 0
    for item_id in item_ids:
        await ctx.limiters.stocks.wait()
        response = check_batch(
            await ctx.client.get_stocks_by_sizes(ctx.credential, item_id, ctx.yesterday),
            "stocks_by_sizes",
            item_id=item_id,
        )
        if response is None:
            failed_items += 1
            continue
        records, dropped = stock_records(item_id, response, barcodes)
        total.merge(await store_stock_records(db, ctx.cabinet_id, records))
        total.skipped += dropped

    logger.info(
        "sync.stocks_synced",
        items=len(item_ids),
        failed_items=failed_items,
        **total.as_log_fields(),
    )
    return total
