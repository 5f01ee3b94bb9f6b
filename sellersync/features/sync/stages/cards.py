"""Cards stage: product cards and their barcodes."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import CatalogItem, ItemBarcode
from sellersync.features.marketplace.client import CARDS_PAGE_SIZE
from sellersync.features.marketplace.errors import unwrap
from sellersync.features.marketplace.pagination import CursorPage, PageCursor, walk_cursor_pages
from sellersync.features.marketplace.schemas import Card
from sellersync.features.sync.stages.base import StageContext
from sellersync.features.sync.upsert import UpsertResult, upsert_by_natural_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class BarcodeRecord:
    barcode: str
    item_id: int
    size_id: int
    tech_size: str | None
    marketplace_size: str | None


def barcode_records(cards: list[Card]) -> tuple[list[BarcodeRecord], int]:
    """Flatten card sizes into one record per SKU.

    Sizes without a size id cannot be matched to stock rows and are dropped.

    Returns:
        (records, number of sizes dropped).
    """
    records: list[BarcodeRecord] = []
    dropped = 0
    for card in cards:
        if card.item_id is None:
            continue
        for size in card.sizes:
            if size.size_id is None:
                logger.warning("sync.barcode_size_without_id", item_id=card.item_id)
                dropped += 1
                continue
            for sku in size.skus:
                if not sku:
                    continue
                records.append(
                    BarcodeRecord(
                        barcode=sku,
                        item_id=card.item_id,
                        size_id=size.size_id,
                        tech_size=size.tech_size,
                        marketplace_size=size.marketplace_size,
                    )
                )
    return records, dropped


def _apply_card(item: CatalogItem, card: Card) -> None:
    item.group_id = card.group_id
    item.title = card.title
    item.brand = card.brand
    item.category = card.category
    item.vendor_code = card.vendor_code
    item.photo_url = card.photos[0].tm if card.photos else None


@dataclass(frozen=True)
class KeyedCard:
    item_id: int
    card: Card


async def upsert_cards(db: AsyncSession, cabinet_id: int, cards: list[Card]) -> UpsertResult:
    """Create or refresh catalog items from cards.

    Cards without an item id are counted as skipped.
    """
    keyed = [KeyedCard(card.item_id, card) for card in cards if card.item_id is not None]

    async def find(session: AsyncSession, item_id: int) -> CatalogItem | None:
        return await session.get(CatalogItem, item_id)

    def apply(item: CatalogItem, record: KeyedCard) -> None:
        _apply_card(item, record.card)

    def build(record: KeyedCard) -> CatalogItem:
        item = CatalogItem(item_id=record.item_id, cabinet_id=cabinet_id, reviews_count=0)
        apply(item, record)
        return item

    result = await upsert_by_natural_key(
        db,
        keyed,
        cabinet_id=cabinet_id,
        entity="catalog_item",
        key_of=lambda record: record.item_id,
        find_existing=find,
        build=build,
        apply=apply,
    )
    result.skipped += len(cards) - len(keyed)
    return result


async def upsert_barcodes(
    db: AsyncSession,
    cabinet_id: int,
    records: list[BarcodeRecord],
) -> UpsertResult:
    """Create or refresh barcodes keyed by (cabinet, barcode)."""

    async def find(session: AsyncSession, barcode: str) -> ItemBarcode | None:
        stmt = select(ItemBarcode).where(
            ItemBarcode.cabinet_id == cabinet_id,
            ItemBarcode.barcode == barcode,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def apply(row: ItemBarcode, record: BarcodeRecord) -> None:
        row.item_id = record.item_id
        row.size_id = record.size_id
        row.tech_size = record.tech_size
        row.marketplace_size = record.marketplace_size

    def build(record: BarcodeRecord) -> ItemBarcode:
        row = ItemBarcode(cabinet_id=cabinet_id, barcode=record.barcode)
        apply(row, record)
        return row

    return await upsert_by_natural_key(
        db,
        records,
        cabinet_id=cabinet_id,
        entity="item_barcode",
        key_of=lambda record: record.barcode,
        find_existing=find,
        build=build,
        apply=apply,
    )


async def sync_cards(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Walk every cards page, then upsert items and barcodes.

    Args:
        db: Stage session.
        ctx: Stage context.

    Returns:
        Combined counts for items and barcodes.

    Raises:
        ApiCallError: If any page fails.
        PaginationConfigError: If the cursor goes missing mid-walk.
    """

    async def fetch_page(cursor: PageCursor | None) -> CursorPage[Card]:
        result = await ctx.client.list_cards_page(
            ctx.credential,
            limit=CARDS_PAGE_SIZE,
            updated_at=cursor.updated_at if cursor else None,
            item_id=cursor.item_id if cursor else None,
        )
        page = unwrap(result, "cards_list")
        page_cursor = page.cursor
        return CursorPage(
            items=page.cards,
            total=page_cursor.total if page_cursor else len(page.cards),
            cursor=PageCursor(page_cursor.updated_at, page_cursor.item_id) if page_cursor else None,
        )

    cards = await walk_cursor_pages(fetch_page, page_size=CARDS_PAGE_SIZE, limiter=ctx.limiters.cards)

    result = await upsert_cards(db, ctx.cabinet_id, cards)
    # Barcodes of cards owned by another cabinet are not ours to store
    foreign = {conflict.key for conflict in result.conflicts}
    records, dropped = barcode_records([card for card in cards if card.item_id not in foreign])
    barcodes = await upsert_barcodes(db, ctx.cabinet_id, records)
    barcodes.skipped += dropped

    logger.info(
        "sync.cards_synced",
        cards=len(cards),
        barcodes=len(records),
        **result.as_log_fields(),
    )
    return result.merge(barcodes)
