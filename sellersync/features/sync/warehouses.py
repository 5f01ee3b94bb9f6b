"""Refresh of the marketplace warehouse directory.

Warehouses are shared by every cabinet, so any valid key can fetch them.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.database import SessionFactory, transaction
from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import Warehouse
from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.errors import unwrap
from sellersync.features.marketplace.schemas import MarketplaceWarehouseInfo
from sellersync.features.sync.upsert import UpsertResult

logger = get_logger(__name__)


async def store_warehouses(
    db: AsyncSession,
    warehouses: list[MarketplaceWarehouseInfo],
) -> UpsertResult:
    """Create or overwrite warehouses by id."""
    result = UpsertResult()
    seen: dict[int, Warehouse] = {}
    for info in warehouses:
        row = seen.get(info.warehouse_id) or await db.get(Warehouse, info.warehouse_id)
        if row is None:
            row = Warehouse(warehouse_id=info.warehouse_id)
            db.add(row)
            result.created += 1
        elif info.warehouse_id not in seen:
            result.updated += 1
        row.name = info.name
        row.address = info.address
        row.work_time = info.work_time
        row.accepts_qr = info.accepts_qr
        row.is_active = info.is_active
        row.is_transit_active = info.is_transit_active
        seen[info.warehouse_id] = row
    await db.flush()
    return result


async def refresh_warehouses(
    session_maker: SessionFactory,
    client: MarketplaceClient,
    credential: str,
) -> UpsertResult:
    """Fetch the directory with ``credential`` and store it.

    Raises:
        ApiCallError: If the listing fails.
    """
    warehouses = unwrap(await client.get_warehouses(credential), "warehouses")
    async with transaction(session_maker) as db:
        result = await store_warehouses(db, warehouses)
    logger.info("sync.warehouses_refreshed", warehouses=len(warehouses), **result.as_log_fields())
    return result
