"""Cabinet lookups and sync bookkeeping."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.exceptions import NotFoundError
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.models import Cabinet

logger = get_logger(__name__)

KEY_REJECTED_MESSAGE = "key rejected (401)"


async def get_cabinet(db: AsyncSession, cabinet_id: int) -> Cabinet:
    """Load a cabinet by id.

    Raises:
        NotFoundError: If no cabinet has that id.
    """
    cabinet = await db.get(Cabinet, cabinet_id)
    if cabinet is None:
        raise NotFoundError(
            message=f"Cabinet not found: {cabinet_id}",
            details={"cabinet_id": cabinet_id},
        )
    return cabinet


async def list_eligible_cabinet_ids(db: AsyncSession) -> list[int]:
    """Ids of cabinets with a non-empty key that passed validation."""
    stmt = (
        select(Cabinet.id)
        .where(
            Cabinet.api_key.is_not(None),
            func.trim(Cabinet.api_key) != "",
            Cabinet.is_valid.is_(True),
        )
        .order_by(Cabinet.id)
    )
    return list((await db.execute(stmt)).scalars())


async def mark_key_rejected(db: AsyncSession, cabinet_id: int) -> None:
    """Flag a cabinet's key as invalid after the upstream refused it."""
    cabinet = await get_cabinet(db, cabinet_id)
    cabinet.is_valid = False
    cabinet.validation_error = KEY_REJECTED_MESSAGE
    cabinet.last_validated_at = datetime.now(UTC)
    logger.warning("cabinets.key_rejected", cabinet_id=cabinet_id)


async def touch_update_requested(db: AsyncSession, cabinet_id: int) -> None:
    cabinet = await get_cabinet(db, cabinet_id)
    cabinet.last_data_update_requested_at = datetime.now(UTC)


async def touch_update_completed(db: AsyncSession, cabinet_id: int) -> None:
    cabinet = await get_cabinet(db, cabinet_id)
    cabinet.last_data_update_at = datetime.now(UTC)
