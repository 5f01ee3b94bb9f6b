"""Batched removal of a cabinet and every row it owns.

CRITICAL: each batch commits in its own transaction. A failure stops the
teardown but never rolls back tables already cleared, so a rerun resumes
where the last one stopped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, select

from sellersync.core.database import SessionFactory, transaction
from sellersync.core.exceptions import NotFoundError
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.models import Cabinet
from sellersync.features.catalog.models import (
    Campaign,
    CampaignDailyMetric,
    CampaignItemLink,
    CatalogItem,
    ItemBarcode,
    ItemDailyMetric,
    ItemNote,
    PriceSnapshot,
    PromotionParticipation,
    StockSnapshot,
)
from sellersync.shared.models import CabinetScopedMixin

logger = get_logger(__name__)

# Children before parents
TEARDOWN_ORDER: tuple[type[CabinetScopedMixin], ...] = (
    CampaignDailyMetric,
    CampaignItemLink,
    Campaign,
    PriceSnapshot,
    StockSnapshot,
    ItemBarcode,
    ItemDailyMetric,
    PromotionParticipation,
    CatalogItem,
    ItemNote,
)


@dataclass
class TeardownReport:
    """Rows deleted per table."""

    cabinet_id: int
    deleted: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.deleted.values())


def _primary_key(model: Any) -> Any:
    return model.__mapper__.primary_key[0]


class CabinetTeardownService:
    """Deletes a cabinet's data table by table, in small batches."""

    def __init__(self, session_maker: SessionFactory, batch_size: int = 20) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.session_maker = session_maker
        self.batch_size = batch_size

    async def delete_cabinet(self, cabinet_id: int) -> TeardownReport:
        """Delete every row owned by a cabinet, then the cabinet itself.

        Args:
            cabinet_id: Cabinet to remove.

        Returns:
            TeardownReport with per-table counts.

        Raises:
            NotFoundError: If the cabinet does not exist.
        """
        async with transaction(self.session_maker) as db:
            if await db.get(Cabinet, cabinet_id) is None:
                raise NotFoundError(
                    message=f"Cabinet not found: {cabinet_id}",
                    details={"cabinet_id": cabinet_id},
                )

        logger.info("teardown.started", cabinet_id=cabinet_id, batch_size=self.batch_size)
        report = TeardownReport(cabinet_id=cabinet_id)
        for model in TEARDOWN_ORDER:
            report.deleted[model.__tablename__] = await self._drain(
                model, model.cabinet_id == cabinet_id, cabinet_id
            )
        report.deleted[Cabinet.__tablename__] = await self._drain(
            Cabinet, Cabinet.id == cabinet_id, cabinet_id
        )

        logger.info(
            "teardown.completed",
            cabinet_id=cabinet_id,
            total=report.total,
            deleted=report.deleted,
        )
        return report

    async def _drain(self, model: Any, owned: Any, cabinet_id: int) -> int:
        """Delete rows matching ``owned`` in batches until none are left."""
        pk = _primary_key(model)
        table = model.__tablename__
        deleted = 0
        while True:
            async with transaction(self.session_maker) as db:
                stmt = select(pk).where(owned).order_by(pk).limit(self.batch_size)
                keys = list((await db.execute(stmt)).scalars())
                if not keys:
                    return deleted
                await db.execute(delete(model).where(pk.in_(keys)))
            deleted += len(keys)
            logger.info(
                "teardown.batch_deleted",
                cabinet_id=cabinet_id,
                table=table,
                keys=keys,
            )
