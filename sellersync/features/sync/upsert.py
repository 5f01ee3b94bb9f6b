"""Idempotent upsert of fetched records by natural key.

Rows are located by their natural key, created when absent and overwritten
when present. A key whose row belongs to another cabinet is never touched:
the record is skipped and an ``ownership_conflict`` warning is logged.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.marketplace.errors import OwnershipConflict
from sellersync.shared.models import CabinetScopedMixin

logger = get_logger(__name__)


@dataclass
class UpsertResult:
    """Counts of one upsert pass."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    conflicts: list[OwnershipConflict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped

    def merge(self, other: UpsertResult) -> UpsertResult:
        """Add another pass's counts into this one and return self."""
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.conflicts.extend(other.conflicts)
        return self

    def as_log_fields(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "conflicts": len(self.conflicts),
        }


async def upsert_by_natural_key[R, K: Hashable, M: CabinetScopedMixin](
    db: AsyncSession,
    records: Iterable[R],
    *,
    cabinet_id: int,
    entity: str,
    key_of: Callable[[R], K | None],
    find_existing: Callable[[AsyncSession, K], Awaitable[M | None]],
    build: Callable[[R], M],
    apply: Callable[[M, R], None],
    creatable: Callable[[R], bool] | None = None,
) -> UpsertResult:
    """Create or overwrite one row per record.

    Args:
        db: Async database session.
        records: Fetched records.
        cabinet_id: Cabinet the records are synced for.
        entity: Entity name for log events.
        key_of: Natural key of a record; None means the record is unusable.
        find_existing: Looks up the stored row for a key.
        build: Builds a new row (owned by ``cabinet_id``) from a record.
        apply: Copies a record's mutable fields onto a row.
        creatable: When given, records failing it update existing rows but
            never create new ones.

    Returns:
        UpsertResult with created/updated/skipped counts and conflicts.
    """
    result = UpsertResult()
    # Rows touched in this pass, so repeated keys resolve without a flush
    seen: dict[K, M] = {}

    for record in records:
        key = key_of(record)
        if key is None:
            result.skipped += 1
            continue

        row = seen.get(key)
        if row is None:
            row = await find_existing(db, key)

        if row is None:
            if creatable is not None and not creatable(record):
                result.skipped += 1
                continue
            row = build(record)
            db.add(row)
            seen[key] = row
            result.created += 1
            continue

        if row.cabinet_id != cabinet_id:
            conflict = OwnershipConflict(
                entity=entity,
                key=key,
                owner_cabinet_id=row.cabinet_id,
                requested_cabinet_id=cabinet_id,
            )
            logger.warning(
                "sync.ownership_conflict",
                entity=entity,
                key=str(key),
                owner_cabinet_id=row.cabinet_id,
                cabinet_id=cabinet_id,
            )
            result.conflicts.append(conflict)
            result.skipped += 1
            continue

        apply(row, record)
        seen[key] = row
        result.updated += 1

    await db.flush()
    logger.debug("sync.upsert_completed", entity=entity, **result.as_log_fields())
    return result
