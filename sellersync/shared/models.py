"""Shared SQLAlchemy model mixins."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class CabinetScopedMixin:
    """Mixin for rows owned by exactly one cabinet.

    Every tenant-scoped table carries an indexed ``cabinet_id`` so that
    teardown can select its keys in small batches.
    """

    cabinet_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cabinet.id"),
        nullable=False,
        index=True,
    )
