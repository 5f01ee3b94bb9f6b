"""Cabinet (tenant) ORM model.

A cabinet is one seller account on the marketplace. It owns the API key used
for every upstream call and the bookkeeping of its last sync runs.
"""

import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sellersync.core.database import Base
from sellersync.shared.models import TimestampMixin


class Cabinet(TimestampMixin, Base):
    """Seller cabinet.

    Attributes:
        id: Primary key.
        name: Display name.
        api_key: Marketplace API key (opaque, may be unset).
        is_valid: Outcome of the last key check; None until first checked.
        validation_error: Reason the key was rejected.
        last_validated_at: When the key was last checked.
        last_data_update_at: When the last run finished the statistics stage.
        last_data_update_requested_at: When the last run was requested.
    """

    __tablename__ = "cabinet"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    validation_error: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_validated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_data_update_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_data_update_requested_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_eligible(self) -> bool:
        """Whether scheduled runs should include this cabinet."""
        return bool(self.api_key and self.api_key.strip()) and self.is_valid is True
