"""ORM models for data mirrored from the marketplace.

Every table except ``warehouse`` is scoped to a cabinet. Natural keys:
- CatalogItem: item_id (global marketplace id)
- ItemBarcode: (cabinet_id, barcode)
- ItemDailyMetric: (cabinet_id, item_id, date)
- PriceSnapshot: (cabinet_id, item_id, date, size_id)
- StockSnapshot: (cabinet_id, item_id, warehouse_id, barcode)
- Campaign: campaign_id (global marketplace id)
- CampaignItemLink: (campaign_id, item_id)
- CampaignDailyMetric: (campaign_id, item_id, date)
- PromotionParticipation: (cabinet_id, item_id, promotion_id)
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from sellersync.core.database import Base
from sellersync.shared.models import CabinetScopedMixin, TimestampMixin

# ============================================================================
# CAMPAIGN ENUMS
# ============================================================================


class CampaignStatus(str, Enum):
    """Campaign lifecycle states and their upstream codes.

    Only ACTIVE and PAUSED campaigns keep item links.
    """

    READY = "ready"
    FINISHED = "finished"
    ACTIVE = "active"
    PAUSED = "paused"

    @property
    def code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def keeps_links(self) -> bool:
        return self in (CampaignStatus.ACTIVE, CampaignStatus.PAUSED)

    @classmethod
    def from_code(cls, code: int) -> CampaignStatus | None:
        """Map an upstream status code, or None if unknown."""
        return _STATUS_BY_CODE.get(code)


_STATUS_CODES: dict[CampaignStatus, int] = {
    CampaignStatus.READY: 4,
    CampaignStatus.FINISHED: 7,
    CampaignStatus.ACTIVE: 9,
    CampaignStatus.PAUSED: 11,
}
_STATUS_BY_CODE = {code: status for status, code in _STATUS_CODES.items()}

# Statuses whose campaigns are worth syncing at all
SYNCED_STATUS_CODES = frozenset(
    {CampaignStatus.FINISHED.code, CampaignStatus.ACTIVE.code, CampaignStatus.PAUSED.code}
)


class CampaignType(str, Enum):
    """Campaign placement types that are synced."""

    AUTOMATIC = "automatic"
    AUCTION = "auction"

    @property
    def code(self) -> int:
        return 8 if self is CampaignType.AUTOMATIC else 9

    @classmethod
    def from_code(cls, code: int) -> CampaignType | None:
        """Map an upstream type code, or None if it is not a synced type."""
        return {8: cls.AUTOMATIC, 9: cls.AUCTION}.get(code)


# Discontinued placement types the upstream may still report
LEGACY_CAMPAIGN_TYPE_CODES = frozenset({4, 5, 6, 7})


class BidType(str, Enum):
    MANUAL = "manual"
    UNIFIED = "unified"

    @classmethod
    def from_code(cls, code: int | None) -> BidType | None:
        return {1: cls.MANUAL, 2: cls.UNIFIED}.get(code) if code is not None else None


# ============================================================================
# CATALOG
# ============================================================================


class CatalogItem(CabinetScopedMixin, TimestampMixin, Base):
    """Product card.

    Attributes:
        item_id: Global marketplace item id (primary key, not generated).
        cabinet_id: Owning cabinet.
        group_id: Card group id (items sharing one card).
        title: Card title.
        brand: Brand name.
        category: Subject/category name.
        vendor_code: Seller's own article.
        photo_url: Thumbnail of the first photo.
        rating: Average feedback rating, 2 decimals.
        reviews_count: Number of feedbacks with a rating.
    """

    __tablename__ = "catalog_item"

    item_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    group_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True)
    vendor_code: Mapped[str | None] = mapped_column(String(200), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    rating: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    reviews_count: Mapped[int] = mapped_column(Integer, default=0)


class ItemBarcode(CabinetScopedMixin, TimestampMixin, Base):
    """Barcode (SKU) of one size of an item."""

    __tablename__ = "item_barcode"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    barcode: Mapped[str] = mapped_column(String(64))
    item_id: Mapped[int] = mapped_column(BigInteger, index=True)
    size_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    tech_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    marketplace_size: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (UniqueConstraint("cabinet_id", "barcode", name="uq_item_barcode_cabinet"),)


class ItemNote(CabinetScopedMixin, TimestampMixin, Base):
    """Seller note attached to an item."""

    __tablename__ = "item_note"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger, index=True)
    body: Mapped[str] = mapped_column(Text)


# ============================================================================
# DAILY FACTS
# ============================================================================


class ItemDailyMetric(CabinetScopedMixin, TimestampMixin, Base):
    """Daily sales-funnel figures of one item.

    Grain: one row per (cabinet_id, item_id, date).
    """

    __tablename__ = "item_daily_metric"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger)
    date: Mapped[datetime.date] = mapped_column(Date)
    open_card: Mapped[int | None] = mapped_column(Integer, nullable=True)
    add_to_cart: Mapped[int | None] = mapped_column(Integer, nullable=True)
    orders: Mapped[int | None] = mapped_column(Integer, nullable=True)
    orders_sum: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("cabinet_id", "item_id", "date", name="uq_item_daily_metric_grain"),
    )


class PriceSnapshot(CabinetScopedMixin, TimestampMixin, Base):
    """Price of an item (or of one of its sizes) on one day.

    ``size_id`` is NULL when every size shares the same prices.
    """

    __tablename__ = "price_snapshot"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger)
    date: Mapped[datetime.date] = mapped_column(Date)
    size_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    tech_size_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discounted_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    club_discounted_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    club_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    editable_size_price: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_bad_turnover: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    __table_args__ = (Index("ix_price_snapshot_item_date", "cabinet_id", "item_id", "date"),)


class StockSnapshot(CabinetScopedMixin, TimestampMixin, Base):
    """Last known stock of one barcode in one warehouse."""

    __tablename__ = "stock_snapshot"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger)
    warehouse_id: Mapped[int] = mapped_column(BigInteger)
    barcode: Mapped[str] = mapped_column(String(64))
    amount: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint(
            "cabinet_id", "item_id", "warehouse_id", "barcode", name="uq_stock_snapshot_grain"
        ),
    )


# ============================================================================
# CAMPAIGNS
# ============================================================================


class Campaign(CabinetScopedMixin, TimestampMixin, Base):
    """Advertising campaign.

    Attributes:
        campaign_id: Global marketplace campaign id (primary key).
        type_code: Upstream placement type code.
        status: Lifecycle state; None if the upstream code is unknown.
        bid_type: Manual or unified bidding.
    """

    __tablename__ = "campaign"

    campaign_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type_code: Mapped[int] = mapped_column(Integer)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bid_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    start_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    end_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    create_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    change_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class CampaignItemLink(CabinetScopedMixin, TimestampMixin, Base):
    """Item advertised by a campaign."""

    __tablename__ = "campaign_item_link"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("campaign.campaign_id"), index=True
    )
    item_id: Mapped[int] = mapped_column(BigInteger)

    __table_args__ = (
        UniqueConstraint("campaign_id", "item_id", name="uq_campaign_item_link"),
    )


class CampaignDailyMetric(CabinetScopedMixin, TimestampMixin, Base):
    """Daily advertising statistics of one item within one campaign.

    Grain: one row per (campaign_id, item_id, date).
    """

    __tablename__ = "campaign_daily_metric"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("campaign.campaign_id"))
    item_id: Mapped[int] = mapped_column(BigInteger)
    date: Mapped[datetime.date] = mapped_column(Date)
    views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ctr: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    cpc: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    cr: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    spend: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    orders: Mapped[int | None] = mapped_column(Integer, nullable=True)
    orders_sum: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    add_to_cart: Mapped[int | None] = mapped_column(Integer, nullable=True)
    canceled: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cpa: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("campaign_id", "item_id", "date", name="uq_campaign_daily_metric_grain"),
        Index("ix_campaign_daily_metric_campaign_date", "campaign_id", "date"),
    )


# ============================================================================
# PROMOTIONS AND REFERENCE DATA
# ============================================================================


class PromotionParticipation(CabinetScopedMixin, TimestampMixin, Base):
    """Item taking part in a calendar promotion today."""

    __tablename__ = "promotion_participation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger)
    promotion_id: Mapped[int] = mapped_column(BigInteger)
    promotion_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "cabinet_id", "item_id", "promotion_id", name="uq_promotion_participation"
        ),
    )


class Warehouse(TimestampMixin, Base):
    """Marketplace warehouse directory entry (shared by all cabinets)."""

    __tablename__ = "warehouse"

    warehouse_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    work_time: Mapped[str | None] = mapped_column(String(200), nullable=True)
    accepts_qr: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_transit_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
