"""create_sync_tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1b2c3d4e5f"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

CABINET_SCOPED_TABLES = (
    "catalog_item",
    "item_barcode",
    "item_note",
    "item_daily_metric",
    "price_snapshot",
    "stock_snapshot",
    "campaign",
    "campaign_item_link",
    "campaign_daily_metric",
    "promotion_participation",
)


def _timestamps() -> list[sa.Column]:
    """created_at / updated_at columns (from TimestampMixin)."""
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _cabinet_id() -> sa.Column:
    return sa.Column("cabinet_id", sa.Integer(), sa.ForeignKey("cabinet.id"), nullable=False)


def upgrade() -> None:
    """Apply migration - create cabinet, catalog and sync fact tables."""
    op.create_table(
        "cabinet",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("api_key", sa.Text(), nullable=True),
        sa.Column("is_valid", sa.Boolean(), nullable=True),
        sa.Column("validation_error", sa.String(length=500), nullable=True),
        sa.Column("last_validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_data_update_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_data_update_requested_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # Catalog
    op.create_table(
        "catalog_item",
        sa.Column("item_id", sa.BigInteger(), autoincrement=False, nullable=False),
        _cabinet_id(),
        sa.Column("group_id", sa.BigInteger(), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=True),
        sa.Column("brand", sa.String(length=200), nullable=True),
        sa.Column("category", sa.String(length=200), nullable=True),
        sa.Column("vendor_code", sa.String(length=200), nullable=True),
        sa.Column("photo_url", sa.String(length=1000), nullable=True),
        sa.Column("rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("reviews_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("item_id"),
    )
    op.create_table(
        "item_barcode",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("barcode", sa.String(length=64), nullable=False),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("size_id", sa.BigInteger(), nullable=True),
        sa.Column("tech_size", sa.String(length=50), nullable=True),
        sa.Column("marketplace_size", sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cabinet_id", "barcode", name="uq_item_barcode_cabinet"),
    )
    op.create_index(op.f("ix_item_barcode_item_id"), "item_barcode", ["item_id"])
    op.create_table(
        "item_note",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_item_note_item_id"), "item_note", ["item_id"])

    # Daily facts
    op.create_table(
        "item_daily_metric",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("open_card", sa.Integer(), nullable=True),
        sa.Column("add_to_cart", sa.Integer(), nullable=True),
        sa.Column("orders", sa.Integer(), nullable=True),
        sa.Column("orders_sum", sa.Numeric(14, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cabinet_id", "item_id", "date", name="uq_item_daily_metric_grain"),
    )
    op.create_table(
        "price_snapshot",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("size_id", sa.BigInteger(), nullable=True),
        sa.Column("tech_size_name", sa.String(length=50), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("discounted_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("club_discounted_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("discount", sa.Integer(), nullable=True),
        sa.Column("club_discount", sa.Integer(), nullable=True),
        sa.Column("customer_discount", sa.Integer(), nullable=True),
        sa.Column("editable_size_price", sa.Boolean(), nullable=True),
        sa.Column("is_bad_turnover", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_price_snapshot_item_date", "price_snapshot", ["cabinet_id", "item_id", "date"]
    )
    op.create_table(
        "stock_snapshot",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        sa.Column("barcode", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "cabinet_id", "item_id", "warehouse_id", "barcode", name="uq_stock_snapshot_grain"
        ),
    )

    # Campaigns
    op.create_table(
        "campaign",
        sa.Column("campaign_id", sa.BigInteger(), autoincrement=False, nullable=False),
        _cabinet_id(),
        sa.Column("name", sa.String(length=500), nullable=True),
        sa.Column("type_code", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("bid_type", sa.String(length=20), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("create_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("change_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("campaign_id"),
    )
    op.create_table(
        "campaign_item_link",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column(
            "campaign_id",
            sa.BigInteger(),
            sa.ForeignKey("campaign.campaign_id"),
            nullable=False,
        ),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("campaign_id", "item_id", name="uq_campaign_item_link"),
    )
    op.create_index(
        op.f("ix_campaign_item_link_campaign_id"), "campaign_item_link", ["campaign_id"]
    )
    op.create_table(
        "campaign_daily_metric",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column(
            "campaign_id",
            sa.BigInteger(),
            sa.ForeignKey("campaign.campaign_id"),
            nullable=False,
        ),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=True),
        sa.Column("clicks", sa.Integer(), nullable=True),
        sa.Column("ctr", sa.Numeric(10, 2), nullable=True),
        sa.Column("cpc", sa.Numeric(12, 2), nullable=True),
        sa.Column("cr", sa.Numeric(10, 2), nullable=True),
        sa.Column("spend", sa.Numeric(14, 2), nullable=True),
        sa.Column("orders", sa.Integer(), nullable=True),
        sa.Column("orders_sum", sa.Numeric(14, 2), nullable=True),
        sa.Column("add_to_cart", sa.Integer(), nullable=True),
        sa.Column("canceled", sa.Integer(), nullable=True),
        sa.Column("shks", sa.Integer(), nullable=True),
        sa.Column("cpa", sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "campaign_id", "item_id", "date", name="uq_campaign_daily_metric_grain"
        ),
    )
    op.create_index(
        "ix_campaign_daily_metric_campaign_date",
        "campaign_daily_metric",
        ["campaign_id", "date"],
    )

    # Promotions and reference data
    op.create_table(
        "promotion_participation",
        sa.Column("id", sa.Integer(), nullable=False),
        _cabinet_id(),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("promotion_id", sa.BigInteger(), nullable=False),
        sa.Column("promotion_name", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "cabinet_id", "item_id", "promotion_id", name="uq_promotion_participation"
        ),
    )
    op.create_table(
        "warehouse",
        sa.Column("warehouse_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=300), nullable=True),
        sa.Column("address", sa.String(length=1000), nullable=True),
        sa.Column("work_time", sa.String(length=200), nullable=True),
        sa.Column("accepts_qr", sa.Boolean(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("is_transit_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("warehouse_id"),
    )

    # Batched teardown selects keys by cabinet on every scoped table
    for table in CABINET_SCOPED_TABLES:
        op.create_index(op.f(f"ix_{table}_cabinet_id"), table, ["cabinet_id"])


def downgrade() -> None:
    """Revert migration - drop every sync table."""
    for table in reversed(CABINET_SCOPED_TABLES):
        op.drop_index(op.f(f"ix_{table}_cabinet_id"), table_name=table)

    op.drop_table("warehouse")
    op.drop_table("promotion_participation")
    op.drop_index("ix_campaign_daily_metric_campaign_date", table_name="campaign_daily_metric")
    op.drop_table("campaign_daily_metric")
    op.drop_index(op.f("ix_campaign_item_link_campaign_id"), table_name="campaign_item_link")
    op.drop_table("campaign_item_link")
    op.drop_table("campaign")
    op.drop_table("stock_snapshot")
    op.drop_index("ix_price_snapshot_item_date", table_name="price_snapshot")
    op.drop_table("price_snapshot")
    op.drop_table("item_daily_metric")
    op.drop_index(op.f("ix_item_note_item_id"), table_name="item_note")
    op.drop_table("item_note")
    op.drop_index(op.f("ix_item_barcode_item_id"), table_name="item_barcode")
    op.drop_table("item_barcode")
    op.drop_table("catalog_item")
    op.drop_table("cabinet")
