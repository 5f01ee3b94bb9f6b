"""Catalog: per-cabinet items, snapshots, campaigns and their metrics."""

from sellersync.features.catalog.models import (
    BidType,
    Campaign,
    CampaignDailyMetric,
    CampaignItemLink,
    CampaignStatus,
    CampaignType,
    CatalogItem,
    ItemBarcode,
    ItemDailyMetric,
    ItemNote,
    PriceSnapshot,
    PromotionParticipation,
    StockSnapshot,
    Warehouse,
)

__all__ = [
    "BidType",
    "Campaign",
    "CampaignDailyMetric",
    "CampaignItemLink",
    "CampaignStatus",
    "CampaignType",
    "CatalogItem",
    "ItemBarcode",
    "ItemDailyMetric",
    "ItemNote",
    "PriceSnapshot",
    "PromotionParticipation",
    "StockSnapshot",
    "Warehouse",
]
