"""Per-cabinet sync stages, each a coroutine ``(session, context) -> UpsertResult``."""

from sellersync.features.sync.stages.base import StageContext, StageFn
from sellersync.features.sync.stages.campaigns import sync_campaigns
from sellersync.features.sync.stages.cards import sync_cards
from sellersync.features.sync.stages.prices import sync_prices
from sellersync.features.sync.stages.promotions import sync_promotions
from sellersync.features.sync.stages.ratings import sync_ratings
from sellersync.features.sync.stages.statistics import sync_statistics
from sellersync.features.sync.stages.stocks import sync_stocks

__all__ = [
    "StageContext",
    "StageFn",
    "sync_campaigns",
    "sync_cards",
    "sync_prices",
    "sync_promotions",
    "sync_ratings",
    "sync_statistics",
    "sync_stocks",
]
