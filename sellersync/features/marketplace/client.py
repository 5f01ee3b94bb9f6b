"""Typed marketplace operations built on ``MarketplaceTransport``.

Each coroutine issues exactly one logical call and returns an ``ApiResult``.
Pacing between calls and pagination are the caller's concern (see
``ratelimit`` and ``pagination``).
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import TypeAdapter

from sellersync.core.config import Settings
from sellersync.core.logging import get_logger
from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.errors import ApiResult, ApiSuccess
from sellersync.features.marketplace.schemas import (
    AuctionCampaigns,
    CalendarPromotions,
    CampaignCounts,
    CampaignDetails,
    CampaignStats,
    CardsPage,
    FeedbacksResponse,
    FunnelHistory,
    GoodsResponse,
    MarketplaceWarehouseInfo,
    Order,
    PromotionItems,
    SizeStocksResponse,
)
from sellersync.features.marketplace.transport import AuthStyle, Endpoint, MarketplaceTransport

logger = get_logger(__name__)

# Upstream limits
CARDS_PAGE_SIZE = 100
PRICES_BATCH_MAX = 1000
CAMPAIGN_DETAILS_BATCH_MAX = 50
AUCTION_DETAILS_BATCH_MAX = 50
CAMPAIGN_STATS_BATCH_MAX = 50
CALENDAR_PAGE_SIZE = 1000
FEEDBACKS_PAGE_SIZE = 5000
FUNNEL_MAX_WINDOW_DAYS = 7


def clamp_funnel_window(
    start: datetime.date,
    end: datetime.date,
    today: datetime.date,
) -> tuple[datetime.date, datetime.date] | None:
    """Fit a funnel request into what the analytics endpoint accepts.

    The end date may not pass yesterday and the window may span at most
    ``FUNNEL_MAX_WINDOW_DAYS`` days, both ends inclusive. When the window must
    shrink, its end is kept and its start moves forward.

    Args:
        start: Requested first day.
        end: Requested last day.
        today: Current date.

    Returns:
        (start, end) after clamping, or None if nothing remains to request.
    """
    yesterday = today - datetime.timedelta(days=1)
    clamped_end = min(end, yesterday)
    clamped_start = start
    if (clamped_end - clamped_start).days + 1 > FUNNEL_MAX_WINDOW_DAYS:
        clamped_start = clamped_end - datetime.timedelta(days=FUNNEL_MAX_WINDOW_DAYS - 1)
    if clamped_start > clamped_end:
        return None
    if (clamped_start, clamped_end) != (start, end):
        logger.warning(
            "marketplace.funnel_window_clamped",
            requested_start=start.isoformat(),
            requested_end=end.isoformat(),
            start=clamped_start.isoformat(),
            end=clamped_end.isoformat(),
        )
    return clamped_start, clamped_end


class MarketplaceClient:
    """Endpoint catalogue for one marketplace deployment."""

    def __init__(self, transport: MarketplaceTransport, settings: Settings) -> None:
        self.transport = transport
        s = settings

        self.cards_list = Endpoint(
            name="content.cards_list",
            url=f"{s.marketplace_content_url}/content/v2/get/cards/list",
            method="POST",
            category=ApiCategory.CONTENT,
            shape=TypeAdapter(CardsPage),
            auth=AuthStyle.BEARER,
        )
        self.goods_filter = Endpoint(
            name="prices.goods_filter",
            url=f"{s.marketplace_prices_url}/api/v2/list/goods/filter",
            method="POST",
            category=ApiCategory.PRICES_AND_DISCOUNTS,
            shape=TypeAdapter(GoodsResponse),
        )
        self.orders = Endpoint(
            name="statistics.orders",
            url=f"{s.marketplace_statistics_url}/api/v1/supplier/orders",
            method="GET",
            category=ApiCategory.STATISTICS,
            shape=TypeAdapter(list[Order]),
        )
        self.stocks_sizes = Endpoint(
            name="analytics.stocks_sizes",
            url=f"{s.marketplace_analytics_url}/api/v2/stocks-report/products/sizes",
            method="POST",
            category=ApiCategory.ANALYTICS,
            shape=TypeAdapter(SizeStocksResponse),
        )
        self.funnel_history = Endpoint(
            name="analytics.funnel_history",
            url=f"{s.marketplace_analytics_url}/api/analytics/v3/sales-funnel/products/history",
            method="POST",
            category=ApiCategory.ANALYTICS,
            shape=TypeAdapter(list[FunnelHistory]),
        )
        self.campaign_counts = Endpoint(
            name="promotion.campaign_counts",
            url=f"{s.marketplace_promotion_url}/adv/v1/promotion/count",
            method="GET",
            category=ApiCategory.PROMOTION,
            shape=TypeAdapter(CampaignCounts),
        )
        self.campaign_details = Endpoint(
            name="promotion.campaign_details",
            url=f"{s.marketplace_promotion_url}/adv/v1/promotion/adverts",
            method="POST",
            category=ApiCategory.PROMOTION,
            shape=TypeAdapter(list[CampaignDetails]),
        )
        self.auction_campaigns = Endpoint(
            name="promotion.auction_campaigns",
            url=f"{s.marketplace_promotion_url}/adv/v0/auction/adverts",
            method="GET",
            category=ApiCategory.PROMOTION,
            shape=TypeAdapter(AuctionCampaigns),
        )
        self.campaign_stats = Endpoint(
            name="promotion.campaign_stats",
            url=f"{s.marketplace_promotion_url}/adv/v3/fullstats",
            method="GET",
            category=ApiCategory.PROMOTION,
            shape=TypeAdapter(list[CampaignStats]),
        )
        self.calendar_promotions = Endpoint(
            name="calendar.promotions",
            url=f"{s.marketplace_calendar_url}/api/v1/calendar/promotions",
            method="GET",
            category=ApiCategory.PRICES_AND_DISCOUNTS,
            shape=TypeAdapter(CalendarPromotions),
            auth=AuthStyle.BEARER,
        )
        self.promotion_items = Endpoint(
            name="calendar.promotion_items",
            url=f"{s.marketplace_calendar_url}/api/v1/calendar/promotions/nomenclatures",
            method="GET",
            category=ApiCategory.PRICES_AND_DISCOUNTS,
            shape=TypeAdapter(PromotionItems),
            auth=AuthStyle.BEARER,
        )
        self.feedbacks = Endpoint(
            name="feedbacks.list",
            url=f"{s.marketplace_feedbacks_url}/api/v1/feedbacks",
            method="GET",
            category=ApiCategory.FEEDBACKS_AND_QUESTIONS,
            shape=TypeAdapter(FeedbacksResponse),
            auth=AuthStyle.BEARER,
        )
        self.warehouses = Endpoint(
            name="supplies.warehouses",
            url=f"{s.marketplace_supplies_url}/api/v1/warehouses",
            method="GET",
            category=ApiCategory.SUPPLIES,
            shape=TypeAdapter(list[MarketplaceWarehouseInfo]),
        )

    # =========================================================================
    # Content
    # =========================================================================

    async def list_cards_page(
        self,
        credential: str,
        *,
        limit: int = CARDS_PAGE_SIZE,
        updated_at: str | None = None,
        item_id: int | None = None,
    ) -> ApiResult[CardsPage]:
        """Fetch one page of product cards, continuing after the given cursor."""
        cursor: dict[str, Any] = {"limit": limit}
        if updated_at is not None:
            cursor["updatedAt"] = updated_at
        if item_id is not None:
            cursor["nmID"] = item_id
        body = {"settings": {"cursor": cursor, "filter": {"withPhoto": -1}}}
        return await self.transport.call(self.cards_list, credential, json=body)

    # =========================================================================
    # Prices and orders
    # =========================================================================

    async def get_prices(self, credential: str, item_ids: list[int]) -> ApiResult[GoodsResponse]:
        """Fetch current prices for up to ``PRICES_BATCH_MAX`` items."""
        if len(item_ids) > PRICES_BATCH_MAX:
            raise ValueError(f"At most {PRICES_BATCH_MAX} items per price lookup")
        return await self.transport.call(self.goods_filter, credential, json={"nmList": item_ids})

    async def get_orders(self, credential: str, day: datetime.date) -> ApiResult[list[Order]]:
        """Fetch orders placed on ``day`` (flag=1 selects that exact date)."""
        params = {"dateFrom": day.isoformat(), "flag": 1}
        return await self.transport.call(self.orders, credential, params=params)

    # =========================================================================
    # Stocks
    # =========================================================================

    async def get_stocks_by_sizes(
        self,
        credential: str,
        item_id: int,
        day: datetime.date,
    ) -> ApiResult[SizeStocksResponse]:
        """Fetch per-size, per-warehouse stock of one item for one day."""
        body = {
            "nmID": item_id,
            "currentPeriod": {"start": day.isoformat(), "end": day.isoformat()},
            "stockType": "wb",
            "orderBy": {"field": "stockCount", "mode": "asc"},
            "includeOffice": True,
        }
        return await self.transport.call(self.stocks_sizes, credential, json=body)

    # =========================================================================
    # Campaigns
    # =========================================================================

    async def get_campaign_counts(self, credential: str) -> ApiResult[CampaignCounts]:
        """List campaign ids grouped by type and status."""
        return await self.transport.call(self.campaign_counts, credential)

    async def get_campaign_details(
        self,
        credential: str,
        campaign_ids: list[int],
    ) -> ApiResult[list[CampaignDetails]]:
        """Fetch details of automatic campaigns (at most 50 ids)."""
        if len(campaign_ids) > CAMPAIGN_DETAILS_BATCH_MAX:
            raise ValueError(f"At most {CAMPAIGN_DETAILS_BATCH_MAX} campaigns per lookup")
        return await self.transport.call(self.campaign_details, credential, json=campaign_ids)

    async def get_auction_campaigns(
        self,
        credential: str,
        campaign_ids: list[int],
    ) -> ApiResult[AuctionCampaigns]:
        """Fetch details of auction campaigns (at most 50 ids)."""
        if len(campaign_ids) > AUCTION_DETAILS_BATCH_MAX:
            raise ValueError(f"At most {AUCTION_DETAILS_BATCH_MAX} campaigns per lookup")
        params = {"ids": ",".join(str(i) for i in campaign_ids)}
        return await self.transport.call(self.auction_campaigns, credential, params=params)

    async def get_campaign_stats(
        self,
        credential: str,
        campaign_ids: list[int],
        start: datetime.date,
        end: datetime.date,
    ) -> ApiResult[list[CampaignStats]]:
        """Fetch daily per-item statistics for up to 50 campaigns."""
        if len(campaign_ids) > CAMPAIGN_STATS_BATCH_MAX:
            raise ValueError(f"At most {CAMPAIGN_STATS_BATCH_MAX} campaigns per stats call")
        params = {
            "ids": ",".join(str(i) for i in campaign_ids),
            "beginDate": start.isoformat(),
            "endDate": end.isoformat(),
        }
        return await self.transport.call(self.campaign_stats, credential, params=params)

    # =========================================================================
    # Analytics
    # =========================================================================

    async def get_sales_funnel(
        self,
        credential: str,
        item_id: int,
        start: datetime.date,
        end: datetime.date,
        *,
        today: datetime.date | None = None,
    ) -> ApiResult[list[FunnelHistory]]:
        """Fetch daily funnel history of one item.

        The window is clamped with ``clamp_funnel_window``; if nothing is
        left to request, an empty success is returned without a call.
        """
        window = clamp_funnel_window(start, end, today or datetime.date.today())
        if window is None:
            return ApiSuccess([])
        body = {
            "selectedPeriod": {"start": window[0].isoformat(), "end": window[1].isoformat()},
            "nmIds": [item_id],
            "skipDeletedNm": False,
            "aggregationLevel": "day",
        }
        return await self.transport.call(self.funnel_history, credential, json=body)

    # =========================================================================
    # Calendar promotions
    # =========================================================================

    async def get_calendar_promotions(
        self,
        credential: str,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> ApiResult[CalendarPromotions]:
        """List calendar promotions running between ``start`` and ``end``."""
        params = {
            "startDateTime": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "endDateTime": end.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "allPromo": False,
            "limit": CALENDAR_PAGE_SIZE,
            "offset": 0,
        }
        return await self.transport.call(self.calendar_promotions, credential, params=params)

    async def get_promotion_items(
        self,
        credential: str,
        promotion_id: int,
        *,
        limit: int = CALENDAR_PAGE_SIZE,
        offset: int = 0,
    ) -> ApiResult[PromotionItems]:
        """List items participating in a promotion (one offset page)."""
        params = {
            "promotionID": promotion_id,
            "inAction": True,
            "limit": limit,
            "offset": offset,
        }
        return await self.transport.call(self.promotion_items, credential, params=params)

    # =========================================================================
    # Feedbacks and warehouses
    # =========================================================================

    async def get_feedbacks(
        self,
        credential: str,
        *,
        is_answered: bool,
        take: int = FEEDBACKS_PAGE_SIZE,
        skip: int = 0,
    ) -> ApiResult[FeedbacksResponse]:
        """List one page of feedbacks."""
        params = {"isAnswered": is_answered, "take": take, "skip": skip}
        return await self.transport.call(self.feedbacks, credential, params=params)

    async def get_warehouses(self, credential: str) -> ApiResult[list[MarketplaceWarehouseInfo]]:
        """List the marketplace's own warehouses."""
        return await self.transport.call(self.warehouses, credential)
