"""Pydantic shapes for marketplace responses and request bodies.

Only the fields the sync stages read are declared; unknown fields are
ignored so upstream additions never break parsing.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class MarketplaceModel(BaseModel):
    """Base for upstream payloads: aliases on the wire, extras ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Content: product cards
# =============================================================================


class CardPhoto(MarketplaceModel):
    tm: str | None = None


class CardSize(MarketplaceModel):
    size_id: int | None = Field(None, alias="chrtID")
    tech_size: str | None = Field(None, alias="techSize")
    marketplace_size: str | None = Field(None, alias="wbSize")
    skus: list[str] = Field(default_factory=list)


class Card(MarketplaceModel):
    item_id: int | None = Field(None, alias="nmID")
    group_id: int | None = Field(None, alias="imtID")
    vendor_code: str | None = Field(None, alias="vendorCode")
    category: str | None = Field(None, alias="subjectName")
    brand: str | None = None
    title: str | None = None
    photos: list[CardPhoto] = Field(default_factory=list)
    sizes: list[CardSize] = Field(default_factory=list)


class CardsCursor(MarketplaceModel):
    """Cursor returned with each cards page.

    ``updated_at`` and ``item_id`` describe the last card of the page and
    seed the next request; ``total`` is the size of the page just returned.
    """

    updated_at: str | None = Field(None, alias="updatedAt")
    item_id: int | None = Field(None, alias="nmID")
    total: int = 0


class CardsPage(MarketplaceModel):
    cards: list[Card] = Field(default_factory=list)
    cursor: CardsCursor | None = None


# =============================================================================
# Prices and orders
# =============================================================================


class GoodSize(MarketplaceModel):
    size_id: int | None = Field(None, alias="sizeID")
    price: Decimal | None = None
    discounted_price: Decimal | None = Field(None, alias="discountedPrice")
    club_discounted_price: Decimal | None = Field(None, alias="clubDiscountedPrice")
    tech_size_name: str | None = Field(None, alias="techSizeName")


class Good(MarketplaceModel):
    item_id: int | None = Field(None, alias="nmID")
    discount: int | None = None
    club_discount: int | None = Field(None, alias="clubDiscount")
    editable_size_price: bool | None = Field(None, alias="editableSizePrice")
    is_bad_turnover: bool | None = Field(None, alias="isBadTurnover")
    sizes: list[GoodSize] = Field(default_factory=list)


class GoodsData(MarketplaceModel):
    list_goods: list[Good] = Field(default_factory=list, alias="listGoods")


class GoodsResponse(MarketplaceModel):
    data: GoodsData | None = None


class Order(MarketplaceModel):
    item_id: int | None = Field(None, alias="nmId")
    customer_discount: int | None = Field(None, alias="spp")
    ordered_at: datetime | None = Field(None, alias="date")


# =============================================================================
# Stocks by size
# =============================================================================


class StockMetrics(MarketplaceModel):
    stock_count: int | None = Field(None, alias="stockCount")


class OfficeStock(MarketplaceModel):
    warehouse_id: int | None = Field(None, alias="officeID")
    warehouse_name: str | None = Field(None, alias="officeName")
    metrics: StockMetrics | None = None


class SizeStock(MarketplaceModel):
    size_id: int | None = Field(None, alias="chrtID")
    name: str | None = None
    offices: list[OfficeStock] = Field(default_factory=list)


class SizeStocksData(MarketplaceModel):
    sizes: list[SizeStock] = Field(default_factory=list)


class SizeStocksResponse(MarketplaceModel):
    data: SizeStocksData | None = None


# =============================================================================
# Promotion: campaigns and their statistics
# =============================================================================


class CampaignRef(MarketplaceModel):
    campaign_id: int = Field(..., alias="advertId")


class CampaignGroup(MarketplaceModel):
    type_code: int = Field(..., alias="type")
    status: int
    adverts: list[CampaignRef] = Field(default_factory=list, alias="advert_list")


class CampaignCounts(MarketplaceModel):
    adverts: list[CampaignGroup] = Field(default_factory=list)


class CampaignDetails(MarketplaceModel):
    """Campaign as returned by the batch details lookup."""

    campaign_id: int = Field(..., alias="advertId")
    name: str | None = None
    type_code: int = Field(..., alias="type")
    status: int
    bid_type: int | None = Field(None, alias="bid_type")
    start_time: datetime | None = Field(None, alias="startTime")
    end_time: datetime | None = Field(None, alias="endTime")
    create_time: datetime | None = Field(None, alias="createTime")
    change_time: datetime | None = Field(None, alias="changeTime")
    item_ids: list[int] = Field(default_factory=list, alias="nmIds")


class AuctionItemSetting(MarketplaceModel):
    item_id: int = Field(..., alias="nm_id")


class AuctionSettings(MarketplaceModel):
    name: str | None = None


class AuctionTimestamps(MarketplaceModel):
    created: datetime | None = None
    updated: datetime | None = None
    started: datetime | None = None


class AuctionCampaign(MarketplaceModel):
    campaign_id: int = Field(..., alias="id")
    status: int
    bid_type: str | None = None
    settings: AuctionSettings | None = None
    timestamps: AuctionTimestamps | None = None
    nm_settings: list[AuctionItemSetting] = Field(default_factory=list)


class AuctionCampaigns(MarketplaceModel):
    adverts: list[AuctionCampaign] = Field(default_factory=list)


class StatsItem(MarketplaceModel):
    item_id: int = Field(..., alias="nmId")
    views: int | None = None
    clicks: int | None = None
    ctr: Decimal | None = None
    cpc: Decimal | None = None
    cr: Decimal | None = None
    spend: Decimal | None = Field(None, alias="sum")
    orders: int | None = None
    add_to_cart: int | None = Field(None, alias="atbs")
    canceled: int | None = None
    shks: int | None = None
    orders_sum: Decimal | None = Field(None, alias="sum_price")


class StatsApp(MarketplaceModel):
    items: list[StatsItem] = Field(default_factory=list, alias="nms")


class StatsDay(MarketplaceModel):
    raw_date: str = Field(..., alias="date")
    apps: list[StatsApp] = Field(default_factory=list)

    @property
    def day(self) -> date:
        """Calendar day of the entry (timestamps carry a time and offset)."""
        return date.fromisoformat(self.raw_date[:10])


class CampaignStats(MarketplaceModel):
    campaign_id: int = Field(..., alias="advertId")
    days: list[StatsDay] = Field(default_factory=list)


# =============================================================================
# Analytics: sales funnel history
# =============================================================================


class FunnelDay(MarketplaceModel):
    day: date = Field(..., alias="date")
    open_card: int | None = Field(None, alias="openCount")
    add_to_cart: int | None = Field(None, alias="cartCount")
    orders: int | None = Field(None, alias="orderCount")
    orders_sum: Decimal | None = Field(None, alias="orderSum")


class FunnelProduct(MarketplaceModel):
    item_id: int = Field(..., alias="nmId")


class FunnelHistory(MarketplaceModel):
    product: FunnelProduct
    history: list[FunnelDay] = Field(default_factory=list)


# =============================================================================
# Calendar promotions
# =============================================================================


class CalendarPromotion(MarketplaceModel):
    promotion_id: int = Field(..., alias="id")
    name: str | None = None
    type: str | None = None


class CalendarPromotionsData(MarketplaceModel):
    promotions: list[CalendarPromotion] = Field(default_factory=list)


class CalendarPromotions(MarketplaceModel):
    data: CalendarPromotionsData | None = None


class PromotionItem(MarketplaceModel):
    item_id: int = Field(..., alias="id")
    in_action: bool | None = Field(None, alias="inAction")


class PromotionItemsData(MarketplaceModel):
    nomenclatures: list[PromotionItem] = Field(default_factory=list)


class PromotionItems(MarketplaceModel):
    data: PromotionItemsData | None = None


# =============================================================================
# Feedbacks
# =============================================================================


class FeedbackProduct(MarketplaceModel):
    item_id: int | None = Field(None, alias="nmId")


class Feedback(MarketplaceModel):
    valuation: int | None = Field(None, alias="productValuation")
    product: FeedbackProduct | None = Field(None, alias="productDetails")


class FeedbacksData(MarketplaceModel):
    feedbacks: list[Feedback] = Field(default_factory=list)


class FeedbacksResponse(MarketplaceModel):
    data: FeedbacksData | None = None


# =============================================================================
# Supplies: warehouse directory
# =============================================================================


class MarketplaceWarehouseInfo(MarketplaceModel):
    warehouse_id: int = Field(..., alias="ID")
    name: str | None = None
    address: str | None = None
    work_time: str | None = Field(None, alias="workTime")
    accepts_qr: bool | None = Field(None, alias="acceptsQr")
    is_active: bool | None = Field(None, alias="isActive")
    is_transit_active: bool | None = Field(None, alias="isTransitActive")
