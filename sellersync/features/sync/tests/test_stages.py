"""Tests for the per-cabinet sync stages."""

import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from sellersync.core.database import transaction
from sellersync.features.catalog.models import (
    Campaign,
    CampaignDailyMetric,
    CampaignItemLink,
    CatalogItem,
    ItemDailyMetric,
    PriceSnapshot,
    PromotionParticipation,
    StockSnapshot,
)
from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.errors import (
    ApiCallError,
    ApiSuccess,
    AuthScopeError,
    RemoteError,
    ValidationRejected,
)
from sellersync.features.marketplace.schemas import (
    AuctionCampaigns,
    CalendarPromotions,
    CampaignCounts,
    CampaignDetails,
    CampaignStats,
    FeedbacksResponse,
    FunnelHistory,
    Good,
    GoodsResponse,
    Order,
    PromotionItems,
)
from sellersync.features.sync.stages import (
    sync_campaigns,
    sync_prices,
    sync_promotions,
    sync_ratings,
    sync_statistics,
)
from sellersync.features.sync.stages.base import check_batch
from sellersync.features.sync.stages.campaigns import split_campaign_ids
from sellersync.features.sync.stages.prices import customer_discounts, price_records
from sellersync.features.sync.stages.promotions import day_bounds
from sellersync.features.sync.stages.ratings import compute_rating
from sellersync.features.sync.stages.statistics import cost_per_action
from sellersync.features.sync.stages.stocks import StockRecord, store_stock_records
from sellersync.features.sync.windows import DateWindow

YESTERDAY = datetime.date(2024, 5, 10)


def d(day: int) -> datetime.date:
    return datetime.date(2024, 5, day)


async def add_items(session_maker, cabinet_id: int, *item_ids: int) -> None:
    async with transaction(session_maker) as db:
        db.add_all(
            CatalogItem(item_id=item_id, cabinet_id=cabinet_id, reviews_count=0)
            for item_id in item_ids
        )


async def fetch_all(session_maker, model):
    async with session_maker() as db:
        return list((await db.execute(select(model))).scalars())


# =============================================================================
# Batch outcome handling
# =============================================================================


class TestCheckBatch:
    """Tests for check_batch."""

    def test_success_returns_value(self):
        """Test that a success yields its value."""
        assert check_batch(ApiSuccess(3), "op") == 3

    def test_generic_failure_is_logged_and_skipped(self):
        """Test that a 500 only costs the batch."""
        assert check_batch(RemoteError(500, "boom"), "op") is None

    @pytest.mark.parametrize(
        "failure",
        [AuthScopeError(category=ApiCategory.ANALYTICS), RemoteError(401, "unauthorized")],
    )
    def test_credential_failures_raise(self, failure):
        """Test that scope and key failures escalate to the stage."""
        with pytest.raises(ApiCallError) as exc_info:
            check_batch(failure, "op")

        assert exc_info.value.failure == failure


# =============================================================================
# Prices
# =============================================================================


def make_good(sizes: list[dict], **fields) -> Good:
    return Good.model_validate(
        {"nmID": 1, "discount": 10, "clubDiscount": 5, "sizes": sizes, **fields}
    )


class TestPriceRecords:
    """Tests for price_records."""

    def test_uniform_sizes_collapse_to_one_record(self):
        """Test that equal prices across sizes give one item-level record."""
        size = {"price": 1000, "discountedPrice": 900, "clubDiscountedPrice": 855}
        good = make_good([{"sizeID": 1, **size}, {"sizeID": 2, **size}])

        records = price_records(good, YESTERDAY)

        assert len(records) == 1
        assert records[0].size_id is None
        assert records[0].price == Decimal("1000")

    def test_differing_sizes_get_own_records(self):
        """Test that differing prices give one record per size."""
        good = make_good(
            [
                {"sizeID": 1, "price": 1000, "discountedPrice": 900, "clubDiscountedPrice": 855},
                {"sizeID": 2, "price": 1200, "discountedPrice": 1080, "clubDiscountedPrice": 1026},
            ]
        )

        records = price_records(good, YESTERDAY)

        assert [r.size_id for r in records] == [1, 2]

    def test_incomplete_sizes_ignored(self):
        """Test that sizes missing a price are not usable."""
        good = make_good([{"sizeID": 1, "price": 1000, "discountedPrice": 900}])

        assert price_records(good, YESTERDAY) == []

    def test_missing_discount_drops_good(self):
        """Test that a good without its discounts yields nothing."""
        size = {"sizeID": 1, "price": 1, "discountedPrice": 1, "clubDiscountedPrice": 1}

        assert price_records(make_good([size], discount=None), YESTERDAY) == []


class TestCustomerDiscounts:
    """Tests for customer_discounts."""

    def test_latest_order_wins(self):
        """Test that the most recent order sets the discount."""
        orders = [
            Order.model_validate({"nmId": 1, "spp": 25, "date": "2024-05-10T12:00:00"}),
            Order.model_validate({"nmId": 1, "spp": 20, "date": "2024-05-10T08:00:00"}),
            Order.model_validate({"nmId": 2, "spp": 30, "date": "2024-05-10T09:00:00"}),
            Order.model_validate({"nmId": 3, "date": "2024-05-10T09:00:00"}),
        ]

        assert customer_discounts(orders) == {1: 25, 2: 30}


class TestSyncPrices:
    """Tests for sync_prices."""

    @pytest.mark.asyncio
    async def test_prices_unpriced_items_and_applies_discounts(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that only items without yesterday's snapshot are requested."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1, 2)
        async with transaction(session_maker) as db:
            db.add(PriceSnapshot(cabinet_id=cabinet_id, item_id=2, date=YESTERDAY))

        marketplace.get_prices.return_value = ApiSuccess(
            GoodsResponse.model_validate(
                {
                    "data": {
                        "listGoods": [
                            {
                                "nmID": 1,
                                "discount": 10,
                                "clubDiscount": 5,
                                "sizes": [
                                    {
                                        "sizeID": 100,
                                        "price": 1000,
                                        "discountedPrice": 900,
                                        "clubDiscountedPrice": 855,
                                    }
                                ],
                            }
                        ]
                    }
                }
            )
        )
        marketplace.get_orders.return_value = ApiSuccess(
            [Order.model_validate({"nmId": 1, "spp": 22, "date": "2024-05-10T10:00:00"})]
        )

        async with transaction(session_maker) as db:
            result = await sync_prices(db, make_ctx(cabinet_id))

        marketplace.get_prices.assert_awaited_once_with("key-123", [1])
        marketplace.get_orders.assert_awaited_once_with("key-123", YESTERDAY)
        assert result.created == 1
        assert result.skipped == 1
        rows = {row.item_id: row for row in await fetch_all(session_maker, PriceSnapshot)}
        assert rows[1].discount == 10
        assert rows[1].customer_discount == 22

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_orders(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that a failed price batch is skipped and the stage continues."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        marketplace.get_prices.return_value = RemoteError(500, "boom")
        marketplace.get_orders.return_value = ApiSuccess([])

        async with transaction(session_maker) as db:
            result = await sync_prices(db, make_ctx(cabinet_id))

        assert result.created == 0
        marketplace.get_orders.assert_awaited_once()


# =============================================================================
# Stocks
# =============================================================================


class TestStoreStockRecords:
    """Tests for store_stock_records."""

    @pytest.mark.asyncio
    async def test_zero_updates_existing_but_never_creates(self, session_maker, make_cabinet):
        """Test that zero stock overwrites rows but does not create new ones."""
        cabinet_id = await make_cabinet()
        async with transaction(session_maker) as db:
            db.add(
                StockSnapshot(
                    cabinet_id=cabinet_id, item_id=1, warehouse_id=10, barcode="111", amount=5
                )
            )

        records = [
            StockRecord(item_id=1, warehouse_id=10, barcode="111", amount=0),
            StockRecord(item_id=1, warehouse_id=20, barcode="111", amount=0),
            StockRecord(item_id=1, warehouse_id=30, barcode="111", amount=4),
        ]
        async with transaction(session_maker) as db:
            result = await store_stock_records(db, cabinet_id, records)

        assert (result.created, result.updated, result.skipped) == (1, 1, 1)
        amounts = {row.warehouse_id: row.amount for row in await fetch_all(session_maker, StockSnapshot)}
        assert amounts == {10: 0, 30: 4}


# =============================================================================
# Campaigns
# =============================================================================


class TestSplitCampaignIds:
    """Tests for split_campaign_ids."""

    def test_groups_by_type_and_filters_status(self):
        """Test that only synced statuses of synced types are picked."""
        counts = CampaignCounts.model_validate(
            {
                "adverts": [
                    {"type": 8, "status": 9, "advert_list": [{"advertId": 1}, {"advertId": 2}]},
                    {"type": 9, "status": 11, "advert_list": [{"advertId": 3}]},
                    {"type": 8, "status": 4, "advert_list": [{"advertId": 4}]},
                    {"type": 6, "status": 9, "advert_list": [{"advertId": 5}]},
                    {"type": 42, "status": 9, "advert_list": [{"advertId": 6}]},
                ]
            }
        )

        assert split_campaign_ids(counts) == ([1, 2], [3])


class TestSyncCampaigns:
    """Tests for sync_campaigns."""

    @pytest.mark.asyncio
    async def test_upserts_campaigns_and_links_own_items(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that active campaigns link the cabinet's items and finished ones do not."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        marketplace.get_campaign_counts.return_value = ApiSuccess(
            CampaignCounts.model_validate(
                {
                    "adverts": [
                        {"type": 8, "status": 9, "advert_list": [{"advertId": 11}]},
                        {"type": 9, "status": 7, "advert_list": [{"advertId": 21}]},
                    ]
                }
            )
        )
        marketplace.get_campaign_details.return_value = ApiSuccess(
            [
                CampaignDetails.model_validate(
                    {"advertId": 11, "name": "Auto", "type": 8, "status": 9, "nmIds": [1, 999]}
                )
            ]
        )
        marketplace.get_auction_campaigns.return_value = ApiSuccess(
            AuctionCampaigns.model_validate(
                {
                    "adverts": [
                        {
                            "id": 21,
                            "status": 7,
                            "bid_type": "unified",
                            "settings": {"name": "Search"},
                            "nm_settings": [{"nm_id": 1}],
                        }
                    ]
                }
            )
        )

        async with transaction(session_maker) as db:
            result = await sync_campaigns(db, make_ctx(cabinet_id))

        assert result.created == 2
        campaigns = {c.campaign_id: c for c in await fetch_all(session_maker, Campaign)}
        assert campaigns[11].status == "active"
        assert campaigns[21].status == "finished"
        assert campaigns[21].bid_type == "unified"
        links = await fetch_all(session_maker, CampaignItemLink)
        assert [(link.campaign_id, link.item_id) for link in links] == [(11, 1)]

    @pytest.mark.asyncio
    async def test_counts_failure_raises(self, session_maker, make_cabinet, make_ctx, marketplace):
        """Test that a failed campaign listing fails the stage."""
        cabinet_id = await make_cabinet()
        marketplace.get_campaign_counts.return_value = RemoteError(500, "boom")

        async with transaction(session_maker) as db:
            with pytest.raises(ApiCallError):
                await sync_campaigns(db, make_ctx(cabinet_id))


# =============================================================================
# Statistics
# =============================================================================


class TestCostPerAction:
    """Tests for cost_per_action."""

    @pytest.mark.parametrize(
        ("spend", "orders", "expected"),
        [
            (Decimal("100"), 3, Decimal("33.33")),
            (Decimal("0.25"), 2, Decimal("0.13")),
            (Decimal("10"), 0, None),
            (None, 3, None),
        ],
    )
    def test_cost_per_action(self, spend, orders, expected):
        """Test spend per order rounded half-up to cents."""
        assert cost_per_action(spend, orders) == expected


class TestSyncStatistics:
    """Tests for sync_statistics."""

    @pytest.mark.asyncio
    async def test_campaign_ids_are_batched_by_fifty(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that 120 campaigns with gaps take three stats calls of 50, 50 and 20."""
        cabinet_id = await make_cabinet()
        async with transaction(session_maker) as db:
            db.add_all(
                Campaign(campaign_id=n, cabinet_id=cabinet_id, type_code=8, status="active")
                for n in range(1, 121)
            )
        marketplace.get_campaign_stats.return_value = ApiSuccess([])

        async with transaction(session_maker) as db:
            await sync_statistics(db, make_ctx(cabinet_id))

        sizes = [len(call.args[1]) for call in marketplace.get_campaign_stats.await_args_list]
        assert sizes == [50, 50, 20]

    @pytest.mark.asyncio
    async def test_campaign_days_stored_with_cost_per_action(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that returned campaign days are stored and finished campaigns skipped."""
        cabinet_id = await make_cabinet()
        async with transaction(session_maker) as db:
            db.add(Campaign(campaign_id=11, cabinet_id=cabinet_id, type_code=8, status="active"))
            db.add(Campaign(campaign_id=12, cabinet_id=cabinet_id, type_code=8, status="finished"))
        marketplace.get_campaign_stats.return_value = ApiSuccess(
            [
                CampaignStats.model_validate(
                    {
                        "advertId": 11,
                        "days": [
                            {
                                "date": "2024-05-02T00:00:00+03:00",
                                "apps": [{"nms": [{"nmId": 1, "sum": 100, "orders": 4}]}],
                            }
                        ],
                    }
                )
            ]
        )

        async with transaction(session_maker) as db:
            await sync_statistics(db, make_ctx(cabinet_id))

        call = marketplace.get_campaign_stats.await_args
        assert call.args[1] == [11]
        rows = await fetch_all(session_maker, CampaignDailyMetric)
        assert len(rows) == 1
        assert rows[0].date == d(2)
        assert rows[0].cpa == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_item_funnel_fetches_only_the_gap(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test days 1-5 and 9-10 stored: one funnel call for 6-8 persisting three days."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        async with transaction(session_maker) as db:
            db.add_all(
                ItemDailyMetric(cabinet_id=cabinet_id, item_id=1, date=d(day))
                for day in (1, 2, 3, 4, 5, 9, 10)
            )
        marketplace.get_sales_funnel.return_value = ApiSuccess(
            [
                FunnelHistory.model_validate(
                    {
                        "product": {"nmId": 1},
                        "history": [
                            {"date": d(day).isoformat(), "orderCount": day} for day in range(5, 10)
                        ],
                    }
                )
            ]
        )

        async with transaction(session_maker) as db:
            result = await sync_statistics(db, make_ctx(cabinet_id))

        ctx_today = datetime.date(2024, 5, 11)
        marketplace.get_sales_funnel.assert_awaited_once_with(
            "key-123", 1, d(6), d(8), today=ctx_today
        )
        assert result.created == 3
        rows = await fetch_all(session_maker, ItemDailyMetric)
        assert sorted(row.date for row in rows if row.orders is not None) == [d(6), d(7), d(8)]

    @pytest.mark.asyncio
    async def test_complete_funnel_makes_no_call(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that an item with every day stored is not requested."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        async with transaction(session_maker) as db:
            db.add_all(
                ItemDailyMetric(cabinet_id=cabinet_id, item_id=1, date=d(day))
                for day in range(1, 11)
            )

        async with transaction(session_maker) as db:
            await sync_statistics(db, make_ctx(cabinet_id))

        marketplace.get_sales_funnel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_two_week_funnel_is_fetched_one_week_at_a_time(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that a 14-day window takes two 7-day calls and a rerun takes none."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)

        async def funnel(credential, item_id, start, end, *, today):
            days = DateWindow(start, end).days()
            return ApiSuccess(
                [
                    FunnelHistory.model_validate(
                        {
                            "product": {"nmId": item_id},
                            "history": [{"date": day.isoformat(), "orderCount": 1} for day in days],
                        }
                    )
                ]
            )

        marketplace.get_sales_funnel.side_effect = funnel
        ctx = make_ctx(cabinet_id, window=DateWindow(d(1), d(14)), today=d(15))

        async with transaction(session_maker) as db:
            result = await sync_statistics(db, ctx)

        spans = [call.args[2:4] for call in marketplace.get_sales_funnel.await_args_list]
        assert spans == [(d(1), d(7)), (d(8), d(14))]
        assert result.created == 14

        marketplace.get_sales_funnel.reset_mock()
        async with transaction(session_maker) as db:
            await sync_statistics(db, ctx)

        marketplace.get_sales_funnel.assert_not_awaited()


# =============================================================================
# Promotions
# =============================================================================


class TestSyncPromotions:
    """Tests for sync_promotions."""

    def test_day_bounds_cover_the_utc_day(self):
        """Test that bounds run from midnight to the last second."""
        start, end = day_bounds(d(11))

        assert start.isoformat() == "2024-05-11T00:00:00+00:00"
        assert end.isoformat() == "2024-05-11T23:59:59+00:00"

    @pytest.mark.asyncio
    async def test_rebuilds_participation_and_skips_auto_and_rejected(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that auto and rejected promotions are skipped and the rest stored."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        async with transaction(session_maker) as db:
            db.add(PromotionParticipation(cabinet_id=cabinet_id, item_id=1, promotion_id=99))

        marketplace.get_calendar_promotions.return_value = ApiSuccess(
            CalendarPromotions.model_validate(
                {
                    "data": {
                        "promotions": [
                            {"id": 4, "name": "Auto", "type": "auto"},
                            {"id": 5, "name": "Spring", "type": "regular"},
                            {"id": 6, "name": "Closed", "type": "regular"},
                        ]
                    }
                }
            )
        )

        async def promotion_items(credential, promotion_id, *, limit, offset):
            if promotion_id == 6:
                return ValidationRejected(body="{}")
            return ApiSuccess(
                PromotionItems.model_validate(
                    {"data": {"nomenclatures": [{"id": 1}, {"id": 1}, {"id": 999}]}}
                )
            )

        marketplace.get_promotion_items.side_effect = promotion_items

        async with transaction(session_maker) as db:
            result = await sync_promotions(db, make_ctx(cabinet_id))

        requested = [call.args[1] for call in marketplace.get_promotion_items.await_args_list]
        assert requested == [5, 6]
        assert result.created == 1
        assert result.skipped == 2
        rows = await fetch_all(session_maker, PromotionParticipation)
        assert [(row.item_id, row.promotion_id, row.promotion_name) for row in rows] == [
            (1, 5, "Spring")
        ]

    @pytest.mark.asyncio
    async def test_rejected_key_propagates(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that a 401 on promotion items escalates to the stage."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        marketplace.get_calendar_promotions.return_value = ApiSuccess(
            CalendarPromotions.model_validate({"data": {"promotions": [{"id": 5}]}})
        )
        marketplace.get_promotion_items.return_value = RemoteError(401, "unauthorized")

        async with transaction(session_maker) as db:
            with pytest.raises(ApiCallError):
                await sync_promotions(db, make_ctx(cabinet_id))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [RemoteError(500, "down"), RemoteError(None, "connection refused")],
    )
    async def test_failed_item_listing_keeps_stored_participation(
        self, session_maker, make_cabinet, make_ctx, marketplace, failure
    ):
        """Test that a failed listing ends the stage and stored rows survive."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1)
        async with transaction(session_maker) as db:
            db.add(
                PromotionParticipation(
                    cabinet_id=cabinet_id, item_id=1, promotion_id=5, promotion_name="Spring"
                )
            )
        marketplace.get_calendar_promotions.return_value = ApiSuccess(
            CalendarPromotions.model_validate(
                {"data": {"promotions": [{"id": 5, "name": "Spring", "type": "regular"}]}}
            )
        )
        marketplace.get_promotion_items.return_value = failure

        with pytest.raises(ApiCallError) as exc_info:
            async with transaction(session_maker) as db:
                await sync_promotions(db, make_ctx(cabinet_id))

        assert exc_info.value.failure == failure
        rows = await fetch_all(session_maker, PromotionParticipation)
        assert [(row.item_id, row.promotion_id) for row in rows] == [(1, 5)]


# =============================================================================
# Ratings
# =============================================================================


class TestComputeRating:
    """Tests for compute_rating."""

    def test_average_rounded_half_up(self):
        """Test that the average is rounded to two places."""
        assert compute_rating([5, 4, 4]) == Decimal("4.33")
        assert compute_rating([5, 4, 5, 4, 5, 4, 5, 5]) == Decimal("4.63")

    def test_no_feedback_no_rating(self):
        """Test that no valuations give no rating."""
        assert compute_rating([]) is None


class TestSyncRatings:
    """Tests for sync_ratings."""

    @pytest.mark.asyncio
    async def test_ratings_from_answered_and_unanswered(
        self, session_maker, make_cabinet, make_ctx, marketplace
    ):
        """Test that both feedback listings feed every item's rating."""
        cabinet_id = await make_cabinet()
        await add_items(session_maker, cabinet_id, 1, 2)

        def feedbacks(*valuations):
            return ApiSuccess(
                FeedbacksResponse.model_validate(
                    {
                        "data": {
                            "feedbacks": [
                                {"productValuation": v, "productDetails": {"nmId": 1}}
                                for v in valuations
                            ]
                        }
                    }
                )
            )

        async def get_feedbacks(credential, *, is_answered, take, skip):
            return feedbacks(5, 4) if is_answered else feedbacks(3)

        marketplace.get_feedbacks.side_effect = get_feedbacks

        async with transaction(session_maker) as db:
            result = await sync_ratings(db, make_ctx(cabinet_id))

        assert result.updated == 2
        items = {item.item_id: item for item in await fetch_all(session_maker, CatalogItem)}
        assert items[1].rating == Decimal("4.00")
        assert items[1].reviews_count == 3
        assert items[2].rating is None
        assert items[2].reviews_count == 0
