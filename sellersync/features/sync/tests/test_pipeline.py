"""Tests for the per-cabinet pipeline."""

import datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from sellersync.core.database import transaction
from sellersync.features.cabinets.models import Cabinet
from sellersync.features.cabinets.service import KEY_REJECTED_MESSAGE
from sellersync.features.catalog.models import CatalogItem
from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.errors import (
    ApiCallError,
    AuthScopeError,
    PaginationConfigError,
    RemoteError,
)
from sellersync.features.sync.pipeline import (
    FETCH_STAGES,
    CabinetPipeline,
    CabinetRunReport,
    StageStatus,
    SyncStage,
)
from sellersync.features.sync.upsert import UpsertResult
from sellersync.features.sync.windows import DateWindow

TODAY = datetime.date(2024, 5, 11)
WINDOW = DateWindow(datetime.date(2024, 5, 1), datetime.date(2024, 5, 10))


@pytest.fixture
def stages():
    """One AsyncMock per fetching stage, each succeeding by default."""
    return {stage: AsyncMock(return_value=UpsertResult(created=1)) for stage in FETCH_STAGES}


@pytest.fixture
def pipeline(session_maker, marketplace, test_settings, stages):
    return CabinetPipeline(
        session_maker,
        marketplace,
        test_settings,
        stages=stages,
        sleep=AsyncMock(),
        today_fn=lambda: TODAY,
    )


async def load_cabinet(session_maker, cabinet_id: int) -> Cabinet:
    async with session_maker() as db:
        return await db.get(Cabinet, cabinet_id)


class TestCabinetRunReport:
    """Tests for run state transitions."""

    def test_stages_advance_in_order(self):
        """Test that the run can walk every stage to DONE."""
        report = CabinetRunReport(cabinet_id=1, window=WINDOW)

        for stage in FETCH_STAGES:
            report.advance(stage)
        report.advance(SyncStage.DONE)

        assert report.succeeded

    def test_skipping_a_stage_is_rejected(self):
        """Test that out-of-order transitions raise."""
        report = CabinetRunReport(cabinet_id=1, window=WINDOW)

        with pytest.raises(ValueError):
            report.advance(SyncStage.FETCHING_PRICES)

    def test_terminal_states_are_final(self):
        """Test that FAILED cannot be left."""
        report = CabinetRunReport(cabinet_id=1, window=WINDOW)
        report.fail(SyncStage.PENDING, "no key")

        with pytest.raises(ValueError):
            report.advance(SyncStage.FETCHING_CARDS)
        assert report.failed_stage is SyncStage.PENDING


class TestCabinetPipeline:
    """Tests for CabinetPipeline.run."""

    def test_requires_every_stage(self, session_maker, marketplace, test_settings, stages):
        """Test that a missing stage function is rejected up front."""
        del stages[SyncStage.FETCHING_RATINGS]

        with pytest.raises(ValueError):
            CabinetPipeline(session_maker, marketplace, test_settings, stages=stages)

    @pytest.mark.asyncio
    async def test_runs_every_stage_in_order(self, pipeline, stages, session_maker, make_cabinet):
        """Test that a clean run completes all stages and stamps the cabinet."""
        cabinet_id = await make_cabinet()
        order = []
        for stage, fn in stages.items():
            fn.side_effect = lambda db, ctx, stage=stage: order.append(stage) or UpsertResult()

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.state is SyncStage.DONE
        assert order == list(FETCH_STAGES)
        assert all(report.status_of(stage) is StageStatus.COMPLETED for stage in FETCH_STAGES)
        ctx = stages[SyncStage.FETCHING_CARDS].await_args.args[1]
        assert ctx.cabinet_id == cabinet_id
        assert ctx.credential == "key-123"
        assert ctx.window == WINDOW
        assert ctx.today == TODAY
        cabinet = await load_cabinet(session_maker, cabinet_id)
        assert cabinet.last_data_update_requested_at is not None
        assert cabinet.last_data_update_at is not None

    @pytest.mark.asyncio
    async def test_statistics_failure_does_not_stop_later_stages(
        self, pipeline, stages, make_cabinet
    ):
        """Test that a RemoteError in statistics still lets promotions and ratings run."""
        cabinet_id = await make_cabinet()
        stages[SyncStage.FETCHING_STATISTICS].side_effect = ApiCallError(
            RemoteError(500, "boom"), "campaign_counts"
        )

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.succeeded
        assert report.status_of(SyncStage.FETCHING_STATISTICS) is StageStatus.FAILED
        assert report.status_of(SyncStage.FETCHING_PROMOTIONS) is StageStatus.COMPLETED
        assert report.status_of(SyncStage.FETCHING_RATINGS) is StageStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, pipeline, stages, make_cabinet):
        """Test that an arbitrary exception fails only its stage."""
        cabinet_id = await make_cabinet()
        stages[SyncStage.FETCHING_PRICES].side_effect = RuntimeError("bad data")

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.succeeded
        assert report.status_of(SyncStage.FETCHING_PRICES) is StageStatus.FAILED
        stages[SyncStage.FETCHING_STOCKS].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_scope_skips_stage(self, pipeline, stages, make_cabinet):
        """Test that a token without the category skips just that stage."""
        cabinet_id = await make_cabinet()
        stages[SyncStage.FETCHING_STOCKS].side_effect = ApiCallError(
            AuthScopeError(category=ApiCategory.ANALYTICS), "stocks_by_sizes"
        )

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.succeeded
        assert report.status_of(SyncStage.FETCHING_STOCKS) is StageStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_rejected_key_halts_and_invalidates_cabinet(
        self, pipeline, stages, session_maker, make_cabinet
    ):
        """Test that a 401 ends the run and marks the key invalid."""
        cabinet_id = await make_cabinet()
        stages[SyncStage.FETCHING_CARDS].side_effect = ApiCallError(
            RemoteError(401, "unauthorized"), "cards_list"
        )

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.state is SyncStage.FAILED
        assert report.failed_stage is SyncStage.FETCHING_CARDS
        stages[SyncStage.FETCHING_PRICES].assert_not_awaited()
        cabinet = await load_cabinet(session_maker, cabinet_id)
        assert cabinet.is_valid is False
        assert cabinet.validation_error == KEY_REJECTED_MESSAGE
        assert cabinet.last_data_update_at is None

    @pytest.mark.asyncio
    async def test_pagination_error_halts(self, pipeline, stages, session_maker, make_cabinet):
        """Test that a broken cursor ends the run without touching the key."""
        cabinet_id = await make_cabinet()
        stages[SyncStage.FETCHING_CARDS].side_effect = PaginationConfigError("no cursor")

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.state is SyncStage.FAILED
        assert report.error == "no cursor"
        stages[SyncStage.FETCHING_PRICES].assert_not_awaited()
        cabinet = await load_cabinet(session_maker, cabinet_id)
        assert cabinet.is_valid is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("api_key", [None, "", "   "])
    async def test_cabinet_without_key_fails_before_stages(
        self, pipeline, stages, make_cabinet, api_key
    ):
        """Test that a cabinet with no usable key runs no stage."""
        cabinet_id = await make_cabinet(api_key=api_key)

        report = await pipeline.run(cabinet_id, WINDOW)

        assert report.state is SyncStage.FAILED
        assert report.failed_stage is SyncStage.PENDING
        for fn in stages.values():
            fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_cabinet_fails(self, pipeline):
        """Test that a missing cabinet fails the run."""
        report = await pipeline.run(999, WINDOW)

        assert report.state is SyncStage.FAILED

    @pytest.mark.asyncio
    async def test_failed_stage_rolls_back_its_writes(
        self, pipeline, stages, session_maker, make_cabinet
    ):
        """Test that rows written by a failing stage are not committed."""
        cabinet_id = await make_cabinet()

        async def write_then_fail(db, ctx):
            db.add(CatalogItem(item_id=1, cabinet_id=ctx.cabinet_id, reviews_count=0))
            await db.flush()
            raise RuntimeError("after write")

        stages[SyncStage.FETCHING_CARDS].side_effect = write_then_fail

        await pipeline.run(cabinet_id, WINDOW)

        async with session_maker() as db:
            assert list((await db.execute(select(CatalogItem))).scalars()) == []
