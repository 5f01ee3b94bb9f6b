"""Per-cabinet sync pipeline.

Runs the fetching stages of one cabinet in a fixed order. Each stage gets its
own session and commits on success, so a later failure never rolls back an
earlier stage.

CRITICAL: a stage failure only ends the run when it concerns the credential
itself (rejected key) or the cursor state (pagination misconfiguration).
Everything else is recorded and the next stage runs.
"""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum

import structlog

from sellersync.core.config import Settings
from sellersync.core.database import SessionFactory, transaction
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.models import Cabinet
from sellersync.features.cabinets.service import (
    mark_key_rejected,
    touch_update_completed,
)
from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.errors import (
    ApiCallError,
    AuthScopeError,
    PaginationConfigError,
    RemoteError,
)
from sellersync.features.marketplace.ratelimit import RateLimiters, Sleeper
from sellersync.features.sync.stages import (
    StageContext,
    StageFn,
    sync_campaigns,
    sync_cards,
    sync_prices,
    sync_promotions,
    sync_ratings,
    sync_statistics,
    sync_stocks,
)
from sellersync.features.sync.upsert import UpsertResult
from sellersync.features.sync.windows import DateWindow

logger = get_logger(__name__)


class SyncStage(str, Enum):
    """Lifecycle states of one cabinet run.

    State transitions:
    - PENDING -> FETCHING_CARDS -> ... -> FETCHING_RATINGS -> DONE
    - any non-terminal state -> FAILED
    """

    PENDING = "pending"
    FETCHING_CARDS = "fetching_cards"
    FETCHING_PRICES = "fetching_prices"
    FETCHING_STOCKS = "fetching_stocks"
    FETCHING_CAMPAIGNS = "fetching_campaigns"
    FETCHING_STATISTICS = "fetching_statistics"
    FETCHING_PROMOTIONS = "fetching_promotions"
    FETCHING_RATINGS = "fetching_ratings"
    DONE = "done"
    FAILED = "failed"


FETCH_STAGES: tuple[SyncStage, ...] = (
    SyncStage.FETCHING_CARDS,
    SyncStage.FETCHING_PRICES,
    SyncStage.FETCHING_STOCKS,
    SyncStage.FETCHING_CAMPAIGNS,
    SyncStage.FETCHING_STATISTICS,
    SyncStage.FETCHING_PROMOTIONS,
    SyncStage.FETCHING_RATINGS,
)

# Valid state transitions for a cabinet run
VALID_STAGE_TRANSITIONS: dict[SyncStage, set[SyncStage]] = {
    SyncStage.PENDING: {SyncStage.FETCHING_CARDS, SyncStage.FAILED},
    SyncStage.FETCHING_CARDS: {SyncStage.FETCHING_PRICES, SyncStage.FAILED},
    SyncStage.FETCHING_PRICES: {SyncStage.FETCHING_STOCKS, SyncStage.FAILED},
    SyncStage.FETCHING_STOCKS: {SyncStage.FETCHING_CAMPAIGNS, SyncStage.FAILED},
    SyncStage.FETCHING_CAMPAIGNS: {SyncStage.FETCHING_STATISTICS, SyncStage.FAILED},
    SyncStage.FETCHING_STATISTICS: {SyncStage.FETCHING_PROMOTIONS, SyncStage.FAILED},
    SyncStage.FETCHING_PROMOTIONS: {SyncStage.FETCHING_RATINGS, SyncStage.FAILED},
    SyncStage.FETCHING_RATINGS: {SyncStage.DONE, SyncStage.FAILED},
    SyncStage.DONE: set(),  # Terminal state
    SyncStage.FAILED: set(),  # Terminal state
}

DEFAULT_STAGES: dict[SyncStage, StageFn] = {
    SyncStage.FETCHING_CARDS: sync_cards,
    SyncStage.FETCHING_PRICES: sync_prices,
    SyncStage.FETCHING_STOCKS: sync_stocks,
    SyncStage.FETCHING_CAMPAIGNS: sync_campaigns,
    SyncStage.FETCHING_STATISTICS: sync_statistics,
    SyncStage.FETCHING_PROMOTIONS: sync_promotions,
    SyncStage.FETCHING_RATINGS: sync_ratings,
}


class StageStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageReport:
    """Outcome of one stage."""

    stage: SyncStage
    status: StageStatus
    result: UpsertResult | None = None
    error: str | None = None


@dataclass
class CabinetRunReport:
    """Outcome of one cabinet run.

    Attributes:
        cabinet_id: Cabinet that was synced.
        window: Date window of the run.
        state: Final lifecycle state (DONE or FAILED once the run returns).
        stages: Per-stage outcomes, in run order.
        failed_stage: Stage that halted the run, if any.
        error: Reason the run halted, if any.
    """

    cabinet_id: int
    window: DateWindow
    state: SyncStage = SyncStage.PENDING
    stages: list[StageReport] = field(default_factory=list)
    failed_stage: SyncStage | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is SyncStage.DONE

    def advance(self, target: SyncStage) -> None:
        """Move to ``target``.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if target not in VALID_STAGE_TRANSITIONS[self.state]:
            msg = f"Cannot move cabinet run from '{self.state.value}' to '{target.value}'"
            raise ValueError(msg)
        self.state = target

    def fail(self, stage: SyncStage, error: str) -> None:
        self.failed_stage = stage
        self.error = error
        self.advance(SyncStage.FAILED)

    def status_of(self, stage: SyncStage) -> StageStatus | None:
        for report in self.stages:
            if report.stage is stage:
                return report.status
        return None


def utc_today() -> datetime.date:
    return datetime.datetime.now(datetime.UTC).date()


class CabinetPipeline:
    """Runs every fetching stage for one cabinet.

    Each run gets its own rate limiters, so pacing is per credential and two
    cabinets never wait on each other.
    """

    def __init__(
        self,
        session_maker: SessionFactory,
        client: MarketplaceClient,
        settings: Settings,
        *,
        stages: Mapping[SyncStage, StageFn] = DEFAULT_STAGES,
        sleep: Sleeper = asyncio.sleep,
        today_fn: Callable[[], datetime.date] = utc_today,
    ) -> None:
        missing = [stage.value for stage in FETCH_STAGES if stage not in stages]
        if missing:
            raise ValueError(f"No stage function for: {', '.join(missing)}")
        self.session_maker = session_maker
        self.client = client
        self.settings = settings
        self.stages = stages
        self._sleep = sleep
        self._today_fn = today_fn

    async def run(self, cabinet_id: int, window: DateWindow) -> CabinetRunReport:
        """Sync one cabinet over ``window``.

        Args:
            cabinet_id: Cabinet to sync.
            window: Date window for the daily-record stages.

        Returns:
            CabinetRunReport in state DONE or FAILED.
        """
        report = CabinetRunReport(cabinet_id=cabinet_id, window=window)
        with structlog.contextvars.bound_contextvars(tenant=cabinet_id):
            credential = await self._start(cabinet_id)
            if credential is None:
                report.fail(SyncStage.PENDING, "cabinet missing or without an API key")
                return report

            logger.info(
                "sync.cabinet_run_started",
                window_start=window.start.isoformat(),
                window_end=window.end.isoformat(),
            )
            ctx = StageContext(
                cabinet_id=cabinet_id,
                credential=credential,
                client=self.client,
                limiters=RateLimiters.from_settings(self.settings, sleep=self._sleep),
                window=window,
                today=self._today_fn(),
            )

            for stage in FETCH_STAGES:
                report.advance(stage)
                with structlog.contextvars.bound_contextvars(stage=stage.value):
                    halted = await self._run_stage(stage, ctx, report)
                if halted:
                    return report
                if stage is SyncStage.FETCHING_STATISTICS:
                    async with transaction(self.session_maker) as db:
                        await touch_update_completed(db, cabinet_id)

            report.advance(SyncStage.DONE)
            logger.info(
                "sync.cabinet_run_completed",
                failed_stages=[
                    s.stage.value for s in report.stages if s.status is StageStatus.FAILED
                ],
                skipped_stages=[
                    s.stage.value for s in report.stages if s.status is StageStatus.SKIPPED
                ],
            )
        return report

    async def _start(self, cabinet_id: int) -> str | None:
        """Load the credential and stamp the request time.

        Returns:
            The cabinet's API key, or None if the cabinet cannot be synced.
        """
        async with transaction(self.session_maker) as db:
            cabinet = await db.get(Cabinet, cabinet_id)
            if cabinet is None:
                logger.warning("sync.cabinet_missing")
                return None
            credential = (cabinet.api_key or "").strip()
            if not credential:
                logger.warning("sync.cabinet_without_key")
                return None
            cabinet.last_data_update_requested_at = datetime.datetime.now(datetime.UTC)
            return credential

    async def _run_stage(
        self,
        stage: SyncStage,
        ctx: StageContext,
        report: CabinetRunReport,
    ) -> bool:
        """Run one stage in its own transaction and record the outcome.

        Returns:
            True if the run must halt.
        """
        stage_fn = self.stages[stage]
        try:
            async with transaction(self.session_maker) as db:
                result = await stage_fn(db, ctx)
        except ApiCallError as e:
            match e.failure:
                case AuthScopeError(category=category):
                    logger.warning(
                        "sync.stage_skipped",
                        operation=e.operation,
                        category=category.display_name,
                    )
                    report.stages.append(StageReport(stage, StageStatus.SKIPPED, error=e.message))
                    return False
                case RemoteError(status_code=401):
                    logger.error("sync.key_rejected", operation=e.operation)
                    async with transaction(self.session_maker) as db:
                        await mark_key_rejected(db, ctx.cabinet_id)
                    report.stages.append(StageReport(stage, StageStatus.FAILED, error=e.message))
                    report.fail(stage, e.message)
                    return True
                case _:
                    logger.error("sync.stage_failed", operation=e.operation, error=e.message)
                    report.stages.append(StageReport(stage, StageStatus.FAILED, error=e.message))
                    return False
        except PaginationConfigError as e:
            logger.error("sync.run_halted", error=e.message, details=e.details)
            report.stages.append(StageReport(stage, StageStatus.FAILED, error=e.message))
            report.fail(stage, e.message)
            return True
        except Exception as e:
            logger.error(
                "sync.stage_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            report.stages.append(StageReport(stage, StageStatus.FAILED, error=str(e)))
            return False

        logger.info("sync.stage_completed", **result.as_log_fields())
        report.stages.append(StageReport(stage, StageStatus.COMPLETED, result=result))
        return False

