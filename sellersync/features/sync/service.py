"""Service layer wiring the sync runtime together.

Used by the HTTP routes (run-now) and the scheduler (nightly run, warehouse
refresh). Each entry point builds its own HTTP client and closes it when done.
"""

from __future__ import annotations

import datetime
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sellersync.core.config import Settings, get_settings
from sellersync.core.database import SessionFactory, get_session_maker, transaction
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.service import get_cabinet, list_eligible_cabinet_ids
from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.transport import MarketplaceTransport, create_http_client
from sellersync.features.sync.orchestrator import OrchestratorReport, SyncOrchestrator
from sellersync.features.sync.pipeline import CabinetPipeline, utc_today
from sellersync.features.sync.upsert import UpsertResult
from sellersync.features.sync.warehouses import refresh_warehouses
from sellersync.features.sync.windows import DateWindow, full_update_window, last_week_window

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncRuntime:
    client: MarketplaceClient
    orchestrator: SyncOrchestrator


class SyncService:
    """Entry points for on-demand and scheduled syncs."""

    def __init__(
        self,
        session_maker: SessionFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_maker = session_maker or get_session_maker()

    def full_update_window(self, today: datetime.date | None = None) -> DateWindow:
        return full_update_window(today or utc_today(), self.settings.sync_full_update_days)

    def last_week_window(self, today: datetime.date | None = None) -> DateWindow:
        return last_week_window(today or utc_today(), self.settings.sync_last_week_days)

    def resolve_window(
        self,
        date_from: datetime.date | None,
        date_to: datetime.date | None,
        today: datetime.date | None = None,
    ) -> DateWindow:
        """Fill in missing bounds from the full-update window.

        A missing end defaults to yesterday; a missing start keeps the
        full-update window length.

        Raises:
            ValueError: If the resulting window ends before it starts.
        """
        default = self.full_update_window(today)
        end = date_to or default.end
        start = date_from or end - datetime.timedelta(days=len(default) - 1)
        return DateWindow(start=start, end=end)

    @asynccontextmanager
    async def runtime(self) -> AsyncIterator[SyncRuntime]:
        """Build client, pipeline and orchestrator around one HTTP client."""
        async with create_http_client(self.settings) as http:
            client = MarketplaceClient(
                MarketplaceTransport.from_settings(http, self.settings), self.settings
            )
            pipeline = CabinetPipeline(self.session_maker, client, self.settings)
            yield SyncRuntime(
                client=client,
                orchestrator=SyncOrchestrator(
                    self.session_maker,
                    pipeline,
                    worker_count=self.settings.sync_worker_count,
                ),
            )

    async def run_now(
        self,
        cabinet_id: int | None = None,
        window: DateWindow | None = None,
    ) -> OrchestratorReport:
        """Sync one cabinet, or every eligible cabinet when none is given.

        Args:
            cabinet_id: Cabinet to sync (optional).
            window: Date window; defaults to the full-update window.

        Returns:
            OrchestratorReport of the run.
        """
        window = window or self.full_update_window()
        logger.info(
            "sync.run_now_started",
            cabinet_id=cabinet_id,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
        )
        async with self.runtime() as runtime:
            if cabinet_id is None:
                return await runtime.orchestrator.run_all(window)
            return await runtime.orchestrator.run_cabinet(cabinet_id, window)

    async def run_nightly(self) -> OrchestratorReport:
        """Sync every eligible cabinet over the last-week window."""
        window = self.last_week_window()
        async with self.runtime() as runtime:
            return await runtime.orchestrator.run_all(window)

    async def refresh_warehouses(self) -> UpsertResult | None:
        """Refresh the warehouse directory with the first eligible cabinet's key.

        Returns:
            Upsert counts, or None when no cabinet is eligible.
        """
        async with transaction(self.session_maker) as db:
            cabinet_ids = await list_eligible_cabinet_ids(db)
            credential = None
            if cabinet_ids:
                cabinet = await get_cabinet(db, cabinet_ids[0])
                credential = (cabinet.api_key or "").strip()

        if not credential:
            logger.warning("sync.warehouses_no_eligible_cabinet")
            return None

        async with self.runtime() as runtime:
            return await refresh_warehouses(self.session_maker, runtime.client, credential)
