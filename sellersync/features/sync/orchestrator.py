"""Fan cabinet runs out over a fixed pool of async workers."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from sellersync.core.database import SessionFactory, transaction
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.service import list_eligible_cabinet_ids
from sellersync.features.sync.pipeline import CabinetPipeline, CabinetRunReport, SyncStage
from sellersync.features.sync.windows import DateWindow

logger = get_logger(__name__)


@dataclass
class OrchestratorReport:
    """Outcome of a multi-cabinet run.

    A cabinet counts as failed when its run ended in FAILED or crashed.
    Stage-level failures inside a finished run still count as success.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    runs: list[CabinetRunReport] = field(default_factory=list)

    def add(self, run: CabinetRunReport) -> None:
        self.runs.append(run)
        if run.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1


class SyncOrchestrator:
    """Runs the per-cabinet pipeline for many cabinets concurrently.

    Cabinets go into an ``asyncio.Queue`` drained by ``worker_count`` workers.
    A crash in one cabinet is logged and counted; the worker moves on to the
    next cabinet.
    """

    def __init__(
        self,
        session_maker: SessionFactory,
        pipeline: CabinetPipeline,
        *,
        worker_count: int = 2,
    ) -> None:
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self.session_maker = session_maker
        self.pipeline = pipeline
        self.worker_count = worker_count

    async def run_all(self, window: DateWindow) -> OrchestratorReport:
        """Sync every eligible cabinet over ``window``."""
        async with transaction(self.session_maker) as db:
            cabinet_ids = await list_eligible_cabinet_ids(db)
        logger.info("sync.run_all_started", cabinets=len(cabinet_ids))
        return await self.run_cabinets(cabinet_ids, window)

    async def run_cabinet(self, cabinet_id: int, window: DateWindow) -> OrchestratorReport:
        """Sync a single cabinet over ``window``."""
        return await self.run_cabinets([cabinet_id], window)

    async def run_cabinets(
        self,
        cabinet_ids: Sequence[int],
        window: DateWindow,
    ) -> OrchestratorReport:
        """Sync the given cabinets through the worker pool.

        Args:
            cabinet_ids: Cabinets to sync, in queue order.
            window: Date window shared by every run.

        Returns:
            OrchestratorReport with one run per cabinet.
        """
        report = OrchestratorReport(total=len(cabinet_ids))
        if not cabinet_ids:
            return report

        queue: asyncio.Queue[int] = asyncio.Queue()
        for cabinet_id in cabinet_ids:
            queue.put_nowait(cabinet_id)

        workers = [
            asyncio.create_task(self._worker(queue, window, report), name=f"sync-worker-{n}")
            for n in range(min(self.worker_count, len(cabinet_ids)))
        ]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        logger.info(
            "sync.run_completed",
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report

    async def _worker(
        self,
        queue: asyncio.Queue[int],
        window: DateWindow,
        report: OrchestratorReport,
    ) -> None:
        while True:
            cabinet_id = await queue.get()
            try:
                report.add(await self.pipeline.run(cabinet_id, window))
            except Exception as e:
                logger.error(
                    "sync.cabinet_run_crashed",
                    tenant=cabinet_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                crashed = CabinetRunReport(cabinet_id=cabinet_id, window=window)
                crashed.fail(SyncStage.PENDING, str(e))
                report.add(crashed)
            finally:
                queue.task_done()
