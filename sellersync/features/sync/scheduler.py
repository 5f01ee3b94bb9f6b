"""Daily sync schedule on APScheduler.

Jobs (UTC):
- 00:00 warehouse directory refresh
- 01:30 last-week sync of every eligible cabinet
"""

from __future__ import annotations

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from sellersync.core.logging import get_logger
from sellersync.features.sync.service import SyncService

logger = get_logger(__name__)

NIGHTLY_SYNC_JOB_ID = "sync_nightly"
WAREHOUSES_JOB_ID = "warehouses_refresh"


async def run_nightly_sync() -> None:
    """Scheduled job: last-week sync of all eligible cabinets."""
    report = await SyncService().run_nightly()
    logger.info(
        "scheduler.nightly_sync_finished",
        total=report.total,
        succeeded=report.succeeded,
        failed=report.failed,
    )


async def run_warehouses_refresh() -> None:
    """Scheduled job: refresh the shared warehouse directory."""
    await SyncService().refresh_warehouses()


def create_scheduler() -> AsyncIOScheduler:
    """Build a scheduler with the daily jobs registered (not started)."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_warehouses_refresh,
        trigger=CronTrigger(hour=0, minute=0, timezone="UTC"),
        id=WAREHOUSES_JOB_ID,
        name="Refresh warehouse directory",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
    )
    scheduler.add_job(
        run_nightly_sync,
        trigger=CronTrigger(hour=1, minute=30, timezone="UTC"),
        id=NIGHTLY_SYNC_JOB_ID,
        name="Nightly sync of all cabinets",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    """Create and start the scheduler on the running event loop."""
    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        "scheduler.started",
        jobs=[job.id for job in scheduler.get_jobs()],
    )
    return scheduler


async def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Shut the scheduler down without waiting for running jobs.

    The asyncio scheduler performs its shutdown as a callback on the event
    loop, so control is yielded once before the stop is logged.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
        await asyncio.sleep(0)
    logger.info("scheduler.stopped", running=scheduler.running)
