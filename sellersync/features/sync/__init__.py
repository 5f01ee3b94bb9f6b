"""Multi-cabinet sync: per-cabinet pipeline, worker pool and schedule."""

from sellersync.features.sync.orchestrator import OrchestratorReport, SyncOrchestrator
from sellersync.features.sync.pipeline import (
    VALID_STAGE_TRANSITIONS,
    CabinetPipeline,
    CabinetRunReport,
    StageStatus,
    SyncStage,
)
from sellersync.features.sync.routes import router
from sellersync.features.sync.service import SyncService
from sellersync.features.sync.windows import DateWindow

__all__ = [
    "VALID_STAGE_TRANSITIONS",
    "CabinetPipeline",
    "CabinetRunReport",
    "DateWindow",
    "OrchestratorReport",
    "StageStatus",
    "SyncOrchestrator",
    "SyncService",
    "SyncStage",
    "router",
]
