"""Health check endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.database import get_db
from sellersync.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    scheduler: Literal["running", "stopped", "disabled"] | None = None


def _scheduler_state(request: Request) -> Literal["running", "stopped", "disabled"]:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return "disabled"
    return "running" if scheduler.running else "stopped"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Readiness check including database connectivity and scheduler state.

    Args:
        request: Incoming request (used to reach the app's scheduler).
        db: Database session dependency.

    Returns:
        Health status with database and scheduler state.
    """
    scheduler = _scheduler_state(request)
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return HealthResponse(status="unhealthy", database="disconnected", scheduler=scheduler)

    status: Literal["ok", "degraded"] = "degraded" if scheduler == "stopped" else "ok"
    return HealthResponse(status=status, database="connected", scheduler=scheduler)
