"""API routes for on-demand syncs."""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.database import SessionFactory, get_db, get_session_maker
from sellersync.core.exceptions import ConflictError, DatabaseError, ValidationError
from sellersync.core.logging import get_logger
from sellersync.features.cabinets.service import get_cabinet, touch_update_requested
from sellersync.features.sync.schemas import SyncRunAccepted, SyncRunRequest
from sellersync.features.sync.service import SyncService

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post(
    "/run",
    response_model=SyncRunAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run a sync now",
    description="""
Queue a sync and return immediately; the run continues in the background.

**Scope**:
- With `cabinet_id`: only that cabinet. It must exist (404) and have an API key (409).
- Without `cabinet_id`: every cabinet with a validated API key.

**Window**:
- Defaults to the 14 days ending yesterday.
- `date_from` after `date_to` is rejected with 422.
""",
)
async def run_sync(
    request: SyncRunRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_maker: SessionFactory = Depends(get_session_maker),
) -> SyncRunAccepted:
    """Validate the request and queue the run.

    Args:
        request: Sync scope and window.
        background_tasks: FastAPI background task queue.
        db: Database session.
        session_maker: Factory the background run opens its sessions from.

    Returns:
        Accepted response echoing the resolved window.

    Raises:
        NotFoundError: If the cabinet does not exist.
        ConflictError: If the cabinet has no API key.
        ValidationError: If the resolved window is empty.
        DatabaseError: If database operation fails.
    """
    service = SyncService(session_maker)
    try:
        window = service.resolve_window(request.date_from, request.date_to)
    except ValueError as e:
        raise ValidationError(message=str(e)) from e

    if request.cabinet_id is not None:
        try:
            cabinet = await get_cabinet(db, request.cabinet_id)
            if not (cabinet.api_key or "").strip():
                raise ConflictError(
                    message=f"Cabinet {cabinet.id} has no API key",
                    details={"cabinet_id": cabinet.id},
                )
            await touch_update_requested(db, cabinet.id)
        except SQLAlchemyError as e:
            logger.error(
                "sync.request_failed",
                cabinet_id=request.cabinet_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise DatabaseError(
                message="Failed to queue sync",
                details={"error": str(e)},
            ) from e

    background_tasks.add_task(service.run_now, request.cabinet_id, window)
    logger.info(
        "sync.request_accepted",
        cabinet_id=request.cabinet_id,
        window_start=window.start.isoformat(),
        window_end=window.end.isoformat(),
    )
    return SyncRunAccepted(
        cabinet_id=request.cabinet_id,
        date_from=window.start,
        date_to=window.end,
    )
