"""API routes for cabinet teardown."""

import time

from fastapi import APIRouter, Depends, Path
from sqlalchemy.exc import SQLAlchemyError

from sellersync.core.config import get_settings
from sellersync.core.database import SessionFactory, get_session_maker
from sellersync.core.exceptions import DatabaseError
from sellersync.core.logging import get_logger
from sellersync.features.teardown.schemas import TeardownResponse
from sellersync.features.teardown.service import CabinetTeardownService

logger = get_logger(__name__)

router = APIRouter(prefix="/cabinets", tags=["cabinets"])


@router.delete(
    "/{cabinet_id}",
    response_model=TeardownResponse,
    summary="Delete a cabinet and all its data",
    description="""
Remove a cabinet and every row it owns, table by table in small batches.

Each batch commits on its own. If the request fails midway, tables already
cleared stay cleared and repeating the request finishes the job.
""",
)
async def delete_cabinet(
    cabinet_id: int = Path(..., ge=1, description="Cabinet to delete"),
    session_maker: SessionFactory = Depends(get_session_maker),
) -> TeardownResponse:
    """Run the teardown synchronously.

    Args:
        cabinet_id: Cabinet to delete.
        session_maker: Factory each batch opens its session from.

    Returns:
        Per-table deleted counts.

    Raises:
        NotFoundError: If the cabinet does not exist.
        DatabaseError: If a batch fails.
    """
    start_time = time.perf_counter()
    service = CabinetTeardownService(
        session_maker,
        batch_size=get_settings().teardown_batch_size,
    )
    try:
        report = await service.delete_cabinet(cabinet_id)
    except SQLAlchemyError as e:
        logger.error(
            "teardown.request_failed",
            cabinet_id=cabinet_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to delete cabinet",
            details={"error": str(e)},
        ) from e

    logger.info(
        "teardown.request_completed",
        cabinet_id=cabinet_id,
        total=report.total,
        duration_ms=(time.perf_counter() - start_time) * 1000,
    )
    return TeardownResponse(cabinet_id=cabinet_id, deleted=report.deleted, total=report.total)
