"""Shared plumbing for per-cabinet sync stages."""

from __future__ import annotations

import datetime
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import CatalogItem
from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.errors import (
    ApiCallError,
    ApiResult,
    ApiSuccess,
    AuthScopeError,
    RemoteError,
    describe_failure,
)
from sellersync.features.marketplace.ratelimit import RateLimiters
from sellersync.features.sync.upsert import UpsertResult
from sellersync.features.sync.windows import DateWindow

logger = get_logger(__name__)


@dataclass(frozen=True)
class StageContext:
    """Everything a stage needs besides its database session.

    Attributes:
        cabinet_id: Cabinet being synced.
        credential: Cabinet API key.
        client: Marketplace client.
        limiters: Pacing for this credential.
        window: Date window of the run.
        today: Current date for "yesterday"-relative stages.
    """

    cabinet_id: int
    credential: str
    client: MarketplaceClient
    limiters: RateLimiters
    window: DateWindow
    today: datetime.date

    @property
    def yesterday(self) -> datetime.date:
        return self.today - datetime.timedelta(days=1)


StageFn = Callable[[AsyncSession, StageContext], Awaitable[UpsertResult]]


def check_batch[T](result: ApiResult[T], operation: str, **context: object) -> T | None:
    """Unwrap the result of one batch call inside a stage.

    Credential-level failures (missing scope, rejected key) concern the whole
    stage and are raised. Anything else only costs this batch: it is logged
    and None is returned so the caller moves on.

    Raises:
        ApiCallError: On AuthScopeError or a plain 401.
    """
    match result:
        case ApiSuccess(value=value):
            return value
        case AuthScopeError() | RemoteError(status_code=401):
            raise ApiCallError(result, operation)
        case _:
            logger.warning(
                "sync.batch_failed",
                operation=operation,
                failure=type(result).__name__,
                reason=describe_failure(result),
                **context,
            )
            return None


async def cabinet_item_ids(db: AsyncSession, cabinet_id: int) -> list[int]:
    """Item ids owned by a cabinet, ascending."""
    stmt = (
        select(CatalogItem.item_id)
        .where(CatalogItem.cabinet_id == cabinet_id)
        .order_by(CatalogItem.item_id)
    )
    result = await db.execute(stmt)
    return list(result.scalars())
