"""Tagged outcomes of marketplace calls.

The transport never raises for HTTP-level failures. Every call returns an
``ApiResult``: either ``ApiSuccess`` or one of the failure variants below.
Callers pattern-match on the variant to decide whether to skip a record,
a batch, a stage, or the whole cabinet run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from sellersync.core.exceptions import SellerSyncError
from sellersync.features.marketplace.categories import ApiCategory

ERROR_BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class ApiSuccess[T]:
    """2xx response parsed into the endpoint's shape."""

    value: T


@dataclass(frozen=True)
class RateLimitExceeded:
    """429 persisted through every allowed attempt."""

    attempts: int


@dataclass(frozen=True)
class AuthScopeError:
    """Credential lacks the capability category the endpoint requires."""

    category: ApiCategory


@dataclass(frozen=True)
class ValidationRejected:
    """422: the upstream refused this particular sub-resource."""

    body: str


@dataclass(frozen=True)
class RemoteError:
    """Any other failure. ``status_code`` is None for transport errors."""

    status_code: int | None
    body: str

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


type ApiFailure = RateLimitExceeded | AuthScopeError | ValidationRejected | RemoteError
type ApiResult[T] = ApiSuccess[T] | ApiFailure


@dataclass(frozen=True)
class OwnershipConflict:
    """A natural key that already belongs to another cabinet."""

    entity: str
    key: Any
    owner_cabinet_id: int
    requested_cabinet_id: int


class ApiCallError(SellerSyncError):
    """Raised by stage code to carry a failure variant to the stage boundary."""

    def __init__(self, failure: ApiFailure, operation: str) -> None:
        super().__init__(
            message=f"{operation} failed: {describe_failure(failure)}",
            code="MARKETPLACE_CALL_FAILED",
            status_code=502,
            details={"operation": operation},
        )
        self.failure = failure
        self.operation = operation


class PaginationConfigError(SellerSyncError):
    """Cursor state is malformed; the walk cannot continue safely."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="PAGINATION_CONFIG_ERROR",
            status_code=500,
            details=details,
        )


def unwrap[T](result: ApiResult[T], operation: str) -> T:
    """Return the success value or raise ``ApiCallError`` for the failure.

    Args:
        result: Outcome of a marketplace call.
        operation: Name of the call, for the error message.

    Returns:
        The parsed response value.

    Raises:
        ApiCallError: If the result is a failure variant.
    """
    match result:
        case ApiSuccess(value=value):
            return value
        case _:
            raise ApiCallError(result, operation)


def describe_failure(failure: ApiFailure) -> str:
    """One-line summary of a failure variant."""
    match failure:
        case RateLimitExceeded(attempts=attempts):
            return f"rate limited after {attempts} attempts"
        case AuthScopeError(category=category):
            return f"token lacks the {category.display_name} category"
        case ValidationRejected():
            return "request rejected as unprocessable (422)"
        case RemoteError(status_code=None, body=body):
            return f"transport error: {body}"
        case RemoteError(status_code=status_code):
            return f"unexpected status {status_code}"


def describe_error_body(body: str) -> dict[str, Any]:
    """Summarise an upstream error body for logging.

    Two envelopes are recognised: a problem-style body (``title``/``detail``)
    and a simple one (``error``/``errorText``). Anything else is returned as
    a truncated raw preview.

    Args:
        body: Raw response text.

    Returns:
        Dict of fields suitable as structlog keyword arguments.
    """
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        if "title" in payload or "detail" in payload:
            return {
                "error_title": payload.get("title"),
                "error_detail": payload.get("detail"),
                "upstream_request_id": payload.get("requestId"),
                "error_origin": payload.get("origin"),
            }
        if "errorText" in payload or "error" in payload:
            return {
                "error_flag": payload.get("error"),
                "error_text": payload.get("errorText"),
                "additional_errors": payload.get("additionalErrors"),
            }

    if len(body) > ERROR_BODY_PREVIEW_CHARS:
        return {"raw_body": body[:ERROR_BODY_PREVIEW_CHARS] + "..."}
    return {"raw_body": body}
