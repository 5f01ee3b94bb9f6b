"""HTTP transport for marketplace calls.

One ``MarketplaceTransport`` wraps one ``httpx.AsyncClient``. Endpoints are
plain ``Endpoint`` descriptions (URL, method, auth header style, capability
category, response shape) rather than client subclasses.

CRITICAL: only HTTP 429 is retried. Every other outcome is classified once
and returned as an ``ApiResult`` variant.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from sellersync.core.config import Settings
from sellersync.core.logging import get_logger
from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.errors import (
    ApiResult,
    ApiSuccess,
    AuthScopeError,
    RateLimitExceeded,
    RemoteError,
    ValidationRejected,
    describe_error_body,
)
from sellersync.features.marketplace.ratelimit import Sleeper

logger = get_logger(__name__)

SCOPE_DENIED_MARKER = "token scope not allowed"
BEARER_PREFIX = "Bearer "


class AuthStyle(str, Enum):
    """How the credential is placed in the Authorization header."""

    RAW = "raw"
    BEARER = "bearer"

    def header_value(self, credential: str) -> str:
        if self is AuthStyle.BEARER and not credential.startswith(BEARER_PREFIX):
            return BEARER_PREFIX + credential
        return credential


@dataclass(frozen=True)
class Endpoint[T]:
    """Static description of one upstream operation."""

    name: str
    url: str
    method: str
    category: ApiCategory
    shape: TypeAdapter[T]
    auth: AuthStyle = AuthStyle.RAW


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared HTTP client for marketplace calls."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.api_timeout_seconds, connect=10.0),
        headers={"Accept": "application/json"},
    )


class MarketplaceTransport:
    """Issue authenticated calls and classify their outcome.

    Attributes:
        max_attempts: Total attempts allowed while the upstream answers 429.
        retry_delay_seconds: Fixed pause between 429 attempts.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        max_attempts: int = 5,
        retry_delay_seconds: float = 20.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._http = http
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        http: httpx.AsyncClient,
        settings: Settings,
        sleep: Sleeper = asyncio.sleep,
    ) -> MarketplaceTransport:
        return cls(
            http,
            max_attempts=settings.api_max_attempts,
            retry_delay_seconds=settings.api_retry_delay_seconds,
            sleep=sleep,
        )

    async def call[T](
        self,
        endpoint: Endpoint[T],
        credential: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> ApiResult[T]:
        """Perform one logical call, retrying only on 429.

        Args:
            endpoint: Endpoint description.
            credential: Cabinet API key.
            params: Query parameters.
            json: JSON request body.

        Returns:
            ApiSuccess with the parsed body, or a failure variant.
        """
        headers = {"Authorization": endpoint.auth.header_value(credential)}

        for attempt in range(1, self.max_attempts + 1):
            with structlog.contextvars.bound_contextvars(attempt=attempt):
                logger.debug("marketplace.call_started", endpoint=endpoint.name)
                try:
                    response = await self._http.request(
                        endpoint.method,
                        endpoint.url,
                        params=params,
                        json=json,
                        headers=headers,
                    )
                except httpx.RequestError as e:
                    logger.error(
                        "marketplace.call_transport_error",
                        endpoint=endpoint.name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return RemoteError(status_code=None, body=str(e) or type(e).__name__)

                if response.status_code == 429:
                    logger.warning(
                        "marketplace.call_rate_limited",
                        endpoint=endpoint.name,
                        max_attempts=self.max_attempts,
                        retry_delay_seconds=self.retry_delay_seconds,
                    )
                    if attempt < self.max_attempts:
                        await self._sleep(self.retry_delay_seconds)
                    continue

                return self._classify(endpoint, response)

        logger.error(
            "marketplace.rate_limit_exhausted",
            endpoint=endpoint.name,
            attempts=self.max_attempts,
        )
        return RateLimitExceeded(attempts=self.max_attempts)

    def _classify[T](self, endpoint: Endpoint[T], response: httpx.Response) -> ApiResult[T]:
        status = response.status_code
        body = response.text

        if response.is_success:
            if not body.strip():
                logger.error("marketplace.call_empty_body", endpoint=endpoint.name, status=status)
                return RemoteError(status_code=status, body="")
            try:
                value = endpoint.shape.validate_json(body)
            except PydanticValidationError as e:
                logger.error(
                    "marketplace.response_shape_mismatch",
                    endpoint=endpoint.name,
                    error_count=e.error_count(),
                    **describe_error_body(body),
                )
                return RemoteError(status_code=status, body=body)
            return ApiSuccess(value)

        if status == 401 and SCOPE_DENIED_MARKER in body.lower():
            logger.warning(
                "marketplace.call_scope_denied",
                endpoint=endpoint.name,
                category=endpoint.category.value,
                category_name=endpoint.category.display_name,
            )
            return AuthScopeError(category=endpoint.category)

        log_fields = describe_error_body(body)
        if status == 422:
            logger.warning("marketplace.call_rejected", endpoint=endpoint.name, **log_fields)
            return ValidationRejected(body=body)

        logger.error(
            "marketplace.call_failed",
            endpoint=endpoint.name,
            status=status,
            **log_fields,
        )
        return RemoteError(status_code=status, body=body)
