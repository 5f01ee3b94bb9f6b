"""Tests for marketplace transport outcome classification and 429 retries."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import TypeAdapter

from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.errors import (
    ApiSuccess,
    AuthScopeError,
    RateLimitExceeded,
    RemoteError,
    ValidationRejected,
)
from sellersync.features.marketplace.schemas import CampaignCounts
from sellersync.features.marketplace.transport import (
    AuthStyle,
    Endpoint,
    MarketplaceTransport,
)

COUNTS_BODY = {"adverts": [{"type": 8, "status": 9, "advert_list": [{"advertId": 11}]}]}


def make_endpoint(auth: AuthStyle = AuthStyle.RAW) -> Endpoint[CampaignCounts]:
    return Endpoint(
        name="promotion.campaign_counts",
        url="https://advert.example.test/adv/v1/promotion/count",
        method="GET",
        category=ApiCategory.PROMOTION,
        shape=TypeAdapter(CampaignCounts),
        auth=auth,
    )


def make_transport(handler, *, max_attempts: int = 3, sleep=None) -> MarketplaceTransport:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketplaceTransport(
        http,
        max_attempts=max_attempts,
        retry_delay_seconds=20.0,
        sleep=sleep or AsyncMock(),
    )


class TestSuccess:
    """Tests for 2xx responses."""

    @pytest.mark.asyncio
    async def test_parses_body_into_shape(self):
        """Test that a 2xx body is parsed into the endpoint's shape."""
        transport = make_transport(lambda request: httpx.Response(200, json=COUNTS_BODY))

        result = await transport.call(make_endpoint(), "key")

        assert isinstance(result, ApiSuccess)
        assert result.value.adverts[0].adverts[0].campaign_id == 11

    @pytest.mark.asyncio
    async def test_empty_body_is_remote_error(self):
        """Test that a 2xx with an empty body is a RemoteError, not a success."""
        transport = make_transport(lambda request: httpx.Response(200, content=b""))

        result = await transport.call(make_endpoint(), "key")

        assert result == RemoteError(status_code=200, body="")

    @pytest.mark.asyncio
    async def test_shape_mismatch_is_remote_error(self):
        """Test that a body not matching the shape is a RemoteError carrying the body."""
        body = json.dumps({"adverts": [{"status": "nope"}]})
        transport = make_transport(lambda request: httpx.Response(200, content=body.encode()))

        result = await transport.call(make_endpoint(), "key")

        assert isinstance(result, RemoteError)
        assert result.status_code == 200
        assert result.body == body


class TestRateLimitRetry:
    """Tests for the 429 retry loop."""

    @pytest.mark.asyncio
    async def test_retries_429_then_succeeds(self):
        """Test that 429 responses are retried with the fixed delay."""
        responses = iter(
            [
                httpx.Response(429),
                httpx.Response(429),
                httpx.Response(200, json=COUNTS_BODY),
            ]
        )
        sleep = AsyncMock()
        transport = make_transport(lambda request: next(responses), max_attempts=5, sleep=sleep)

        result = await transport.call(make_endpoint(), "key")

        assert isinstance(result, ApiSuccess)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(20.0)

    @pytest.mark.asyncio
    async def test_exhausted_attempts_return_rate_limit_exceeded(self):
        """Test that persistent 429 yields RateLimitExceeded after max attempts."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        sleep = AsyncMock()
        transport = make_transport(handler, max_attempts=3, sleep=sleep)

        result = await transport.call(make_endpoint(), "key")

        assert result == RateLimitExceeded(attempts=3)
        assert len(calls) == 3
        # No pause after the final attempt
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        """Test that a 500 is classified once without retry."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="boom")

        transport = make_transport(handler)

        result = await transport.call(make_endpoint(), "key")

        assert result == RemoteError(status_code=500, body="boom")
        assert len(calls) == 1

    def test_rejects_non_positive_attempts(self):
        """Test that max_attempts below 1 is rejected."""
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(ValueError):
            MarketplaceTransport(http, max_attempts=0)


class TestFailureClassification:
    """Tests for non-2xx classification."""

    @pytest.mark.asyncio
    async def test_scope_denied_401_is_auth_scope_error(self):
        """Test that a 401 mentioning token scope maps to the endpoint category."""
        transport = make_transport(
            lambda request: httpx.Response(401, text="Token scope not allowed for this API")
        )

        result = await transport.call(make_endpoint(), "key")

        assert result == AuthScopeError(category=ApiCategory.PROMOTION)

    @pytest.mark.asyncio
    async def test_plain_401_is_remote_error(self):
        """Test that a 401 without the scope marker is a RemoteError 401."""
        transport = make_transport(lambda request: httpx.Response(401, text="unauthorized"))

        result = await transport.call(make_endpoint(), "key")

        assert isinstance(result, RemoteError)
        assert result.is_unauthorized

    @pytest.mark.asyncio
    async def test_422_is_validation_rejected(self):
        """Test that 422 maps to ValidationRejected with the body."""
        body = json.dumps({"title": "bad promotion", "detail": "not allowed"})
        transport = make_transport(lambda request: httpx.Response(422, text=body))

        result = await transport.call(make_endpoint(), "key")

        assert result == ValidationRejected(body=body)

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self):
        """Test that a network failure becomes RemoteError without status."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)

        result = await transport.call(make_endpoint(), "key")

        assert result == RemoteError(status_code=None, body="connection refused")


class TestAuthorizationHeader:
    """Tests for credential placement."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("style", "credential", "expected"),
        [
            (AuthStyle.RAW, "abc", "abc"),
            (AuthStyle.BEARER, "abc", "Bearer abc"),
            (AuthStyle.BEARER, "Bearer abc", "Bearer abc"),
        ],
    )
    async def test_header_follows_auth_style(self, style, credential, expected):
        """Test that the Authorization header matches the endpoint's auth style."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=COUNTS_BODY)

        transport = make_transport(handler)

        await transport.call(make_endpoint(style), credential)

        assert seen["auth"] == expected
