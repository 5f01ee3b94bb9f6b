"""Rate-limited marketplace API client."""

from sellersync.features.marketplace.categories import ApiCategory
from sellersync.features.marketplace.client import MarketplaceClient
from sellersync.features.marketplace.errors import (
    ApiCallError,
    ApiResult,
    ApiSuccess,
    AuthScopeError,
    PaginationConfigError,
    RateLimitExceeded,
    RemoteError,
    ValidationRejected,
)
from sellersync.features.marketplace.transport import MarketplaceTransport

__all__ = [
    "ApiCallError",
    "ApiCategory",
    "ApiResult",
    "ApiSuccess",
    "AuthScopeError",
    "MarketplaceClient",
    "MarketplaceTransport",
    "PaginationConfigError",
    "RateLimitExceeded",
    "RemoteError",
    "ValidationRejected",
]
