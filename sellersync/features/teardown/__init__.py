"""Cabinet teardown: batched deletion of a tenant's data."""

from sellersync.features.teardown.routes import router
from sellersync.features.teardown.schemas import TeardownResponse
from sellersync.features.teardown.service import (
    TEARDOWN_ORDER,
    CabinetTeardownService,
    TeardownReport,
)

__all__ = [
    "TEARDOWN_ORDER",
    "CabinetTeardownService",
    "TeardownReport",
    "TeardownResponse",
    "router",
]
