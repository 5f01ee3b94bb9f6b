"""Core infrastructure: config, database, logging, middleware, exceptions."""

from sellersync.core.config import Settings, get_settings
from sellersync.core.database import (
    Base,
    dispose_engine,
    get_db,
    get_session_maker,
    transaction,
)
from sellersync.core.logging import get_logger, request_id_ctx

__all__ = [
    "Base",
    "Settings",
    "dispose_engine",
    "get_db",
    "get_logger",
    "get_session_maker",
    "get_settings",
    "request_id_ctx",
    "transaction",
]
