"""Cabinets: marketplace seller accounts (tenants)."""

from sellersync.features.cabinets.models import Cabinet
from sellersync.features.cabinets.service import (
    get_cabinet,
    list_eligible_cabinet_ids,
    mark_key_rejected,
    touch_update_completed,
    touch_update_requested,
)

__all__ = [
    "Cabinet",
    "get_cabinet",
    "list_eligible_cabinet_ids",
    "mark_key_rejected",
    "touch_update_completed",
    "touch_update_requested",
]
