"""Shared model mixins used across features."""

from sellersync.shared.models import CabinetScopedMixin, TimestampMixin

__all__ = [
    "CabinetScopedMixin",
    "TimestampMixin",
]
