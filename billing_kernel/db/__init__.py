"""Database layer - engine handle, base classes, types."""

from billing_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from billing_kernel.db.engine import Database
from billing_kernel.db.types import Money, Percentage, ShortCode, ceil_to_unit

__all__ = [
    "Database",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Percentage",
    "ShortCode",
    "ceil_to_unit",
]
