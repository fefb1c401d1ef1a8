"""Database layer - engine, base classes, types, and immutability guards."""

from inventory_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from inventory_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from inventory_kernel.db.types import Money, Quantity, round_money, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "round_money",
    "to_decimal",
]
