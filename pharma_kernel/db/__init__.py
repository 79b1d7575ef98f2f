"""Database layer - engine, base classes, types, and immutability."""

from pharma_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from pharma_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from pharma_kernel.db.types import Quantity, UTCDateTime, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Quantity",
    "UTCDateTime",
    "to_decimal",
]
