"""Database layer - engine, base class, and immutability listeners."""

from stock_kernel.db.base import UUID, Base, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
]
