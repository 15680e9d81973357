"""Database layer - engine, declarative base and column types."""

from rental_kernel.db.base import UUID, Base, UUIDString
from rental_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
]
