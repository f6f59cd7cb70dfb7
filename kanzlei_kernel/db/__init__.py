"""Database layer - engine, base classes, append-only enforcement."""

from kanzlei_kernel.db.base import Base, TrackedBase, UUIDString
from kanzlei_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
]
