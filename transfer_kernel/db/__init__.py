"""Database layer: engine, declarative bases, column types and immutability."""

from transfer_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from transfer_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
]
