"""Database layer: declarative base, engine and session scope."""

from fuel_kernel.db.base import Base, TrackedBase, UUIDString
from fuel_kernel.db.engine import (
    create_tables,
    database_url_from_env,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "database_url_from_env",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
