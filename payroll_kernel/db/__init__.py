"""Database base classes and engine management."""

from payroll_kernel.db.base import Base, TrackedBase, UUIDString
from payroll_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "build_engine",
    "create_tables",
    "drop_tables",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
