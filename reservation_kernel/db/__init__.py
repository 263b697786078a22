"""Database layer: declarative base, engine/session helpers, retry."""

from reservation_kernel.db.base import SYSTEM_ACTOR_ID, Base, TrackedBase, UUIDString
from reservation_kernel.db.engine import (
    configure_sqlite,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from reservation_kernel.db.retry import RetryPolicy, call_with_retry, is_transient

__all__ = [
    "SYSTEM_ACTOR_ID",
    "Base",
    "TrackedBase",
    "UUIDString",
    "configure_sqlite",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "reset_engine",
    "session_scope",
    "RetryPolicy",
    "call_with_retry",
    "is_transient",
]
