"""Database layer - engine, base classes and column types."""

from payments_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from payments_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from payments_kernel.db.types import Amount, CurrencyCode, ExternalId

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Amount",
    "CurrencyCode",
    "ExternalId",
]
