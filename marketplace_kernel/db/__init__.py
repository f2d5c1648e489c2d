"""Database layer: declarative base, engine management, and the Ledger Store."""

from marketplace_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from marketplace_kernel.db.store import LedgerSession, LedgerStore

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "LedgerSession",
    "LedgerStore",
]
