"""Record stores: in-memory and SQLite-backed."""

from .base import RecordKind, RecordStore
from .memory import InMemoryRecordStore
from .sqlite import Database, SQLRecordStore, get_db, reset_db

__all__ = [
    "Database",
    "InMemoryRecordStore",
    "RecordKind",
    "RecordStore",
    "SQLRecordStore",
    "get_db",
    "reset_db",
]
