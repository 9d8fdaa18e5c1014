"""
Database module - dynamic key-value tables and their error taxonomy.

Uses SQLAlchemy Core tables (via SQLModel sessions) with SQLite or PostgreSQL.
"""

from tablekv.db.errors import (
    BackendUnavailable,
    InvalidTableName,
    StatementFailed,
    StoreError,
    ValueTooLarge,
)
from tablekv.db.identifiers import sanitize
from tablekv.db.store import TableStore

__all__ = [
    "BackendUnavailable",
    "InvalidTableName",
    "StatementFailed",
    "StoreError",
    "TableStore",
    "ValueTooLarge",
    "sanitize",
]
