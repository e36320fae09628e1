"""Storage for scan sessions and results."""

from .sqlite_store import SQLiteStore

__all__ = ["SQLiteStore"]
