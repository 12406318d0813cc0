"""SQLite-backed store."""

from __future__ import annotations

from eventflow.store.database import Database, get_connection

__all__ = ["Database", "get_connection"]
