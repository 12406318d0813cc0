"""SQLite database helpers."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from eventflow.errors import StoreError

from .schema import initialize_schema

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _configure_connection(connection: sqlite3.Connection) -> None:
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 5000")


def _connect(db_path: str | Path) -> sqlite3.Connection:
    # isolation_level=None: we issue BEGIN/COMMIT ourselves so that a
    # transaction spans exactly one engine operation.
    connection = sqlite3.connect(
        str(db_path), isolation_level=None, check_same_thread=False
    )
    _configure_connection(connection)
    return connection


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Create the writer connection in manual-transaction mode and ensure schema exists."""
    if str(db_path) != MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    connection = _connect(db_path)
    if str(db_path) != MEMORY:
        # WAL lets readers on other connections proceed while a write is open.
        connection.execute("PRAGMA journal_mode = WAL")
    initialize_schema(connection)
    return connection


class Database:
    """
    One writer connection plus a read-only connection per reading thread.

    ``transaction()`` is the only write path: the block runs between
    ``BEGIN IMMEDIATE`` and ``COMMIT`` on the writer connection, under a lock,
    and is rolled back on any exception. Nested ``transaction()`` calls on the
    same thread join the outer one.

    ``read()`` takes no lock. Each thread gets its own connection and every
    read block is one deferred transaction, so it sees a single committed
    snapshot even while a write is in flight. An in-memory database cannot be
    shared between connections; there reads go through the writer under the
    lock.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._lock = threading.RLock()
        self._depth = 0
        self._writer_thread: int | None = None
        self._local = threading.local()
        self._readers: list[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()
        try:
            self._connection = get_connection(path)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open database {self.path}: {exc}", exc) from exc

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self._connection
                finally:
                    self._depth -= 1
                return

            try:
                self._connection.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreError(f"Cannot begin transaction: {exc}", exc) from exc

            self._depth = 1
            self._writer_thread = threading.get_ident()
            try:
                yield self._connection
            except sqlite3.Error as exc:
                self._rollback()
                raise StoreError(f"Store operation failed: {exc}", exc) from exc
            except BaseException:
                self._rollback()
                raise
            else:
                try:
                    self._connection.execute("COMMIT")
                except sqlite3.Error as exc:
                    self._rollback()
                    raise StoreError(f"Commit failed: {exc}", exc) from exc
            finally:
                self._depth = 0
                self._writer_thread = None

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Run queries against one consistent snapshot of committed data."""
        if self.in_memory or self._writer_thread == threading.get_ident():
            # Inside our own write transaction the writer is the only
            # connection that sees its uncommitted rows.
            with self._lock:
                try:
                    yield self._connection
                except sqlite3.Error as exc:
                    raise StoreError(f"Store read failed: {exc}", exc) from exc
            return

        connection = self._reader()
        depth = getattr(self._local, "depth", 0)
        if depth:
            self._local.depth = depth + 1
            try:
                yield connection
            finally:
                self._local.depth -= 1
            return

        try:
            connection.execute("BEGIN")
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot begin read: {exc}", exc) from exc

        self._local.depth = 1
        try:
            yield connection
        except sqlite3.Error as exc:
            _end_read(connection)
            raise StoreError(f"Store read failed: {exc}", exc) from exc
        except BaseException:
            _end_read(connection)
            raise
        else:
            try:
                connection.execute("COMMIT")
            except sqlite3.Error as exc:
                raise StoreError(f"Cannot end read: {exc}", exc) from exc
        finally:
            self._local.depth = 0

    def close(self) -> None:
        with self._readers_lock:
            readers, self._readers = self._readers, []
        for connection in readers:
            connection.close()
        with self._lock:
            self._connection.close()

    def _reader(self) -> sqlite3.Connection:
        connection = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = _connect(self.path)
                connection.execute("PRAGMA query_only = ON")
            except sqlite3.Error as exc:
                raise StoreError(f"Cannot open reader on {self.path}: {exc}", exc) from exc
            self._local.connection = connection
            with self._readers_lock:
                self._readers.append(connection)
        return connection

    def _rollback(self) -> None:
        logger.error("Rolling back transaction on %s", self.path)
        try:
            self._connection.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("ROLLBACK failed on %s", self.path)


def _end_read(connection: sqlite3.Connection) -> None:
    try:
        connection.execute("ROLLBACK")
    except sqlite3.Error:
        logger.exception("ROLLBACK of read snapshot failed")
