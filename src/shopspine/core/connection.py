"""SQLite connection adapter.

Wraps a :class:`sqlite3.Connection` to satisfy the
:class:`~shopspine.core.protocols.Connection` protocol.

The sweep thread and the worker pool share one adapter, so every
``execute`` gets its own cursor and runs under a lock. The connection is
opened in autocommit mode: each store mutation is a single statement, and
a single statement is its own transaction, which is what keeps the
conditional run-state UPDATEs atomic without explicit BEGIN/COMMIT pairs.

Usage::

    from shopspine.core.connection import SqliteConnection

    conn = SqliteConnection(":memory:")
    cursor = conn.execute("SELECT 1")
    cursor.fetchone()
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Any


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol."""

    def __init__(self, path: str = ":memory:", *, row_factory: Any = sqlite3.Row) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = row_factory
        self._lock = threading.RLock()
        self._last: sqlite3.Cursor | None = None
        self.path = path

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(sql, params)
            self._last = cursor
            return cursor

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executemany(sql, params)
            self._last = cursor
            return cursor

    def fetchone(self) -> Any:
        with self._lock:
            return self._last.fetchone() if self._last is not None else None

    def fetchall(self) -> list:
        with self._lock:
            return self._last.fetchall() if self._last is not None else []

    def commit(self) -> None:
        with self._lock:
            if self._conn.in_transaction:
                self._conn.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._conn.in_transaction:
                self._conn.rollback()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self.path!r})"


def open_connection(path: str) -> SqliteConnection:
    """Open ``path`` with the pragmas the scheduler expects."""
    conn = SqliteConnection(path)
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
    return conn
