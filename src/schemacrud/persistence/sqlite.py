"""SQLite database adapter."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SQLiteAdapter:
    """SQLite adapter over a single shared connection.

    The connection runs in autocommit mode; ``transaction()`` issues explicit
    BEGIN/COMMIT/ROLLBACK. An RLock serializes access to the connection and is
    held for the whole of a transaction.
    """

    dialect = "sqlite"
    placeholder = "?"
    like_operator = "LIKE"

    def __init__(self, db_path: Path | str = ":memory:"):
        self.db_path = str(db_path)
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self) -> None:
        """Establish database connection."""
        self.conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def _require_conn(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("Database not connected")
        return self.conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement; returns the affected row count."""
        with self._lock:
            cursor = self._require_conn().execute(sql, list(params))
            return cursor.rowcount

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            cursor = self._require_conn().execute(sql, list(params))
            return [dict(row) for row in cursor.fetchall()]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        with self._lock:
            row = self._require_conn().execute(sql, list(params)).fetchone()
            return dict(row) if row else None

    def insert(self, table: str, data: dict[str, Any], returning: str) -> Any:
        """Insert one row and return its primary key value."""
        columns = list(data)
        if columns:
            col_sql = ", ".join(self.quote(c) for c in columns)
            marks = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {self.quote(table)} ({col_sql}) VALUES ({marks})"
        else:
            sql = f"INSERT INTO {self.quote(table)} DEFAULT VALUES"
        with self._lock:
            cursor = self._require_conn().execute(sql, [data[c] for c in columns])
            if returning in data:
                return data[returning]
            return cursor.lastrowid

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str:
        col_sql = ", ".join(self.quote(c) for c in columns)
        marks = ", ".join("?" for _ in columns)
        return f"INSERT OR IGNORE INTO {self.quote(table)} ({col_sql}) VALUES ({marks})"

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any exception (including cancellation).

        Nested calls join the outermost transaction.
        """
        with self._lock:
            conn = self._require_conn()
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            conn.execute("BEGIN")
            self._depth = 1
            try:
                yield
            except BaseException:
                conn.execute("ROLLBACK")
                logger.debug("Rolled back SQLite transaction")
                raise
            else:
                conn.execute("COMMIT")
            finally:
                self._depth = 0
