"""PostgreSQL database adapter.

Uses psycopg v3 (psycopg[binary]>=3.1.0) for database access.
Mirrors SQLiteAdapter method-for-method with PostgreSQL-specific SQL:
  - %s placeholders instead of ?
  - INSERT ... RETURNING for generated keys
  - INSERT ... ON CONFLICT DO NOTHING for idempotent pivot writes
  - ILIKE for case-insensitive search
  - dict_row cursor factory for dict-based row access

Identifier quoting strategy
----------------------------
PostgreSQL folds unquoted identifiers to lowercase and reserves words such
as ``user``, ``order`` and ``group``. Every table and column name taken from
a schema is therefore double-quoted via ``quote()``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


def _col(name: str) -> str:
    """Return a double-quoted PostgreSQL identifier.

    Example: _col("unit_price") → '"unit_price"'
    """
    return '"' + name.replace('"', '""') + '"'


class PostgreSQLAdapter:
    """PostgreSQL adapter using psycopg v3."""

    dialect = "postgresql"
    placeholder = "%s"
    like_operator = "ILIKE"

    def __init__(self, url: str):
        # psycopg.connect() wants a plain libpq DSN or postgresql:// URL,
        # so strip the +psycopg driver suffix when present.
        self.url = url.replace("postgresql+psycopg://", "postgresql://")
        self.conn: Any = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self) -> None:
        """Establish database connection."""
        import psycopg
        from psycopg.rows import dict_row

        self.conn = psycopg.connect(self.url, row_factory=dict_row, autocommit=True)

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def quote(self, identifier: str) -> str:
        return _col(identifier)

    def _require_conn(self) -> Any:
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
            return list(cursor.fetchall())

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        with self._lock:
            return self._require_conn().execute(sql, list(params)).fetchone()

    def build_insert(self, table: str, data: dict[str, Any], returning: str) -> str:
        columns = list(data)
        if columns:
            col_sql = ", ".join(_col(c) for c in columns)
            marks = ", ".join("%s" for _ in columns)
            return (
                f"INSERT INTO {_col(table)} ({col_sql}) VALUES ({marks}) "
                f"RETURNING {_col(returning)}"
            )
        return f"INSERT INTO {_col(table)} DEFAULT VALUES RETURNING {_col(returning)}"

    def insert(self, table: str, data: dict[str, Any], returning: str) -> Any:
        """Insert one row and return its primary key value."""
        sql = self.build_insert(table, data, returning)
        with self._lock:
            row = self._require_conn().execute(sql, list(data.values())).fetchone()
            return row[returning] if row else None

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str:
        col_sql = ", ".join(_col(c) for c in columns)
        marks = ", ".join("%s" for _ in columns)
        return (
            f"INSERT INTO {_col(table)} ({col_sql}) VALUES ({marks}) "
            "ON CONFLICT DO NOTHING"
        )

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

            self._depth = 1
            try:
                # psycopg rolls back when the block exits with any exception
                with conn.transaction():
                    yield
            except BaseException:
                logger.debug("Rolled back PostgreSQL transaction")
                raise
            finally:
                self._depth = 0
