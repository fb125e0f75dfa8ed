"""Adapter selection from a database URL.

``Settings.database_url`` names the database; ``create_adapter`` maps its
scheme onto one of the bundled adapters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from schemacrud.persistence.adapter import DatabaseAdapter

SQLITE_PREFIX = "sqlite:"
POSTGRESQL_PREFIXES = ("postgresql://", "postgresql+psycopg://", "postgres://")


def sqlite_path(url: str) -> str:
    """Filesystem path of a ``sqlite:///path`` URL; ``sqlite://`` is in-memory."""
    path = url[len(SQLITE_PREFIX):]
    if path.startswith("//"):
        path = path[2:]
    # sqlite:///app.db is relative, sqlite:////var/app.db absolute
    if path.startswith("/"):
        path = path[1:]
    return path or ":memory:"


def create_adapter(url: str) -> DatabaseAdapter:
    """Build an unconnected adapter for ``url``.

    Raises:
        ValueError: For schemes other than sqlite and postgresql.
    """
    if url.startswith(SQLITE_PREFIX):
        from schemacrud.persistence.sqlite import SQLiteAdapter

        return SQLiteAdapter(sqlite_path(url))

    if url.startswith(POSTGRESQL_PREFIXES):
        from schemacrud.persistence.postgresql import PostgreSQLAdapter

        return PostgreSQLAdapter(url)

    scheme = url.split(":", 1)[0] if ":" in url else url
    raise ValueError(f"Unsupported database URL scheme '{scheme}'")
