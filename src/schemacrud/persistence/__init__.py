"""Persistence layer for schemacrud."""

from schemacrud.persistence.adapter import DatabaseAdapter
from schemacrud.persistence.config import create_adapter, sqlite_path
from schemacrud.persistence.sqlite import SQLiteAdapter

__all__ = ["DatabaseAdapter", "SQLiteAdapter", "create_adapter", "sqlite_path"]
