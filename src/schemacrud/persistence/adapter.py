"""DatabaseAdapter Protocol — shared interface for all database adapters."""

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DatabaseAdapter(Protocol):
    """Interface all database adapters must implement.

    Adapters own one connection. Statements executed outside ``transaction()``
    commit immediately; statements inside it commit or roll back together.
    """

    # "sqlite" | "postgresql"
    dialect: str
    # Parameter marker for this driver ("?" or "%s")
    placeholder: str
    # Case-insensitive pattern match operator
    like_operator: str

    # Raw connection handle. Type varies by adapter.
    conn: Any

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def quote(self, identifier: str) -> str: ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int: ...

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]: ...

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None: ...

    def insert(self, table: str, data: dict[str, Any], returning: str) -> Any: ...

    def insert_ignore_sql(self, table: str, columns: Sequence[str]) -> str: ...

    def transaction(self) -> AbstractContextManager[None]: ...
