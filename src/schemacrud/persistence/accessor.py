"""Dynamic table accessor configured from a Schema.

One accessor serves one logical operation. ``configure`` always returns a
fresh instance, so concurrent operations never share mutable state.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any

from schemacrud.core.types import FieldTypeHandler
from schemacrud.exceptions import InvalidInputError, RecordNotFoundError
from schemacrud.persistence.adapter import DatabaseAdapter
from schemacrud.schema.models import CREATED_AT, DELETED_AT, UPDATED_AT, Schema

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TableAccessor:
    """Row-level access to the table a Schema describes."""

    def __init__(self, schema: Schema, adapter: DatabaseAdapter):
        self.schema = schema
        self.adapter = adapter
        self.table = schema.table
        self.primary_key = schema.primary_key
        self.handlers: dict[str, FieldTypeHandler] = {
            f.name: f.handler for f in schema.column_fields()
        }
        self.timestamps = schema.timestamps
        self.soft_delete = schema.soft_delete

    @classmethod
    def configure(cls, schema: Schema, adapter: DatabaseAdapter) -> TableAccessor:
        return cls(schema, adapter)

    def clone(self) -> TableAccessor:
        """Independent copy safe to use in another operation."""
        other = copy.copy(self)
        other.handlers = dict(self.handlers)
        return other

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------

    def q(self, identifier: str) -> str:
        return self.adapter.quote(identifier)

    @property
    def from_sql(self) -> str:
        return self.q(self.table)

    def visibility_conditions(
        self, with_trashed: bool = False, only_trashed: bool = False
    ) -> list[str]:
        """Soft-delete conditions for the base row set."""
        if not self.soft_delete:
            return []
        if only_trashed:
            return [f"{self.q(DELETED_AT)} IS NOT NULL"]
        if with_trashed:
            return []
        return [f"{self.q(DELETED_AT)} IS NULL"]

    # ------------------------------------------------------------------
    # Value conversion
    # ------------------------------------------------------------------

    def apply_defaults(self, data: dict[str, Any]) -> dict[str, Any]:
        """Fill schema defaults for writable fields the caller left out."""
        result = dict(data)
        for field in self.schema.column_fields():
            if field.writable and field.name not in result and field.default is not None:
                result[field.name] = copy.deepcopy(field.default)
        return result

    def prepare(self, data: dict[str, Any]) -> dict[str, Any]:
        """Transform input into column values.

        Unknown columns, non-editable and auto-increment fields are dropped.
        A password field whose transform yields None is left unchanged.
        """
        values: dict[str, Any] = {}
        for name, value in data.items():
            field = self.schema.get_field(name)
            if field is None or not field.writable:
                if name:
                    logger.debug("Dropping non-writable input %s.%s", self.schema.model, name)
                continue
            try:
                stored = field.handler.transform(value)
            except InvalidInputError as exc:
                raise InvalidInputError(exc.message, {name: [exc.message]}) from exc
            if stored is None and not field.readable:
                continue
            values[name] = stored
        return values

    def cast_row(self, row: dict[str, Any], fields: list[str] | None = None) -> dict[str, Any]:
        """Cast stored values for output and drop unreadable columns."""
        result: dict[str, Any] = {}
        for name, value in row.items():
            if fields is not None and name not in fields:
                continue
            handler = self.handlers.get(name)
            if handler is None:
                result[name] = value
            elif handler.readable:
                result[name] = handler.cast(value)
        return result

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def find_raw(self, record_id: Any, *, with_trashed: bool = False) -> dict[str, Any]:
        conditions = [f"{self.q(self.primary_key)} = {self.adapter.placeholder}"]
        conditions.extend(self.visibility_conditions(with_trashed=with_trashed))
        sql = f"SELECT * FROM {self.from_sql} WHERE {' AND '.join(conditions)}"
        row = self.adapter.fetch_one(sql, [record_id])
        if row is None:
            raise RecordNotFoundError(self.schema.model, record_id)
        return row

    def find(self, record_id: Any, *, with_trashed: bool = False) -> dict[str, Any]:
        """Fetch one record by primary key, cast for output.

        Raises:
            RecordNotFoundError: If no visible row has that key.
        """
        return self.cast_row(self.find_raw(record_id, with_trashed=with_trashed))

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        values = self.prepare(self.apply_defaults(data))
        pk_field = self.schema.get_field(self.primary_key)
        if pk_field is not None and not pk_field.auto_increment and self.primary_key in data:
            values[self.primary_key] = pk_field.handler.transform(data[self.primary_key])
        if self.timestamps:
            now = utc_now()
            values.setdefault(CREATED_AT, now)
            values.setdefault(UPDATED_AT, now)

        new_id = self.adapter.insert(self.table, values, self.primary_key)
        logger.debug("Created %s %s", self.schema.model, new_id)
        return self.find(new_id, with_trashed=True)

    def update(self, record_id: Any, data: dict[str, Any]) -> dict[str, Any]:
        self.find_raw(record_id)
        values = self.prepare(data)
        if not values:
            return self.find(record_id)
        if self.timestamps:
            values[UPDATED_AT] = utc_now()

        mark = self.adapter.placeholder
        set_clause = ", ".join(f"{self.q(col)} = {mark}" for col in values)
        sql = f"UPDATE {self.from_sql} SET {set_clause} WHERE {self.q(self.primary_key)} = {mark}"
        self.adapter.execute(sql, [*values.values(), record_id])
        return self.find(record_id)

    def delete(self, record_id: Any) -> None:
        """Soft-delete when the schema enables it, otherwise remove the row."""
        mark = self.adapter.placeholder
        pk = self.q(self.primary_key)
        if self.soft_delete:
            params: list[Any] = [utc_now()]
            set_clause = f"{self.q(DELETED_AT)} = {mark}"
            if self.timestamps:
                set_clause += f", {self.q(UPDATED_AT)} = {mark}"
                params.append(params[0])
            sql = (
                f"UPDATE {self.from_sql} SET {set_clause} "
                f"WHERE {pk} = {mark} AND {self.q(DELETED_AT)} IS NULL"
            )
            params.append(record_id)
        else:
            sql = f"DELETE FROM {self.from_sql} WHERE {pk} = {mark}"
            params = [record_id]

        if self.adapter.execute(sql, params) == 0:
            raise RecordNotFoundError(self.schema.model, record_id)
        logger.debug("Deleted %s %s (soft=%s)", self.schema.model, record_id, self.soft_delete)

    def restore(self, record_id: Any) -> dict[str, Any]:
        if not self.soft_delete:
            raise InvalidInputError(f"Model '{self.schema.model}' does not use soft deletes")
        mark = self.adapter.placeholder
        sql = (
            f"UPDATE {self.from_sql} SET {self.q(DELETED_AT)} = NULL "
            f"WHERE {self.q(self.primary_key)} = {mark} AND {self.q(DELETED_AT)} IS NOT NULL"
        )
        if self.adapter.execute(sql, [record_id]) == 0:
            raise RecordNotFoundError(self.schema.model, record_id)
        return self.find(record_id)
