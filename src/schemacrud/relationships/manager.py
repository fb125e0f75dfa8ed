"""Relationship management: pivot writes and related-row listings.

Writes exist only for ``many_to_many`` relationships and always run as one
transaction per batch. ``has_many`` details and ``belongs_to_many_through``
relationships are read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from schemacrud.core.types import FieldTypeHandler
from schemacrud.exceptions import InvalidInputError, RelationshipConfigError, SchemaNotFoundError
from schemacrud.persistence.accessor import TableAccessor
from schemacrud.persistence.adapter import DatabaseAdapter
from schemacrud.query.engine import ListRequest, ListResult, QueryEngine, Scope
from schemacrud.schema.models import (
    BELONGS_TO_MANY_THROUGH,
    CREATED_AT,
    MANY_TO_MANY,
    UPDATED_AT,
    RelationshipDefinition,
    Schema,
)
from schemacrud.schema.validator import IDENTIFIER

logger = logging.getLogger(__name__)

# Lifecycle events that may carry relationship actions
ON_CREATE = "on_create"
ON_UPDATE = "on_update"
ON_DELETE = "on_delete"

SchemaLookup = Callable[[str], Schema]


class RelationshipManager:
    """Relationship operations for one parent schema.

    Args:
        schema: The parent (owning) schema.
        adapter: Database adapter shared with the rest of the operation.
        lookup: Resolves related model names to their schemas. Listings need
            it; pivot writes use it to normalize ids to the related key type.
    """

    def __init__(
        self,
        schema: Schema,
        adapter: DatabaseAdapter,
        lookup: SchemaLookup | None = None,
        *,
        default_page_size: int | None = None,
        max_page_size: int | None = None,
    ):
        self.schema = schema
        self.adapter = adapter
        self.lookup = lookup
        self._page_kwargs = {
            k: v
            for k, v in (("default_page_size", default_page_size), ("max_page_size", max_page_size))
            if v is not None
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _q(self, identifier: str) -> str:
        return self.adapter.quote(identifier)

    def _relationship(self, name: str) -> RelationshipDefinition:
        rel = self.schema.get_relationship(name)
        if rel is None:
            raise RelationshipConfigError(self.schema.model, name, "relationship is not defined")
        return rel

    def _pivot_relationship(self, name: str) -> RelationshipDefinition:
        rel = self._relationship(name)
        if rel.type != MANY_TO_MANY:
            raise RelationshipConfigError(
                self.schema.model, name, f"type '{rel.type}' does not support pivot writes"
            )
        return rel

    def _key_handler(self, rel: RelationshipDefinition) -> FieldTypeHandler | None:
        """Handler of the related model's primary key, when its schema is known."""
        if self.lookup is None:
            return None
        try:
            related = self.lookup(rel.model)
        except SchemaNotFoundError:
            logger.debug("No schema for %s; related ids on %s are not normalized", rel.model, rel.name)
            return None
        definition = related.get_field(related.primary_key)
        return definition.handler if definition is not None else None

    def _ids(
        self, rel: RelationshipDefinition, related_ids: Any, *, allow_empty: bool = False
    ) -> list[Any]:
        """Validate, normalize and de-duplicate an id batch, preserving order."""
        if not isinstance(related_ids, (list, tuple)):
            raise InvalidInputError(
                "related ids must be a list", {"ids": ["must be a list of ids"]}
            )
        handler = self._key_handler(rel)
        ids: list[Any] = []
        seen: set[str] = set()
        for value in related_ids:
            if value is None or value == "" or isinstance(value, (dict, list, bool)):
                raise InvalidInputError(
                    f"Invalid related id {value!r}", {"ids": [f"invalid id {value!r}"]}
                )
            if handler is not None:
                try:
                    value = handler.transform(value)
                except InvalidInputError:
                    raise InvalidInputError(
                        f"Invalid related id {value!r}", {"ids": [f"invalid id {value!r}"]}
                    ) from None
            key = _id_key(value)
            if key not in seen:
                seen.add(key)
                ids.append(value)
        if not ids and not allow_empty:
            raise InvalidInputError("related ids must not be empty", {"ids": ["must not be empty"]})
        return ids

    def _existing(
        self, rel: RelationshipDefinition, parent_id: Any, ids: list[Any]
    ) -> dict[str, Any]:
        """Linked ids keyed by their comparison key."""
        mark = self.adapter.placeholder
        sql = (
            f"SELECT {self._q(rel.related_key)} AS rid FROM {self._q(rel.pivot_table)} "
            f"WHERE {self._q(rel.foreign_key)} = {mark}"
        )
        params: list[Any] = [parent_id]
        if ids:
            sql += f" AND {self._q(rel.related_key)} IN ({', '.join(mark for _ in ids)})"
            params.extend(ids)
        return {_id_key(row["rid"]): row["rid"] for row in self.adapter.fetch_all(sql, params)}

    def _insert_pivot(
        self,
        rel: RelationshipDefinition,
        parent_id: Any,
        related_id: Any,
        extra: dict[str, Any] | None = None,
    ) -> int:
        row: dict[str, Any] = {rel.foreign_key: parent_id, rel.related_key: related_id}
        if rel.pivot_timestamps:
            now = datetime.now(timezone.utc).isoformat()
            row[CREATED_AT] = now
            row[UPDATED_AT] = now
        for column, value in (extra or {}).items():
            if not isinstance(column, str) or not IDENTIFIER.match(column):
                raise RelationshipConfigError(
                    self.schema.model, rel.name, f"invalid pivot column '{column}'"
                )
            row[column] = value
        sql = self.adapter.insert_ignore_sql(rel.pivot_table, list(row))
        return self.adapter.execute(sql, list(row.values()))

    def _delete_pivot(
        self, rel: RelationshipDefinition, parent_id: Any, ids: list[Any] | None
    ) -> int:
        mark = self.adapter.placeholder
        sql = f"DELETE FROM {self._q(rel.pivot_table)} WHERE {self._q(rel.foreign_key)} = {mark}"
        params: list[Any] = [parent_id]
        if ids is not None:
            sql += f" AND {self._q(rel.related_key)} IN ({', '.join(mark for _ in ids)})"
            params.extend(ids)
        return self.adapter.execute(sql, params)

    def _in_transaction(self, label: str, rel: RelationshipDefinition, fn: Callable[[], Any]) -> Any:
        try:
            with self.adapter.transaction():
                return fn()
        except BaseException as exc:
            logger.error(
                "%s on %s.%s rolled back: %s", label, self.schema.model, rel.name, exc
            )
            raise

    # ------------------------------------------------------------------
    # Pivot writes
    # ------------------------------------------------------------------

    def attach(self, parent_id: Any, relation: str, related_ids: Any) -> list[Any]:
        """Link ``related_ids`` to the parent; already-linked ids are skipped.

        Returns the ids that were newly linked.
        """
        rel = self._pivot_relationship(relation)
        ids = self._ids(rel, related_ids)

        def run() -> list[Any]:
            existing = self._existing(rel, parent_id, ids)
            added = []
            for related_id in ids:
                if _id_key(related_id) in existing:
                    continue
                if self._insert_pivot(rel, parent_id, related_id):
                    added.append(related_id)
            return added

        added = self._in_transaction("attach", rel, run)
        logger.info(
            "Attached %d of %d %s to %s %s", len(added), len(ids), relation, self.schema.model, parent_id
        )
        return added

    def detach(self, parent_id: Any, relation: str, related_ids: Any) -> int:
        """Unlink ``related_ids`` from the parent; returns the number of links removed."""
        rel = self._pivot_relationship(relation)
        ids = self._ids(rel, related_ids)
        removed =self._in_transaction("detach", rel, lambda: self._delete_pivot(rel, parent_id, ids))
        logger.info(
            "Detached %d %s from %s %s", removed, relation, self.schema.model, parent_id
        )
        return removed

    def sync(self, parent_id: Any, relation: str, related_ids: Any) -> dict[str, list[Any]]:
        """Make the linked set exactly ``related_ids``. An empty list clears it."""
        rel = self._pivot_relationship(relation)
        ids = self._ids(rel, related_ids, allow_empty=True)
        result = self._in_transaction("sync", rel, lambda: self._replace(rel, parent_id, ids))
        logger.info(
            "Synced %s on %s %s: +%d -%d",
            relation, self.schema.model, parent_id, len(result["attached"]), len(result["detached"]),
        )
        return result

    def related_ids(self, parent_id: Any, relation: str) -> set[Any]:
        """Ids currently linked to the parent through a many_to_many relationship."""
        rel = self._pivot_relationship(relation)
        return set(self._existing(rel, parent_id, []).values())

    def _replace(
        self, rel: RelationshipDefinition, parent_id: Any, ids: list[Any]
    ) -> dict[str, list[Any]]:
        """Swap the linked set for ``ids`` (already normalized)."""
        current = self._existing(rel, parent_id, [])
        wanted = {_id_key(rid) for rid in ids}
        doomed = [rid for key, rid in current.items() if key not in wanted]
        if doomed:
            self._delete_pivot(rel, parent_id, doomed)
        added = []
        for related_id in ids:
            if _id_key(related_id) not in current and self._insert_pivot(rel, parent_id, related_id):
                added.append(related_id)
        return {"attached": added, "detached": doomed}

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    def process_actions(
        self,
        event: str,
        parent_id: Any,
        data: dict[str, Any] | None = None,
        *,
        user_id: Any = None,
    ) -> None:
        """Run the ``attach``/``sync``/``detach`` actions declared for ``event``.

        Runs inside the caller's transaction (nested transactions join it).
        """
        data = data or {}
        for rel in self.schema.relationships:
            action = rel.actions.get(event)
            if not isinstance(action, dict):
                continue
            if rel.type != MANY_TO_MANY:
                raise RelationshipConfigError(
                    self.schema.model, rel.name, f"{event} actions need a many_to_many relationship"
                )

            for item in action.get("attach") or []:
                if not isinstance(item, dict) or "related_id" not in item:
                    logger.warning("Invalid attach action on %s.%s", self.schema.model, rel.name)
                    continue
                extra = {k: _pivot_value(v, user_id) for k, v in (item.get("pivot_data") or {}).items()}
                self._insert_pivot(rel, parent_id, item["related_id"], extra)

            sync_cfg = action.get("sync")
            if event == ON_UPDATE and sync_cfg:
                field = sync_cfg if isinstance(sync_cfg, str) else f"{rel.name}_ids"
                if field in data:
                    value = data[field]
                    values = value if isinstance(value, (list, tuple)) else [value]
                    ids = self._ids(
                        rel, [v for v in values if v is not None and v != ""], allow_empty=True
                    )
                    self._replace(rel, parent_id, ids)

            detach_cfg = action.get("detach")
            if detach_cfg == "all":
                self._delete_pivot(rel, parent_id, None)
            elif isinstance(detach_cfg, list) and detach_cfg:
                self._delete_pivot(rel, parent_id, list(detach_cfg))
            elif detach_cfg:
                logger.warning("Invalid detach action on %s.%s", self.schema.model, rel.name)

    # ------------------------------------------------------------------
    # Read-only listings
    # ------------------------------------------------------------------

    def _related_engine(
        self, model: str, list_fields: tuple[str, ...] | list[str] = ()
    ) -> QueryEngine:
        if self.lookup is None:
            raise RuntimeError("RelationshipManager needs a schema lookup for listings")
        related = self.lookup(model)
        accessor = TableAccessor.configure(related, self.adapter)
        return QueryEngine(accessor, listable=list(list_fields) or None, **self._page_kwargs)

    def list_details(
        self, parent_id: Any, detail_model: str, request: ListRequest | None = None
    ) -> ListResult:
        """Rows of a has-many detail model belonging to the parent."""
        detail = self.schema.get_detail(detail_model)
        list_fields: tuple[str, ...] = ()
        if detail is not None:
            model, foreign_key, list_fields = detail.model, detail.foreign_key, detail.list_fields
        else:
            rel = self.schema.get_relationship(detail_model)
            if rel is None or rel.type != "has_many":
                raise RelationshipConfigError(
                    self.schema.model, detail_model, "no detail or has_many relationship with that name"
                )
            model, foreign_key = rel.model, rel.foreign_key

        engine = self._related_engine(model, list_fields)
        scope = Scope(f"{self._q(foreign_key)} = {self.adapter.placeholder}", [parent_id])
        return engine.list(request, scope)

    def list_related(
        self, parent_id: Any, relation: str, request: ListRequest | None = None
    ) -> ListResult:
        """Target rows of a many_to_many or belongs_to_many_through relationship."""
        rel = self._relationship(relation)
        if rel.type == "has_many":
            return self.list_details(parent_id, relation, request)

        engine = self._related_engine(rel.model)
        target_pk = self._q(engine.schema.primary_key)
        mark = self.adapter.placeholder

        if rel.type == MANY_TO_MANY:
            subquery = (
                f"SELECT {self._q(rel.related_key)} FROM {self._q(rel.pivot_table)} "
                f"WHERE {self._q(rel.foreign_key)} = {mark}"
            )
        elif rel.type == BELONGS_TO_MANY_THROUGH:
            # parent -> first pivot -> through ids -> second pivot -> target ids
            subquery = (
                f"SELECT p2.{self._q(rel.second_related_key)} "
                f"FROM {self._q(rel.second_pivot_table)} p2 "
                f"JOIN {self._q(rel.first_pivot_table)} p1 "
                f"ON p1.{self._q(rel.first_related_key)} = p2.{self._q(rel.second_foreign_key)} "
                f"WHERE p1.{self._q(rel.first_foreign_key)} = {mark}"
            )
        else:
            raise RelationshipConfigError(self.schema.model, relation, f"unsupported type '{rel.type}'")

        return engine.list(request, Scope(f"{target_pk} IN ({subquery})", [parent_id]))


def _pivot_value(value: Any, user_id: Any) -> Any:
    """Resolve the placeholder values allowed in pivot_data."""
    if value == "now":
        return datetime.now(timezone.utc).isoformat()
    if value == "current_date":
        return date.today().isoformat()
    if value == "current_user":
        return user_id
    return value


def _id_key(value: Any) -> str:
    """Comparison key for ids, so ``"2"`` from a request matches a stored ``2``."""
    return str(value)
