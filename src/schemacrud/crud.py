"""CRUD facade: the end-to-end control flow for every schema operation.

Each call fetches the cached schema, checks access, configures a fresh
table accessor and then runs the query engine or relationship manager.
"""

from __future__ import annotations

import logging
from typing import Any

from schemacrud.auth.permissions import AccessGate
from schemacrud.auth.types import Authorizer, Principal
from schemacrud.config import Settings
from schemacrud.exceptions import InvalidInputError
from schemacrud.persistence.accessor import TableAccessor
from schemacrud.persistence.adapter import DatabaseAdapter
from schemacrud.persistence.config import create_adapter
from schemacrud.query.engine import ListRequest, ListResult, QueryEngine
from schemacrud.relationships.manager import ON_CREATE, ON_DELETE, ON_UPDATE, RelationshipManager
from schemacrud.schema.cache import CacheStore
from schemacrud.schema.models import Schema
from schemacrud.schema.service import SchemaService
from schemacrud.validation.fields import ensure_valid

logger = logging.getLogger(__name__)


class CrudService:
    """Schema-driven CRUD over any configured table."""

    def __init__(
        self,
        schemas: SchemaService,
        adapter: DatabaseAdapter,
        authorizer: Authorizer | None = None,
        settings: Settings | None = None,
    ):
        self.schemas = schemas
        self.adapter = adapter
        self.gate = AccessGate(authorizer)
        self.settings = settings or Settings()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        authorizer: Authorizer | None = None,
        store: CacheStore | None = None,
    ) -> CrudService:
        """Build a service with a connected adapter for ``settings.database_url``.

        Settings default to ``Settings.from_env()``. The caller owns the
        adapter and closes it when done.
        """
        settings = settings or Settings.from_env()
        schemas = SchemaService.from_settings(settings, store)
        adapter = create_adapter(settings.database_url)
        adapter.connect()
        logger.debug("Connected %s", type(adapter).__name__)
        return cls(schemas, adapter, authorizer, settings)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schema(self, principal: Principal, model: str, operation: str) -> Schema:
        schema = self.schemas.load(model)
        self.gate.check_operation(principal, schema, operation)
        return schema

    def _accessor(self, schema: Schema) -> TableAccessor:
        return TableAccessor.configure(schema, self.adapter)

    def _relationships(self, schema: Schema) -> RelationshipManager:
        return RelationshipManager(
            schema,
            self.adapter,
            self.schemas.load,
            default_page_size=self.settings.default_page_size,
            max_page_size=self.settings.max_page_size,
        )

    def _request(self, request: ListRequest | dict[str, Any] | None) -> ListRequest:
        if request is None:
            return ListRequest()
        if isinstance(request, ListRequest):
            return request
        return ListRequest.from_params(request)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def schema(self, principal: Principal, model: str, context: str | None = None) -> dict[str, Any]:
        """Context document for ``model`` (see ``schema.contexts``)."""
        self._schema(principal, model, "schema")
        return self.schemas.load_context(model, context)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def list(
        self,
        principal: Principal,
        model: str,
        request: ListRequest | dict[str, Any] | None = None,
    ) -> ListResult:
        schema = self._schema(principal, model, "list")
        engine = QueryEngine(
            self._accessor(schema),
            default_page_size=self.settings.default_page_size,
            max_page_size=self.settings.max_page_size,
        )
        return engine.list(self._request(request))

    def read(self, principal: Principal, model: str, record_id: Any) -> dict[str, Any]:
        schema = self._schema(principal, model, "read")
        return self._accessor(schema).find(record_id)

    def create(self, principal: Principal, model: str, data: dict[str, Any]) -> dict[str, Any]:
        schema = self._schema(principal, model, "create")
        accessor = self._accessor(schema)
        data = accessor.apply_defaults(data)
        ensure_valid(schema, data)

        with self.adapter.transaction():
            record = accessor.create(data)
            self._relationships(schema).process_actions(
                ON_CREATE, record[schema.primary_key], data, user_id=principal.user_id
            )
        logger.debug("Created %s %s", model, record[schema.primary_key])
        return record

    def update(
        self,
        principal: Principal,
        model: str,
        record_id: Any,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        schema = self._schema(principal, model, "update")
        ensure_valid(schema, data, partial=True)

        with self.adapter.transaction():
            record = self._accessor(schema).update(record_id, data)
            self._relationships(schema).process_actions(
                ON_UPDATE, record_id, data, user_id=principal.user_id
            )
        return record

    def update_field(
        self,
        principal: Principal,
        model: str,
        record_id: Any,
        field: str,
        value: Any,
    ) -> dict[str, Any]:
        """Update a single editable field."""
        schema = self._schema(principal, model, "update_field")
        definition = schema.get_field(field)
        if definition is None or not definition.writable:
            raise InvalidInputError(
                f"Field '{field}' of {model} is not editable", {field: ["not editable"]}
            )
        data = {field: value}
        ensure_valid(schema, data, partial=True)
        return self._accessor(schema).update(record_id, data)

    def delete(self, principal: Principal, model: str, record_id: Any) -> None:
        schema = self._schema(principal, model, "delete")
        accessor = self._accessor(schema)
        with self.adapter.transaction():
            accessor.find_raw(record_id)
            self._relationships(schema).process_actions(
                ON_DELETE, record_id, user_id=principal.user_id
            )
            accessor.delete(record_id)

    def restore(self, principal: Principal, model: str, record_id: Any) -> dict[str, Any]:
        schema = self._schema(principal, model, "restore")
        return self._accessor(schema).restore(record_id)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def details(
        self,
        principal: Principal,
        model: str,
        record_id: Any,
        detail_model: str,
        request: ListRequest | dict[str, Any] | None = None,
    ) -> ListResult:
        schema = self._schema(principal, model, "details")
        self._accessor(schema).find_raw(record_id)
        return self._relationships(schema).list_details(record_id, detail_model, self._request(request))

    def related(
        self,
        principal: Principal,
        model: str,
        record_id: Any,
        relation: str,
        request: ListRequest | dict[str, Any] | None = None,
    ) -> ListResult:
        schema = self._schema(principal, model, "related")
        self._accessor(schema).find_raw(record_id)
        return self._relationships(schema).list_related(record_id, relation, self._request(request))

    def attach(
        self, principal: Principal, model: str, record_id: Any, relation: str, related_ids: Any
    ) -> list[Any]:
        schema = self._schema(principal, model, "attach")
        self._accessor(schema).find_raw(record_id)
        return self._relationships(schema).attach(record_id, relation, related_ids)

    def detach(
        self, principal: Principal, model: str, record_id: Any, relation: str, related_ids: Any
    ) -> int:
        schema = self._schema(principal, model, "detach")
        self._accessor(schema).find_raw(record_id)
        return self._relationships(schema).detach(record_id, relation, related_ids)

    def sync(
        self, principal: Principal, model: str, record_id: Any, relation: str, related_ids: Any
    ) -> dict[str, list[Any]]:
        schema = self._schema(principal, model, "sync")
        self._accessor(schema).find_raw(record_id)
        return self._relationships(schema).sync(record_id, relation, related_ids)

    # ------------------------------------------------------------------
    # Custom actions
    # ------------------------------------------------------------------

    def run_action(
        self,
        principal: Principal,
        model: str,
        action_key: str,
        record_id: Any = None,
    ) -> dict[str, Any] | None:
        """Authorize a custom action; ``field_update`` actions are also applied.

        Other action types are only gated here; the caller performs them.
        """
        schema = self.schemas.load(model)
        action = schema.get_action(action_key)
        if action is None:
            raise InvalidInputError(
                f"Action '{action_key}' is not defined for {model}", {"action": ["unknown action"]}
            )
        self.gate.check_access(principal, schema, action_key)

        if action.type != "field_update" or record_id is None:
            return None

        field = action.config.get("field")
        definition = schema.get_field(field) if field else None
        if definition is None:
            raise InvalidInputError(
                f"Action '{action_key}' names unknown field '{field}'", {"action": ["unknown field"]}
            )
        accessor = self._accessor(schema)
        if action.config.get("toggle"):
            current = accessor.find(record_id).get(field)
            value: Any = not bool(current)
        else:
            value = action.config.get("value")
        logger.debug("Action %s sets %s.%s on %s", action_key, model, field, record_id)
        return accessor.update(record_id, {field: value})
