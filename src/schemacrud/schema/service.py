"""Cached schema access: the public loader interface used by every operation."""

from __future__ import annotations

import copy
import logging
from typing import Any

from schemacrud.config import Settings
from schemacrud.core.types import FieldTypeRegistry
from schemacrud.schema.cache import CacheStore, SchemaCache
from schemacrud.schema.contexts import cache_context_key, filter_context, parse_contexts
from schemacrud.schema.loader import SchemaLoader
from schemacrud.schema.models import Schema
from schemacrud.schema.validator import validate_document

logger = logging.getLogger(__name__)

STORE_PREFIX = "schemacrud_schema_"
_SCHEMA = "__schema__"


def store_key(model: str, connection: str | None = None) -> str:
    """Key under which the normalized document is kept in an external store."""
    suffix = f"@{connection}" if connection else ""
    return f"{STORE_PREFIX}{model}{suffix}"


class SchemaService:
    """Loads schemas through a two-tier cache.

    Tier one is an in-memory ``SchemaCache`` keyed by
    ``(model, connection, context)``. Tier two is an optional external
    ``CacheStore`` holding normalized documents; its failures are logged and
    the document is reloaded from disk instead.
    """

    def __init__(
        self,
        loader: SchemaLoader,
        store: CacheStore | None = None,
        *,
        ttl: int | None = 3600,
        enabled: bool = True,
    ):
        self.loader = loader
        self.store = store
        self.ttl = ttl
        self.enabled = enabled
        self._cache = SchemaCache()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CacheStore | None = None,
        registry: FieldTypeRegistry | None = None,
    ) -> SchemaService:
        registry = registry or FieldTypeRegistry(settings.password_schemes)
        loader = SchemaLoader(settings.schema_paths, registry)
        return cls(loader, store, ttl=settings.cache_ttl, enabled=settings.cache_enabled)

    @property
    def registry(self) -> FieldTypeRegistry:
        return self.loader.registry

    def load(self, model: str, connection: str | None = None) -> Schema:
        """Return the immutable Schema for ``model``."""
        if not self.enabled:
            return self.loader.load(model, connection)
        key = (model, connection, _SCHEMA)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Schema cache hit: %s", model)
            return cached
        logger.debug("Schema cache miss: %s", model)
        return self._cache.get_or_load(
            key, lambda: self.loader.build(self._document(model, connection))
        )

    def load_context(
        self,
        model: str,
        context: str | None = None,
        connection: str | None = None,
    ) -> dict[str, Any]:
        """Return the JSON-serializable document for ``context``.

        Every call returns a fresh copy; cached entries are never handed out.
        """
        ctx_key = cache_context_key(context)
        if not self.enabled:
            return filter_context(self._document(model, connection), ctx_key)

        key = (model, connection, ctx_key)
        entry = self._cache.get_or_load(
            key, lambda: filter_context(self.load(model, connection).to_dict(), ctx_key)
        )

        names = parse_contexts(ctx_key)
        if len(names) > 1:
            doc: dict[str, Any] | None = None
            for name in names:
                if self._cache.get((model, connection, name)) is None:
                    doc = doc or self.load(model, connection).to_dict()
                    self._cache.put_if_absent((model, connection, name), filter_context(doc, name))
        return copy.deepcopy(entry)

    def invalidate(self, model: str) -> None:
        """Drop every cached entry for ``model`` from both tiers."""
        connections = {k[1] for k in self._cache.keys() if k[0] == model}
        connections.add(None)
        removed = self._cache.discard(lambda k: k[0] == model)
        logger.debug("Invalidated %d schema cache entries for %s", removed, model)
        if self.store is not None:
            for connection in connections:
                self._store_call("invalidate", store_key(model, connection))

    def clear(self) -> None:
        """Drop all in-memory entries and the external entries they correspond to."""
        if self.store is not None:
            for model, connection in {(k[0], k[1]) for k in self._cache.keys()}:
                self._store_call("invalidate", store_key(model, connection))
        self._cache.clear()

    def _document(self, model: str, connection: str | None) -> dict[str, Any]:
        """Normalized document from the external store, else from disk."""
        key = store_key(model, connection)
        if self.store is not None:
            doc = self._store_call("get", key)
            if isinstance(doc, dict):
                issues = validate_document(doc, self.registry, expected_model=model)
                if not issues:
                    logger.debug("External schema cache hit: %s", key)
                    return copy.deepcopy(doc)
                # Written by a process with another registry or an older format
                logger.warning(
                    "Ignoring invalid external schema entry %s: %s", key, issues[0].message
                )

        doc = self.loader.load_document(model, connection)
        if self.store is not None and self.enabled:
            self._store_call("set", key, copy.deepcopy(doc), self.ttl)
        return doc

    def _store_call(self, method: str, *args: Any) -> Any:
        try:
            return getattr(self.store, method)(*args)
        except Exception as exc:
            logger.warning("External schema cache %s failed for %s: %s", method, args[0], exc)
            return None
