"""Per-context views of a normalized schema document.

A context names the consumer of the document: ``list`` (tables),
``create``/``edit``/``form`` (forms), ``detail`` (record pages) and ``meta``
(headers only). ``full`` or no context returns the whole document; any other
single name falls back to the whole document too.

Comma-separated contexts (``"list,form"``) return the shared metadata once
plus a ``contexts`` map with one entry per requested context.
"""

from __future__ import annotations

import copy
from typing import Any

FULL = "full"
KNOWN_CONTEXTS = ("meta", "list", "create", "edit", "form", "detail")

_LIST_KEYS = (
    "type", "label", "sortable", "filterable", "width", "field_template",
    "filter_type", "ui", "align",
)
_FORM_KEYS = (
    "type", "label", "required", "editable", "readonly", "validation", "placeholder",
    "description", "default", "icon", "rows", "show_in", "ui", "options", "lookup",
)
_DETAIL_KEYS = (
    "type", "label", "readonly", "description", "field_template", "ui", "show_in",
)


def parse_contexts(context: str | None) -> list[str]:
    """Split a context request into its distinct, non-empty names."""
    if context is None:
        return []
    names: list[str] = []
    for part in context.split(","):
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return names


def cache_context_key(context: str | None) -> str:
    """Canonical cache key component for a context request."""
    names = parse_contexts(context)
    return ",".join(names) if names else FULL


def base_metadata(doc: dict[str, Any]) -> dict[str, Any]:
    """Keys present in every context document."""
    model = doc.get("model", "")
    title = doc.get("title") or model[:1].upper() + model[1:]
    return {
        "model": model,
        "title": title,
        "singular_title": doc.get("singular_title", title),
        "primary_key": doc.get("primary_key", "id"),
        "description": doc.get("description", ""),
        "permissions": copy.deepcopy(doc.get("permissions", {})),
    }


def _pick(spec: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    return {k: copy.deepcopy(spec[k]) for k in keys if k in spec}


def _list_data(doc: dict[str, Any]) -> dict[str, Any]:
    fields = {
        name: _pick(spec, _LIST_KEYS)
        for name, spec in doc["fields"].items()
        if spec.get("listable", True)
    }
    return {
        "fields": fields,
        "default_sort": copy.deepcopy(doc.get("default_sort", {})),
        "actions": copy.deepcopy(doc.get("actions", [])),
    }


def _form_data(doc: dict[str, Any], contexts: tuple[str, ...]) -> dict[str, Any]:
    fields = {
        name: _pick(spec, _FORM_KEYS)
        for name, spec in doc["fields"].items()
        if any(ctx in spec.get("show_in", []) for ctx in contexts)
    }
    return {"fields": fields}


def _detail_data(doc: dict[str, Any]) -> dict[str, Any]:
    fields = {}
    for name, spec in doc["fields"].items():
        if not spec.get("viewable", True):
            continue
        picked = _pick(spec, _DETAIL_KEYS)
        if spec.get("type") == "password":
            picked["readonly"] = True
        fields[name] = picked
    return {
        "fields": fields,
        "details": copy.deepcopy(doc.get("details", [])),
        "relationships": copy.deepcopy(doc.get("relationships", [])),
        "actions": copy.deepcopy(doc.get("actions", [])),
        "title_field": doc.get("title_field"),
    }


def context_data(doc: dict[str, Any], context: str) -> dict[str, Any] | None:
    """Context-specific keys for one known context, or None if unknown."""
    if context == "meta":
        return {}
    if context == "list":
        return _list_data(doc)
    if context in ("create", "edit"):
        return _form_data(doc, (context,))
    if context == "form":
        return _form_data(doc, ("create", "edit"))
    if context == "detail":
        return _detail_data(doc)
    return None


def filter_context(doc: dict[str, Any], context: str | None) -> dict[str, Any]:
    """Return the document view for ``context``. Never aliases ``doc``."""
    names = parse_contexts(context)
    if not names or names == [FULL]:
        return copy.deepcopy(doc)

    if len(names) == 1:
        data = context_data(doc, names[0])
        if data is None:
            return copy.deepcopy(doc)
        result = base_metadata(doc)
        result.update(data)
        return result

    result = base_metadata(doc)
    result["actions"] = copy.deepcopy(doc.get("actions", []))
    contexts: dict[str, Any] = {}
    for name in names:
        data = context_data(doc, name)
        contexts[name] = copy.deepcopy(doc) if data is None else data
    result["contexts"] = contexts
    return result
