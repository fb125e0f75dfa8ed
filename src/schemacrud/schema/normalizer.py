"""Schema document normalization.

Turns an operator-authored document into its canonical form before
validation: schema-level defaults, field flag defaults, legacy attribute
names, boolean UI variants, visibility (``show_in``), relationship key
defaults and the default create/edit/delete actions.

The input document is never modified; every function returns a new dict.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA_DEFAULTS: dict[str, Any] = {
    "primary_key": "id",
    "timestamps": True,
    "soft_delete": False,
}

# Legacy boolean variants encode the widget in the type name
BOOLEAN_VARIANTS = {
    "boolean-tgl": "toggle",
    "boolean-toggle": "toggle",
    "boolean-chk": "checkbox",
    "boolean-sel": "select",
    "boolean-yn": "yesno",
}

# Attribute names accepted from ORM-style documents, mapped to canonical keys
_FIELD_ALIASES = {
    "autoIncrement": "auto_increment",
    "defaultValue": "default",
    "showIn": "show_in",
    "minLength": "min_length",
    "maxLength": "max_length",
}

_CONTEXT_FLAGS = ("list", "create", "edit", "detail")


def to_label(name: str) -> str:
    """Convert ``unit_price`` / ``unitPrice`` to ``Unit Price``."""
    result = []
    for i, char in enumerate(name):
        if char == "_":
            result.append(" ")
            continue
        if char.isupper() and i > 0 and name[i - 1] not in "_ ":
            result.append(" ")
        result.append(char)
    return "".join(result).strip().title()


def normalize_document(document: dict[str, Any]) -> dict[str, Any]:
    """Return the canonical form of a raw schema document."""
    doc = copy.deepcopy(document)

    for key, value in SCHEMA_DEFAULTS.items():
        doc.setdefault(key, value)

    model = doc.get("model")
    if isinstance(model, str) and model:
        doc.setdefault("title", model[:1].upper() + model[1:])
        doc.setdefault("singular_title", doc["title"])
    doc.setdefault("description", "")

    raw_fields = doc.get("fields")
    if isinstance(raw_fields, list):
        # List form: [{"name": "sku", ...}, ...]
        raw_fields = {
            f.get("name", ""): {k: v for k, v in f.items() if k != "name"}
            for f in raw_fields
            if isinstance(f, dict)
        }
    if isinstance(raw_fields, dict):
        fields: dict[str, Any] = {}
        for name, spec in raw_fields.items():
            if not isinstance(spec, dict):
                fields[name] = spec
                continue
            if spec.get("primaryKey") and "primary_key" not in document:
                doc["primary_key"] = name
            fields[name] = normalize_field(name, spec)
        doc["fields"] = fields

    if not isinstance(doc.get("permissions"), dict):
        doc["permissions"] = {}

    if isinstance(doc.get("relationships"), list):
        doc["relationships"] = [
            normalize_relationship(rel, str(model or ""))
            for rel in doc["relationships"]
            if isinstance(rel, dict)
        ]
    else:
        doc["relationships"] = []

    if isinstance(doc.get("details"), list):
        doc["details"] = [
            normalize_detail(det, str(model or ""))
            for det in doc["details"]
            if isinstance(det, dict)
        ]
    else:
        doc["details"] = []

    sort = doc.get("default_sort")
    if isinstance(sort, str):
        # "name" or "name:desc"
        field_name, _, direction = sort.partition(":")
        doc["default_sort"] = {field_name: (direction or "asc").lower()}
    elif not isinstance(sort, dict):
        doc["default_sort"] = {}

    doc["actions"] = add_default_actions(doc)
    return doc


def normalize_field(name: str, spec: dict[str, Any]) -> dict[str, Any]:
    """Apply defaults and legacy mappings to one field definition."""
    field = {_FIELD_ALIASES.get(k, k): v for k, v in spec.items()}
    field.pop("primaryKey", None)

    field_type = field.get("type", "string")
    if field_type in BOOLEAN_VARIANTS:
        field.setdefault("ui", BOOLEAN_VARIANTS[field_type])
        field_type = "boolean"
    elif field_type == "boolean":
        field.setdefault("ui", "checkbox")
    field["type"] = field_type

    if "nullable" in field:
        nullable = field.pop("nullable")
        field.setdefault("required", not nullable)

    validation = dict(field.get("validation") or {})
    validate = field.pop("validate", None)
    if isinstance(validate, dict):
        for key, value in validate.items():
            validation.setdefault(key, value)
    for key in ("min", "max", "min_length", "max_length", "pattern"):
        if key in field:
            validation.setdefault(key, field.pop(key))
    if "length" in field:
        validation.setdefault("max_length", field.pop("length"))
    if validation.get("required") and "required" not in field:
        field["required"] = True
    field["validation"] = validation

    field.setdefault("label", to_label(name))
    field.setdefault("required", False)
    field.setdefault("unique", False)
    field.setdefault("auto_increment", False)
    field.setdefault("readonly", False)
    field.setdefault("sortable", False)
    field.setdefault("filterable", False)
    field.setdefault("editable", not field["readonly"])

    show_in = field.get("show_in")
    if isinstance(show_in, list):
        expanded: list[str] = []
        for ctx in show_in:
            targets = ["create", "edit"] if ctx == "form" else [ctx]
            for target in targets:
                if target not in expanded:
                    expanded.append(target)
        field["show_in"] = expanded
        field.setdefault("listable", "list" in expanded)
        field.setdefault("viewable", "detail" in expanded)
    else:
        field.setdefault("listable", not field["readonly"])
        field.setdefault("viewable", True)

    if field_type == "password":
        field["listable"] = False
        field["viewable"] = False
        field["sortable"] = False
        field["filterable"] = False

    if not isinstance(field.get("show_in"), list):
        flags = {
            "list": field["listable"],
            "create": field["editable"] and not field["auto_increment"],
            "edit": field["editable"] and not field["auto_increment"],
            "detail": field["viewable"],
        }
        field["show_in"] = [ctx for ctx in _CONTEXT_FLAGS if flags[ctx]]
    elif field_type == "password":
        field["show_in"] = [c for c in field["show_in"] if c in ("create", "edit")]

    return field


def normalize_relationship(rel: dict[str, Any], model: str) -> dict[str, Any]:
    """Fill in target model and key defaults for one relationship."""
    rel = dict(rel)
    name = rel.get("name", "")
    rel.setdefault("model", name)
    rel_type = rel.get("type")
    if rel_type == "many_to_many":
        rel.setdefault("foreign_key", f"{model}_id")
        rel.setdefault("related_key", f"{name}_id")
        rel.setdefault("pivot_timestamps", False)
    elif rel_type == "has_many":
        rel.setdefault("foreign_key", f"{model}_id")
    return rel


def normalize_detail(det: dict[str, Any], model: str) -> dict[str, Any]:
    det = dict(det)
    det.setdefault("foreign_key", f"{model}_id")
    det.setdefault("list_fields", [])
    return det


def add_default_actions(doc: dict[str, Any]) -> list[dict[str, Any]]:
    """Prepend create/edit/delete actions for declared permissions.

    Skipped entirely when the document sets ``default_actions: false``;
    an action key the document already defines is never duplicated.
    """
    actions = [dict(a) for a in doc.get("actions") or [] if isinstance(a, dict)]
    actions = [_normalize_toggle(a, doc) for a in actions]

    if doc.get("default_actions") is False:
        return actions

    permissions = doc.get("permissions") or {}
    existing = {a.get("key") for a in actions}
    defaults: list[dict[str, Any]] = []

    if "create_action" not in existing and permissions.get("create"):
        defaults.append({
            "key": "create_action",
            "label": "Create",
            "icon": "plus",
            "type": "form",
            "style": "primary",
            "permission": permissions["create"],
            "modal_config": {"type": "form", "title": "Create"},
        })
    if "edit_action" not in existing and permissions.get("update"):
        defaults.append({
            "key": "edit_action",
            "label": "Edit",
            "icon": "pen-to-square",
            "type": "form",
            "style": "primary",
            "permission": permissions["update"],
            "modal_config": {"type": "form", "title": "Edit"},
        })
    if "delete_action" not in existing and permissions.get("delete"):
        defaults.append({
            "key": "delete_action",
            "label": "Delete",
            "icon": "trash",
            "type": "delete",
            "style": "danger",
            "permission": permissions["delete"],
            "confirm": "Are you sure you want to delete this record?",
            "modal_config": {"type": "confirm"},
        })

    if defaults:
        logger.debug(
            "Added default actions %s to model %s",
            [a["key"] for a in defaults],
            doc.get("model"),
        )
    return defaults + actions


def _normalize_toggle(action: dict[str, Any], doc: dict[str, Any]) -> dict[str, Any]:
    """Give boolean toggle actions a confirmation prompt when they lack one."""
    if action.get("type") != "field_update" or not action.get("toggle"):
        return action
    field_name = action.get("field")
    if not field_name:
        return action

    field = (doc.get("fields") or {}).get(field_name) or {}
    action.setdefault("field_label", field.get("label") or to_label(field_name))
    action.setdefault("confirm", f"Toggle {action['field_label']}?")
    modal = dict(action.get("modal_config") or {"buttons": "yes_no"})
    modal.setdefault("type", "confirm")
    action["modal_config"] = modal
    return action
