"""
schema/validator.py — structural and semantic validation of schema documents.

Structural checks run the normalized document through the bundled JSON
Schema (``schemas/model.schema.json``). Semantic checks cover what JSON
Schema cannot express: the model name matching the requested model, field
types resolving in the registry, SQL identifier safety and relationship key
requirements.

Usage:
    from schemacrud.schema.validator import validate_document

    issues = validate_document(doc, source=Path("schema/products.json"))
    for issue in issues:
        print(issue)
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from schemacrud.core.types import FieldTypeRegistry
from schemacrud.exceptions import UnknownFieldTypeError

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
_MODEL_SCHEMA = "model.schema.json"

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_THROUGH_KEYS = (
    "through",
    "first_pivot_table",
    "first_foreign_key",
    "first_related_key",
    "second_pivot_table",
    "second_foreign_key",
    "second_related_key",
)


@dataclass
class ValidationIssue:
    """A single validation finding for a schema document."""

    message: str
    path: str = ""              # location within the document, e.g. "fields/price/type"
    file: Path | None = None
    severity: str = "error"     # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        src = f" {self.file}" if self.file else ""
        return f"[{self.severity.upper()}]{src}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _model_validator() -> Draft202012Validator:
    with (_SCHEMAS_DIR / _MODEL_SCHEMA).open() as fh:
        schema = json.load(fh)
    registry = Registry().with_resource(
        schema["$id"], Resource(contents=schema, specification=DRAFT202012)
    )
    return Draft202012Validator(schema, registry=registry)


def _json_path(error: ValidationError) -> str:
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def _check_identifier(value: Any, path: str, issues: list[ValidationIssue]) -> None:
    if not isinstance(value, str) or not IDENTIFIER.match(value):
        issues.append(ValidationIssue(message=f"'{value}' is not a valid SQL identifier", path=path))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def structural_issues(doc: Any, *, source: Path | None = None) -> list[ValidationIssue]:
    """Validate ``doc`` against the bundled JSON Schema."""
    validator = _model_validator()
    return [
        ValidationIssue(message=error.message, path=_json_path(error), file=source)
        for error in sorted(validator.iter_errors(doc), key=lambda e: list(map(str, e.path)))
    ]


def semantic_issues(
    doc: dict[str, Any],
    registry: FieldTypeRegistry,
    *,
    expected_model: str | None = None,
    source: Path | None = None,
) -> list[ValidationIssue]:
    """Checks that need the type registry or cross-field knowledge."""
    issues: list[ValidationIssue] = []
    model = doc.get("model")

    if expected_model is not None and model != expected_model:
        issues.append(ValidationIssue(
            message=f"Schema declares model '{model}' but was loaded as '{expected_model}'",
            path="model",
        ))

    _check_identifier(doc.get("table"), "table", issues)
    _check_identifier(doc.get("primary_key"), "primary_key", issues)

    fields = doc.get("fields") or {}
    for name, spec in fields.items():
        _check_identifier(name, f"fields/{name}", issues)
        try:
            registry.resolve(spec.get("type"))
        except UnknownFieldTypeError as exc:
            issues.append(ValidationIssue(message=exc.message, path=f"fields/{name}/type"))

    pk = doc.get("primary_key")
    if fields and pk not in fields:
        issues.append(ValidationIssue(
            message=f"Primary key '{pk}' is not a declared field", path="primary_key"
        ))

    for field_name in (doc.get("default_sort") or {}):
        spec = fields.get(field_name)
        if spec is None:
            issues.append(ValidationIssue(
                message=f"default_sort references unknown field '{field_name}'",
                path="default_sort",
            ))
        elif registry.is_registered(spec.get("type")) and registry.resolve(spec["type"]).is_virtual():
            issues.append(ValidationIssue(
                message=f"default_sort cannot use virtual field '{field_name}'",
                path="default_sort",
            ))

    seen: set[str] = set()
    for i, rel in enumerate(doc.get("relationships") or []):
        name = rel.get("name", "")
        path = f"relationships[{i}]"
        if name in seen:
            issues.append(ValidationIssue(message=f"Duplicate relationship '{name}'", path=path))
        seen.add(name)

        rel_type = rel.get("type")
        if rel_type == "many_to_many":
            if not rel.get("pivot_table"):
                issues.append(ValidationIssue(
                    message=f"many_to_many relationship '{name}' requires pivot_table",
                    path=path,
                ))
            keys = ("pivot_table", "foreign_key", "related_key")
        elif rel_type == "belongs_to_many_through":
            for key in _THROUGH_KEYS:
                if not rel.get(key):
                    issues.append(ValidationIssue(
                        message=f"belongs_to_many_through relationship '{name}' requires {key}",
                        path=f"{path}/{key}",
                    ))
            keys = _THROUGH_KEYS[1:]
        else:
            keys = ("foreign_key",)
        for key in keys:
            if rel.get(key):
                _check_identifier(rel[key], f"{path}/{key}", issues)

    for i, det in enumerate(doc.get("details") or []):
        _check_identifier(det.get("foreign_key"), f"details[{i}]/foreign_key", issues)

    for issue in issues:
        issue.file = source
    return issues


def validate_document(
    doc: Any,
    registry: FieldTypeRegistry,
    *,
    expected_model: str | None = None,
    source: Path | None = None,
) -> list[ValidationIssue]:
    """Run structural checks, then semantic checks when the structure is sound."""
    issues = structural_issues(doc, source=source)
    if issues:
        logger.debug("%d structural issue(s) in %s", len(issues), source or "document")
        return issues
    return semantic_issues(doc, registry, expected_model=expected_model, source=source)
