"""Locate, parse, normalize, validate and build schema documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from schemacrud.core.types import FieldTypeRegistry
from schemacrud.exceptions import SchemaNotFoundError, SchemaValidationError
from schemacrud.schema.models import (
    ActionDefinition,
    DetailDefinition,
    FieldDefinition,
    RelationshipDefinition,
    Schema,
    freeze_mapping,
)
from schemacrud.schema.normalizer import normalize_document
from schemacrud.schema.validator import IDENTIFIER, validate_document

logger = logging.getLogger(__name__)

# Checked in order inside each directory
DOCUMENT_SUFFIXES = (".json", ".yaml", ".yml")


class SchemaLoader:
    """Loads model schemas from an ordered list of directories.

    The first directory holding a document for the model wins; documents in
    later directories are never merged in.
    """

    def __init__(
        self,
        schema_paths: list[Path] | Path,
        registry: FieldTypeRegistry | None = None,
    ):
        if isinstance(schema_paths, (str, Path)):
            schema_paths = [Path(schema_paths)]
        self.schema_paths = [Path(p) for p in schema_paths]
        self.registry = registry or FieldTypeRegistry()

    def find_document(self, model: str, connection: str | None = None) -> Path:
        """Return the path of the first document for ``model``.

        Raises:
            SchemaNotFoundError: If no directory holds one.
        """
        searched: list[str] = []
        if not isinstance(model, str) or not IDENTIFIER.match(model):
            raise SchemaNotFoundError(str(model))
        if connection is not None and not IDENTIFIER.match(connection):
            raise SchemaNotFoundError(f"{model}@{connection}")

        for directory in self.schema_paths:
            candidates = []
            if connection:
                candidates.extend(directory / connection / f"{model}{s}" for s in DOCUMENT_SUFFIXES)
            candidates.extend(directory / f"{model}{s}" for s in DOCUMENT_SUFFIXES)
            for path in candidates:
                searched.append(str(path))
                if path.is_file():
                    return path

        raise SchemaNotFoundError(model, searched)

    def read_document(self, path: Path, model: str) -> dict[str, Any]:
        """Parse a JSON or YAML document into a dict."""
        try:
            with path.open(encoding="utf-8") as fh:
                if path.suffix == ".json":
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise SchemaValidationError(model, [f"{path.name}: parse error: {exc}"]) from exc

        if not isinstance(data, dict):
            raise SchemaValidationError(model, [f"{path.name}: document must be an object"])
        return data

    def load_document(self, model: str, connection: str | None = None) -> dict[str, Any]:
        """Find, parse, normalize and validate the document for ``model``.

        Returns the normalized document; it is what external cache stores hold.
        """
        path = self.find_document(model, connection)
        logger.debug("Loading schema %s from %s", model, path)
        doc = normalize_document(self.read_document(path, model))
        if connection:
            doc["connection"] = connection

        issues = validate_document(doc, self.registry, expected_model=model, source=path)
        if issues:
            raise SchemaValidationError(
                model, [f"{i.path}: {i.message}" if i.path else i.message for i in issues]
            )
        return doc

    def load(self, model: str, connection: str | None = None) -> Schema:
        """Load and build the immutable Schema for ``model``."""
        return self.build(self.load_document(model, connection))

    def build(self, doc: dict[str, Any]) -> Schema:
        """Build a Schema from an already validated, normalized document."""
        model = doc["model"]
        fields = {name: self._resolve_field(name, spec) for name, spec in doc["fields"].items()}

        relationships = tuple(self._resolve_relationship(r) for r in doc.get("relationships", []))
        details = tuple(
            DetailDefinition(
                model=d["model"],
                foreign_key=d["foreign_key"],
                list_fields=tuple(f for f in d.get("list_fields", []) if f and f.strip()),
                title=d.get("title"),
            )
            for d in doc.get("details", [])
        )
        actions = tuple(
            ActionDefinition(
                key=a["key"],
                permission=a.get("permission"),
                type=a.get("type"),
                config=freeze_mapping({k: v for k, v in a.items() if k not in ("key", "permission", "type")}),
            )
            for a in doc.get("actions", [])
        )

        return Schema(
            model=model,
            table=doc["table"],
            fields=MappingProxyType(fields),
            primary_key=doc["primary_key"],
            timestamps=doc["timestamps"],
            soft_delete=doc["soft_delete"],
            permissions=freeze_mapping(doc.get("permissions")),
            relationships=relationships,
            details=details,
            actions=actions,
            title=doc.get("title", model),
            description=doc.get("description", ""),
            default_sort=tuple(
                (name, direction.lower()) for name, direction in doc.get("default_sort", {}).items()
            ),
            title_field=doc.get("title_field"),
            connection=doc.get("connection"),
            document=freeze_mapping(doc),
        )

    def list_models(self) -> list[str]:
        """Model names available across all schema directories."""
        names: set[str] = set()
        for directory in self.schema_paths:
            if not directory.is_dir():
                continue
            for suffix in DOCUMENT_SUFFIXES:
                names.update(p.stem for p in directory.glob(f"*{suffix}"))
        return sorted(names)

    def _resolve_field(self, name: str, spec: dict[str, Any]) -> FieldDefinition:
        return FieldDefinition(
            name=name,
            type=spec["type"],
            handler=self.registry.resolve(spec["type"]),
            label=spec.get("label", name),
            required=spec.get("required", False),
            unique=spec.get("unique", False),
            sortable=spec.get("sortable", False),
            filterable=spec.get("filterable", False),
            listable=spec.get("listable", True),
            viewable=spec.get("viewable", True),
            editable=spec.get("editable", True),
            readonly=spec.get("readonly", False),
            auto_increment=spec.get("auto_increment", False),
            default=spec.get("default"),
            show_in=tuple(spec.get("show_in", ())),
            ui=spec.get("ui"),
            validation=freeze_mapping(spec.get("validation")),
        )

    def _resolve_relationship(self, data: dict[str, Any]) -> RelationshipDefinition:
        return RelationshipDefinition(
            name=data["name"],
            type=data["type"],
            model=data.get("model", data["name"]),
            pivot_table=data.get("pivot_table"),
            foreign_key=data.get("foreign_key"),
            related_key=data.get("related_key"),
            pivot_timestamps=data.get("pivot_timestamps", False),
            through=data.get("through"),
            first_pivot_table=data.get("first_pivot_table"),
            first_foreign_key=data.get("first_foreign_key"),
            first_related_key=data.get("first_related_key"),
            second_pivot_table=data.get("second_pivot_table"),
            second_foreign_key=data.get("second_foreign_key"),
            second_related_key=data.get("second_related_key"),
            actions=freeze_mapping(data.get("actions")),
            title=data.get("title"),
        )
