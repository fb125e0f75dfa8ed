"""Immutable schema value types built by the loader."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from schemacrud.core.types import FieldTypeHandler

MANY_TO_MANY = "many_to_many"
HAS_MANY = "has_many"
BELONGS_TO_MANY_THROUGH = "belongs_to_many_through"
RELATIONSHIP_TYPES = (MANY_TO_MANY, HAS_MANY, BELONGS_TO_MANY_THROUGH)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"


def freeze_mapping(data: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Read-only deep copy of ``data``."""
    return MappingProxyType(copy.deepcopy(dict(data or {})))


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str
    handler: FieldTypeHandler = field(repr=False, compare=False)
    label: str = ""
    required: bool = False
    unique: bool = False
    sortable: bool = False
    filterable: bool = False
    listable: bool = True
    viewable: bool = True
    editable: bool = True
    readonly: bool = False
    auto_increment: bool = False
    default: Any = None
    show_in: tuple[str, ...] = ()
    ui: str | None = None
    validation: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_virtual(self) -> bool:
        return self.handler.is_virtual()

    @property
    def readable(self) -> bool:
        """Whether stored values may be returned to callers."""
        return self.handler.readable

    @property
    def writable(self) -> bool:
        return self.editable and not self.auto_increment and not self.is_virtual


@dataclass(frozen=True)
class RelationshipDefinition:
    """A named relationship from the owning model to ``model``.

    Which key attributes are populated depends on ``type``:
    many_to_many uses the pivot trio, has_many uses ``foreign_key`` only,
    and belongs_to_many_through uses the ``first_*``/``second_*`` hops.
    """

    name: str
    type: str
    model: str
    pivot_table: str | None = None
    foreign_key: str | None = None
    related_key: str | None = None
    pivot_timestamps: bool = False
    through: str | None = None
    first_pivot_table: str | None = None
    first_foreign_key: str | None = None
    first_related_key: str | None = None
    second_pivot_table: str | None = None
    second_foreign_key: str | None = None
    second_related_key: str | None = None
    actions: Mapping[str, Any] = field(default_factory=dict)
    title: str | None = None


@dataclass(frozen=True)
class DetailDefinition:
    """A nested one-to-many listing shown with a parent record."""

    model: str
    foreign_key: str
    list_fields: tuple[str, ...] = ()
    title: str | None = None


@dataclass(frozen=True)
class ActionDefinition:
    """A custom action. Everything except ``key`` and ``permission`` is opaque UI config."""

    key: str
    permission: str | None = None
    type: str | None = None
    config: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Schema:
    model: str
    table: str
    fields: Mapping[str, FieldDefinition]
    primary_key: str = "id"
    timestamps: bool = True
    soft_delete: bool = False
    permissions: Mapping[str, str] = field(default_factory=dict)
    relationships: tuple[RelationshipDefinition, ...] = ()
    details: tuple[DetailDefinition, ...] = ()
    actions: tuple[ActionDefinition, ...] = ()
    title: str = ""
    description: str = ""
    default_sort: tuple[tuple[str, str], ...] = ()
    title_field: str | None = None
    connection: str | None = None
    document: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def get_field(self, name: str) -> FieldDefinition | None:
        return self.fields.get(name)

    def get_relationship(self, name: str) -> RelationshipDefinition | None:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def get_detail(self, model: str) -> DetailDefinition | None:
        for det in self.details:
            if det.model == model:
                return det
        return None

    def get_action(self, key: str) -> ActionDefinition | None:
        for act in self.actions:
            if act.key == key:
                return act
        return None

    def column_fields(self) -> list[FieldDefinition]:
        """Fields backed by a real column, in declaration order."""
        return [f for f in self.fields.values() if not f.is_virtual]

    def sortable_fields(self) -> list[str]:
        return [n for n, f in self.fields.items() if n.strip() and f.sortable and not f.is_virtual]

    def filterable_fields(self) -> list[str]:
        return [n for n, f in self.fields.items() if n.strip() and f.filterable and not f.is_virtual]

    def listable_fields(self) -> list[str]:
        return [
            n
            for n, f in self.fields.items()
            if n.strip() and f.listable and f.readable and not f.is_virtual
        ]

    def to_dict(self) -> dict[str, Any]:
        """Return a deep copy of the normalized document."""
        return copy.deepcopy(dict(self.document))
