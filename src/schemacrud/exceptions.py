"""Typed error hierarchy for schemacrud.

Every error carries a human-readable message, a JSON-serializable context
dict and the HTTP-ish status an outer layer should map it to.
"""

from __future__ import annotations

from typing import Any


class SchemaCrudError(Exception):
    """Base exception for all schemacrud errors."""

    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as a JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status": self.status_code,
            "context": self.context,
        }


class SchemaNotFoundError(SchemaCrudError):
    """No schema document exists for the requested model."""

    status_code = 404

    def __init__(self, model: str, searched: list[str] | None = None) -> None:
        searched = searched or []
        message = f"Schema not found for model '{model}'"
        if searched:
            message += f" (searched: {', '.join(searched)})"
        super().__init__(message, {"model": model, "searched": searched})
        self.model = model


class UnknownFieldTypeError(SchemaCrudError):
    """A field type name is not registered."""

    status_code = 422

    def __init__(self, type_name: str, available: list[str] | None = None) -> None:
        available = available or []
        message = f"Unknown field type '{type_name}'"
        if available:
            message += f". Registered types: {', '.join(available)}"
        super().__init__(message, {"type": type_name, "available": available})
        self.type_name = type_name


class SchemaValidationError(SchemaCrudError):
    """A schema document is structurally or semantically invalid.

    ``issues`` lists one message per offending field or relationship.
    """

    status_code = 422

    def __init__(self, model: str, issues: list[str]) -> None:
        message = f"Invalid schema for model '{model}': " + "; ".join(issues)
        super().__init__(message, {"model": model, "issues": list(issues)})
        self.model = model
        self.issues = list(issues)


class RecordNotFoundError(SchemaCrudError):
    """Primary-key lookup found no (visible) row."""

    status_code = 404

    def __init__(self, model: str, record_id: Any) -> None:
        super().__init__(
            f"No {model} record found with id '{record_id}'",
            {"model": model, "id": record_id},
        )
        self.model = model
        self.record_id = record_id


class RelationshipConfigError(SchemaCrudError):
    """A relationship is absent or has the wrong type for the operation."""

    status_code = 400

    def __init__(self, model: str, relation: str, reason: str) -> None:
        super().__init__(
            f"Relationship '{relation}' on '{model}': {reason}",
            {"model": model, "relation": relation},
        )
        self.model = model
        self.relation = relation


class InvalidInputError(SchemaCrudError):
    """Caller-supplied input is malformed or fails field validation."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field_errors: dict[str, list[str]] | None = None,
    ) -> None:
        field_errors = field_errors or {}
        super().__init__(message, {"field_errors": field_errors})
        self.field_errors = field_errors


class ForbiddenError(SchemaCrudError):
    """The principal lacks the permission required for an action."""

    status_code = 403

    def __init__(self, model: str, action: str, permission: str) -> None:
        super().__init__(
            f"Access denied: action '{action}' on '{model}' requires permission '{permission}'",
            {"model": model, "action": action, "permission": permission},
        )
        self.model = model
        self.action = action
        self.permission = permission
