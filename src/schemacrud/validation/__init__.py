"""Input validation for schema-described records."""

from schemacrud.validation.fields import (
    FieldConstraintValidator,
    FieldError,
    ensure_valid,
    validate_record,
)

__all__ = ["FieldConstraintValidator", "FieldError", "ensure_valid", "validate_record"]
