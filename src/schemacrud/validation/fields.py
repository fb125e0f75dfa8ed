"""Field-level constraint validation.

Checks one record against its schema's field metadata:
- required: Field must have a non-empty value
- Type formats: email, url, phone, integer, numeric, date, datetime
- min/max: Numeric bounds
- min_length/max_length: String length bounds
- pattern: Regex pattern matching
"""

import re
from dataclasses import dataclass
from typing import Any

from schemacrud.exceptions import InvalidInputError
from schemacrud.schema.models import FieldDefinition, Schema


# =============================================================================
# Type-Specific Format Patterns
# =============================================================================

# Email: Basic RFC 5322 compliant pattern
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
)

# Phone: Flexible pattern supporting international formats
PHONE_PATTERN = re.compile(
    r"^[\+]?[(]?[0-9]{1,3}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,4}[-\s\.]?[0-9]{1,9}$"
)

# URL: Basic URL pattern
URL_PATTERN = re.compile(
    r"^https?://[^\s/$.?#].[^\s]*$",
    re.IGNORECASE
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")

_NUMERIC_TYPES = ("integer", "int", "float", "decimal", "number", "smartlookup")


@dataclass(frozen=True)
class FieldError:
    """A single field validation failure."""

    field: str
    message: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


def _is_empty(value: Any) -> bool:
    """Check if a value is considered empty."""
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, dict)) and len(value) == 0:
        return True
    return False


class FieldConstraintValidator:
    """Validates a single field value against its metadata constraints."""

    def __init__(self, field: FieldDefinition):
        self.field = field
        self.rules = {**field.handler.validation_rules(), **dict(field.validation)}

    def validate(self, value: Any) -> list[FieldError]:
        errors: list[FieldError] = []
        label = self.field.label or self.field.name

        if self.field.required and _is_empty(value):
            errors.append(FieldError(self.field.name, f"{label} is required", "REQUIRED"))
            return errors

        # Skip remaining validation if value is empty (optional field)
        if _is_empty(value):
            return errors

        type_error = self._validate_type_format(value, label)
        if type_error:
            errors.append(FieldError(self.field.name, type_error, f"INVALID_{self.field.type.upper()}"))
            return errors

        if self.rules.get("numeric") or self.rules.get("integer") or self.field.type in _NUMERIC_TYPES:
            errors.extend(self._validate_numeric_bounds(value, label))
        elif isinstance(value, str):
            errors.extend(self._validate_string_length(value, label))

        pattern = self.rules.get("pattern")
        if pattern and isinstance(value, str) and not re.search(pattern, value):
            errors.append(FieldError(
                self.field.name,
                self.rules.get("pattern_message") or f"{label} has an invalid format",
                "PATTERN",
            ))

        return errors

    def _validate_type_format(self, value: Any, label: str) -> str | None:
        """Validate value against type-specific format. Returns error message or None."""
        rules = self.rules

        if rules.get("email"):
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
                return f"{label} must be a valid email address"

        if rules.get("url"):
            if not isinstance(value, str) or not URL_PATTERN.match(value.strip()):
                return f"{label} must be a valid URL"

        if rules.get("phone"):
            if not isinstance(value, str) or not PHONE_PATTERN.match(value.strip()):
                return f"{label} must be a valid phone number"

        if rules.get("integer"):
            if isinstance(value, bool):
                return f"{label} must be an integer"
            try:
                int(value)
            except (TypeError, ValueError):
                return f"{label} must be an integer"

        elif rules.get("numeric") and self.field.type != "currency":
            if isinstance(value, bool):
                return f"{label} must be a number"
            try:
                float(value)
            except (TypeError, ValueError):
                return f"{label} must be a number"

        if self.field.type == "date" and isinstance(value, str):
            if not DATE_PATTERN.match(value):
                return f"{label} must be a valid date (YYYY-MM-DD)"

        if self.field.type == "datetime" and isinstance(value, str):
            if not DATETIME_PATTERN.match(value):
                return f"{label} must be a valid datetime"

        return None

    def _validate_numeric_bounds(self, value: Any, label: str) -> list[FieldError]:
        """Validate numeric min/max bounds."""
        if self.field.type == "currency":
            number = self.field.handler.cast(self.field.handler.transform(value))
        else:
            try:
                number = float(value)
            except (TypeError, ValueError):
                return []

        errors = []
        minimum = self.rules.get("min")
        maximum = self.rules.get("max")
        if minimum is not None and number < minimum:
            errors.append(FieldError(self.field.name, f"{label} must be at least {minimum}", "MIN_VALUE"))
        if maximum is not None and number > maximum:
            errors.append(FieldError(self.field.name, f"{label} must be at most {maximum}", "MAX_VALUE"))
        return errors

    def _validate_string_length(self, value: str, label: str) -> list[FieldError]:
        """Validate string length bounds."""
        errors = []
        min_length = self.rules.get("min_length")
        max_length = self.rules.get("max_length")
        if min_length is not None and len(value) < min_length:
            errors.append(FieldError(
                self.field.name, f"{label} must be at least {min_length} characters", "MIN_LENGTH"
            ))
        if max_length is not None and len(value) > max_length:
            errors.append(FieldError(
                self.field.name, f"{label} must be at most {max_length} characters", "MAX_LENGTH"
            ))
        return errors


def validate_record(schema: Schema, data: dict[str, Any], *, partial: bool = False) -> list[FieldError]:
    """Validate writable fields of ``data``.

    With ``partial`` (updates) only the fields present in ``data`` are checked.
    """
    errors: list[FieldError] = []
    for field in schema.column_fields():
        if not field.writable:
            continue
        if partial and field.name not in data:
            continue
        if field.type == "password" and partial and _is_empty(data.get(field.name)):
            # Blank password on update means "keep the current one"
            continue
        errors.extend(FieldConstraintValidator(field).validate(data.get(field.name)))
    return errors


def ensure_valid(schema: Schema, data: dict[str, Any], *, partial: bool = False) -> None:
    """Raise InvalidInputError listing every failing field."""
    errors = validate_record(schema, data, partial=partial)
    if not errors:
        return
    field_errors: dict[str, list[str]] = {}
    for error in errors:
        field_errors.setdefault(error.field, []).append(error.message)
    raise InvalidInputError(
        f"Validation failed for {schema.model}: {', '.join(sorted(field_errors))}",
        field_errors,
    )
