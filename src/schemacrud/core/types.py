"""Field type registry: per-type transform, cast, validation and storage rules.

A handler converts a request value into the persisted representation
(``transform``) and a persisted value back into the response representation
(``cast``). Virtual types never map to a column.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from typing import Any

from passlib.context import CryptContext

from schemacrud.exceptions import InvalidInputError, UnknownFieldTypeError

STRING_OPERATORS = ["eq", "neq", "contains", "startsWith", "in", "isNull"]
TEXT_OPERATORS = ["contains", "isNull"]
CONTACT_OPERATORS = ["eq", "contains", "isNull"]
NUMERIC_OPERATORS = ["eq", "neq", "gt", "gte", "lt", "lte", "between", "in", "isNull"]
DATE_OPERATORS = ["eq", "gt", "gte", "lt", "lte", "between", "isNull"]
BOOLEAN_OPERATORS = ["eq", "isNull"]
KEY_OPERATORS = ["eq", "in", "notIn", "isNull"]

_TRUE_STRINGS = {"1", "true", "yes", "on", "y"}
_FALSE_STRINGS = {"0", "false", "no", "off", "n", ""}
_TEXTAREA_VARIANT = re.compile(r"^textarea(-r\d+)?(c\d+)?$")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class FieldTypeHandler:
    """Base handler; behaves like a plain string column."""

    name = "string"
    storage_type = "TEXT"
    query_operators: list[str] = STRING_OPERATORS
    virtual = False
    # False for types whose stored value must never be returned to callers
    readable = True

    def transform(self, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    def cast(self, value: Any) -> Any:
        return value

    def validation_rules(self) -> dict[str, Any]:
        return {}

    def is_virtual(self) -> bool:
        return self.virtual

    def supports(self, operator: str) -> bool:
        return operator in self.query_operators

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class StringType(FieldTypeHandler):
    name = "string"


class TextType(FieldTypeHandler):
    name = "text"
    query_operators = TEXT_OPERATORS


class EmailType(FieldTypeHandler):
    name = "email"
    query_operators = CONTACT_OPERATORS

    def transform(self, value: Any) -> Any:
        if value is None:
            return None
        return str(value).strip()

    def validation_rules(self) -> dict[str, Any]:
        return {"email": True}


class UrlType(EmailType):
    name = "url"

    def validation_rules(self) -> dict[str, Any]:
        return {"url": True}


class PhoneType(EmailType):
    name = "phone"

    def validation_rules(self) -> dict[str, Any]:
        return {"phone": True}


class IntegerType(FieldTypeHandler):
    name = "integer"
    storage_type = "INTEGER"
    query_operators = NUMERIC_OPERATORS

    def transform(self, value: Any) -> Any:
        if _is_blank(value):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidInputError(
                f"Value {value!r} is not an integer", {self.name: ["must be an integer"]}
            ) from None

    def cast(self, value: Any) -> Any:
        if value is None:
            return None
        return int(value)

    def validation_rules(self) -> dict[str, Any]:
        return {"integer": True}


class SmartLookupType(IntegerType):
    """Foreign key picked from another model; empty input clears the reference."""

    name = "smartlookup"
    query_operators = KEY_OPERATORS


class FloatType(FieldTypeHandler):
    name = "float"
    storage_type = "REAL"
    query_operators = NUMERIC_OPERATORS

    def transform(self, value: Any) -> Any:
        if _is_blank(value):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidInputError(
                f"Value {value!r} is not a number", {self.name: ["must be a number"]}
            ) from None

    def cast(self, value: Any) -> Any:
        if value is None:
            return None
        return float(value)

    def validation_rules(self) -> dict[str, Any]:
        return {"numeric": True}


class BooleanType(FieldTypeHandler):
    """Boolean column; the UI variant (checkbox, toggle, yesno) never changes storage."""

    name = "boolean"
    storage_type = "BOOLEAN"
    query_operators = BOOLEAN_OPERATORS

    def transform(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise InvalidInputError(
            f"Value {value!r} is not a boolean", {self.name: ["must be a boolean"]}
        )

    def cast(self, value: Any) -> Any:
        if value is None:
            return None
        return bool(value)


class DateType(FieldTypeHandler):
    name = "date"
    query_operators = DATE_OPERATORS

    def transform(self, value: Any) -> Any:
        if _is_blank(value):
            return None
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return str(value)

    def cast(self, value: Any) -> Any:
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value


class DateTimeType(DateType):
    name = "datetime"


class JsonType(FieldTypeHandler):
    name = "json"
    query_operators = ["isNull"]

    def transform(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            # Already-encoded documents are stored verbatim
            try:
                json.loads(value)
                return value
            except json.JSONDecodeError:
                pass
        return json.dumps(value)

    def cast(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value


class CurrencyType(FieldTypeHandler):
    """Money stored as integer minor units (cents)."""

    name = "currency"
    storage_type = "INTEGER"
    query_operators = NUMERIC_OPERATORS

    _STRIP = re.compile(r"[^0-9.\-]")

    def transform(self, value: Any) -> int:
        if value is None or value == "":
            return 0
        cleaned = self._STRIP.sub("", str(value))
        negative = cleaned.startswith("-")
        cleaned = cleaned.replace("-", "")

        parts = cleaned.split(".")
        whole = int(parts[0]) if parts[0] else 0
        fraction = parts[1] if len(parts) > 1 else ""
        cents = int(fraction[:2].ljust(2, "0"))

        amount = whole * 100 + cents
        return -amount if negative else amount

    def cast(self, value: Any) -> float:
        if value is None:
            return 0.0
        return float(value) / 100

    def validation_rules(self) -> dict[str, Any]:
        return {"numeric": True}


class PasswordType(FieldTypeHandler):
    """One-way hashed secret. Blank input means "leave unchanged"."""

    name = "password"
    query_operators: list[str] = []
    readable = False

    def __init__(self, context: CryptContext):
        self._context = context

    def transform(self, value: Any) -> Any:
        if _is_blank(value):
            return None
        return self._context.hash(str(value))

    def cast(self, value: Any) -> Any:
        return None

    def verify(self, plain: str, hashed: str) -> bool:
        return self._context.verify(plain, hashed)


class MultiSelectType(FieldTypeHandler):
    name = "multiselect"
    query_operators: list[str] = []
    virtual = True


class ComputedType(FieldTypeHandler):
    name = "computed"
    query_operators: list[str] = []
    virtual = True


class FieldTypeRegistry:
    """Maps type names to handlers.

    Built-in types are registered on construction. Registering an existing
    name replaces its handler, so applications can override built-ins.

    Example:
        registry = FieldTypeRegistry()
        registry.register("percent", PercentType())
        handler = registry.resolve("percent")
    """

    _ALIASES = {
        "int": "integer",
        "bool": "boolean",
        "decimal": "float",
        "number": "float",
        "textarea": "text",
    }

    def __init__(self, password_schemes: list[str] | None = None):
        self._handlers: dict[str, FieldTypeHandler] = {}
        self._password_context = CryptContext(
            schemes=password_schemes or ["pbkdf2_sha256"],
            deprecated="auto",
        )
        self._register_builtins()

    def _register_builtins(self) -> None:
        for handler in (
            StringType(),
            TextType(),
            EmailType(),
            UrlType(),
            PhoneType(),
            IntegerType(),
            SmartLookupType(),
            FloatType(),
            BooleanType(),
            DateType(),
            DateTimeType(),
            JsonType(),
            CurrencyType(),
            PasswordType(self._password_context),
            MultiSelectType(),
            ComputedType(),
        ):
            self.register(handler.name, handler)

    def register(self, type_name: str, handler: FieldTypeHandler) -> None:
        """Register a handler under ``type_name``."""
        if not type_name:
            raise ValueError("Field type name must not be empty")
        self._handlers[type_name] = handler

    def resolve(self, type_name: str) -> FieldTypeHandler:
        """Return the handler for ``type_name``.

        Raises:
            UnknownFieldTypeError: If the name is not registered.
        """
        handler = self._handlers.get(type_name)
        if handler is not None:
            return handler

        canonical = self._ALIASES.get(type_name)
        if canonical is None and isinstance(type_name, str) and _TEXTAREA_VARIANT.match(type_name):
            canonical = "text"
        if canonical is not None and canonical in self._handlers:
            return self._handlers[canonical]

        raise UnknownFieldTypeError(str(type_name), self.list_registered())

    def is_registered(self, type_name: str) -> bool:
        try:
            self.resolve(type_name)
        except UnknownFieldTypeError:
            return False
        return True

    def list_registered(self) -> list[str]:
        """List all registered type names."""
        return sorted(self._handlers.keys())
