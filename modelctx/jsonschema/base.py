"""The common schema interface and the scalar JSON Schema types."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


class SchemaError(ValueError):
    """Raised when a value does not satisfy a schema or a schema cannot be serialised."""


def _decode(raw: Any) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as exc:
        raise SchemaError(f"unmarshal: {exc}") from exc


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _json_equal(a: Any, b: Any) -> bool:
    """Compare two decoded JSON values, keeping booleans distinct from numbers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) or _is_number(b):
        return _is_number(a) and _is_number(b) and a == b
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b
    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        if not (isinstance(a, (list, tuple)) and isinstance(b, (list, tuple))):
            return False
        return len(a) == len(b) and all(_json_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) or isinstance(b, dict):
        if not (isinstance(a, dict) and isinstance(b, dict)):
            return False
        return a.keys() == b.keys() and all(_json_equal(a[k], b[k]) for k in a)
    return a == b


class Schema(ABC):
    """A JSON Schema that can validate documents and describe itself as JSON."""

    def validate(self, raw: str | bytes | bytearray) -> Any:
        """Decode a JSON document, validate it and return the decoded value."""
        return self.validate_value(_decode(raw))

    @abstractmethod
    def validate_value(self, value: Any) -> Any:
        """Validate an already decoded value and return it unchanged."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Return the schema as a JSON-compatible dictionary."""

    def to_json(self) -> str:
        """Return the schema serialised as JSON text."""
        return json.dumps(self.to_dict())


@dataclass
class String(Schema):
    """A string schema with optional length limits (zero means no limit)."""

    description: str = ""
    min_length: int = 0
    max_length: int = 0

    def validate_value(self, value: Any) -> Any:
        if not isinstance(value, str):
            raise SchemaError("value is not a string")
        # Lengths are measured in UTF-8 bytes.
        length = len(value.encode("utf-8"))
        if self.min_length > 0 and length < self.min_length:
            raise SchemaError("string is too short")
        if self.max_length > 0 and length > self.max_length:
            raise SchemaError("string is too long")
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "string"}
        if self.description:
            result["description"] = self.description
        if self.min_length:
            result["minLength"] = self.min_length
        if self.max_length:
            result["maxLength"] = self.max_length
        return result


@dataclass
class Boolean(Schema):
    """A boolean schema."""

    description: str = ""

    def validate_value(self, value: Any) -> Any:
        if not isinstance(value, bool):
            raise SchemaError("value is not a boolean")
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "boolean"}
        if self.description:
            result["description"] = self.description
        return result


@dataclass
class Null(Schema):
    """A schema accepting only null."""

    description: str = ""

    def validate_value(self, value: Any) -> Any:
        if value is not None:
            raise SchemaError("value is not null")
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "null"}
        if self.description:
            result["description"] = self.description
        return result


@dataclass
class Const(Schema):
    """A schema accepting exactly one JSON value."""

    value: Any = None
    description: str = ""

    def validate_value(self, value: Any) -> Any:
        if not _json_equal(self.value, value):
            raise SchemaError("value does not match const value")
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.description:
            result["description"] = self.description
        result["const"] = self.value
        return result


def _check_bounds(
    number: float,
    minimum: Optional[float],
    maximum: Optional[float],
    exclusive_minimum: Optional[float],
    exclusive_maximum: Optional[float],
) -> None:
    if minimum is not None and number < minimum:
        raise SchemaError("number is less than minimum")
    if maximum is not None and number > maximum:
        raise SchemaError("number is greater than maximum")
    if exclusive_minimum is not None and number <= exclusive_minimum:
        raise SchemaError("number is less than or equal to exclusive minimum")
    if exclusive_maximum is not None and number >= exclusive_maximum:
        raise SchemaError("number is greater than or equal to exclusive maximum")


def _bounds_dict(type_name: str, schema: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"type": type_name}
    if schema.description:
        result["description"] = schema.description
    for key, bound in (
        ("minimum", schema.minimum),
        ("maximum", schema.maximum),
        ("exclusiveMinimum", schema.exclusive_minimum),
        ("exclusiveMaximum", schema.exclusive_maximum),
    ):
        if bound is not None:
            result[key] = bound
    return result


@dataclass
class Number(Schema):
    """A number schema with optional inclusive and exclusive bounds."""

    description: str = ""
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None

    def validate_value(self, value: Any) -> Any:
        if not _is_number(value):
            raise SchemaError("value is not a number")
        _check_bounds(
            value,
            self.minimum,
            self.maximum,
            self.exclusive_minimum,
            self.exclusive_maximum,
        )
        return value

    def to_dict(self) -> dict[str, Any]:
        return _bounds_dict("number", self)


@dataclass
class Integer(Schema):
    """An integer schema with optional inclusive and exclusive bounds."""

    description: str = ""
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    exclusive_minimum: Optional[int] = None
    exclusive_maximum: Optional[int] = None

    def validate_value(self, value: Any) -> Any:
        if not _is_number(value):
            raise SchemaError("value is not a number")
        if isinstance(value, float) and not value.is_integer():
            raise SchemaError("value is not an integer")
        _check_bounds(
            int(value),
            self.minimum,
            self.maximum,
            self.exclusive_minimum,
            self.exclusive_maximum,
        )
        return value

    def to_dict(self) -> dict[str, Any]:
        return _bounds_dict("integer", self)