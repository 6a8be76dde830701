"""Array, map and object JSON Schema types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from modelctx.jsonschema.base import Schema, SchemaError


@dataclass
class Array(Schema):
    """An array schema whose items all satisfy one schema (zero limits mean none)."""

    items: Schema
    description: str = ""
    min_items: int = 0
    max_items: int = 0

    def validate_value(self, value: Any) -> Any:
        if not isinstance(value, list):
            raise SchemaError("value is not an array")
        if self.min_items > 0 and len(value) < self.min_items:
            raise SchemaError("array has too few items")
        if self.max_items > 0 and len(value) > self.max_items:
            raise SchemaError("array has too many items")
        for index, item in enumerate(value):
            try:
                self.items.validate_value(item)
            except SchemaError as exc:
                raise SchemaError(f"item {index}: {exc}") from exc
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "array"}
        if self.description:
            result["description"] = self.description
        if self.min_items:
            result["minItems"] = self.min_items
        if self.max_items:
            result["maxItems"] = self.max_items
        result["items"] = self.items.to_dict()
        return result


@dataclass
class Map(Schema):
    """An object schema with arbitrary keys whose values all satisfy one schema."""

    additional_properties: Schema
    description: str = ""

    def validate_value(self, value: Any) -> Any:
        if not isinstance(value, dict):
            raise SchemaError("value is not a object")
        for key, item in value.items():
            try:
                self.additional_properties.validate_value(item)
            except SchemaError as exc:
                raise SchemaError(f"validate value {key}: {exc}") from exc
        return value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": "object"}
        if self.description:
            result["description"] = self.description
        result["additionalProperties"] = self.additional_properties.to_dict()
        return result


@dataclass
class Object(Schema):
    """An object schema with fixed properties and no additional ones."""

    properties: dict[str, Schema] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    description: str = ""

    def validate_value(self, value: Any) -> Any:
        if not isinstance(value, dict):
            raise SchemaError("object is not a map")
        for name in self.required:
            if name not in value:
                raise SchemaError(f"required property {name} not found")
        for name in value:
            if name not in self.properties:
                raise SchemaError(f"unexpected property {name}")
        for name, schema in self.properties.items():
            if name not in value:
                continue
            try:
                schema.validate_value(value[name])
            except SchemaError as exc:
                raise SchemaError(f"property {name}: {exc}") from exc
        return value

    def to_dict(self) -> dict[str, Any]:
        for name in self.required:
            if name not in self.properties:
                raise SchemaError(f"required property {name} not found")
        result: dict[str, Any] = {"type": "object", "additionalProperties": False}
        if self.description:
            result["description"] = self.description
        result["properties"] = {
            name: schema.to_dict() for name, schema in self.properties.items()
        }
        if self.required:
            result["required"] = list(self.required)
        return result