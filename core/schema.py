"""Schema descriptors: plain dicts describing the expected output shape.

A descriptor is a JSON-schema-like mapping with a ``type`` of ``string``,
``number``, ``integer``, ``boolean``, ``array`` or ``object``. Objects list
``properties`` (and optionally ``required``), arrays describe ``items``.
``nullable`` allows ``None`` and ``enum`` restricts allowed values.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from exceptions import SchemaValidationError

MOCK_STRING = "mock-string"
MOCK_NUMBER = 42


def validate_against_schema(data: Any, schema: Optional[Dict[str, Any]], path: str = "$") -> None:
    """Raise ``SchemaValidationError`` if ``data`` does not fit ``schema``."""
    if not schema:
        return

    if data is None:
        if schema.get("nullable"):
            return
        raise SchemaValidationError(f"{path}: expected {schema.get('type', 'value')}, got null")

    kind = schema.get("type")
    if kind == "string":
        ok = isinstance(data, str)
    elif kind in ("number", "integer"):
        ok = isinstance(data, (int, float)) and not isinstance(data, bool)
        if ok and kind == "integer" and isinstance(data, float):
            ok = data.is_integer()
    elif kind == "boolean":
        ok = isinstance(data, bool)
    elif kind == "array":
        ok = isinstance(data, list)
    elif kind == "object":
        ok = isinstance(data, dict)
    elif kind is None:
        ok = True
    else:
        raise SchemaValidationError(f"{path}: unsupported schema type '{kind}'")

    if not ok:
        raise SchemaValidationError(f"{path}: expected {kind}, got {type(data).__name__}")

    if "enum" in schema and data not in schema["enum"]:
        raise SchemaValidationError(f"{path}: {data!r} is not one of {schema['enum']}")

    if kind == "array" and schema.get("items"):
        for i, item in enumerate(data):
            validate_against_schema(item, schema["items"], f"{path}[{i}]")

    if kind == "object":
        for name in schema.get("required", []):
            if name not in data:
                raise SchemaValidationError(f"{path}.{name}: required field missing")
        for name, prop in (schema.get("properties") or {}).items():
            if name in data:
                validate_against_schema(data[name], prop, f"{path}.{name}")


def mock_from_schema(schema: Optional[Dict[str, Any]]) -> Any:
    """Synthesize a structurally valid placeholder value."""
    if not schema or not isinstance(schema, dict):
        return {}

    kind = schema.get("type")
    if schema.get("enum"):
        return schema["enum"][0]
    if kind == "string":
        return MOCK_STRING
    if kind in ("number", "integer"):
        return MOCK_NUMBER
    if kind == "boolean":
        return True
    if kind == "array":
        items = schema.get("items")
        if items:
            return [mock_from_schema(items), mock_from_schema(items)]
        return ["item1", "item2"]
    if kind == "object":
        return {
            name: mock_from_schema(prop)
            for name, prop in (schema.get("properties") or {}).items()
        }
    return None
