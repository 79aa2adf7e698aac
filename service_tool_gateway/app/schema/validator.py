"""
Input-schema sanitizer for tool definitions.

Schemas are JSON values: nested mappings and arrays of scalars. The
validator is pure; it never mutates its argument.
"""

import copy
from typing import Any, Dict, List, Mapping, Union

JsonScalar = Union[str, int, float, bool, None]
JsonValue = Union[JsonScalar, List["JsonValue"], Dict[str, "JsonValue"]]
Schema = Dict[str, JsonValue]

MAX_SCHEMA_DEPTH = 5
REF_KEY = "$ref"


def empty_object_schema() -> Schema:
    """Canonical schema for tools that take no (or unusable) input."""
    return {"type": "object", "properties": {}}


def schema_depth(value: JsonValue, depth: int = 1) -> int:
    """Maximum nesting of mappings/arrays; the top-level container is depth 1."""
    children = value.values() if isinstance(value, Mapping) else value
    deepest = depth
    for child in children:
        if isinstance(child, (Mapping, list, tuple)):
            deepest = max(deepest, schema_depth(child, depth + 1))
    return deepest


def schema_has_ref(value: JsonValue) -> bool:
    """True if a "$ref" key appears anywhere in the structure."""
    if isinstance(value, Mapping):
        if REF_KEY in value:
            return True
        return any(schema_has_ref(child) for child in value.values())
    if isinstance(value, (list, tuple)):
        return any(schema_has_ref(child) for child in value)
    return False


def _fix_empty_properties(schema: Dict[str, Any]) -> Dict[str, Any]:
    # Some agents reject [] where a properties object is expected.
    properties = schema.get("properties")
    if isinstance(properties, (Mapping, list, tuple)):
        if not properties:
            schema["properties"] = {}
        elif isinstance(properties, Mapping):
            schema["properties"] = {
                name: _fix_empty_properties(prop) if isinstance(prop, Mapping) else prop
                for name, prop in properties.items()
            }

    items = schema.get("items")
    if isinstance(items, Mapping):
        schema["items"] = _fix_empty_properties(items)

    return schema


def validate_schema(schema: Any) -> Schema:
    """Return a sanitized copy of schema, or the empty-object schema if unusable.

    Empty or non-mapping schemas, schemas nested deeper than
    MAX_SCHEMA_DEPTH, and schemas using "$ref" anywhere are all replaced by
    the canonical empty-object schema.
    """
    if not schema or not isinstance(schema, Mapping):
        return empty_object_schema()

    if schema_depth(schema) > MAX_SCHEMA_DEPTH:
        return empty_object_schema()

    if schema_has_ref(schema):
        return empty_object_schema()

    return _fix_empty_properties(copy.deepcopy(dict(schema)))
