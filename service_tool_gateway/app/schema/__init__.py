"""
Schema utilities for tool definitions.
"""

from .validator import MAX_SCHEMA_DEPTH, empty_object_schema, validate_schema

__all__ = ["MAX_SCHEMA_DEPTH", "empty_object_schema", "validate_schema"]
