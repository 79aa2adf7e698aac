"""
Ability to tool bridge.
"""

from .ability_bridge import AbilityBridge, ToolAnnotations, ToolDefinition, strip_tags

__all__ = ["AbilityBridge", "ToolAnnotations", "ToolDefinition", "strip_tags"]
