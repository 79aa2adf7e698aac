"""
Consumer client for the tool gateway.

Keeps the last known tool list (with its ETag) in a local cache, revalidates
it with conditional discovery requests, refreshes the CSRF token once when an
execution is rejected, and registers the full tool set with an agent runtime.
"""

from .cache import CachedTools, ToolsCache
from .client import BridgeClient, BridgeClientError, ModelContext, safe_tool_name

__all__ = [
    "BridgeClient",
    "BridgeClientError",
    "CachedTools",
    "ModelContext",
    "ToolsCache",
    "safe_tool_name",
]
