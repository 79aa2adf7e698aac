"""
Ability to tool conversion.

Turns registered abilities into externally safe tool definitions, applying
visibility, allow-list and permission filtering, and caches the resulting
list per caller.
"""

import hashlib
import json
import re
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_logger
from ..caching.cache_manager import CacheManager
from ..domain.abilities import Ability, AbilityRegistry
from ..domain.auth_middleware import Caller
from ..domain.hooks import GatewayHooks
from ..domain.settings_store import GatewaySettings, SettingsStore
from ..schema import validate_schema

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(text: str) -> str:
    """Remove markup, dropping script/style bodies entirely."""
    text = _SCRIPT_STYLE_RE.sub("", text or "")
    return _TAG_RE.sub("", text).strip()


class ToolAnnotations(BaseModel):
    model_config = ConfigDict(extra="allow")

    readOnlyHint: Optional[bool] = None


class ToolDefinition(BaseModel):
    """Tool as advertised to agents."""

    name: str
    description: str
    inputSchema: Dict[str, Any] = Field(default_factory=dict)
    annotations: Optional[ToolAnnotations] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AbilityBridge:
    """Builds and caches the tool list each caller is allowed to see."""

    def __init__(
        self,
        registry: AbilityRegistry,
        settings_store: SettingsStore,
        cache_manager: CacheManager,
        hooks: Optional[GatewayHooks] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.registry = registry
        self.settings_store = settings_store
        self.cache_manager = cache_manager
        self.hooks = hooks or GatewayHooks()
        self.metrics = metrics
        self.logger = get_logger("gateway.ability_bridge")

    async def list_tools_for_caller(self, caller: Caller) -> List[Dict[str, Any]]:
        """Tool definitions visible to caller, served from cache when possible."""
        revision = self.registry.revision
        cached = await self.cache_manager.get_tools(revision, caller.cache_key)
        if cached is not None:
            return cached

        tools = await self._build_tools(caller)
        await self.cache_manager.set_tools(revision, caller.cache_key, tools)
        return tools

    async def _build_tools(self, caller: Caller) -> List[Dict[str, Any]]:
        settings = await self.settings_store.get()
        tools = []
        for ability in self.registry.list():
            tool = await self.convert(ability.name, ability, caller, settings)
            if tool is not None:
                tools.append(tool)

        self.logger.debug("Tool list built", user_id=caller.cache_key, tools_count=len(tools))
        return tools

    async def convert(
        self,
        name: str,
        ability: Ability,
        caller: Caller,
        settings: Optional[GatewaySettings] = None,
    ) -> Optional[Dict[str, Any]]:
        """Tool definition for ability, or None when caller must not see it."""
        if ability.is_private:
            return None

        if settings is None:
            settings = await self.settings_store.get()
        if not settings.is_tool_exposed(name):
            return None

        try:
            permission = await ability.check_permissions(caller)
        except Exception as e:
            self.logger.warning("Permission check failed during discovery", tool=name, error=str(e))
            return None
        if permission is not True:
            return None

        definition = ToolDefinition(
            name=name,
            description=strip_tags(ability.description),
            inputSchema=validate_schema(ability.input_schema),
            annotations=ToolAnnotations(readOnlyHint=True) if ability.read_only else None,
        )

        tool = self.hooks.customize_tool_definition(definition.to_dict(), name, ability)

        if not self.hooks.should_expose(name, ability):
            return None

        return tool

    async def compute_etag(self, caller: Caller) -> str:
        return self.etag_for(await self.list_tools_for_caller(caller))

    @staticmethod
    def etag_for(tools: List[Dict[str, Any]]) -> str:
        """Content digest of a tool list; key order does not affect it."""
        payload = json.dumps(tools, sort_keys=True, separators=(",", ":"))
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    async def invalidate_cache(self) -> int:
        return await self.cache_manager.invalidate_tools()
