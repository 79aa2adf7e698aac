"""
Administrator-controlled gateway settings backed by the shared store.
"""

import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from shared.logging import get_logger
from ..caching.store import KeyValueStore


SETTINGS_KEY = "tool_gateway:settings"

SettingsListener = Callable[["GatewaySettings"], Union[None, Awaitable[None]]]


class GatewaySettings(BaseModel):
    """Gateway switches. An empty allow-list exposes every tool."""

    enabled: bool = True
    discovery_public: bool = False
    exposed_tools: List[str] = Field(default_factory=list)

    @field_validator("exposed_tools", mode="before")
    @classmethod
    def _sanitize_exposed_tools(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple, set)):
            return []

        cleaned: List[str] = []
        for item in value:
            if not isinstance(item, str):
                continue
            item = item.strip()
            if item and item not in cleaned:
                cleaned.append(item)
        return cleaned

    def is_tool_exposed(self, name: str) -> bool:
        return not self.exposed_tools or name in self.exposed_tools


class SettingsStore:
    """Reads and writes GatewaySettings; notifies listeners after each update."""

    def __init__(self, store: KeyValueStore, defaults: Optional[GatewaySettings] = None):
        self.store = store
        self.defaults = defaults or GatewaySettings()
        self._listeners: List[SettingsListener] = []
        self.logger = get_logger("gateway.settings")

    def add_listener(self, listener: SettingsListener) -> SettingsListener:
        self._listeners.append(listener)
        return listener

    async def get(self) -> GatewaySettings:
        """Stored settings merged over the defaults; the defaults when the store is unreachable."""
        try:
            return await self._load()
        except Exception as exc:
            self.logger.error("Settings fetch error; using defaults", error=str(exc))
            return self.defaults.model_copy(deep=True)

    async def _load(self) -> GatewaySettings:
        document = await self.store.get_json(SETTINGS_KEY)
        if not isinstance(document, dict):
            return self.defaults.model_copy(deep=True)

        merged = self.defaults.model_dump()
        merged.update({key: value for key, value in document.items() if key in merged})
        return GatewaySettings.model_validate(merged)

    async def update(self, **changes: Any) -> GatewaySettings:
        unknown = set(changes) - set(GatewaySettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        # Strict read: store errors propagate to the caller.
        current = await self._load()

        updated = GatewaySettings.model_validate({**current.model_dump(), **changes})
        await self.store.set_json(SETTINGS_KEY, updated.model_dump())

        self.logger.info(
            "Gateway settings updated",
            enabled=updated.enabled,
            discovery_public=updated.discovery_public,
            exposed_tools=len(updated.exposed_tools),
        )

        for listener in self._listeners:
            result = listener(updated)
            if inspect.isawaitable(result):
                await result
        return updated

    async def purge(self) -> None:
        await self.store.delete(SETTINGS_KEY)
        self.logger.info("Gateway settings removed")
