"""
Gateway cache manager for per-caller tool lists.
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .store import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TOOLS_TTL = 3600
TOOLS_PREFIX = "tool_gateway:tools:"


class CacheManager:
    """Manager for the gateway's tool-list cache group.

    Entries are keyed by registry revision and caller identity. A read
    failure is treated as a miss; a write failure is logged and ignored so
    discovery keeps working without the cache.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        metrics: Optional["MetricsCollector"] = None,
        tools_ttl: int = DEFAULT_TOOLS_TTL,
    ):
        self.store = store
        self.metrics = metrics
        self.tools_ttl = tools_ttl
        self.logger = get_logger("gateway.cache_manager")

    def _make_key(self, revision: int, cache_key: str) -> str:
        return f"{TOOLS_PREFIX}{revision}:{cache_key}"

    def _record(self, hit: bool) -> None:
        if self.metrics is None:
            return
        metric = "cache_hits_total" if hit else "cache_misses_total"
        self.metrics.increment_counter(metric, cache_type="tools")

    async def get_tools(self, revision: int, cache_key: str) -> Optional[List[Dict[str, Any]]]:
        """Get the cached tool list for a caller."""
        try:
            cached = await self.store.get_json(self._make_key(revision, cache_key))
        except Exception as exc:
            self.logger.error("Cache fetch error", cache_type="tools", error=str(exc))
            cached = None

        self._record(cached is not None)
        return cached

    async def set_tools(self, revision: int, cache_key: str, tools: List[Dict[str, Any]]) -> bool:
        """Cache the tool list for a caller."""
        try:
            await self.store.set_json(self._make_key(revision, cache_key), tools, ttl=self.tools_ttl)
        except Exception as exc:
            self.logger.error("Cache set error", cache_type="tools", error=str(exc))
            return False
        return True

    async def invalidate_tools(self) -> int:
        """Drop every cached tool list regardless of caller or revision."""
        try:
            removed = await self.store.delete_prefix(TOOLS_PREFIX)
        except Exception as exc:
            self.logger.error("Cache invalidation error", cache_type="tools", error=str(exc))
            return 0

        self.logger.info("Tool cache invalidated", keys_count=removed)
        return removed
