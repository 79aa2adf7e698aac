"""
Fixed-window rate limiter for tool execution and discovery.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..caching.store import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


DEFAULT_EXECUTION_LIMIT = 30
DEFAULT_GLOBAL_CEILING = 100
DEFAULT_DISCOVERY_LIMIT = 60
DEFAULT_WINDOW_SECONDS = 60

GLOBAL_TOOL_KEY = "*"


def _limit_or_default(value: Optional[int], default: int) -> int:
    if value is None or value < 0:
        return default
    return int(value)


@dataclass
class RateLimitPolicy:
    """Limits applied per window. A limit of 0 denies everything."""

    execution_limit: int = DEFAULT_EXECUTION_LIMIT
    global_ceiling: int = DEFAULT_GLOBAL_CEILING
    discovery_limit: int = DEFAULT_DISCOVERY_LIMIT
    window_seconds: int = DEFAULT_WINDOW_SECONDS
    tool_limits: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self.execution_limit = _limit_or_default(self.execution_limit, DEFAULT_EXECUTION_LIMIT)
        self.global_ceiling = _limit_or_default(self.global_ceiling, DEFAULT_GLOBAL_CEILING)
        self.discovery_limit = _limit_or_default(self.discovery_limit, DEFAULT_DISCOVERY_LIMIT)
        if not self.window_seconds or self.window_seconds <= 0:
            self.window_seconds = DEFAULT_WINDOW_SECONDS
        self.tool_limits = {
            name: limit for name, limit in (self.tool_limits or {}).items()
            if limit is not None and limit >= 0
        }

    @classmethod
    def from_config(cls, config: "BaseConfig") -> "RateLimitPolicy":
        return cls(
            execution_limit=config.execution_rate_limit,
            global_ceiling=config.execution_global_ceiling,
            discovery_limit=config.discovery_rate_limit,
            window_seconds=config.rate_limit_window_seconds,
            tool_limits=dict(config.tool_rate_limits),
        )

    def limit_for(self, tool_name: str) -> int:
        return self.tool_limits.get(tool_name, self.execution_limit)


class FixedWindowRateLimiter:
    """Counts requests in fixed windows that reset when the counter TTL lapses.

    Storage failures fail open: the request is allowed and the error logged.
    """

    def __init__(
        self,
        store: KeyValueStore,
        policy: Optional[RateLimitPolicy] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.policy = policy or RateLimitPolicy()
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limiter")

    def _make_key(self, scope: str, *parts: Any) -> str:
        """Generate rate limit key."""
        return ":".join(["rate_limit", scope, *[str(part) for part in parts]])

    async def _consume(self, scope: str, limits: Dict[str, int], **context) -> bool:
        try:
            allowed = await self.store.increment_within_limits(limits, self.policy.window_seconds)
        except Exception as exc:
            self.logger.error("Rate limit store error; allowing request", scope=scope, error=str(exc), **context)
            if self.metrics:
                self.metrics.increment_counter("rate_limit_store_errors_total", scope=scope)
            return True

        if not allowed:
            self.logger.warning("Rate limit exceeded", scope=scope, **context)
            if self.metrics:
                self.metrics.increment_counter("rate_limit_hits_total", scope=scope)
        return allowed

    async def check_execution(self, subject: Any, tool_name: str) -> bool:
        """Consume one execution for (subject, tool) and the subject's global ceiling."""
        limits = {
            self._make_key("exec", subject, tool_name): self.policy.limit_for(tool_name),
            self._make_key("exec", subject, GLOBAL_TOOL_KEY): self.policy.global_ceiling,
        }
        return await self._consume("execution", limits, subject=str(subject), tool=tool_name)

    async def check_discovery(self, client_ip: str) -> bool:
        """Consume one discovery request for the client IP."""
        limits = {self._make_key("discovery", client_ip): self.policy.discovery_limit}
        return await self._consume("discovery", limits, client_ip=client_ip)

    async def get_execution_status(self, subject: Any, tool_name: str) -> Dict[str, Any]:
        """Current counts for a (subject, tool) pair."""
        limit = self.policy.limit_for(tool_name)
        count = await self.store.get_int(self._make_key("exec", subject, tool_name))
        global_count = await self.store.get_int(self._make_key("exec", subject, GLOBAL_TOOL_KEY))
        return {
            "current_count": count,
            "limit": limit,
            "remaining": max(0, limit - count),
            "global_count": global_count,
            "global_ceiling": self.policy.global_ceiling,
            "window_seconds": self.policy.window_seconds,
        }

    async def purge(self) -> int:
        """Delete every rate counter."""
        removed = await self.store.delete_prefix("rate_limit:")
        self.logger.info("Rate limit counters purged", keys_count=removed)
        return removed
