"""
Key-value store backends shared by the rate limiter, tool cache and settings.

Two implementations are provided: a Redis-backed store for multi-worker
deployments and a process-local store for single-worker hosts and tests.
Both expose the same atomic counter primitive so the rate limiter never
does read-modify-write across an await.
"""

import heapq
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis

from shared.logging import get_logger


# KEYS = counter keys, ARGV = limits (same order) followed by the TTL.
# Increments every key only when all of them are below their limit.
_INCREMENT_WITHIN_LIMITS = """
local n = #KEYS
for i = 1, n do
    local current = tonumber(redis.call('GET', KEYS[i]) or '0')
    if current >= tonumber(ARGV[i]) then
        return 0
    end
end
local ttl = tonumber(ARGV[n + 1])
for i = 1, n do
    redis.call('INCR', KEYS[i])
    if redis.call('TTL', KEYS[i]) < 0 then
        redis.call('EXPIRE', KEYS[i], ttl)
    end
end
return 1
"""


class KeyValueStore(ABC):
    """Interface for the shared counter/cache store."""

    @abstractmethod
    async def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value stored under key, or None."""

    @abstractmethod
    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a JSON-serializable value, optionally expiring after ttl seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a single key."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix; return how many were removed."""

    @abstractmethod
    async def get_int(self, key: str) -> int:
        """Return the integer counter stored under key (0 when absent)."""

    @abstractmethod
    async def increment_within_limits(self, limits: Dict[str, int], ttl: int) -> bool:
        """Atomically increment every counter in limits if all are below their limit."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""

    async def close(self) -> None:
        """Release any held connections."""


class RedisKeyValueStore(KeyValueStore):
    """Store backed by Redis."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("gateway.store")
        self._redis: Optional[redis.Redis] = None
        self._increment_script = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def get_json(self, key: str) -> Optional[Any]:
        redis_client = await self._get_redis()
        raw = await redis_client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        redis_client = await self._get_redis()
        payload = json.dumps(value)
        if ttl:
            await redis_client.setex(key, ttl, payload)
        else:
            await redis_client.set(key, payload)

    async def delete(self, key: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(key)

    async def delete_prefix(self, prefix: str) -> int:
        redis_client = await self._get_redis()
        keys = [key async for key in redis_client.scan_iter(match=f"{prefix}*")]
        if keys:
            await redis_client.delete(*keys)
            self.logger.info("Cleared keys by prefix", prefix=prefix, keys_count=len(keys))
        return len(keys)

    async def get_int(self, key: str) -> int:
        redis_client = await self._get_redis()
        value = await redis_client.get(key)
        return int(value) if value else 0

    async def increment_within_limits(self, limits: Dict[str, int], ttl: int) -> bool:
        redis_client = await self._get_redis()
        if self._increment_script is None:
            self._increment_script = redis_client.register_script(_INCREMENT_WITHIN_LIMITS)

        keys = list(limits.keys())
        args = [limits[key] for key in keys] + [ttl]
        result = await self._increment_script(keys=keys, args=args)
        return int(result) == 1

    async def ping(self) -> bool:
        redis_client = await self._get_redis()
        return bool(await redis_client.ping())

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._increment_script = None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Values are JSON round-tripped like the Redis store.

    Keys with a TTL are tracked in a min-heap of expiry times and swept on
    every write, so one-off counters do not accumulate.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._expiries: List[Tuple[float, str]] = []
        self._lock = threading.Lock()

    def _sweep(self) -> None:
        now = self._clock()
        while self._expiries and self._expiries[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiries)
            entry = self._data.get(key)
            # Skip heap entries left behind by an overwrite or delete.
            if entry is not None and entry[1] == expires_at:
                del self._data[key]

    def _put(self, key: str, payload: str, expires_at: Optional[float]) -> None:
        self._data[key] = (payload, expires_at)
        if expires_at is not None:
            heapq.heappush(self._expiries, (expires_at, key))

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return payload

    def _expiry(self, ttl: Optional[int]) -> Optional[float]:
        return self._clock() + ttl if ttl else None

    async def get_json(self, key: str) -> Optional[Any]:
        with self._lock:
            payload = self._live(key)
        return json.loads(payload) if payload is not None else None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._sweep()
            self._put(key, payload, self._expiry(ttl))

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._data if key.startswith(prefix)]
            for key in doomed:
                del self._data[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    async def get_int(self, key: str) -> int:
        with self._lock:
            payload = self._live(key)
        return int(payload) if payload is not None else 0

    async def increment_within_limits(self, limits: Dict[str, int], ttl: int) -> bool:
        with self._lock:
            self._sweep()
            counts = {}
            for key, limit in limits.items():
                payload = self._live(key)
                current = int(payload) if payload is not None else 0
                if current >= limit:
                    return False
                counts[key] = current

            for key, current in counts.items():
                if current:
                    self._data[key] = (str(current + 1), self._data[key][1])
                else:
                    self._put(key, "1", self._expiry(ttl))
        return True

    async def ping(self) -> bool:
        return True


def create_store(redis_url: Optional[str]) -> KeyValueStore:
    """Build the store for the configured backend."""
    if redis_url:
        return RedisKeyValueStore(redis_url)
    return InMemoryKeyValueStore()
