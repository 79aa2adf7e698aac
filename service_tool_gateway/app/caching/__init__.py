"""
Gateway caching package.

Holds the shared key-value store backends and the per-caller tool-list
cache. Cached tool lists are coarse: any ability or settings change flushes
the whole group.
"""

from .store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore, create_store
from .cache_manager import CacheManager

__all__ = [
    "CacheManager",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "create_store",
]
