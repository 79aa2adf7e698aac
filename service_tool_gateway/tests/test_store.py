"""
Unit tests for the shared key-value store backends.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from service_tool_gateway.app.caching import (
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    create_store,
)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _aiter(items):
    for item in items:
        yield item


def test_create_store_picks_backend():
    assert isinstance(create_store(None), InMemoryKeyValueStore)
    assert isinstance(create_store("redis://localhost:6379/0"), RedisKeyValueStore)


class TestInMemoryKeyValueStore:
    """Test cases for InMemoryKeyValueStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return InMemoryKeyValueStore(clock=clock)

    @pytest.mark.asyncio
    async def test_json_roundtrip_and_expiry(self, store, clock):
        await store.set_json("k", {"a": [1, 2]}, ttl=10)
        assert await store.get_json("k") == {"a": [1, 2]}

        clock.now = 10
        assert await store.get_json("k") is None

    @pytest.mark.asyncio
    async def test_values_are_copies(self, store):
        value = {"tools": []}
        await store.set_json("k", value)
        value["tools"].append("mutated")
        assert await store.get_json("k") == {"tools": []}

    @pytest.mark.asyncio
    async def test_delete_prefix(self, store):
        await store.set_json("a:1", 1)
        await store.set_json("a:2", 2)
        await store.set_json("b:1", 3)

        assert await store.delete_prefix("a:") == 2
        assert await store.get_json("b:1") == 3

    @pytest.mark.asyncio
    async def test_increment_within_limits_is_all_or_nothing(self, store):
        limits = {"x": 1, "y": 5}
        assert await store.increment_within_limits(limits, ttl=60)
        assert not await store.increment_within_limits(limits, ttl=60)
        assert await store.get_int("x") == 1
        assert await store.get_int("y") == 1

    @pytest.mark.asyncio
    async def test_counter_ttl_set_on_creation_only(self, store, clock):
        await store.increment_within_limits({"x": 10}, ttl=60)
        clock.now = 30
        await store.increment_within_limits({"x": 10}, ttl=60)
        assert await store.get_int("x") == 2

        clock.now = 60
        assert await store.get_int("x") == 0

    @pytest.mark.asyncio
    async def test_expired_keys_swept_on_write(self, store, clock):
        for index in range(500):
            await store.increment_within_limits({f"rate:ip:{index}": 10}, ttl=60)
        await store.set_json("tools:1:anon", [], ttl=300)
        await store.set_json("settings", {"enabled": True})
        assert len(store) == 502

        clock.now = 3600
        await store.increment_within_limits({"rate:ip:fresh": 10}, ttl=60)
        assert len(store) == 2
        assert await store.get_json("settings") == {"enabled": True}

    @pytest.mark.asyncio
    async def test_overwritten_key_outlives_its_old_expiry(self, store, clock):
        await store.set_json("k", 1, ttl=10)
        clock.now = 5
        await store.set_json("k", 2, ttl=100)

        clock.now = 20
        await store.set_json("other", 0, ttl=100)
        assert await store.get_json("k") == 2

    @pytest.mark.asyncio
    async def test_ping(self, store):
        assert await store.ping() is True


class TestRedisKeyValueStore:
    """Test cases for RedisKeyValueStore."""

    @pytest.fixture
    def store(self):
        return RedisKeyValueStore("redis://localhost:6379/0")

    @pytest.mark.asyncio
    async def test_set_json_with_ttl_uses_setex(self, store):
        with patch.object(store, "_get_redis", new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis

            await store.set_json("k", {"a": 1}, ttl=30)
            mock_redis.setex.assert_awaited_once_with("k", 30, '{"a": 1}')

            await store.set_json("k", {"a": 1})
            mock_redis.set.assert_awaited_once_with("k", '{"a": 1}')

    @pytest.mark.asyncio
    async def test_get_json(self, store):
        with patch.object(store, "_get_redis", new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.get.return_value = '{"enabled": false}'

            assert await store.get_json("k") == {"enabled": False}

            mock_redis.get.return_value = None
            assert await store.get_json("k") is None

    @pytest.mark.asyncio
    async def test_delete_prefix_scans_and_deletes(self, store):
        with patch.object(store, "_get_redis", new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.scan_iter = MagicMock(return_value=_aiter(["rate_limit:a", "rate_limit:b"]))

            assert await store.delete_prefix("rate_limit:") == 2
            mock_redis.scan_iter.assert_called_once_with(match="rate_limit:*")
            mock_redis.delete.assert_awaited_once_with("rate_limit:a", "rate_limit:b")

    @pytest.mark.asyncio
    async def test_increment_within_limits_runs_script(self, store):
        with patch.object(store, "_get_redis", new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            script = AsyncMock(return_value=1)
            mock_redis.register_script = MagicMock(return_value=script)

            allowed = await store.increment_within_limits({"a": 30, "b": 100}, ttl=60)

            assert allowed is True
            script.assert_awaited_once_with(keys=["a", "b"], args=[30, 100, 60])

            script.return_value = 0
            assert await store.increment_within_limits({"a": 30, "b": 100}, ttl=60) is False
            mock_redis.register_script.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_int(self, store):
        with patch.object(store, "_get_redis", new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.get.return_value = "12"
            assert await store.get_int("k") == 12

            mock_redis.get.return_value = None
            assert await store.get_int("k") == 0
