"""
Unit tests for the warm-once cache orchestrator.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.metrics import MetricsCollector
from service_tenders.app.caching import (
    CACHE_MISS,
    CacheWarmer,
    NullCacheStore,
    RedisCacheStore,
    WarmTask,
)


class TestCacheWarmer:
    """Test cases for ``CacheWarmer``."""

    @pytest.mark.asyncio
    async def test_warm_once_fetches_a_key_once(self, redis_store):
        warmer = CacheWarmer(redis_store)
        fetcher = AsyncMock(return_value={"success": True, "data": []})
        task = WarmTask(key="v1:lpse-list", ttl_seconds=60, fetcher=fetcher)

        assert await warmer.warm_once(task) is True
        assert await warmer.warm_once(task) is False

        fetcher.assert_awaited_once()
        assert await redis_store.get("v1:lpse-list") == {"success": True, "data": []}
        await redis_store.close()

    @pytest.mark.asyncio
    async def test_concurrent_warms_fetch_once(self, redis_store):
        warmer = CacheWarmer(redis_store)
        calls = []

        async def fetcher():
            calls.append(1)
            await asyncio.sleep(0)
            return {"success": True}

        task = WarmTask(key="v1:stats", ttl_seconds=60, fetcher=fetcher)
        results = await asyncio.gather(*(warmer.warm_once(task) for _ in range(5)))

        assert results.count(True) == 1
        assert len(calls) == 1
        await redis_store.close()

    @pytest.mark.asyncio
    async def test_failed_fetch_unmarks_key(self, redis_store):
        warmer = CacheWarmer(redis_store)
        warmer.logger = MagicMock()
        fetcher = AsyncMock(side_effect=[RuntimeError("store down"), {"success": True}])
        task = WarmTask(key="v1:stats", ttl_seconds=60, fetcher=fetcher)

        assert await warmer.warm_once(task) is False
        assert warmer.is_warmed("v1:stats") is False
        warmer.logger.warning.assert_called_once()

        assert await warmer.warm_once(task) is True
        assert warmer.is_warmed("v1:stats") is True
        await redis_store.close()

    @pytest.mark.asyncio
    async def test_rejected_write_unmarks_key(self):
        store = MagicMock()
        store.available = True
        store.set = AsyncMock(return_value=False)
        warmer = CacheWarmer(store)

        task = WarmTask(key="v1:stats", ttl_seconds=60, fetcher=AsyncMock(return_value={}))

        assert await warmer.warm_once(task) is False
        assert warmer.is_warmed("v1:stats") is False

    @pytest.mark.asyncio
    async def test_disabled_warming_is_a_no_op(self, redis_store):
        warmer = CacheWarmer(redis_store, enabled=False)
        fetcher = AsyncMock()

        assert await warmer.warm_once(WarmTask("v1:stats", 60, fetcher)) is False
        fetcher.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unavailable_store_is_a_no_op(self):
        warmer = CacheWarmer(NullCacheStore())
        fetcher = AsyncMock()

        assert await warmer.warm_once(WarmTask("v1:stats", 60, fetcher)) is False
        assert warmer.schedule(WarmTask("v1:stats", 60, fetcher)) is None
        fetcher.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_outage_skips_fetch(self):
        def unreachable():
            client = MagicMock()
            client.ping = AsyncMock(side_effect=RedisConnectionError("connection refused"))
            client.aclose = AsyncMock()
            return client

        store = RedisCacheStore("redis://unreachable", client_factory=unreachable, reconnect_interval=60)
        store.logger = MagicMock()
        assert await store.get("v1:stats") is CACHE_MISS

        warmer = CacheWarmer(store)
        warmer.logger = MagicMock()
        fetcher = AsyncMock(return_value={"success": True})
        task = WarmTask("v1:lpse-list", 60, fetcher)

        for _ in range(3):
            assert await warmer.warm_once(task) is False
        assert warmer.schedule(task) is None

        fetcher.assert_not_awaited()
        warmer.logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_schedule_runs_detached_and_drains(self, redis_store):
        warmer = CacheWarmer(redis_store)
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return {"success": True}

        background = warmer.schedule(WarmTask("v1:stats", 60, fetcher))
        assert background is not None
        assert not background.done()
        assert await redis_store.get("v1:stats") is CACHE_MISS

        release.set()
        await warmer.drain()

        assert background.done()
        assert await redis_store.get("v1:stats") == {"success": True}
        await redis_store.close()

    @pytest.mark.asyncio
    async def test_reset_allows_rewarming(self, redis_store):
        warmer = CacheWarmer(redis_store)
        fetcher = AsyncMock(return_value={"success": True})
        task = WarmTask("v1:stats", 60, fetcher)

        await warmer.warm_once(task)
        warmer.reset()
        await warmer.warm_once(task)

        assert fetcher.await_count == 2
        await redis_store.close()

    @pytest.mark.asyncio
    async def test_records_warm_outcomes(self, redis_store):
        metrics = MetricsCollector("tenders")
        warmer = CacheWarmer(redis_store, metrics=metrics)

        await warmer.warm_once(WarmTask("v1:stats", 60, AsyncMock(return_value={})))
        await warmer.warm_once(WarmTask("v1:lpse-list", 60, AsyncMock(side_effect=RuntimeError("x"))))

        assert metrics.registry.get_sample_value("tender_cache_warm_total", {"result": "ok"}) == 1
        assert metrics.registry.get_sample_value("tender_cache_warm_total", {"result": "error"}) == 1
        await redis_store.close()
