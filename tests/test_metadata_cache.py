"""Tests for the per-run packument cache."""

import asyncio

from registry.memory import InMemoryRegistryClient
from sync.metadata_cache import MetadataCache
from sync.pool import run_bounded


def _registry(latency: float = 0.0) -> InMemoryRegistryClient:
    registry = InMemoryRegistryClient(latency=latency)
    registry.add_package("a", {"1.0.0": {}})
    registry.add_package("b", {"1.0.0": {}, "1.1.0": {}})
    return registry


class TestMetadataCache:
    """Coalescing and failure handling."""

    def test_concurrent_requests_share_one_fetch(self):
        registry = _registry(latency=0.01)
        cache = MetadataCache(registry)

        async def _run():
            return await asyncio.gather(*(cache.get("a") for _ in range(10)))

        results = asyncio.run(_run())
        assert all(r is results[0] for r in results)
        assert registry.call_count("packument", "a") == 1
        assert cache.fetch_count == 1

    def test_completed_entry_is_reused(self):
        registry = _registry()
        cache = MetadataCache(registry)

        async def _run():
            await cache.get("b")
            return await cache.get("b")

        packument = asyncio.run(_run())
        assert sorted(packument.versions) == ["1.0.0", "1.1.0"]
        assert registry.call_count("packument", "b") == 1
        assert "b" in cache
        assert cache.peek("b") is packument

    def test_failure_returns_none_and_is_not_cached(self):
        registry = _registry()
        registry.failing.add("a")
        cache = MetadataCache(registry)

        async def _run():
            first = await cache.get("a")
            registry.failing.discard("a")
            second = await cache.get("a")
            return first, second

        first, second = asyncio.run(_run())
        assert first is None
        assert second is not None
        assert registry.call_count("packument", "a") == 2

    def test_unknown_package(self):
        cache = MetadataCache(_registry())
        assert asyncio.run(cache.get("missing")) is None
        assert len(cache) == 0

    def test_prefetch_fetches_distinct_names(self):
        registry = _registry(latency=0.005)
        cache = MetadataCache(registry)

        asyncio.run(cache.prefetch(["a", "b", "a", "b"], concurrency=2))
        assert len(cache) == 2
        assert registry.call_count("packument", "a") == 1
        assert registry.call_count("packument", "b") == 1

    def test_pool_workers_coalesce_through_cache(self):
        registry = _registry(latency=0.01)
        cache = MetadataCache(registry)

        asyncio.run(run_bounded(["a"] * 8, cache.get, 4))
        assert registry.call_count("packument", "a") == 1

    def test_clear(self):
        cache = MetadataCache(_registry())
        asyncio.run(cache.get("a"))
        cache.clear()
        assert "a" not in cache
