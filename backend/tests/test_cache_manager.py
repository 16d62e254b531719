"""
Tests for the local cache layer
"""

import pytest

from legacylens.core.cache.cache_manager import CacheManager, CacheLevel


class TestCacheManager:

    def setup_method(self):
        self.cache = CacheManager(ttl_seconds=60)

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        await self.cache.set(CacheLevel.REPO_TREE, "acme/widgets", ["a.js"])

        assert await self.cache.get(CacheLevel.REPO_TREE, "acme/widgets") == ["a.js"]
        assert await self.cache.get(CacheLevel.GREPTILE_QUERY, "acme/widgets") is None
        assert self.cache.cache_stats["hits"] == 1
        assert self.cache.cache_stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_expired_entries_are_dropped(self):
        await self.cache.set(CacheLevel.REPO_TREE, "acme/widgets", ["a.js"], custom_ttl=-1)

        assert await self.cache.get(CacheLevel.REPO_TREE, "acme/widgets") is None
        assert self.cache.local_cache == {}

    @pytest.mark.asyncio
    async def test_clear_target_cache(self):
        await self.cache.set(CacheLevel.REPO_TREE, "acme/widgets", ["a.js"])
        await self.cache.set(CacheLevel.GREPTILE_INDEX, "acme/widgets", "github:main:acme/widgets")
        await self.cache.set(CacheLevel.REPO_TREE, "other/repo", [])

        assert await self.cache.clear_target_cache("acme/widgets") == 2
        assert await self.cache.get(CacheLevel.REPO_TREE, "other/repo") == []

    @pytest.mark.asyncio
    async def test_delete(self):
        await self.cache.set(CacheLevel.GREPTILE_QUERY, "acme/widgets", [{"ruleId": "x"}])
        await self.cache.delete(CacheLevel.GREPTILE_QUERY, "acme/widgets")

        assert await self.cache.get(CacheLevel.GREPTILE_QUERY, "acme/widgets") is None

    @pytest.mark.asyncio
    async def test_initialize_without_redis(self):
        assert await self.cache.initialize() is False
        assert self.cache.enabled is False
