"""
Two-level cache for upstream lookups (repository trees, index ids)

Entries always live in a bounded local dict. When Redis is enabled they are
also written through to Redis so several API workers share them.
"""

import json
import hashlib
import time
from typing import Dict, Any, Optional
from dataclasses import dataclass
from enum import Enum

import redis.asyncio as redis

from ...config import settings
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)

KEY_PREFIX = "legacylens"
MAX_LOCAL_ENTRIES = 1000


class CacheLevel(Enum):
    REPO_TREE = "repo_tree"
    GREPTILE_INDEX = "greptile_index"
    GREPTILE_QUERY = "greptile_query"


@dataclass
class CacheEntry:
    data: Any
    expires_at: float

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


class CacheManager:
    """Local dict cache with optional Redis write-through"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.redis_client: Optional[redis.Redis] = None
        self.enabled = False
        self.ttl_seconds = ttl_seconds or settings.cache_ttl_seconds
        self.local_cache: Dict[str, CacheEntry] = {}
        self.cache_stats = {"hits": 0, "misses": 0, "sets": 0, "errors": 0}

    async def initialize(self) -> bool:
        """Connect to Redis when enabled; the local cache works either way"""
        if not settings.redis_enabled:
            logger.info("Redis cache disabled, using in-memory cache only",
                        event_type=EventType.CACHE_OPERATION)
            return False

        try:
            self.redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            await self.redis_client.ping()
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to initialize Redis cache: {e}", event_type=EventType.CACHE_OPERATION)
            self.redis_client = None
            self.enabled = False
            return False

        self.enabled = True
        logger.info("Redis cache initialized", event_type=EventType.CACHE_OPERATION)
        return True

    def _generate_cache_key(
        self,
        cache_level: CacheLevel,
        target: str,
        additional_params: Optional[Dict] = None
    ) -> str:
        key = f"{KEY_PREFIX}:{cache_level.value}:{target}"
        if additional_params:
            params = json.dumps(additional_params, sort_keys=True)
            key = f"{key}:{hashlib.md5(params.encode()).hexdigest()}"
        return key

    async def get(
        self,
        cache_level: CacheLevel,
        target: str,
        additional_params: Optional[Dict] = None
    ) -> Optional[Any]:
        cache_key = self._generate_cache_key(cache_level, target, additional_params)

        entry = self.local_cache.get(cache_key)
        if entry is not None:
            if not entry.is_expired():
                self.cache_stats["hits"] += 1
                return entry.data
            del self.local_cache[cache_key]

        if self.enabled and self.redis_client:
            try:
                cached = await self.redis_client.get(cache_key)
            except redis.RedisError as e:
                logger.warning(f"Cache GET error for {cache_key}: {e}", event_type=EventType.CACHE_OPERATION)
                self.cache_stats["errors"] += 1
                cached = None
            if cached:
                self.cache_stats["hits"] += 1
                return json.loads(cached)

        self.cache_stats["misses"] += 1
        return None

    async def set(
        self,
        cache_level: CacheLevel,
        target: str,
        data: Any,
        additional_params: Optional[Dict] = None,
        custom_ttl: Optional[int] = None
    ) -> bool:
        cache_key = self._generate_cache_key(cache_level, target, additional_params)
        ttl = custom_ttl or self.ttl_seconds

        if len(self.local_cache) >= MAX_LOCAL_ENTRIES:
            self._evict_oldest()
        self.local_cache[cache_key] = CacheEntry(data=data, expires_at=time.time() + ttl)
        self.cache_stats["sets"] += 1

        if self.enabled and self.redis_client:
            try:
                await self.redis_client.setex(cache_key, ttl, json.dumps(data))
            except redis.RedisError as e:
                logger.warning(f"Cache SET error for {cache_key}: {e}", event_type=EventType.CACHE_OPERATION)
                self.cache_stats["errors"] += 1
                return False
        return True

    async def delete(
        self,
        cache_level: CacheLevel,
        target: str,
        additional_params: Optional[Dict] = None
    ) -> bool:
        cache_key = self._generate_cache_key(cache_level, target, additional_params)
        self.local_cache.pop(cache_key, None)

        if self.enabled and self.redis_client:
            try:
                await self.redis_client.delete(cache_key)
            except redis.RedisError as e:
                logger.warning(f"Cache DELETE error for {cache_key}: {e}", event_type=EventType.CACHE_OPERATION)
                return False
        return True

    async def clear_target_cache(self, target: str) -> int:
        """Drop every entry (any level) recorded for a target"""
        cleared = 0

        for key in [key for key in self.local_cache if key.split(":", 2)[-1].startswith(target)]:
            del self.local_cache[key]
            cleared += 1

        if self.enabled and self.redis_client:
            try:
                keys = await self.redis_client.keys(f"{KEY_PREFIX}:*:{target}*")
                if keys:
                    cleared += await self.redis_client.delete(*keys)
            except redis.RedisError as e:
                logger.warning(f"Error clearing cache for {target}: {e}", event_type=EventType.CACHE_OPERATION)

        logger.info(f"Cleared {cleared} cache entries for {target}", event_type=EventType.CACHE_OPERATION)
        return cleared

    def _evict_oldest(self):
        oldest_key = min(self.local_cache, key=lambda key: self.local_cache[key].expires_at)
        del self.local_cache[oldest_key]

    async def get_cache_stats(self) -> Dict[str, Any]:
        stats = dict(self.cache_stats)
        stats["redis_enabled"] = self.enabled
        stats["local_cache_size"] = len(self.local_cache)
        total_requests = stats["hits"] + stats["misses"]
        stats["hit_rate"] = stats["hits"] / total_requests if total_requests > 0 else 0.0
        return stats

    async def close(self):
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None
            self.enabled = False
            logger.info("Cache manager closed", event_type=EventType.CACHE_OPERATION)


# Global cache manager instance
cache_manager = CacheManager()
