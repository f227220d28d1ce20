"""
Redis-backed cache storage.

Layout (``ns`` is the configured namespace):
- ``{ns}:caches``: sorted set of cache names scored by creation time
- ``{ns}:cache:{name}``: hash of cache key -> JSON response snapshot
"""

import json
import time
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheStorageError
from shared.logging import get_logger
from .snapshots import RequestLike, cache_key
from .storage import CacheStorage, NamedCache


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisCache(NamedCache):
    """Named cache stored as a Redis hash."""

    def __init__(self, name: str, storage: "RedisCacheStorage"):
        super().__init__(name)
        self._storage = storage
        self._hash_key = storage.hash_key(name)

    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            redis_client = await self._storage._get_redis()
            payload = await redis_client.hget(self._hash_key, key)
        except RedisError as exc:
            raise CacheStorageError(self.name, f"read failed: {exc}") from exc

        if payload is None:
            return None
        try:
            return json.loads(payload)
        except (TypeError, json.JSONDecodeError):
            self._storage.logger.warning("Discarding unreadable cache entry", cache=self.name, key=key)
            return None

    async def _write(self, key: str, snapshot: Dict[str, Any]) -> None:
        try:
            redis_client = await self._storage._get_redis()
            await redis_client.hset(self._hash_key, key, json.dumps(snapshot))
        except RedisError as exc:
            raise CacheStorageError(self.name, f"write failed: {exc}") from exc

    async def delete(self, request: RequestLike) -> bool:
        try:
            redis_client = await self._storage._get_redis()
            removed = await redis_client.hdel(self._hash_key, cache_key(request))
        except RedisError as exc:
            raise CacheStorageError(self.name, f"delete failed: {exc}") from exc
        return bool(removed)

    async def keys(self) -> List[str]:
        try:
            redis_client = await self._storage._get_redis()
            keys = await redis_client.hkeys(self._hash_key)
        except RedisError as exc:
            raise CacheStorageError(self.name, f"keys failed: {exc}") from exc
        return [_decode(key) for key in keys]


class RedisCacheStorage(CacheStorage):
    """Cache storage shared by every worker process pointed at the same Redis."""

    def __init__(self, redis_url: str, namespace: str = "offline_cache"):
        self.redis_url = redis_url
        self.namespace = namespace
        self.logger = get_logger("offline_cache.redis_storage")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    @property
    def index_key(self) -> str:
        return f"{self.namespace}:caches"

    def hash_key(self, name: str) -> str:
        return f"{self.namespace}:cache:{name}"

    async def open(self, name: str) -> NamedCache:
        try:
            redis_client = await self._get_redis()
            created = await redis_client.zadd(self.index_key, {name: time.time()}, nx=True)
        except RedisError as exc:
            raise CacheStorageError(name, f"open failed: {exc}") from exc

        if created:
            self.logger.debug("Created cache", cache=name)
        return RedisCache(name, self)

    async def has(self, name: str) -> bool:
        try:
            redis_client = await self._get_redis()
            score = await redis_client.zscore(self.index_key, name)
        except RedisError as exc:
            raise CacheStorageError(name, f"lookup failed: {exc}") from exc
        return score is not None

    async def keys(self) -> List[str]:
        try:
            redis_client = await self._get_redis()
            names = await redis_client.zrange(self.index_key, 0, -1)
        except RedisError as exc:
            raise CacheStorageError("*", f"listing caches failed: {exc}") from exc
        return [_decode(name) for name in names]

    async def delete(self, name: str) -> bool:
        try:
            redis_client = await self._get_redis()
            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.delete(self.hash_key(name))
                pipeline.zrem(self.index_key, name)
                _, removed = await pipeline.execute()
        except RedisError as exc:
            raise CacheStorageError(name, f"delete failed: {exc}") from exc
        return bool(removed)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def check_health(self) -> str:
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            return "ok"
        except RedisError as exc:
            self.logger.error("Redis health check failed", error=str(exc))
            return "error"
