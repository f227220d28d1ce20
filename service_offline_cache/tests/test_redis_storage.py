"""
Unit tests for the Redis cache storage backend.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from service_offline_cache.app.caching.redis_storage import RedisCacheStorage
from service_offline_cache.app.caching.snapshots import snapshot_response
from shared.errors import CacheStorageError
from shared.test_helpers import SITE_ORIGIN, make_request, make_response


class TestRedisCacheStorage:
    """Test cases for RedisCacheStorage."""

    @pytest.fixture
    def storage(self):
        """Create RedisCacheStorage instance."""
        return RedisCacheStorage("redis://localhost:6379/0", namespace="test_ns")

    @pytest.fixture
    def mock_redis(self):
        """Mock async Redis client."""
        client = MagicMock()
        for method in ("zadd", "zscore", "zrange", "hget", "hset", "hdel", "hkeys", "ping", "aclose"):
            setattr(client, method, AsyncMock())
        return client

    @pytest.mark.asyncio
    async def test_open_registers_cache_name(self, storage, mock_redis):
        """Opening a cache adds it to the index without overwriting its score."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.zadd.return_value = 1

            cache = await storage.open("kontrollitud-static-v1")

            assert cache.name == "kontrollitud-static-v1"
            args, kwargs = mock_redis.zadd.call_args
            assert args[0] == "test_ns:caches"
            assert "kontrollitud-static-v1" in args[1]
            assert kwargs == {"nx": True}

    @pytest.mark.asyncio
    async def test_keys_decodes_names(self, storage, mock_redis):
        """Cache names come back as strings in index order."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.zrange.return_value = [b"kontrollitud-static-v1", b"kontrollitud-dynamic-v1"]

            names = await storage.keys()

            assert names == ["kontrollitud-static-v1", "kontrollitud-dynamic-v1"]
            mock_redis.zrange.assert_called_once_with("test_ns:caches", 0, -1)

    @pytest.mark.asyncio
    async def test_has(self, storage, mock_redis):
        """A cache exists when it has a score in the index."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.zscore.return_value = None

            assert await storage.has("kontrollitud-static-v9") is False

            mock_redis.zscore.return_value = 1700000000.0
            assert await storage.has("kontrollitud-static-v1") is True

    @pytest.mark.asyncio
    async def test_put_writes_json_snapshot(self, storage, mock_redis):
        """Entries are stored as JSON snapshots in the cache's hash."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            cache = await storage.open("kontrollitud-dynamic-v1")

            await cache.put(make_request("/assets/app.js"), make_response(b"js", content_type="application/javascript"))

            hash_key, field, payload = mock_redis.hset.call_args.args
            assert hash_key == "test_ns:cache:kontrollitud-dynamic-v1"
            assert field == f"{SITE_ORIGIN}/assets/app.js"
            assert json.loads(payload)["status"] == 200

    @pytest.mark.asyncio
    async def test_match_restores_response(self, storage, mock_redis):
        """A stored snapshot is restored into a response."""
        request = make_request("/index.html")
        snapshot = snapshot_response(request, make_response(b"<html>shell</html>"))

        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.hget.return_value = json.dumps(snapshot).encode()
            cache = await storage.open("kontrollitud-static-v1")

            response = await cache.match(request)

            assert response.status_code == 200
            assert response.content == b"<html>shell</html>"
            mock_redis.hget.assert_called_once_with(
                "test_ns:cache:kontrollitud-static-v1", f"{SITE_ORIGIN}/index.html"
            )

    @pytest.mark.asyncio
    async def test_match_miss_and_corrupt_entry(self, storage, mock_redis):
        """Missing and unreadable entries are both misses."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            cache = await storage.open("kontrollitud-static-v1")

            mock_redis.hget.return_value = None
            assert await cache.match(make_request("/index.html")) is None

            mock_redis.hget.return_value = b"{not json"
            assert await cache.match(make_request("/index.html")) is None

    @pytest.mark.asyncio
    async def test_write_failure_raises_storage_error(self, storage, mock_redis):
        """Redis failures surface as CacheStorageError."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.hset.side_effect = RedisConnectionError("connection refused")
            cache = await storage.open("kontrollitud-dynamic-v1")

            with pytest.raises(CacheStorageError) as exc_info:
                await cache.put(make_request("/assets/app.js"), make_response(b"js"))

            assert exc_info.value.cache_name == "kontrollitud-dynamic-v1"

    @pytest.mark.asyncio
    async def test_delete_removes_hash_and_index_entry(self, storage, mock_redis):
        """Deleting a cache drops its hash and its index entry together."""
        pipeline = MagicMock()
        pipeline.execute = AsyncMock(return_value=[1, 1])
        pipeline_context = MagicMock()
        pipeline_context.__aenter__ = AsyncMock(return_value=pipeline)
        pipeline_context.__aexit__ = AsyncMock(return_value=False)
        mock_redis.pipeline = MagicMock(return_value=pipeline_context)

        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            assert await storage.delete("kontrollitud-static-v9") is True

            pipeline.delete.assert_called_once_with("test_ns:cache:kontrollitud-static-v9")
            pipeline.zrem.assert_called_once_with("test_ns:caches", "kontrollitud-static-v9")

            pipeline.execute.return_value = [0, 0]
            assert await storage.delete("kontrollitud-static-v9") is False

    @pytest.mark.asyncio
    async def test_keys_failure_raises_storage_error(self, storage, mock_redis):
        """Listing caches fails loudly when Redis is down."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis
            mock_redis.zrange.side_effect = RedisConnectionError("down")

            with pytest.raises(CacheStorageError):
                await storage.keys()

    @pytest.mark.asyncio
    async def test_check_health(self, storage, mock_redis):
        """Health reflects Redis ping."""
        with patch.object(storage, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            assert await storage.check_health() == "ok"

            mock_redis.ping.side_effect = RedisConnectionError("down")
            assert await storage.check_health() == "error"

    @pytest.mark.asyncio
    async def test_close_releases_connection(self, storage, mock_redis):
        """Closing drops the client so a later call reconnects."""
        storage._redis = mock_redis

        await storage.close()

        mock_redis.aclose.assert_called_once()
        assert storage._redis is None
