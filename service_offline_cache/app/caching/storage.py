"""
Cache storage boundary and the in-process backend.

``CacheStorage`` mirrors the browser Cache Storage API: a set of named
caches, each mapping normalized request URLs to stored responses.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from shared.errors import CacheStorageError, ValidationError
from .snapshots import RequestLike, as_request, cache_key, restore_response, snapshot_response


Fetcher = Callable[[httpx.Request], Awaitable[httpx.Response]]


class NamedCache(ABC):
    """A single named cache."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored snapshot for a key, or None."""

    @abstractmethod
    async def _write(self, key: str, snapshot: Dict[str, Any]) -> None:
        """Store a snapshot under a key, replacing any previous one."""

    @abstractmethod
    async def delete(self, request: RequestLike) -> bool:
        """Remove the entry for ``request``. Returns True if one existed."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """List the cache keys held by this cache."""

    async def match(self, request: RequestLike) -> Optional[httpx.Response]:
        """Return a fresh copy of the stored response for ``request``."""
        snapshot = await self._read(cache_key(request))
        if snapshot is None:
            return None
        return restore_response(snapshot, request)

    async def put(self, request: RequestLike, response: httpx.Response) -> None:
        """Store ``response`` for ``request``; the last writer wins."""
        request = as_request(request)
        if request.method.upper() != "GET":
            raise ValidationError(
                "Only GET requests can be cached",
                details={"cache": self.name, "method": request.method},
            )
        await self._write(cache_key(request), snapshot_response(request, response))

    async def add(self, request: RequestLike, fetch: Fetcher) -> None:
        """Fetch ``request`` and store the response."""
        await self.add_all([request], fetch)

    async def add_all(self, requests: Iterable[RequestLike], fetch: Fetcher) -> None:
        """Fetch every request and store all responses, or store nothing.

        Any network failure or non-2xx response rejects the whole batch
        before a single entry is written.
        """
        batch = [as_request(request) for request in requests]
        responses = await asyncio.gather(*(fetch(request) for request in batch))

        for request, response in zip(batch, responses):
            if not response.is_success:
                raise CacheStorageError(
                    self.name,
                    f"add_all rejected: {request.url} returned {response.status_code}",
                    details={"url": str(request.url), "status_code": response.status_code},
                )

        for request, response in zip(batch, responses):
            await self.put(request, response)


class CacheStorage(ABC):
    """The set of named caches owned by a worker deployment."""

    @abstractmethod
    async def open(self, name: str) -> NamedCache:
        """Return the cache called ``name``, creating it if needed."""

    @abstractmethod
    async def has(self, name: str) -> bool:
        """Whether a cache called ``name`` exists."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """Cache names in creation order."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete the cache called ``name``. Returns True if it existed."""

    async def match(self, request: RequestLike) -> Optional[httpx.Response]:
        """Search every cache, in creation order, for ``request``."""
        for name in await self.keys():
            cache = await self.open(name)
            response = await cache.match(request)
            if response is not None:
                return response
        return None

    async def close(self) -> None:
        """Release backend resources."""

    async def check_health(self) -> str:
        await self.keys()
        return "ok"


class MemoryCache(NamedCache):
    """Named cache held in process memory."""

    def __init__(self, name: str):
        super().__init__(name)
        self._entries: Dict[str, Dict[str, Any]] = {}

    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        return self._entries.get(key)

    async def _write(self, key: str, snapshot: Dict[str, Any]) -> None:
        self._entries[key] = snapshot

    async def delete(self, request: RequestLike) -> bool:
        return self._entries.pop(cache_key(request), None) is not None

    async def keys(self) -> List[str]:
        return list(self._entries)


class MemoryCacheStorage(CacheStorage):
    """Cache storage scoped to the current process."""

    def __init__(self):
        self._caches: Dict[str, MemoryCache] = {}

    async def open(self, name: str) -> NamedCache:
        if name not in self._caches:
            self._caches[name] = MemoryCache(name)
        return self._caches[name]

    async def has(self, name: str) -> bool:
        return name in self._caches

    async def keys(self) -> List[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None
