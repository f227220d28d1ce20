"""
Caching strategies, one per handling class.

Each strategy is a coroutine ``(classified, context) -> httpx.Response``.
Strategies never raise for cache failures: reads that fail count as misses
and writes that fail are logged and dropped, so a response obtained from the
network always reaches the page.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import httpx

from shared.errors import CacheStorageError, NetworkError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import CacheVersion, ClassifiedRequest, HandlingClass
from .snapshots import RequestLike, as_request
from .storage import CacheStorage


logger = get_logger("offline_cache.strategies")

NETWORK_ERROR_STATUS = 408
OFFLINE_STATUS = 503


@dataclass
class StrategyContext:
    """Everything a strategy needs: caches, network and the current version."""

    storage: CacheStorage
    version: CacheVersion
    fetch: Callable[[httpx.Request], Awaitable[httpx.Response]]
    offline_document: str = "/index.html"
    metrics: Optional[MetricsCollector] = field(default=None, repr=False)

    def record(self, handling_class: HandlingClass, source: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "offline_cache_responses_total",
                handling_class=handling_class.value,
                source=source,
            )


async def _lookup(context: StrategyContext, request: RequestLike) -> Optional[httpx.Response]:
    try:
        return await context.storage.match(request)
    except CacheStorageError as exc:
        logger.warning("Cache read failed, treating as miss", url=str(as_request(request).url), error=exc.message)
        return None


async def _store(context: StrategyContext, cache_name: str, request: httpx.Request, response: httpx.Response) -> bool:
    try:
        cache = await context.storage.open(cache_name)
        await cache.put(request, response)
        return True
    except CacheStorageError as exc:
        logger.error("Cache write failed", cache=cache_name, url=str(request.url), error=exc.message)
        if context.metrics:
            context.metrics.increment_counter("offline_cache_write_failures_total", cache=cache_name)
        return False


def synthetic_response(status_code: int, text: str, request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        status_code,
        text=text,
        headers={"Content-Type": "text/plain; charset=utf-8"},
        request=request,
    )


async def passthrough(classified: ClassifiedRequest, context: StrategyContext) -> httpx.Response:
    """Bypass: straight to the network, no cache access, failures propagate."""
    response = await context.fetch(classified.request)
    context.record(classified.handling_class, "bypass")
    return response


async def network_first(classified: ClassifiedRequest, context: StrategyContext) -> httpx.Response:
    """HTML documents: live when online, cached copy or offline document otherwise."""
    request = classified.request
    try:
        response = await context.fetch(request)
    except NetworkError as exc:
        logger.info("Document fetch failed, falling back to cache", url=classified.url, error=exc.message)

        cached = await _lookup(context, request)
        if cached is not None:
            context.record(classified.handling_class, "cache")
            return cached

        offline = await _lookup(context, request.url.join(context.offline_document))
        if offline is not None:
            context.record(classified.handling_class, "offline_document")
            return offline

        context.record(classified.handling_class, "offline")
        return synthetic_response(OFFLINE_STATUS, "Offline", request)

    if response.status_code == 200:
        await _store(context, context.version.static_name, request, response)
    context.record(classified.handling_class, "network")
    return response


async def cache_first(classified: ClassifiedRequest, context: StrategyContext) -> httpx.Response:
    """Static assets: serve any cached copy without touching the network."""
    request = classified.request
    cached = await _lookup(context, request)
    if cached is not None:
        context.record(classified.handling_class, "cache")
        return cached

    # A NetworkError here propagates; the page's own resource loading handles it.
    response = await context.fetch(request)
    if response.status_code == 200:
        await _store(context, context.version.dynamic_name, request, response)
    context.record(classified.handling_class, "network")
    return response


async def network_only(classified: ClassifiedRequest, context: StrategyContext) -> httpx.Response:
    """Everything else: network with a synthetic 408 on failure, no caching."""
    try:
        response = await context.fetch(classified.request)
    except NetworkError:
        context.record(classified.handling_class, "synthetic")
        return synthetic_response(NETWORK_ERROR_STATUS, "Network error", classified.request)

    context.record(classified.handling_class, "network")
    return response


STRATEGIES = {
    HandlingClass.BYPASS: passthrough,
    HandlingClass.DOCUMENT: network_first,
    HandlingClass.ASSET: cache_first,
    HandlingClass.DEFAULT: network_only,
}
