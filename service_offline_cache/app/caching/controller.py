"""
Cache controller: routes classified requests to their strategy.
"""

from typing import Awaitable, Callable, Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import CacheVersion, ClassifiedRequest
from .storage import CacheStorage
from .strategies import STRATEGIES, StrategyContext


class CacheController:
    """Owns the versioned cache set for one worker version."""

    def __init__(
        self,
        version: CacheVersion,
        storage: CacheStorage,
        fetch: Callable[[httpx.Request], Awaitable[httpx.Response]],
        *,
        offline_document: str = "/index.html",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.version = version
        self.storage = storage
        self.logger = get_logger("offline_cache.controller")
        self.context = StrategyContext(
            storage=storage,
            version=version,
            fetch=fetch,
            offline_document=offline_document,
            metrics=metrics,
        )

    async def handle(self, classified: ClassifiedRequest) -> httpx.Response:
        """Apply the strategy registered for the request's handling class."""
        strategy = STRATEGIES[classified.handling_class]
        response = await strategy(classified, self.context)
        self.logger.debug(
            "Request handled",
            url=classified.url,
            handling_class=classified.handling_class.value,
            reason=classified.reason,
            status_code=response.status_code,
            version=self.version.tag,
        )
        return response
