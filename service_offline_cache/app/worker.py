"""
Cache worker: the event dispatcher for one worker version.

The worker owns no ambient state. Its cache storage and network are injected,
and each event (install, activate, fetch, message) is routed to a handler that
delegates to the classifier, the cache controller or the lifecycle manager.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from shared.config import BaseConfig
from shared.errors import LifecycleError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation
from .caching.controller import CacheController
from .caching.storage import CacheStorage
from .classification.classifier import RequestClassifier
from .lifecycle.clients import ClientRegistry
from .lifecycle.manager import LifecycleManager
from .models import CacheVersion, WorkerState


class CacheWorker:
    """One versioned instance of the offline cache worker."""

    def __init__(
        self,
        version: CacheVersion,
        storage: CacheStorage,
        fetch: Callable[[httpx.Request], Awaitable[httpx.Response]],
        classifier: RequestClassifier,
        *,
        site_origin: str,
        manifest: List[str],
        offline_document: str = "/index.html",
        skip_waiting_on_install: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.version = version
        self.storage = storage
        self.classifier = classifier
        self.logger = get_logger("offline_cache.worker")
        self.controller = CacheController(
            version,
            storage,
            fetch,
            offline_document=offline_document,
            metrics=metrics,
        )
        self.lifecycle = LifecycleManager(
            version,
            storage,
            fetch,
            site_origin=site_origin,
            manifest=manifest,
            skip_waiting_on_install=skip_waiting_on_install,
            metrics=metrics,
        )
        self._handlers: Dict[str, Callable[..., Any]] = {
            "install": self.on_install,
            "activate": self.on_activate,
            "fetch": self.on_fetch,
            "message": self.on_message,
        }

    async def dispatch(self, event_type: str, *args: Any) -> Any:
        """Run the handler for ``event_type`` to completion."""
        handler = self._handlers.get(event_type)
        if handler is None:
            raise ValidationError(
                f"Unknown worker event '{event_type}'",
                details={"event": event_type, "supported": sorted(self._handlers)},
            )
        return await handler(*args)

    async def on_install(self) -> None:
        await self.lifecycle.install()

    async def on_activate(self, clients: ClientRegistry) -> List[str]:
        return await self.lifecycle.activate(clients)

    async def on_fetch(self, request: httpx.Request) -> httpx.Response:
        if self.lifecycle.state != WorkerState.ACTIVE:
            raise LifecycleError(
                f"Worker {self.version.tag} is not active",
                details={"version": self.version.tag, "state": self.lifecycle.state.value},
            )

        classified = self.classifier.classify(request)
        with trace_operation(
            "offline_cache.fetch",
            url=classified.url,
            handling_class=classified.handling_class.value,
            version=self.version.tag,
        ):
            return await self.controller.handle(classified)

    async def on_message(self, data: Any) -> bool:
        return self.lifecycle.handle_message(data)


def build_worker(
    config: BaseConfig,
    storage: CacheStorage,
    fetch: Callable[[httpx.Request], Awaitable[httpx.Response]],
    *,
    version: Optional[int] = None,
    metrics: Optional[MetricsCollector] = None,
) -> CacheWorker:
    """Assemble a worker for ``version`` (defaults to the configured version)."""
    classifier = RequestClassifier(
        config.site_origin,
        api_prefix=config.api_prefix,
        asset_extensions=config.asset_extensions,
    )
    return CacheWorker(
        CacheVersion(config.cache_prefix, version if version is not None else config.cache_version),
        storage,
        fetch,
        classifier,
        site_origin=config.site_origin,
        manifest=config.static_manifest,
        offline_document=config.offline_document,
        skip_waiting_on_install=config.skip_waiting_on_install,
        metrics=metrics,
    )
