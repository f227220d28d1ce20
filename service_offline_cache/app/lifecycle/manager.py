"""
Lifecycle state machine for a single worker version.
"""

from contextlib import nullcontext
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from shared.errors import CacheStorageError, InstallError, LifecycleError, NetworkError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation
from ..caching.storage import CacheStorage
from ..models import SKIP_WAITING, CacheVersion, ControlMessage, WorkerState
from .clients import ClientRegistry


class LifecycleManager:
    """Drives one worker version through NEW -> INSTALLING -> WAITING -> ACTIVATING -> ACTIVE.

    A failed install or a superseded version ends in REDUNDANT.
    """

    def __init__(
        self,
        version: CacheVersion,
        storage: CacheStorage,
        fetch: Callable[[httpx.Request], Awaitable[httpx.Response]],
        *,
        site_origin: str,
        manifest: Iterable[str],
        skip_waiting_on_install: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.version = version
        self.storage = storage
        self.fetch = fetch
        self.site_origin = httpx.URL(site_origin)
        self.manifest = list(manifest)
        self.skip_waiting_on_install = skip_waiting_on_install
        self.metrics = metrics
        self.logger = get_logger("offline_cache.lifecycle")
        self._state = WorkerState.NEW
        self._skip_waiting = False
        self._set_state(WorkerState.NEW)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def superseded(self) -> bool:
        return self._state == WorkerState.REDUNDANT

    @property
    def skip_waiting_requested(self) -> bool:
        return self._skip_waiting

    def _set_state(self, state: WorkerState) -> None:
        previous = self._state
        self._state = state
        if self.metrics:
            self.metrics.record_worker_state(
                self.version.tag,
                state.value,
                previous=previous.value if previous != state else None,
            )

    def _transition(self, expected: WorkerState, target: WorkerState) -> None:
        if self._state != expected:
            raise LifecycleError(
                f"Cannot move worker {self.version.tag} to {target.value} from {self._state.value}",
                details={"version": self.version.tag, "state": self._state.value, "target": target.value},
            )
        self._set_state(target)

    def _timed(self, phase: str):
        if self.metrics:
            return self.metrics.time_operation("offline_cache_lifecycle_duration_seconds", phase=phase)
        return nullcontext()

    def manifest_urls(self) -> List[httpx.URL]:
        return [self.site_origin.join(path) for path in self.manifest]

    async def install(self) -> None:
        """Pre-warm the static cache with the manifest, then wait (or skip waiting)."""
        self._transition(WorkerState.NEW, WorkerState.INSTALLING)
        self.logger.info("Installing worker", version=self.version.tag, cache=self.version.static_name)

        with trace_operation("offline_cache.install", version=self.version.tag), self._timed("install"):
            try:
                cache = await self.storage.open(self.version.static_name)
                await cache.add_all(self.manifest_urls(), self.fetch)
            except (CacheStorageError, NetworkError, ValidationError) as exc:
                self._set_state(WorkerState.REDUNDANT)
                self.logger.error("Worker install failed", version=self.version.tag, error=exc.message)
                raise InstallError(
                    f"Worker {self.version.tag} install failed: {exc.message}",
                    details={"version": self.version.tag, "cause": exc.code},
                ) from exc

        self._set_state(WorkerState.WAITING)
        self.logger.info("Static assets cached", version=self.version.tag, assets=len(self.manifest))

        if self.skip_waiting_on_install:
            self.skip_waiting()

    def skip_waiting(self) -> None:
        """Ask to be activated without waiting for clients of the old version to close."""
        if not self._skip_waiting:
            self.logger.info("Skip waiting requested", version=self.version.tag)
        self._skip_waiting = True

    async def activate(self, clients: ClientRegistry) -> List[str]:
        """Evict stale cache generations and claim every connected client.

        Storage failures during cleanup are logged; activation still completes.
        A worker superseded while activating stops evicting and stays redundant.
        Returns the names of the caches that were deleted.
        """
        self._transition(WorkerState.WAITING, WorkerState.ACTIVATING)
        self.logger.info("Activating worker", version=self.version.tag)

        evicted: List[str] = []
        with trace_operation("offline_cache.activate", version=self.version.tag), self._timed("activate"):
            try:
                for name in await self.storage.keys():
                    if self.superseded:
                        break
                    if self.version.owns(name):
                        continue
                    if await self.storage.delete(name):
                        self.logger.info("Deleted old cache", cache=name, version=self.version.tag)
                        evicted.append(name)

                if not self.superseded:
                    await self.storage.open(self.version.static_name)
                    await self.storage.open(self.version.dynamic_name)
            except CacheStorageError as exc:
                self.logger.error("Cache cleanup failed during activation", version=self.version.tag, error=exc.message)

        if evicted and self.metrics:
            self.metrics.increment_counter("offline_cache_evictions_total", amount=len(evicted))

        if self.superseded:
            self.logger.warning("Worker superseded during activation", version=self.version.tag, evicted=len(evicted))
            return evicted

        claimed = clients.claim(self.version.tag)
        self._set_state(WorkerState.ACTIVE)
        self.logger.info("Worker active", version=self.version.tag, evicted=len(evicted), clients_claimed=claimed)
        return evicted

    def handle_message(self, data: Any) -> bool:
        """Handle a control message from a page. Returns True if it was recognized."""
        try:
            message_type = ControlMessage.model_validate(data).type
        except PydanticValidationError:
            message_type = None

        if message_type == SKIP_WAITING:
            self.skip_waiting()
            return True

        self.logger.warning("Ignoring unknown control message", version=self.version.tag, message_type=message_type)
        return False

    def mark_redundant(self) -> None:
        if self._state != WorkerState.REDUNDANT:
            self.logger.info("Worker redundant", version=self.version.tag, previous_state=self._state.value)
            self._set_state(WorkerState.REDUNDANT)
