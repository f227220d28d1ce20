"""
Worker registration: which version is active, which is waiting.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

import httpx

from shared.errors import LifecycleError
from shared.logging import get_logger
from .clients import ClientRegistry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..worker import CacheWorker


class WorkerRegistration:
    """Holds the active and waiting worker versions for one site.

    A waiting worker is promoted when it asked to skip waiting, when there is
    no active worker, or once no connected client is controlled by the active
    worker any more.

    Install, promotion and activation run one job at a time, so at most one
    version is ever activating.
    """

    def __init__(
        self,
        network_fetch: Callable[[httpx.Request], Awaitable[httpx.Response]],
        clients: Optional[ClientRegistry] = None,
    ):
        self.network_fetch = network_fetch
        self.clients = clients or ClientRegistry()
        self.active: Optional["CacheWorker"] = None
        self.waiting: Optional["CacheWorker"] = None
        self._jobs = asyncio.Lock()
        self.logger = get_logger("offline_cache.registration")

    async def register(self, worker: "CacheWorker") -> "CacheWorker":
        """Install ``worker`` and activate it when allowed.

        An ``InstallError`` propagates and leaves the current workers untouched.
        """
        async with self._jobs:
            await worker.dispatch("install")

            if self.waiting is not None and self.waiting is not worker:
                self.logger.info(
                    "Replacing waiting worker",
                    previous=self.waiting.version.tag,
                    version=worker.version.tag,
                )
                self.waiting.lifecycle.mark_redundant()
            self.waiting = worker

            await self._maybe_promote()
        return worker

    async def _maybe_promote(self) -> None:
        worker = self.waiting
        if worker is None:
            return

        if worker.lifecycle.skip_waiting_requested:
            reason = "skip_waiting"
        elif self.active is None:
            reason = "no_active_worker"
        elif not self.clients.controlled_by(self.active.version.tag):
            reason = "no_clients"
        else:
            self.logger.info(
                "Worker waiting for clients to close",
                version=worker.version.tag,
                active=self.active.version.tag,
                clients=len(self.clients.controlled_by(self.active.version.tag)),
            )
            return

        await self._promote(worker, reason)

    async def _promote(self, worker: "CacheWorker", reason: str) -> None:
        previous = self.active
        self.waiting = None
        self.active = worker
        if previous is not None:
            previous.lifecycle.mark_redundant()

        self.logger.info(
            "Promoting worker",
            version=worker.version.tag,
            previous=previous.version.tag if previous else None,
            reason=reason,
        )
        await worker.dispatch("activate", self.clients)

    async def post_message(self, data: Any) -> Dict[str, Any]:
        """Deliver a control message to the waiting worker, else the active one."""
        worker = self.waiting or self.active
        if worker is None:
            raise LifecycleError("No worker is registered to receive messages")

        handled = await worker.dispatch("message", data)
        async with self._jobs:
            await self._maybe_promote()
        return {
            "handled": handled,
            "version": worker.version.tag,
            "state": worker.lifecycle.state.value,
        }

    async def fetch(self, request: httpx.Request, client_id: Optional[str] = None) -> httpx.Response:
        """Route a page request through the active worker.

        Requests arriving before any worker is active go straight to the network.
        """
        controller = self.active.version.tag if self.active else None
        if client_id:
            self.clients.connect(client_id, controller)

        if self.active is None:
            return await self.network_fetch(request)
        return await self.active.dispatch("fetch", request)

    async def disconnect(self, client_id: str) -> bool:
        """Forget a closed client; may let a waiting worker take over."""
        removed = self.clients.disconnect(client_id)
        if removed:
            async with self._jobs:
                await self._maybe_promote()
        return removed

    def status(self) -> Dict[str, Any]:
        def describe(worker: Optional["CacheWorker"]) -> Optional[Dict[str, Any]]:
            if worker is None:
                return None
            return {
                "version": worker.version.tag,
                "state": worker.lifecycle.state.value,
                "caches": list(worker.version.names),
                "skip_waiting": worker.lifecycle.skip_waiting_requested,
            }

        return {
            "active": describe(self.active),
            "waiting": describe(self.waiting),
            "clients": len(self.clients),
        }
