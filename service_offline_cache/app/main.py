"""
Offline cache service for the Kontrollitud.ee site.

Every page request is proxied through the active cache worker; worker admin
routes live under the configured admin prefix (``/_worker`` by default).
"""

from typing import Any, Dict, Optional

import httpx
from fastapi import Body, Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import InstallError, ValidationError
from shared.logging import set_client_context
from .adapters.network_client import NetworkClient
from .caching.redis_storage import RedisCacheStorage
from .caching.snapshots import STRIPPED_HEADERS
from .caching.storage import CacheStorage, MemoryCacheStorage
from .lifecycle.registration import WorkerRegistration
from .models import VersionUpdate
from .worker import CacheWorker, build_worker


PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_storage(config: ServiceConfig) -> CacheStorage:
    """Build the cache storage backend selected by configuration."""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return MemoryCacheStorage()
    if backend == "redis":
        return RedisCacheStorage(config.redis_url, namespace=config.redis_namespace)
    raise ValidationError(
        f"Unknown storage backend '{config.storage_backend}'",
        details={"supported": ["memory", "redis"]},
    )


class OfflineCacheService(BaseService):
    """Caching reverse proxy driven by the offline cache worker."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        storage: Optional[CacheStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("offline_cache", 8080, config)
        self.storage = storage or create_storage(self.config)
        self.network = NetworkClient(
            self.config.site_origin,
            self.config.upstream_url,
            timeout=self.config.upstream_timeout,
            transport=transport,
        )
        self.registration = WorkerRegistration(self.network.fetch)

        self._setup_worker_routes()
        self._setup_proxy_route()

        self.app.state.offline_cache_service = self

    def build_worker(self, version: Optional[int] = None) -> CacheWorker:
        return build_worker(
            self.config,
            self.storage,
            self.network.fetch,
            version=version,
            metrics=self.metrics,
        )

    async def on_startup(self) -> None:
        try:
            await self.registration.register(self.build_worker())
        except InstallError as exc:
            # Without an active worker every request goes straight to the network.
            self.logger.error("Initial worker install failed", error=exc.message, details=exc.details)

    async def on_shutdown(self) -> None:
        await self.network.close()
        await self.storage.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache_storage": await self.storage.check_health(),
            "worker": "ok" if self.registration.active else "error",
        }

    def _setup_worker_routes(self):
        """Set up worker admin routes."""
        prefix = self.config.admin_prefix

        @self.app.get(f"{prefix}/status")
        async def worker_status():
            """Active/waiting worker versions and existing caches."""
            status = self.registration.status()
            status["caches"] = await self.storage.keys()
            return status

        @self.app.post(f"{prefix}/message")
        async def post_message(data: Any = Body(None)):
            """Deliver a control message such as {"type": "SKIP_WAITING"}."""
            result = await self.registration.post_message(data)
            result["registration"] = self.registration.status()
            return result

        @self.app.post(f"{prefix}/update")
        async def update_worker(update: VersionUpdate):
            """Install a new worker version beside the running one."""
            current = [
                worker.version.number
                for worker in (self.registration.active, self.registration.waiting)
                if worker is not None
            ]
            if update.version in current:
                raise ValidationError(
                    f"Worker version v{update.version} is already registered",
                    details={"registered": current},
                )

            worker = await self.registration.register(self.build_worker(update.version))
            return {
                "version": worker.version.tag,
                "state": worker.lifecycle.state.value,
                "registration": self.registration.status(),
            }

        @self.app.delete(f"{prefix}/clients/{{client_id}}")
        async def disconnect_client(client_id: str):
            """A page client closed; a waiting worker may now take over."""
            disconnected = await self.registration.disconnect(client_id)
            return {"disconnected": disconnected, "registration": self.registration.status()}

    def _setup_proxy_route(self):
        """Route every other request through the cache worker."""

        @self.app.api_route("/{full_path:path}", methods=PROXY_METHODS)
        async def proxy(full_path: str, request: Request):
            client_id = request.headers.get("X-Client-Id")
            set_client_context(client_id)

            outgoing = await self._to_worker_request(request)
            response = await self.registration.fetch(outgoing, client_id)
            return self._to_page_response(response)

    async def _to_worker_request(self, request: Request) -> httpx.Request:
        """Rebuild the page's request as seen from the public site origin."""
        scheme = request.headers.get("X-Forwarded-Proto", request.url.scheme)
        host = request.headers.get("X-Forwarded-Host") or request.headers.get("host") or request.url.netloc
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"

        return httpx.Request(
            request.method,
            f"{scheme}://{host}{target}",
            headers=[(name, value) for name, value in request.headers.items()],
            content=await request.body(),
        )

    def _to_page_response(self, response: httpx.Response) -> Response:
        page_response = Response(content=response.content, status_code=response.status_code)
        for name, value in response.headers.multi_items():
            if name.lower() not in STRIPPED_HEADERS:
                page_response.headers.append(name, value)
        return page_response


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = OfflineCacheService(config)
    return service.app


def main():
    OfflineCacheService().run()


if __name__ == "__main__":
    main()
