"""
Network client used by the cache worker to reach the site's upstream origin.
"""

from typing import Optional

import httpx

from shared.errors import NetworkError
from shared.logging import get_logger
from ..caching.snapshots import STRIPPED_HEADERS
from ..classification.classifier import origin_of


# Hop-by-hop headers are never forwarded upstream.
REQUEST_HEADERS_DROPPED = frozenset({"host", "connection", "keep-alive", "content-length", "transfer-encoding"})


class NetworkClient:
    """Forwards worker fetches to the network.

    Same-origin requests are sent to ``upstream_url`` with the path and query
    preserved; cross-origin requests go to their own URL. There is no retry
    or backoff: a transport or decoding failure is raised as ``NetworkError``.
    """

    def __init__(
        self,
        site_origin: str,
        upstream_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.site_origin = origin_of(httpx.URL(site_origin))
        self.upstream_url = httpx.URL(upstream_url.rstrip("/"))
        self.timeout = timeout
        self.logger = get_logger("offline_cache.network")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    def upstream_request(self, request: httpx.Request) -> httpx.Request:
        """Rewrite a same-origin request onto the upstream base URL."""
        url = request.url
        if origin_of(url) == self.site_origin:
            url = self.upstream_url.copy_with(
                raw_path=self.upstream_url.raw_path.rstrip(b"/") + url.raw_path,
            )

        headers = [
            (name, value)
            for name, value in request.headers.multi_items()
            if name.lower() not in REQUEST_HEADERS_DROPPED
        ]
        return httpx.Request(request.method, url, headers=headers, content=request.content)

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Send ``request`` and return the fully-read response."""
        outgoing = self.upstream_request(request)
        try:
            response = await self._get_client().send(outgoing)
            await response.aread()
        except httpx.RequestError as exc:
            self.logger.warning(
                "Network fetch failed",
                url=str(request.url),
                upstream=str(outgoing.url),
                error=str(exc),
            )
            raise NetworkError(str(request.url), str(exc) or exc.__class__.__name__) from exc

        self.logger.debug(
            "Network fetch completed",
            url=str(request.url),
            status_code=response.status_code,
        )
        # Report the response against the URL the page asked for, not the upstream one.
        return httpx.Response(
            response.status_code,
            headers=[
                (name, value)
                for name, value in response.headers.multi_items()
                if name.lower() not in STRIPPED_HEADERS
            ],
            content=response.content,
            request=request,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
