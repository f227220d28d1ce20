"""
Request classifier for the offline cache worker.
"""

from typing import Iterable, Optional, Tuple

import httpx

from shared.config import DEFAULT_ASSET_EXTENSIONS
from ..models import ClassifiedRequest, HandlingClass


DEFAULT_PORTS = {"http": 80, "https": 443}


def origin_of(url: httpx.URL) -> Tuple[str, str, Optional[int]]:
    """Return (scheme, host, effective port) for a URL."""
    scheme = url.scheme.lower()
    port = url.port if url.port is not None else DEFAULT_PORTS.get(scheme)
    return scheme, url.host.lower(), port


class RequestClassifier:
    """Decides which caching strategy handles a request.

    Rules are evaluated in order and the first match wins:

    1. non-GET methods bypass the worker
    2. cross-origin requests bypass the worker
    3. API paths bypass the worker
    4. HTML documents are handled network-first
    5. static assets (by file extension) are handled cache-first
    6. everything else goes to the network with no caching
    """

    def __init__(
        self,
        site_origin: str,
        *,
        api_prefix: str = "/api/",
        asset_extensions: Optional[Iterable[str]] = None,
    ):
        self.site_origin = origin_of(httpx.URL(site_origin))
        self.api_prefix = api_prefix
        extensions = asset_extensions if asset_extensions is not None else DEFAULT_ASSET_EXTENSIONS
        self.asset_suffixes = tuple(f".{ext.lower().lstrip('.')}" for ext in extensions)

    def classify(self, request: httpx.Request) -> ClassifiedRequest:
        """Assign a handling class to ``request``."""
        if request.method.upper() != "GET":
            return ClassifiedRequest(request, HandlingClass.BYPASS, "method")

        if not self.is_same_origin(request.url):
            return ClassifiedRequest(request, HandlingClass.BYPASS, "cross_origin")

        if request.url.path.startswith(self.api_prefix):
            return ClassifiedRequest(request, HandlingClass.BYPASS, "api")

        if "text/html" in request.headers.get("accept", ""):
            return ClassifiedRequest(request, HandlingClass.DOCUMENT, "accept_html")

        if self.is_asset_path(request.url.path):
            return ClassifiedRequest(request, HandlingClass.ASSET, "asset_extension")

        return ClassifiedRequest(request, HandlingClass.DEFAULT, "default")

    def is_same_origin(self, url: httpx.URL) -> bool:
        return origin_of(url) == self.site_origin

    def is_asset_path(self, path: str) -> bool:
        # Query strings are not part of the path, so "/app.js?v=3" is still an asset.
        return path.lower().endswith(self.asset_suffixes)
