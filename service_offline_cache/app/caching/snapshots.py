"""
Response snapshots stored inside named caches.
"""

import base64
from typing import Any, Dict, List, Optional, Union

import httpx


RequestLike = Union[httpx.Request, httpx.URL, str]

# httpx hands us decoded bodies, so framing/encoding headers from the wire no longer apply.
STRIPPED_HEADERS = frozenset({
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "connection",
    "keep-alive",
})


def as_request(request: RequestLike) -> httpx.Request:
    """Coerce a URL or request into a GET ``httpx.Request``."""
    if isinstance(request, httpx.Request):
        return request
    return httpx.Request("GET", request)


def cache_key(request: RequestLike) -> str:
    """Normalized cache key for a request: the absolute URL without fragment."""
    url = as_request(request).url
    return str(url.copy_with(fragment=None))


def portable_headers(headers: httpx.Headers) -> List[List[str]]:
    return [
        [name, value]
        for name, value in headers.multi_items()
        if name.lower() not in STRIPPED_HEADERS
    ]


def snapshot_response(request: RequestLike, response: httpx.Response) -> Dict[str, Any]:
    """Capture a fully-read response as a JSON-serializable dict."""
    return {
        "url": cache_key(request),
        "status": response.status_code,
        "headers": portable_headers(response.headers),
        "body": base64.b64encode(response.content).decode("ascii"),
    }


def restore_response(snapshot: Dict[str, Any], request: Optional[RequestLike] = None) -> httpx.Response:
    """Build a fresh response from a snapshot; each call returns a new object."""
    target = as_request(request) if request is not None else httpx.Request("GET", snapshot["url"])
    return httpx.Response(
        snapshot["status"],
        headers=[(name, value) for name, value in snapshot["headers"]],
        content=base64.b64decode(snapshot["body"]),
        request=target,
    )
