"""Helpers shared by the requests and httpx clients."""

import sys
from typing import Optional
from urllib.parse import urljoin, urlparse

from singleflight.auth import __version__
from singleflight.auth._protocols import Response

_PY_VERSION = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

# Statuses worth retrying at the transport level, independent of credential renewal.
TRANSIENT_STATUSES = (502, 503, 504)

DEFAULT_CONTENT_TYPE = "application/json"


def get_user_agent(http_lib_version: str, client_name: Optional[str] = None) -> str:
    """Build the User-Agent, e.g. "singleflight-auth/1.0.0 python/3.11.0 requests/2.31.0 MyClient"."""
    base = f"singleflight-auth/{__version__} python/{_PY_VERSION} {http_lib_version}"
    if client_name:
        return f"{base} {client_name}"
    return base


def error_detail(resp: Response) -> str:
    """Best-effort error message from a JSON or plain text error body."""
    try:
        js = resp.json()
    except ValueError:
        return resp.text
    if isinstance(js, dict):
        return str(js.get("detail", js.get("message", js)))
    return str(js)


def resolve_url(base_url: str, url: str) -> str:
    """Resolve a relative path against the base url. Absolute urls are returned unchanged."""
    if urlparse(url).scheme:
        return url
    if url.startswith("/"):
        raise ValueError(f"Path must not start with /, got {url}")
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, url)
