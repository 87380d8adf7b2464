"""Per-host HTTPX transport registry.

Gemini, Vertex and OAuth token endpoints are reached through
``httpx.AsyncClient`` instances created per call. Tests and in-process
deployments can register a transport (e.g. ``httpx.MockTransport``) for a
host so that those clients never touch the network.
"""

from __future__ import annotations

import logging
from typing import Optional, Union
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("gemini-bridge")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _normalize_host(host: str) -> str:
    return host.strip().lower()


def register_upstream_transport(host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route requests for ``host`` (netloc, e.g. 'oauth2.googleapis.com') to ``transport``."""
    if not host:
        raise ValueError("host is required")
    normalized = _normalize_host(host)
    _TRANSPORTS[normalized] = transport
    logger.debug("Registered upstream transport for host '%s'", normalized)


def register_upstream_transport_for_url(
    url: str, transport: httpx.AsyncBaseTransport
) -> None:
    register_upstream_transport(urlparse(url).netloc, transport)


def clear_upstream_transports() -> None:
    """Clear all registered transports (useful for tests)."""
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return the registered transport for the URL's netloc, if any."""
    if not url:
        return None
    host = urlparse(url).netloc
    if not host:
        return None
    return _TRANSPORTS.get(_normalize_host(host))


def format_httpx_error(exc: Exception, url: Optional[str] = None) -> str:
    """Produce a detailed, log-safe description of an httpx error."""
    from ..logging.masking import safe_url

    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    if isinstance(exc, httpx.RequestError):
        try:
            request = exc.request
        except RuntimeError:
            request = None
    if request is not None:
        parts.append(f"request={request.method} {safe_url(str(request.url))}")
    elif url:
        parts.append(f"url={safe_url(url)}")

    return "; ".join(parts)


def build_upstream_client(
    url: str, timeout: Union[float, httpx.Timeout, None]
) -> httpx.AsyncClient:
    """Create a client for ``url`` that honours the transport registry."""
    return httpx.AsyncClient(
        timeout=timeout,
        transport=get_upstream_transport(url),
        follow_redirects=True,
    )
