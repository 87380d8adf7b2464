"""Helpers for keeping secrets out of logs.

Credentials are never logged in full: tokens and keys are cut to their first
three characters followed by ``****``.
"""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

SENSITIVE_HEADERS = {"authorization", "x-goog-api-key", "proxy-authorization"}
SENSITIVE_QUERY_PARAMS = {"key", "access_token"}


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret, keeping only a short prefix for correlation."""
    if not value:
        return "****"
    return value[:3] + "****" if len(value) > 3 else "****"


def safe_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with credential headers masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        key = str(key)
        value = str(value)
        if key.lower() not in SENSITIVE_HEADERS:
            masked[key] = value
            continue
        if value.startswith("Bearer "):
            masked[key] = f"Bearer {mask_secret(value[7:])}"
        else:
            masked[key] = mask_secret(value)
    return masked


def safe_url(url: str) -> str:
    """Mask credential query parameters (``?key=...``) in a URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, mask_secret(value) if name in SENSITIVE_QUERY_PARAMS else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))
