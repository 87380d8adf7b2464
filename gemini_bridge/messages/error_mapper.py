"""Gemini error envelope -> Anthropic error taxonomy.

Google wraps failures as::

    {"error": {"code": 429, "message": "...", "status": "RESOURCE_EXHAUSTED"}}

The mapping is decided by the HTTP status alone; the body only supplies the
diagnostic status string and message, which are preserved verbatim.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Union

from ..core.exceptions import (
    AuthenticationError,
    InvalidRequestError,
    PermissionDeniedError,
    RateLimitError,
    UnknownError,
    UpstreamAPIError,
    UpstreamError,
)

STATUS_ERROR_TYPES: dict[int, type[UpstreamAPIError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    429: RateLimitError,
}


def error_class_for_status(status: int) -> type[UpstreamAPIError]:
    """Return the error class for an HTTP status. Total over all integers."""
    mapped = STATUS_ERROR_TYPES.get(status)
    if mapped is not None:
        return mapped
    if 500 <= status <= 599:
        return UpstreamError
    return UnknownError


def _extract_error_fields(body: Any) -> tuple[Optional[str], Optional[str]]:
    """Pull (status, message) out of a decoded Google error body."""
    if isinstance(body, list) and body:
        # streamGenerateContent without alt=sse wraps errors in an array
        body = body[0]
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    if isinstance(error, dict):
        status = error.get("status")
        message = error.get("message")
        return (
            str(status) if status is not None else None,
            str(message) if message is not None else None,
        )
    if isinstance(error, str):
        return None, error
    return None, None


def map_upstream_error(
    status: int, body: Union[bytes, str, dict[str, Any], list[Any], None]
) -> UpstreamAPIError:
    """Convert a Gemini HTTP error into the matching ``UpstreamAPIError``.

    Args:
        status: HTTP status code of the upstream response.
        body: Raw or decoded response body.

    Returns:
        An exception instance (not raised) carrying the status, the upstream
        status string and the upstream message.
    """
    raw_text = ""
    decoded: Any = body
    if isinstance(body, (bytes, bytearray)):
        raw_text = bytes(body).decode("utf-8", errors="replace")
        decoded = None
    elif isinstance(body, str):
        raw_text = body
        decoded = None

    if decoded is None and raw_text.strip():
        try:
            decoded = json.loads(raw_text)
        except json.JSONDecodeError:
            decoded = None

    upstream_status, message = _extract_error_fields(decoded)
    if message is None:
        message = raw_text.strip() or f"Gemini API returned HTTP {status}"

    error_cls = error_class_for_status(status)
    return error_cls(message, status_code=status, upstream_status=upstream_status)
