"""Core module initialization.

``backend`` and ``router`` depend on the auth and messages packages, so they
are imported from their modules directly rather than re-exported here.
"""

from .exceptions import (
    AuthError,
    AuthenticationError,
    ConfigurationError,
    DanglingToolResultError,
    GatewayError,
    InvalidRequestError,
    MalformedResponseError,
    ModelNotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnknownError,
    UnsupportedContentError,
    UnsupportedRoleError,
    UpstreamAPIError,
    UpstreamError,
)
from .models import DEFAULT_MODEL_ALIASES, normalize_model_name, resolve_model
from .sse import SSEDecoder, detect_stream_error, format_sse_event
from .upstream_transport import (
    build_upstream_client,
    clear_upstream_transports,
    format_httpx_error,
    get_upstream_transport,
    register_upstream_transport,
    register_upstream_transport_for_url,
)

__all__ = [
    "AuthError",
    "AuthenticationError",
    "ConfigurationError",
    "DEFAULT_MODEL_ALIASES",
    "DanglingToolResultError",
    "GatewayError",
    "InvalidRequestError",
    "MalformedResponseError",
    "ModelNotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "SSEDecoder",
    "UnknownError",
    "UnsupportedContentError",
    "UnsupportedRoleError",
    "UpstreamAPIError",
    "UpstreamError",
    "build_upstream_client",
    "clear_upstream_transports",
    "detect_stream_error",
    "format_httpx_error",
    "format_sse_event",
    "get_upstream_transport",
    "normalize_model_name",
    "register_upstream_transport",
    "register_upstream_transport_for_url",
    "resolve_model",
]
