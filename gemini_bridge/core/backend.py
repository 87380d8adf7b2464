"""Gemini backend configuration and outbound request construction."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlencode

from ..auth.credentials import (
    ApiKeyCredential,
    AuthMode,
    Credential,
    OAuthCredential,
    VertexCredential,
)
from ..logging.masking import safe_headers, safe_url
from .exceptions import AuthError, ConfigurationError
from .models import DEFAULT_MODEL_ALIASES, normalize_model_name, resolve_model

logger = logging.getLogger("gemini-bridge")

DEFAULT_TIMEOUT = 60
DEFAULT_TOP_K = 40
GENERATIVE_LANGUAGE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
VERTEX_BASE_URL_TEMPLATE = "https://{location}-aiplatform.googleapis.com/v1"

GENERATE_CONTENT = "generateContent"
STREAM_GENERATE_CONTENT = "streamGenerateContent"
COUNT_TOKENS = "countTokens"


@dataclass
class OutboundRequest:
    """A fully built Gemini HTTP call."""

    method: str
    url: str
    headers: dict[str, str]
    body: bytes

    def describe(self) -> str:
        """Log-safe one-line description."""
        return f"{self.method} {safe_url(self.url)} headers={safe_headers(self.headers)}"


@dataclass
class GeminiBackend:
    """Represents the Gemini endpoint the gateway talks to.

    Attributes:
        name: Backend name, used in logs.
        credential: Name of the credential profile used for this backend.
        base_url: Override for the API root. When unset, the Generative
            Language host is used, or the regional Vertex host in Vertex mode.
        models: Model names this backend accepts; empty means any.
        model_aliases: Alias table for ``resolve_model``.
        custom_headers: Extra headers sent with every request.
        timeout: Request timeout in seconds.
        default_top_k: ``topK`` used when the request does not carry one.
    """

    name: str
    credential: str
    base_url: Optional[str] = None
    models: list[str] = field(default_factory=list)
    model_aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_ALIASES))
    custom_headers: dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = DEFAULT_TIMEOUT
    default_top_k: Optional[int] = DEFAULT_TOP_K

    def supports_model(self, model: str) -> bool:
        """Whether a client model name is served by this backend."""
        if not self.models:
            return True
        name = normalize_model_name(model)
        return name in self.models or self.model_aliases.get(name) in self.models

    def resolve_base_url(self, credential: Credential) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        if isinstance(credential, VertexCredential):
            return VERTEX_BASE_URL_TEMPLATE.format(location=credential.location)
        return GENERATIVE_LANGUAGE_BASE_URL

    def build_url(self, model: str, method: str, credential: Credential) -> str:
        """Build the endpoint URL for ``model`` and RPC ``method``.

        API keys (including Vertex API keys) travel in the ``key`` query
        parameter; bearer-token modes put nothing in the query except
        ``alt=sse`` for streaming.
        """
        base = self.resolve_base_url(credential)
        resolved = resolve_model(model, credential.mode, self.model_aliases)

        if isinstance(credential, VertexCredential):
            path = (
                f"/projects/{quote(credential.project_id, safe='')}"
                f"/locations/{quote(credential.location, safe='')}"
                f"/{resolved}:{method}"
            )
        else:
            path = f"/models/{resolved}:{method}"

        query: list[tuple[str, str]] = []
        if method == STREAM_GENERATE_CONTENT:
            query.append(("alt", "sse"))
        api_key = _query_api_key(credential)
        if api_key:
            query.append(("key", api_key))

        url = f"{base}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return url


def _query_api_key(credential: Credential) -> Optional[str]:
    if isinstance(credential, ApiKeyCredential):
        return credential.value
    if isinstance(credential, VertexCredential) and credential.api_key:
        return credential.api_key
    return None


def build_outbound_headers(
    credential: Credential, custom_headers: Optional[Mapping[str, str]] = None
) -> dict[str, str]:
    """Build headers for a Gemini request.

    Custom headers cannot override ``Authorization``; credentials always come
    from the supplier.
    """
    headers: dict[str, str] = {}
    normalized_keys: set[str] = set()
    for key, value in (custom_headers or {}).items():
        key_lower = key.lower()
        if key_lower in {"authorization", "x-goog-api-key", "host", "content-length"}:
            continue
        if key_lower in normalized_keys:
            continue
        headers[key] = str(value)
        normalized_keys.add(key_lower)

    if "content-type" not in normalized_keys:
        headers["Content-Type"] = "application/json"

    if isinstance(credential, OAuthCredential):
        if not credential.access_token:
            raise AuthError("OAuth credential has no access token")
        headers["Authorization"] = f"Bearer {credential.access_token}"
    elif isinstance(credential, VertexCredential) and not credential.api_key:
        if not credential.access_token:
            raise AuthError("Vertex credential has no access token")
        headers["Authorization"] = f"Bearer {credential.access_token}"
    return headers


def build_outbound_request(
    backend: GeminiBackend,
    model: str,
    method: str,
    credential: Credential,
    body: Mapping[str, Any],
) -> OutboundRequest:
    if credential.mode is AuthMode.VERTEX and not isinstance(credential, VertexCredential):
        raise ConfigurationError("Vertex mode requires a VertexCredential")
    request = OutboundRequest(
        method="POST",
        url=backend.build_url(model, method, credential),
        headers=build_outbound_headers(credential, backend.custom_headers),
        body=json.dumps(body, ensure_ascii=False).encode("utf-8"),
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Built Gemini request for backend %s: %s", backend.name, request.describe())
    return request
