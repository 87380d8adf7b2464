"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Optional

import httpx
import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gemini_bridge.auth.credentials import (  # noqa: E402
    AuthMode,
    CredentialProfile,
    OAuthSettings,
    VertexSettings,
    VertexSource,
)
from gemini_bridge.core.backend import GeminiBackend  # noqa: E402

TOKEN_URI = "https://oauth2.test.local/token"
GEMINI_HOST = "generativelanguage.googleapis.com"
VERTEX_HOST = "us-central1-aiplatform.googleapis.com"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    from gemini_bridge.core.upstream_transport import clear_upstream_transports

    yield
    clear_upstream_transports()


class FixedClock:
    """Controllable clock for credential expiry tests."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


class TokenEndpoint:
    """Fake OAuth token endpoint that counts refresh calls."""

    def __init__(self) -> None:
        self.calls = 0
        self.requests: list[dict[str, str]] = []
        self.status_code = 200
        self.payload: Any = None
        self.delay = 0.0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        import asyncio
        from urllib.parse import parse_qsl

        self.calls += 1
        self.requests.append(dict(parse_qsl(request.content.decode("utf-8"))))
        if self.delay:
            await asyncio.sleep(self.delay)
        payload = self.payload
        if payload is None:
            payload = {"access_token": f"ya29.token-{self.calls}", "expires_in": 3600}
        if isinstance(payload, (bytes, str)):
            return httpx.Response(self.status_code, content=payload)
        return httpx.Response(self.status_code, json=payload)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


# =============================================================================
# Profile Builders
# =============================================================================


def api_key_profile(name: str = "gemini", api_key: str = "AIzaTestKey123") -> CredentialProfile:
    return CredentialProfile(name=name, mode=AuthMode.API_KEY, api_key=api_key)


def oauth_profile(
    name: str = "gemini-oauth",
    *,
    refresh_token: str = "1//refresh-token",
    access_token: Optional[str] = None,
    min_token_lifetime: float = 60.0,
) -> CredentialProfile:
    return CredentialProfile(
        name=name,
        mode=AuthMode.OAUTH,
        oauth=OAuthSettings(
            client_id="client-id",
            client_secret="client-secret",
            refresh_token=refresh_token,
            access_token=access_token,
            token_uri=TOKEN_URI,
        ),
        min_token_lifetime=min_token_lifetime,
    )


def vertex_profile(
    name: str = "gemini-vertex",
    *,
    source: VertexSource = VertexSource.ADC,
    api_key: Optional[str] = None,
) -> CredentialProfile:
    return CredentialProfile(
        name=name,
        mode=AuthMode.VERTEX,
        vertex=VertexSettings(
            project_id="my-project",
            location="us-central1",
            source=source,
            api_key=api_key,
        ),
    )


def build_backend(credential: str = "gemini", **kwargs: Any) -> GeminiBackend:
    return GeminiBackend(name="gemini", credential=credential, **kwargs)


class FakeTokenSource:
    """Vertex token source returning sequential tokens."""

    def __init__(self, clock: Callable[[], datetime], lifetime: float = 3600) -> None:
        self.clock = clock
        self.lifetime = lifetime
        self.calls = 0
        self.error: Optional[Exception] = None

    async def fetch(self) -> tuple[str, Optional[datetime]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return f"vertex-token-{self.calls}", self.clock() + timedelta(seconds=self.lifetime)


# =============================================================================
# Gemini payload helpers
# =============================================================================


def gemini_frame(
    parts: Optional[list[dict[str, Any]]] = None,
    *,
    finish_reason: Optional[str] = None,
    usage: Optional[dict[str, int]] = None,
) -> str:
    """Build the JSON text of one Gemini streaming frame."""
    candidate: dict[str, Any] = {}
    if parts is not None:
        candidate["content"] = {"role": "model", "parts": parts}
    if finish_reason is not None:
        candidate["finishReason"] = finish_reason
    frame: dict[str, Any] = {"candidates": [candidate]}
    if usage is not None:
        frame["usageMetadata"] = usage
    return json.dumps(frame)


def sse_bytes(frames: list[str]) -> bytes:
    return "".join(f"data: {frame}\r\n\r\n" for frame in frames).encode("utf-8")


async def aiter_items(items: list[Any]):
    """Helper to create async iterator from a list."""
    for item in items:
        yield item
