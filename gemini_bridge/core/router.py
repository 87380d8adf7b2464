"""Gateway orchestration: credential -> request -> Gemini -> response."""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator, Optional

import httpx

from ..auth.credentials import Credential
from ..auth.supplier import CredentialSupplier
from ..logging.masking import safe_url
from ..messages.error_mapper import map_upstream_error
from ..messages.stream_adapter import GeminiToMessagesStreamAdapter
from ..messages.translator import (
    build_count_tokens_request,
    build_generate_content_request,
    count_tokens_to_result,
    generate_content_to_response,
    new_message_id,
)
from ..types.events import StreamError, StreamEvent
from ..types.messages import GenerationRequest, GenerationResponse
from .backend import DEFAULT_TIMEOUT, GeminiBackend, OutboundRequest
from .exceptions import (
    AuthError,
    MalformedResponseError,
    ModelNotFoundError,
    UpstreamAPIError,
    UpstreamError,
)
from .upstream_transport import build_upstream_client, format_httpx_error

logger = logging.getLogger("gemini-bridge")


class GeminiGateway:
    """Drives one Gemini backend on behalf of Anthropic Messages callers.

    The gateway keeps no per-request state, so one instance can serve
    concurrent requests. Errors are surfaced, never retried; a 401 from
    Gemini invalidates the credential so the next request refreshes it.

    Args:
        backend: Target backend configuration.
        supplier: Source of credentials for ``backend.credential``.
        client: Optional shared client. When omitted a client is created per
            request, honouring the upstream transport registry.
    """

    def __init__(
        self,
        backend: GeminiBackend,
        supplier: CredentialSupplier,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.backend = backend
        self.supplier = supplier
        self._client = client

    def _check_model(self, request: GenerationRequest) -> None:
        if not self.backend.supports_model(request.model):
            raise ModelNotFoundError(
                f"Model '{request.model}' is not served by backend '{self.backend.name}'"
            )

    async def _credential(self) -> Credential:
        return await self.supplier.get(self.backend.credential)

    def _on_error_status(self, status: int) -> None:
        if status == 401:
            logger.warning(
                "Gemini rejected credential '%s' (HTTP 401); invalidating",
                self.backend.credential,
            )
            self.supplier.invalidate(self.backend.credential)

    def _timeout(self) -> float:
        return self.backend.timeout or DEFAULT_TIMEOUT

    async def _post(self, outbound: OutboundRequest) -> httpx.Response:
        logger.debug(f"Sending request to {safe_url(outbound.url)} with timeout {self._timeout()}s")
        try:
            if self._client is not None:
                return await self._client.post(
                    outbound.url, headers=outbound.headers, content=outbound.body
                )
            async with build_upstream_client(outbound.url, self._timeout()) as client:
                return await client.post(
                    outbound.url, headers=outbound.headers, content=outbound.body
                )
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, outbound.url)
            logger.error("HTTP error calling Gemini backend %s: %s", self.backend.name, detail)
            raise UpstreamError(f"Gemini request failed: {detail}", status_code=502) from exc

    def _raise_for_status(self, status: int, body: bytes) -> None:
        if 200 <= status < 300:
            return
        self._on_error_status(status)
        error = map_upstream_error(status, body)
        logger.warning("Gemini backend %s returned error: %r", self.backend.name, error)
        raise error

    async def send_message(self, request: GenerationRequest) -> GenerationResponse:
        """Send a non-streaming request and translate the response.

        Raises:
            AuthError: The credential could not be acquired.
            UpstreamAPIError: Gemini returned a non-2xx status or was unreachable.
            MalformedResponseError: A 2xx response had an unexpected shape.
        """
        self._check_model(request)
        credential = await self._credential()
        outbound = build_generate_content_request(self.backend, request, credential, stream=False)

        started = time.monotonic()
        resp = await self._post(outbound)
        logger.info(
            "Gemini generateContent for %s: status %s in %.2fs",
            request.model,
            resp.status_code,
            time.monotonic() - started,
        )
        self._raise_for_status(resp.status_code, resp.content)
        return generate_content_to_response(resp.status_code, resp.content, model=request.model)

    async def stream_message(self, request: GenerationRequest) -> AsyncIterator[StreamEvent]:
        """Send a streaming request and yield Anthropic stream events.

        The credential is acquired before the upstream stream is opened. If the
        consumer stops iterating, the upstream response is closed and no
        further events are produced.

        A transport failure after the stream has started ends it with a
        terminal ``StreamError`` event instead of an exception.

        Raises:
            AuthError: The credential could not be acquired.
            UpstreamAPIError: Gemini returned a non-2xx status or was unreachable.
        """
        self._check_model(request)
        credential = await self._credential()
        outbound = build_generate_content_request(self.backend, request, credential, stream=True)

        timeout = self._timeout()
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        owns_client = self._client is None
        client = self._client or build_upstream_client(outbound.url, stream_timeout)
        resp: Optional[httpx.Response] = None
        try:
            http_request = client.build_request(
                outbound.method, outbound.url, headers=outbound.headers, content=outbound.body
            )
            logger.debug(f"Sending streaming request to {safe_url(outbound.url)}")
            try:
                resp = await client.send(http_request, stream=True)
            except httpx.HTTPError as exc:
                detail = format_httpx_error(exc, outbound.url)
                logger.error("Failed to open Gemini stream for %s: %s", self.backend.name, detail)
                raise UpstreamError(f"Gemini stream failed: {detail}", status_code=502) from exc

            if resp.status_code >= 300:
                data = await resp.aread()
                self._raise_for_status(resp.status_code, data)

            logger.info(f"Streaming request to {safe_url(outbound.url)} successful, status {resp.status_code}")
            adapter = GeminiToMessagesStreamAdapter(new_message_id(), request.model)
            try:
                async for event in adapter.adapt_stream(resp.aiter_bytes()):
                    yield event
            except httpx.HTTPError as exc:
                detail = format_httpx_error(exc, outbound.url)
                logger.error("Gemini stream for %s broke: %s", self.backend.name, detail)
                yield StreamError("api_error", f"Gemini stream interrupted: {detail}")
        finally:
            if resp is not None:
                await resp.aclose()
            if owns_client:
                await client.aclose()

    async def count_tokens(self, request: GenerationRequest) -> dict[str, int]:
        """Count input tokens via Gemini ``countTokens``.

        Returns:
            ``{"input_tokens": n}``
        """
        self._check_model(request)
        credential = await self._credential()
        outbound = build_count_tokens_request(self.backend, request, credential)
        resp = await self._post(outbound)
        self._raise_for_status(resp.status_code, resp.content)
        return count_tokens_to_result(resp.status_code, resp.content)


def describe_error(exc: Exception) -> dict[str, Any]:
    """Anthropic error envelope for any gateway failure."""
    if isinstance(exc, UpstreamAPIError):
        return exc.to_payload()
    if isinstance(exc, AuthError):
        error_type = "authentication_error"
    elif isinstance(exc, ModelNotFoundError):
        error_type = "not_found_error"
    elif isinstance(exc, MalformedResponseError):
        error_type = "api_error"
    else:
        error_type = "invalid_request_error"
    return {"type": "error", "error": {"type": error_type, "message": str(exc)}}
