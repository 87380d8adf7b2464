"""Stream adapter for converting Gemini streamGenerateContent SSE to Anthropic Messages events.

Gemini streams (``?alt=sse``) carry one full response object per frame and end
on connection close, with no ``[DONE]`` sentinel:

    data: {"candidates":[{"content":{"role":"model","parts":[{"text":"Hel"}]}}]}
    data: {"candidates":[{"content":{"role":"model","parts":[{"text":"lo"}]}}]}
    data: {"candidates":[{"finishReason":"STOP"}],"usageMetadata":{...}}

Anthropic Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hel"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":10}}

    event: message_stop
    data: {"type":"message_stop"}
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.sse import SSEDecoder, detect_stream_error, format_sse_event
from ..types.events import (
    INPUT_JSON_DELTA,
    TEXT_DELTA,
    THINKING_DELTA,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    MessageStop,
    StreamError,
    StreamEvent,
)
from ..types.messages import (
    GenerationResponse,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    Usage,
)
from .error_mapper import map_upstream_error
from .translator import _convert_finish_reason, _convert_usage, new_tool_use_id

logger = logging.getLogger("gemini-bridge")

TEXT_KIND = "text"
THINKING_KIND = "thinking"
TOOL_USE_KIND = "tool_use"


class GeminiToMessagesStreamAdapter:
    """Converts Gemini SSE frames to Anthropic Messages stream events.

    This adapter maintains state during streaming to:
    - Open a new content block whenever the part kind changes or a new
      function call starts, with indices that are never reused
    - Defer the finish reason and usage until the end of the stream
    - Stop at the first malformed or in-band error frame
    - Build the final message from what was streamed
    """

    def __init__(self, message_id: str, model: str):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name for the response
        """
        self.message_id = message_id
        self.model = model

        # Content block tracking
        self.content_blocks: list[dict[str, Any]] = []
        self.open_index: Optional[int] = None
        self.open_kind: Optional[str] = None

        # Deferred until end of stream
        self.finish_reason: Optional[str] = None
        self.usage = Usage()
        self.saw_function_call = False

        # State flags
        self.message_started = False
        self.terminated = False

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(self, data: str) -> list[StreamEvent]:
        """Process the ``data`` payload of one SSE frame.

        Args:
            data: JSON text of the frame

        Returns:
            Events produced by this frame, possibly empty
        """
        if self.terminated:
            return []

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"GeminiStreamAdapter: invalid JSON frame: {data[:100]}")
            return self._fail("api_error", "Malformed stream frame: invalid JSON")

        error_obj = detect_stream_error(payload)
        if error_obj is not None:
            return self._fail_from_upstream(error_obj)

        if not isinstance(payload, dict):
            return self._fail("api_error", "Malformed stream frame: not a JSON object")

        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], Mapping):
            logger.warning(f"GeminiStreamAdapter: frame without candidates: {data[:100]}")
            return self._fail("api_error", "Malformed stream frame: missing candidates")

        events: list[StreamEvent] = []

        usage_metadata = payload.get("usageMetadata")
        if isinstance(usage_metadata, Mapping):
            self.usage = _convert_usage(usage_metadata)

        if not self.message_started:
            events.append(MessageStart(self.message_id, self.model, Usage(input_tokens=self.usage.input_tokens)))
            self.message_started = True

        candidate = candidates[0]
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, Mapping) else None
        for part in parts or []:
            if isinstance(part, Mapping):
                events.extend(self._process_part(part))

        finish_reason = candidate.get("finishReason")
        if finish_reason:
            self.finish_reason = finish_reason

        return events

    def _process_part(self, part: Mapping[str, Any]) -> list[StreamEvent]:
        function_call = part.get("functionCall")
        if isinstance(function_call, Mapping):
            return self._process_function_call(function_call)

        text = part.get("text")
        if isinstance(text, str):
            if not text:
                return []
            kind = THINKING_KIND if part.get("thought") else TEXT_KIND
            events: list[StreamEvent] = []
            if self.open_kind != kind:
                events.extend(self._close_block())
                if kind == THINKING_KIND:
                    events.append(self._open_block(kind, {"type": "thinking", "thinking": ""}))
                else:
                    events.append(self._open_block(kind, {"type": "text", "text": ""}))

            block = self.content_blocks[self.open_index]  # type: ignore[index]
            if kind == THINKING_KIND:
                block["thinking"] += text
                events.append(ContentBlockDelta(self.open_index, THINKING_DELTA, thinking=text))  # type: ignore[arg-type]
            else:
                block["text"] += text
                events.append(ContentBlockDelta(self.open_index, TEXT_DELTA, text=text))  # type: ignore[arg-type]
            return events

        logger.debug(f"GeminiStreamAdapter: ignoring part with keys {sorted(part.keys())}")
        return []

    def _process_function_call(self, function_call: Mapping[str, Any]) -> list[StreamEvent]:
        """Handle a functionCall part.

        A part with a name starts a new tool_use block. A part without a name
        whose ``args`` is a string continues the open tool_use block.
        """
        self.saw_function_call = True
        events: list[StreamEvent] = []
        name = function_call.get("name")
        args = function_call.get("args")

        if name:
            events.extend(self._close_block())
            tool_id = function_call.get("id") or new_tool_use_id()
            events.append(
                self._open_block(
                    TOOL_USE_KIND,
                    {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
                )
            )
        elif self.open_kind != TOOL_USE_KIND or not isinstance(args, str):
            logger.warning("GeminiStreamAdapter: ignoring unnamed functionCall without an open tool_use block")
            return events

        if isinstance(args, str):
            fragment = args
        elif args:
            fragment = json.dumps(args, ensure_ascii=False)
        else:
            fragment = ""

        if fragment:
            self.content_blocks[self.open_index]["arguments"] += fragment  # type: ignore[index]
            events.append(ContentBlockDelta(self.open_index, INPUT_JSON_DELTA, partial_json=fragment))  # type: ignore[arg-type]
        return events

    def _open_block(self, kind: str, content_block: dict[str, Any]) -> ContentBlockStart:
        index = len(self.content_blocks)
        block = dict(content_block)
        if kind == TOOL_USE_KIND:
            block["arguments"] = ""
        self.content_blocks.append(block)
        self.open_index = index
        self.open_kind = kind
        return ContentBlockStart(index, kind, content_block)

    def _close_block(self) -> list[StreamEvent]:
        if self.open_index is None:
            return []
        index = self.open_index
        self.open_index = None
        self.open_kind = None
        return [ContentBlockStop(index)]

    def _fail(self, error_type: str, message: str) -> list[StreamEvent]:
        self.terminated = True
        return [StreamError(error_type, message)]

    def _fail_from_upstream(self, error_obj: Mapping[str, Any]) -> list[StreamEvent]:
        code = error_obj.get("code")
        status = code if isinstance(code, int) else 500
        error = map_upstream_error(status, {"error": dict(error_obj)})
        logger.warning(f"GeminiStreamAdapter: in-band error {error!r}")
        return self._fail(error.error_type, error.message)

    def finish(self) -> list[StreamEvent]:
        """Emit the terminal events once the upstream stream has ended.

        Returns:
            Final events, or nothing when the stream already terminated
        """
        if self.terminated:
            return []
        self.terminated = True

        events: list[StreamEvent] = []
        if not self.message_started:
            events.append(MessageStart(self.message_id, self.model, Usage(input_tokens=self.usage.input_tokens)))
            self.message_started = True

        events.extend(self._close_block())
        reason = _convert_finish_reason(self.finish_reason, self.saw_function_call)
        events.append(MessageDelta(reason, self.usage))
        events.append(MessageStop(self.usage))
        return events

    # ------------------------------------------------------------------
    # Async drivers
    # ------------------------------------------------------------------

    async def adapt_frames(self, frames: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
        """Transform SSE ``data`` payloads into stream events.

        Args:
            frames: The ``data`` payload of each upstream SSE frame

        Yields:
            Anthropic Messages stream events
        """
        completed = False
        try:
            async for frame in frames:
                for event in self.process_frame(frame):
                    yield event
                if self.terminated:
                    break
            for event in self.finish():
                yield event
            completed = True
        finally:
            if not completed:
                # Consumer went away, produce nothing further
                self.terminated = True

    async def adapt_stream(self, gemini_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        """Transform the raw Gemini SSE byte stream into stream events.

        Args:
            gemini_stream: The incoming response body chunks

        Yields:
            Anthropic Messages stream events
        """
        async for event in self.adapt_frames(_iter_sse_data(gemini_stream)):
            yield event

    def build_final_message(self) -> GenerationResponse:
        """Build the message that the streamed events describe.

        Returns:
            Complete response with the accumulated content and usage
        """
        content: list[Any] = []
        for block in self.content_blocks:
            block_type = block.get("type")
            if block_type == "text":
                content.append(TextBlock(text=block["text"]))
            elif block_type == "thinking":
                content.append(ThinkingBlock(thinking=block["thinking"]))
            elif block_type == "tool_use":
                arguments = block.get("arguments", "")
                try:
                    input_dict = json.loads(arguments) if arguments else {}
                except json.JSONDecodeError:
                    input_dict = {"raw": arguments}
                content.append(ToolUseBlock(id=block["id"], name=block["name"], input=input_dict))

        return GenerationResponse(
            id=self.message_id,
            model=self.model,
            content=content,
            finish_reason=_convert_finish_reason(self.finish_reason, self.saw_function_call),
            usage=Usage(self.usage.input_tokens, self.usage.output_tokens),
        )


async def _iter_sse_data(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[str]:
    decoder = SSEDecoder()
    async for chunk in byte_stream:
        for sse_event in decoder.feed(chunk):
            if sse_event.data is not None:
                yield sse_event.data
    for sse_event in decoder.flush():
        if sse_event.data is not None:
            yield sse_event.data


async def adapt_gemini_stream_to_messages(
    message_id: str,
    model: str,
    gemini_stream: AsyncIterator[bytes],
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a Gemini SSE stream to Anthropic Messages SSE.

    Args:
        message_id: Message ID for the response
        model: Model name
        gemini_stream: Input Gemini SSE byte stream

    Yields:
        Anthropic Messages API SSE events
    """
    adapter = GeminiToMessagesStreamAdapter(message_id, model)
    async for event in adapter.adapt_stream(gemini_stream):
        yield format_sse_event(event.event_type, event.to_payload())
