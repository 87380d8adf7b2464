"""Anthropic Messages streaming events produced by the stream adapter.

Each event knows its SSE event name and its JSON payload, so callers can
either inspect the typed objects or write them straight to the client with
``format_sse_event``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .messages import FinishReason, Usage

TEXT_DELTA = "text_delta"
INPUT_JSON_DELTA = "input_json_delta"
THINKING_DELTA = "thinking_delta"


@dataclass
class MessageStart:
    message_id: str
    model: str
    usage: Usage = field(default_factory=Usage)

    event_type = "message_start"

    def to_payload(self) -> dict[str, Any]:
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": self.usage.input_tokens, "output_tokens": 0},
        }
        return {"type": self.event_type, "message": message}


@dataclass
class ContentBlockStart:
    """Opens block ``index``. ``block_type`` is text, thinking or tool_use."""

    index: int
    block_type: str
    content_block: dict[str, Any] = field(default_factory=dict)

    event_type = "content_block_start"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "index": self.index,
            "content_block": self.content_block,
        }


@dataclass
class ContentBlockDelta:
    """A text, thinking or JSON-argument fragment for block ``index``."""

    index: int
    delta_type: str
    text: Optional[str] = None
    partial_json: Optional[str] = None
    thinking: Optional[str] = None

    event_type = "content_block_delta"

    def to_payload(self) -> dict[str, Any]:
        delta: dict[str, Any] = {"type": self.delta_type}
        if self.delta_type == INPUT_JSON_DELTA:
            delta["partial_json"] = self.partial_json or ""
        elif self.delta_type == THINKING_DELTA:
            delta["thinking"] = self.thinking or ""
        else:
            delta["text"] = self.text or ""
        return {"type": self.event_type, "index": self.index, "delta": delta}


@dataclass
class ContentBlockStop:
    index: int

    event_type = "content_block_stop"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.event_type, "index": self.index}


@dataclass
class MessageDelta:
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)

    event_type = "message_delta"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "delta": {
                "stop_reason": self.finish_reason.to_stop_reason(),
                "stop_sequence": None,
            },
            "usage": {"output_tokens": self.usage.output_tokens},
        }


@dataclass
class MessageStop:
    usage: Usage = field(default_factory=Usage)

    event_type = "message_stop"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.event_type}


@dataclass
class StreamError:
    """Synthetic terminal event for a stream that could not be completed."""

    error_type: str
    message: str

    event_type = "error"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "error": {"type": self.error_type, "message": self.message},
        }


StreamEvent = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    StreamError,
]
