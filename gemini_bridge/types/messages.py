"""Dialect-neutral message model.

The gateway parses Anthropic Messages requests into these types, translates
them to Gemini, and builds them back from Gemini responses. Roles stay
"user"/"assistant" here; the Gemini "model" role only exists at the wire
boundary.

Converting a thinking block to Gemini and back loses its signature: Gemini has
no signature concept, so the round trip is intentionally one-way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass
class TextBlock:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ImageBlock:
    """Base64 image. The media type is passed through without validation."""

    media_type: str
    data: str
    type: str = field(default="image", init=False)


@dataclass
class ThinkingBlock:
    """Model reasoning.

    The signature is opaque and only meaningful to the Anthropic dialect.
    """

    thinking: str
    signature: str = ""
    type: str = field(default="thinking", init=False)


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Any = field(default_factory=dict)
    type: str = field(default="tool_use", init=False)


@dataclass
class ToolResultBlock:
    """Result of a tool call.

    ``content`` is either a string or a list of nested content blocks.
    """

    tool_use_id: str
    content: Union[str, list[Any]] = ""
    is_error: bool = False
    type: str = field(default="tool_result", init=False)


ContentBlock = Union[TextBlock, ImageBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class Message:
    role: str
    content: list[ContentBlock] = field(default_factory=list)


@dataclass
class ToolDeclaration:
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationParams:
    """Sampling parameters.

    ``top_k`` has no Anthropic counterpart on the wire we accept from clients
    unless it is passed explicitly; when it is None the Gemini request falls
    back to the configured default.
    """

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stop_sequences: Optional[list[str]] = None


@dataclass
class GenerationRequest:
    model: str
    messages: list[Message] = field(default_factory=list)
    system: Optional[str] = None
    params: GenerationParams = field(default_factory=GenerationParams)
    tools: Optional[list[ToolDeclaration]] = None
    stream: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


class FinishKind(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"
    OTHER = "other"


# Gemini reasons that mean the output was withheld for policy reasons.
REFUSAL_REASONS = {
    "SAFETY",
    "RECITATION",
    "BLOCKLIST",
    "PROHIBITED_CONTENT",
    "SPII",
    "IMAGE_SAFETY",
}


@dataclass(frozen=True)
class FinishReason:
    """Why generation ended. ``raw`` keeps the Gemini string for OTHER."""

    kind: FinishKind
    raw: Optional[str] = None

    @classmethod
    def other(cls, raw: str) -> "FinishReason":
        return cls(FinishKind.OTHER, raw)

    def to_stop_reason(self) -> str:
        """Render as an Anthropic ``stop_reason`` value."""
        if self.kind is not FinishKind.OTHER:
            return self.kind.value
        if self.raw in REFUSAL_REASONS:
            return "refusal"
        return "end_turn"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def to_payload(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class GenerationResponse:
    id: str
    model: str
    content: list[ContentBlock]
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)
