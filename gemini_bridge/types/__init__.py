"""Type definitions for the gateway."""

from .events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    MessageStop,
    StreamError,
    StreamEvent,
)
from .messages import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ContentBlock,
    FinishKind,
    FinishReason,
    GenerationParams,
    GenerationRequest,
    GenerationResponse,
    ImageBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolDeclaration,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)

__all__ = [
    "ASSISTANT_ROLE",
    "USER_ROLE",
    "ContentBlock",
    "ContentBlockDelta",
    "ContentBlockStart",
    "ContentBlockStop",
    "FinishKind",
    "FinishReason",
    "GenerationParams",
    "GenerationRequest",
    "GenerationResponse",
    "ImageBlock",
    "Message",
    "MessageDelta",
    "MessageStart",
    "MessageStop",
    "StreamError",
    "StreamEvent",
    "TextBlock",
    "ThinkingBlock",
    "ToolDeclaration",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
]
