"""Anthropic Messages JSON <-> message model.

Parses inbound request bodies into ``GenerationRequest`` and renders
``GenerationResponse`` and stream events back as Anthropic JSON / SSE bytes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.exceptions import UnsupportedContentError, UnsupportedRoleError
from ..core.sse import format_sse_event
from ..types.events import StreamEvent
from ..types.messages import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ContentBlock,
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
)

logger = logging.getLogger("gemini-bridge")


def _parse_image(block: Mapping[str, Any]) -> ImageBlock:
    """Anthropic image blocks carry a base64 ``source``; URL sources have no Gemini inline form."""
    source = block.get("source") or {}
    if not isinstance(source, Mapping):
        raise UnsupportedContentError("Image block has no source")
    source_type = source.get("type", "base64")
    if source_type != "base64":
        raise UnsupportedContentError(f"Unsupported image source type: {source_type}")
    return ImageBlock(media_type=str(source.get("media_type") or ""), data=str(source.get("data") or ""))


def _parse_tool_result_content(content: Any) -> Any:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        nested: list[Any] = []
        for item in content:
            if isinstance(item, Mapping) and item.get("type") == "text":
                nested.append(TextBlock(text=str(item.get("text", ""))))
            else:
                nested.append(item)
        return nested
    raise UnsupportedContentError(f"Unsupported tool_result content: {type(content).__name__}")


def _parse_block(block: Any) -> ContentBlock:
    if not isinstance(block, Mapping):
        raise UnsupportedContentError(f"Content block must be an object, got {type(block).__name__}")

    block_type = block.get("type", "")

    if block_type == "text":
        return TextBlock(text=str(block.get("text", "")))

    if block_type == "image":
        return _parse_image(block)

    if block_type == "thinking":
        return ThinkingBlock(
            thinking=str(block.get("thinking", "")),
            signature=str(block.get("signature", "")),
        )

    if block_type == "tool_use":
        tool_input = block.get("input")
        return ToolUseBlock(
            id=str(block.get("id", "")),
            name=str(block.get("name", "")),
            input=tool_input if tool_input is not None else {},
        )

    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(block.get("tool_use_id", "")),
            content=_parse_tool_result_content(block.get("content")),
            is_error=bool(block.get("is_error", False)),
        )

    raise UnsupportedContentError(f"Unsupported content block type: {block_type}")


def _parse_message(message: Any) -> Message:
    if not isinstance(message, Mapping):
        raise UnsupportedContentError("Message must be an object")

    role = message.get("role")
    if role not in (USER_ROLE, ASSISTANT_ROLE):
        raise UnsupportedRoleError(role)

    content = message.get("content")
    if isinstance(content, str):
        return Message(role=role, content=[TextBlock(text=content)])
    if isinstance(content, list):
        return Message(role=role, content=[_parse_block(block) for block in content])
    if content is None:
        return Message(role=role, content=[])
    raise UnsupportedContentError(f"Unsupported message content: {type(content).__name__}")


def _parse_system(system: Any) -> Optional[str]:
    """Anthropic allows system as a string or a list of text blocks."""
    if system is None or isinstance(system, str):
        return system
    if isinstance(system, list):
        text_parts: list[str] = []
        for block in system:
            if isinstance(block, Mapping) and block.get("type") == "text":
                text_parts.append(str(block.get("text", "")))
            else:
                logger.warning(f"Non-text block in system parameter: {block.get('type') if isinstance(block, Mapping) else block}")
        return "\n".join(text_parts)
    raise UnsupportedContentError(f"Unsupported system type: {type(system).__name__}")


def _parse_tools(tools: Any) -> Optional[list[ToolDeclaration]]:
    if not tools:
        return None
    declarations = []
    for tool in tools:
        if not isinstance(tool, Mapping):
            continue
        declarations.append(
            ToolDeclaration(
                name=str(tool.get("name", "")),
                description=str(tool.get("description") or ""),
                input_schema=dict(tool.get("input_schema") or {}),
            )
        )
    return declarations


def parse_messages_request(payload: Mapping[str, Any]) -> GenerationRequest:
    """Parse an Anthropic Messages request body.

    Args:
        payload: Anthropic Messages API request body

    Returns:
        The equivalent ``GenerationRequest``

    Raises:
        UnsupportedRoleError: A message role other than user/assistant.
        UnsupportedContentError: An unknown or malformed content block.
    """
    messages = payload.get("messages") or []
    if not isinstance(messages, list):
        raise UnsupportedContentError("'messages' must be a list")

    stop_sequences = payload.get("stop_sequences")
    params = GenerationParams(
        max_tokens=payload.get("max_tokens"),
        temperature=payload.get("temperature"),
        top_p=payload.get("top_p"),
        top_k=payload.get("top_k"),
        stop_sequences=list(stop_sequences) if stop_sequences else None,
    )

    metadata = payload.get("metadata")
    return GenerationRequest(
        model=str(payload.get("model", "")),
        messages=[_parse_message(message) for message in messages],
        system=_parse_system(payload.get("system")),
        params=params,
        tools=_parse_tools(payload.get("tools")),
        stream=bool(payload.get("stream", False)),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def _block_to_payload(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ThinkingBlock):
        return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ImageBlock):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": block.media_type, "data": block.data},
        }
    return {
        "type": "tool_result",
        "tool_use_id": block.tool_use_id,
        "content": block.content if isinstance(block.content, str) else [
            _block_to_payload(item) if not isinstance(item, Mapping) else dict(item)
            for item in block.content
        ],
        "is_error": block.is_error,
    }


def response_to_messages_payload(response: GenerationResponse) -> dict[str, Any]:
    """Render a response as an Anthropic Messages response body."""
    return {
        "id": response.id,
        "type": "message",
        "role": "assistant",
        "content": [_block_to_payload(block) for block in response.content],
        "model": response.model,
        "stop_reason": response.finish_reason.to_stop_reason(),
        "stop_sequence": None,
        "usage": response.usage.to_payload(),
    }


def encode_stream_event(event: StreamEvent) -> bytes:
    """Format a stream event as Anthropic SSE bytes."""
    return format_sse_event(event.event_type, event.to_payload())
