"""Anthropic Messages <-> Gemini generateContent translation.

This module translates between the dialect-neutral message model (parsed from
Anthropic Messages requests) and Google's Gemini ``generateContent`` format.

Key mappings:
- Message roles "user"/"assistant" -> Gemini roles "user"/"model"
- Top-level system text -> ``systemInstruction``
- Content blocks -> Gemini parts (text, inline_data, functionCall, functionResponse)
- Tools -> a single ``functionDeclarations`` tool
- Sampling params -> ``generationConfig`` (topK defaults to 40)

Thinking blocks are sent to Gemini as plain text and their signature is
dropped; Gemini has no equivalent, so the conversion does not round-trip.

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- Gemini API: https://ai.google.dev/api/generate-content
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Mapping, Optional, Union

from ..auth.credentials import Credential, VertexCredential
from ..core.backend import (
    COUNT_TOKENS,
    GENERATE_CONTENT,
    STREAM_GENERATE_CONTENT,
    GeminiBackend,
    OutboundRequest,
    build_outbound_request,
)
from ..core.exceptions import (
    DanglingToolResultError,
    MalformedResponseError,
    UnsupportedContentError,
    UnsupportedRoleError,
)
from ..types.gemini import GeminiContent, GeminiPart, GeminiRequest
from ..types.messages import (
    ASSISTANT_ROLE,
    USER_ROLE,
    FinishKind,
    FinishReason,
    GenerationRequest,
    GenerationResponse,
    ImageBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from .error_mapper import map_upstream_error

logger = logging.getLogger("gemini-bridge")

DEFAULT_TOP_K = 40

ROLE_MAP = {
    USER_ROLE: "user",
    ASSISTANT_ROLE: "model",
}


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def new_tool_use_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


# =============================================================================
# Request translation
# =============================================================================


def _convert_image(block: ImageBlock) -> GeminiPart:
    """Convert an image block to a Gemini inline_data part.

    The media type is passed through; Gemini rejects types it cannot read.
    """
    if not block.media_type or not block.data:
        raise UnsupportedContentError("Image block requires both media_type and data")
    return {"inline_data": {"mime_type": block.media_type, "data": block.data}}


def _tool_input_to_args(tool_input: Any) -> dict[str, Any]:
    """Gemini requires function call args to be a JSON object."""
    if isinstance(tool_input, dict):
        return tool_input
    if tool_input is None or tool_input == "":
        return {}
    if isinstance(tool_input, str):
        try:
            decoded = json.loads(tool_input)
        except json.JSONDecodeError as exc:
            raise UnsupportedContentError(
                f"tool_use input is not valid JSON: {tool_input[:100]}"
            ) from exc
        if isinstance(decoded, dict):
            return decoded
    raise UnsupportedContentError(
        f"tool_use input must be a JSON object, got {type(tool_input).__name__}"
    )


def _tool_result_text(content: Union[str, list[Any], None]) -> str:
    """Flatten tool_result content to text.

    Nested content may be a string or a list of text blocks (as dataclasses or
    raw dicts). Any other nested block has no Gemini functionResponse form
    and raises ``UnsupportedContentError``.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content

    text_parts: list[str] = []
    for item in content:
        if isinstance(item, TextBlock):
            text_parts.append(item.text)
        elif isinstance(item, Mapping) and item.get("type") == "text":
            text_parts.append(str(item.get("text", "")))
        elif isinstance(item, str):
            text_parts.append(item)
        else:
            item_type = item.get("type") if isinstance(item, Mapping) else getattr(item, "type", None)
            raise UnsupportedContentError(
                f"Unsupported block in tool_result content: {item_type or type(item).__name__}"
            )
    return "\n".join(text_parts)


def _convert_tool_result(block: ToolResultBlock, tool_names: Mapping[str, str]) -> GeminiPart:
    name = tool_names.get(block.tool_use_id)
    if name is None:
        raise DanglingToolResultError(block.tool_use_id)

    text = _tool_result_text(block.content)
    response: dict[str, Any] = {"error": text} if block.is_error else {"output": text}
    return {"functionResponse": {"name": name, "response": response}}


def _convert_block(block: Any, tool_names: dict[str, str]) -> GeminiPart:
    """Convert one content block to a Gemini part.

    ``tool_names`` maps tool_use ids seen so far to their function names; it is
    updated in place when a tool_use block is converted.
    """
    if isinstance(block, TextBlock):
        return {"text": block.text}

    if isinstance(block, ImageBlock):
        return _convert_image(block)

    if isinstance(block, ThinkingBlock):
        # Gemini has no thinking input, keep the reasoning as text
        return {"text": block.thinking}

    if isinstance(block, ToolUseBlock):
        tool_names[block.id] = block.name
        return {"functionCall": {"name": block.name, "args": _tool_input_to_args(block.input)}}

    if isinstance(block, ToolResultBlock):
        return _convert_tool_result(block, tool_names)

    block_type = getattr(block, "type", type(block).__name__)
    raise UnsupportedContentError(f"Unsupported content block type: {block_type}")


def _convert_contents(request: GenerationRequest) -> list[GeminiContent]:
    contents: list[GeminiContent] = []
    tool_names: dict[str, str] = {}

    for message in request.messages:
        gemini_role = ROLE_MAP.get(message.role)
        if gemini_role is None:
            raise UnsupportedRoleError(message.role)

        parts = [_convert_block(block, tool_names) for block in message.content]
        if not parts:
            logger.debug(f"Skipping {message.role} message with no content")
            continue
        contents.append({"role": gemini_role, "parts": parts})

    return contents


def _convert_system(system: Union[str, list[Any], None]) -> Optional[GeminiContent]:
    """Convert top-level system text to ``systemInstruction``.

    A list of system text blocks is joined with newlines.
    """
    if system is None:
        return None

    if isinstance(system, str):
        text = system
    else:
        text_parts: list[str] = []
        for block in system:
            if isinstance(block, TextBlock):
                text_parts.append(block.text)
            elif isinstance(block, Mapping) and block.get("type") == "text":
                text_parts.append(str(block.get("text", "")))
            elif isinstance(block, str):
                text_parts.append(block)
            else:
                logger.warning(f"Non-text block in system parameter: {getattr(block, 'type', block)}")
        text = "\n".join(text_parts)

    if not text:
        return None
    return {"parts": [{"text": text}]}


def _convert_generation_config(request: GenerationRequest, default_top_k: Optional[int]) -> dict[str, Any]:
    params = request.params
    config: dict[str, Any] = {}

    if params.max_tokens is not None:
        config["maxOutputTokens"] = params.max_tokens
    if params.temperature is not None:
        config["temperature"] = params.temperature
    if params.top_p is not None:
        config["topP"] = params.top_p

    top_k = params.top_k if params.top_k is not None else default_top_k
    if top_k is not None:
        config["topK"] = top_k

    if params.stop_sequences:
        config["stopSequences"] = list(params.stop_sequences)

    return config


def _convert_tools(request: GenerationRequest) -> Optional[list[dict[str, Any]]]:
    """All declarations go into a single Gemini tool entry."""
    if not request.tools:
        return None

    declarations = []
    for tool in request.tools:
        declaration: dict[str, Any] = {"name": tool.name, "description": tool.description or ""}
        if tool.input_schema:
            declaration["parameters"] = tool.input_schema
        declarations.append(declaration)

    return [{"functionDeclarations": declarations}]


def messages_to_generate_content(
    request: GenerationRequest,
    *,
    default_top_k: Optional[int] = DEFAULT_TOP_K,
) -> GeminiRequest:
    """Translate a Messages request to a Gemini generateContent body.

    Handles:
    - Role mapping (assistant -> model), rejecting other roles
    - Content blocks (text, image, thinking, tool_use, tool_result)
    - System text -> systemInstruction
    - Parameter mapping (max_tokens, temperature, top_p, top_k, stop_sequences)
    - Tool declarations

    Args:
        request: The parsed Messages request.
        default_top_k: ``topK`` to send when the request does not set one.

    Returns:
        Gemini request body.

    Raises:
        UnsupportedRoleError: A message role other than user/assistant.
        UnsupportedContentError: A block that has no Gemini part equivalent.
        DanglingToolResultError: A tool_result without an earlier tool_use.
    """
    body: GeminiRequest = {"contents": _convert_contents(request)}

    system_instruction = _convert_system(request.system)
    if system_instruction:
        body["systemInstruction"] = system_instruction

    generation_config = _convert_generation_config(request, default_top_k)
    if generation_config:
        body["generationConfig"] = generation_config  # type: ignore[typeddict-item]

    tools = _convert_tools(request)
    if tools:
        body["tools"] = tools  # type: ignore[typeddict-item]

    return body


def build_generate_content_request(
    backend: GeminiBackend,
    request: GenerationRequest,
    credential: Credential,
    *,
    stream: bool = False,
) -> OutboundRequest:
    """Build the full outbound call for a Messages request.

    Args:
        backend: Target backend (URL, custom headers, default topK).
        request: The parsed Messages request.
        credential: Credential from the supplier; decides URL and auth header.
        stream: Use ``streamGenerateContent`` with ``alt=sse``.
    """
    body = messages_to_generate_content(request, default_top_k=backend.default_top_k)
    method = STREAM_GENERATE_CONTENT if stream else GENERATE_CONTENT
    return build_outbound_request(backend, request.model, method, credential, body)


# =============================================================================
# Response translation
# =============================================================================


def _convert_finish_reason(raw: Optional[str], saw_function_call: bool) -> FinishReason:
    """Convert a Gemini finishReason.

    Gemini reports STOP even when the turn ends in function calls, so any
    function call overrides the reason to tool use.
    """
    if saw_function_call:
        return FinishReason(FinishKind.TOOL_USE)
    if not raw or raw == "STOP":
        return FinishReason(FinishKind.END_TURN)
    if raw == "MAX_TOKENS":
        return FinishReason(FinishKind.MAX_TOKENS)
    return FinishReason.other(raw)


def _convert_usage(usage: Any) -> Usage:
    if not isinstance(usage, Mapping):
        return Usage()
    return Usage(
        input_tokens=int(usage.get("promptTokenCount") or 0),
        output_tokens=int(usage.get("candidatesTokenCount") or 0),
    )


def _function_call_args(args: Any) -> dict[str, Any]:
    if isinstance(args, dict):
        return args
    if isinstance(args, str) and args:
        try:
            decoded = json.loads(args)
        except json.JSONDecodeError:
            return {"raw": args}
        return decoded if isinstance(decoded, dict) else {"raw": args}
    return {}


def _convert_parts(parts: list[Any]) -> tuple[list[Any], bool]:
    """Convert Gemini response parts to content blocks.

    Returns:
        Tuple of (blocks, saw_function_call).
    """
    blocks: list[Any] = []
    saw_function_call = False

    for part in parts:
        if not isinstance(part, Mapping):
            continue

        function_call = part.get("functionCall")
        if isinstance(function_call, Mapping):
            name = function_call.get("name")
            if not isinstance(name, str) or not name:
                raise MalformedResponseError("Gemini functionCall part has no name")
            saw_function_call = True
            blocks.append(
                ToolUseBlock(
                    id=function_call.get("id") or new_tool_use_id(),
                    name=name,
                    input=_function_call_args(function_call.get("args")),
                )
            )
            continue

        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, Mapping):
            blocks.append(
                ImageBlock(
                    media_type=str(inline.get("mimeType") or inline.get("mime_type") or ""),
                    data=str(inline.get("data", "")),
                )
            )
            continue

        text = part.get("text")
        if isinstance(text, str):
            if part.get("thought"):
                blocks.append(ThinkingBlock(thinking=text))
            else:
                blocks.append(TextBlock(text=text))
            continue

        logger.debug(f"Ignoring unsupported Gemini part: {sorted(part.keys())}")

    return blocks, saw_function_call


def _decode_body(body: Union[bytes, str, Mapping[str, Any], None]) -> Any:
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"Gemini response is not valid JSON: {exc}") from exc
    return body


def generate_content_to_response(
    status: int,
    body: Union[bytes, str, Mapping[str, Any], None],
    *,
    model: str,
    message_id: Optional[str] = None,
) -> GenerationResponse:
    """Translate a Gemini generateContent response.

    Only the first candidate is used.

    Args:
        status: HTTP status of the upstream response.
        body: Raw or decoded response body.
        model: Model name to report back to the client.
        message_id: Response id; generated when omitted.

    Raises:
        UpstreamAPIError: ``status`` is not 2xx (mapped by status).
        MalformedResponseError: The body does not have the expected shape.
    """
    if not 200 <= status < 300:
        raise map_upstream_error(status, body if not isinstance(body, Mapping) else dict(body))

    payload = _decode_body(body)
    if not isinstance(payload, Mapping):
        raise MalformedResponseError("Gemini response is not a JSON object")

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise MalformedResponseError("Gemini response has no candidates")

    candidate = candidates[0]
    if not isinstance(candidate, Mapping):
        raise MalformedResponseError("Gemini candidate is not a JSON object")

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, Mapping) else None
    raw_finish = candidate.get("finishReason")
    if not isinstance(parts, list):
        parts = None
    if not parts and not raw_finish:
        raise MalformedResponseError("Gemini candidate has neither content parts nor a finish reason")

    blocks, saw_function_call = _convert_parts(parts or [])

    response_id = payload.get("responseId")
    if message_id is None:
        message_id = f"msg_{response_id}" if response_id else new_message_id()

    return GenerationResponse(
        id=message_id,
        model=model,
        content=blocks,
        finish_reason=_convert_finish_reason(raw_finish, saw_function_call),
        usage=_convert_usage(payload.get("usageMetadata")),
    )


# =============================================================================
# Token counting
# =============================================================================


def messages_to_count_tokens(request: GenerationRequest, credential: Credential) -> dict[str, Any]:
    """Build a countTokens body.

    The Generative Language endpoint only accepts ``contents``; Vertex AI
    also counts the system instruction and tool declarations.
    """
    body = messages_to_generate_content(request, default_top_k=None)
    result: dict[str, Any] = {"contents": body["contents"]}
    if isinstance(credential, VertexCredential):
        if "systemInstruction" in body:
            result["systemInstruction"] = body["systemInstruction"]
        if "tools" in body:
            result["tools"] = body["tools"]
    return result


def build_count_tokens_request(
    backend: GeminiBackend,
    request: GenerationRequest,
    credential: Credential,
) -> OutboundRequest:
    body = messages_to_count_tokens(request, credential)
    return build_outbound_request(backend, request.model, COUNT_TOKENS, credential, body)


def count_tokens_to_result(
    status: int, body: Union[bytes, str, Mapping[str, Any], None]
) -> dict[str, int]:
    """Translate a countTokens response to ``{"input_tokens": n}``."""
    if not 200 <= status < 300:
        raise map_upstream_error(status, body if not isinstance(body, Mapping) else dict(body))

    payload = _decode_body(body)
    if not isinstance(payload, Mapping):
        raise MalformedResponseError("countTokens response is not a JSON object")
    total = payload.get("totalTokens")
    if not isinstance(total, int):
        raise MalformedResponseError("countTokens response has no totalTokens")
    return {"input_tokens": total}
