"""Anthropic Messages <-> Gemini translation helpers.

Provides translation between the Anthropic Messages API format and Google's
Gemini generateContent format, including streaming and error mapping.
"""

from .error_mapper import error_class_for_status, map_upstream_error
from .payloads import encode_stream_event, parse_messages_request, response_to_messages_payload
from .stream_adapter import (
    GeminiToMessagesStreamAdapter,
    adapt_gemini_stream_to_messages,
)
from .translator import (
    build_count_tokens_request,
    build_generate_content_request,
    count_tokens_to_result,
    generate_content_to_response,
    messages_to_count_tokens,
    messages_to_generate_content,
)

__all__ = [
    "messages_to_generate_content",
    "build_generate_content_request",
    "generate_content_to_response",
    "messages_to_count_tokens",
    "build_count_tokens_request",
    "count_tokens_to_result",
    "GeminiToMessagesStreamAdapter",
    "adapt_gemini_stream_to_messages",
    "map_upstream_error",
    "error_class_for_status",
    "parse_messages_request",
    "response_to_messages_payload",
    "encode_stream_event",
]
