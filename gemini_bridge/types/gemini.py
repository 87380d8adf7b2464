"""Wire types for the Gemini generateContent API family.

These mirror the JSON bodies exchanged with Google's Generative Language and
Vertex AI endpoints. They are only used as annotations; translation code works
on plain dicts so unknown upstream fields pass through untouched.
"""

from typing import Any
from typing_extensions import TypedDict


# =============================================================================
# Request Types
# =============================================================================


class GeminiInlineData(TypedDict, total=False):
    """Base64 payload embedded in a part.

    Attributes:
        mime_type: Media type of the payload, e.g. "image/png".
        data: Base64-encoded bytes.
    """
    mime_type: str
    data: str


class GeminiFunctionCall(TypedDict, total=False):
    """A function call emitted by the model.

    Attributes:
        id: Call identifier. Only newer API versions populate it.
        name: Name of the declared function.
        args: Arguments as a JSON object.
    """
    id: str | None
    name: str
    args: dict[str, Any]


class GeminiFunctionResponse(TypedDict, total=False):
    """The result of a function call, sent back in a user turn."""
    name: str
    response: dict[str, Any]


class GeminiPart(TypedDict, total=False):
    """A single part of a content turn. Exactly one payload field is set.

    Attributes:
        text: Plain text.
        thought: True when the text is a model reasoning summary.
        inline_data: Inline media (snake_case on requests).
        inlineData: Inline media (camelCase as returned in responses).
        functionCall: Function call requested by the model.
        functionResponse: Function result supplied by the caller.
    """
    text: str
    thought: bool
    inline_data: GeminiInlineData
    inlineData: dict[str, Any]
    functionCall: GeminiFunctionCall
    functionResponse: GeminiFunctionResponse


class GeminiContent(TypedDict, total=False):
    """A conversation turn. Role is "user" or "model"."""
    role: str
    parts: list[GeminiPart]


class GeminiGenerationConfig(TypedDict, total=False):
    temperature: float
    topP: float
    topK: int
    maxOutputTokens: int
    stopSequences: list[str]


class GeminiFunctionDeclaration(TypedDict, total=False):
    name: str
    description: str
    parameters: dict[str, Any]


class GeminiTool(TypedDict, total=False):
    functionDeclarations: list[GeminiFunctionDeclaration]


class GeminiRequest(TypedDict, total=False):
    """Body of a generateContent / streamGenerateContent call."""
    contents: list[GeminiContent]
    systemInstruction: GeminiContent
    generationConfig: GeminiGenerationConfig
    tools: list[GeminiTool]


# =============================================================================
# Response Types
# =============================================================================


class GeminiUsageMetadata(TypedDict, total=False):
    """Token accounting returned with responses and final stream frames."""
    promptTokenCount: int
    candidatesTokenCount: int
    totalTokenCount: int
    thoughtsTokenCount: int


class GeminiCandidate(TypedDict, total=False):
    """One alternative completion. Only the first is used.

    Attributes:
        content: The generated turn. Absent when generation was blocked.
        finishReason: "STOP", "MAX_TOKENS", "SAFETY", "RECITATION", ...
        index: Position of the candidate.
    """
    content: GeminiContent
    finishReason: str
    index: int


class GeminiResponse(TypedDict, total=False):
    """A full generateContent response, or one streaming frame."""
    candidates: list[GeminiCandidate]
    usageMetadata: GeminiUsageMetadata
    modelVersion: str
    responseId: str


class GeminiError(TypedDict, total=False):
    """The error object inside Google's error envelope.

    Attributes:
        code: HTTP status code, repeated in the body.
        message: Human readable message.
        status: Canonical status string, e.g. "RESOURCE_EXHAUSTED".
    """
    code: int
    message: str
    status: str
