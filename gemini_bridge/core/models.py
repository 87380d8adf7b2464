"""Model identifier mapping.

Clients send Anthropic model names (or Gemini names directly). The mapping
from alias to the literal Gemini id is a lookup table; the auth mode only
decides the final form:

- Vertex AI needs the ``publishers/google/models/<id>`` resource path and
  rejects aliases it cannot resolve.
- API key and OAuth use the bare id and pass unknown aliases through.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Optional, Union

from .exceptions import ModelNotFoundError

logger = logging.getLogger("gemini-bridge")

VERTEX_MODEL_PREFIX = "publishers/google/models/"

DEFAULT_MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4-1": "gemini-2.5-pro",
    "claude-opus-4-0": "gemini-2.5-pro",
    "claude-sonnet-4-5": "gemini-2.5-pro",
    "claude-sonnet-4-0": "gemini-2.5-pro",
    "claude-3-7-sonnet-latest": "gemini-2.5-flash",
    "claude-3-5-sonnet-latest": "gemini-2.5-flash",
    "claude-3-5-haiku-latest": "gemini-2.5-flash-lite",
    "claude-haiku-4-5": "gemini-2.5-flash-lite",
}

KNOWN_GEMINI_MODELS = frozenset(
    {
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
    }
)


def normalize_model_name(model_name: str) -> str:
    """Strip whitespace and an optional ``models/`` or ``google/`` prefix."""
    if not isinstance(model_name, str):
        return ""
    stripped = model_name.strip()
    for prefix in ("models/", "google/", VERTEX_MODEL_PREFIX):
        if stripped.startswith(prefix):
            return stripped[len(prefix):]
    return stripped


def resolve_model(
    alias: str,
    mode: Union[str, Enum],
    aliases: Optional[Mapping[str, str]] = None,
    known_models: Optional[frozenset[str]] = None,
) -> str:
    """Return the model string the Gemini endpoint expects.

    Args:
        alias: Model name from the client request.
        mode: Auth mode value ("api_key", "oauth" or "vertex").
        aliases: Alias table; defaults to ``DEFAULT_MODEL_ALIASES``.
        known_models: Gemini ids accepted as-is under Vertex.

    Raises:
        ModelNotFoundError: Vertex mode and the alias is neither in the table
            nor a known Gemini model id.
    """
    table = DEFAULT_MODEL_ALIASES if aliases is None else aliases
    known = KNOWN_GEMINI_MODELS if known_models is None else known_models
    name = normalize_model_name(alias)
    if not name:
        raise ModelNotFoundError("Model name is required")

    mapped = table.get(name)
    is_vertex = str(getattr(mode, "value", mode)) == "vertex"

    if is_vertex:
        if mapped is None:
            if name not in known and name not in table.values():
                raise ModelNotFoundError(
                    f"No Vertex AI mapping for model '{alias}'"
                )
            mapped = name
        return f"{VERTEX_MODEL_PREFIX}{mapped}"

    if mapped is None:
        logger.debug("Model '%s' not in alias table, passing through", name)
        return name
    return mapped
