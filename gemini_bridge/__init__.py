"""gemini-bridge - Anthropic Messages API on top of Google Gemini

Lets clients that speak the Anthropic Messages dialect drive Gemini's
generateContent API (Generative Language or Vertex AI).

This package provides:
- GeminiGateway: sends, streams and counts tokens for Messages requests
- CredentialSupplier: API key, OAuth and Vertex AI credentials with
  coalesced refresh
- Translators between Messages and generateContent, including streaming
- Mapping of Gemini errors onto the Anthropic error taxonomy
"""

from .auth import AuthMode, CredentialProfile, CredentialSupplier
from .config_loader import build_gateway, build_gateway_settings, load_config
from .core.backend import GeminiBackend
from .core.router import GeminiGateway
from .logging import setup_logging
from .messages import parse_messages_request, response_to_messages_payload

__version__ = "0.1.0"

__all__ = [
    "AuthMode",
    "CredentialProfile",
    "CredentialSupplier",
    "GeminiBackend",
    "GeminiGateway",
    "build_gateway",
    "build_gateway_settings",
    "load_config",
    "parse_messages_request",
    "response_to_messages_payload",
    "setup_logging",
]
