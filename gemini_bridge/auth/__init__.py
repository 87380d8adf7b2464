"""Credential handling for Gemini API key, OAuth and Vertex AI access.

Usage:
    from gemini_bridge.auth import CredentialSupplier, CredentialProfile, AuthMode

    supplier = CredentialSupplier([CredentialProfile(name="gemini", mode=AuthMode.API_KEY, api_key="...")])
    credential = await supplier.get("gemini")
"""

from .credentials import (
    ApiKeyCredential,
    AuthMode,
    Credential,
    CredentialProfile,
    OAuthCredential,
    OAuthSettings,
    VertexCredential,
    VertexSettings,
    VertexSource,
)
from .google_auth import GoogleAuthTokenSource, VertexTokenSource
from .singleflight import SingleFlight
from .store import CredentialStore, InMemoryCredentialStore, YamlCredentialStore
from .supplier import CredentialSupplier

__all__ = [
    "ApiKeyCredential",
    "AuthMode",
    "Credential",
    "CredentialProfile",
    "CredentialStore",
    "CredentialSupplier",
    "GoogleAuthTokenSource",
    "InMemoryCredentialStore",
    "OAuthCredential",
    "OAuthSettings",
    "SingleFlight",
    "VertexCredential",
    "VertexSettings",
    "VertexSource",
    "VertexTokenSource",
    "YamlCredentialStore",
]
