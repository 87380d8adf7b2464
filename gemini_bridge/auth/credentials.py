"""Credential variants and the profiles they are built from.

A profile is the configured description of one credential (its auth mode and
seed values). A credential is the live, refreshable value the supplier hands
out. Both are keyed by the profile ``name``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from ..core.exceptions import ConfigurationError
from ..logging.masking import mask_secret

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
DEFAULT_MIN_TOKEN_LIFETIME = 60.0


class AuthMode(str, Enum):
    API_KEY = "api_key"
    OAUTH = "oauth"
    VERTEX = "vertex"


class VertexSource(str, Enum):
    """Where a Vertex credential comes from. Exactly one per profile."""

    ADC = "adc"
    SERVICE_ACCOUNT = "service_account"
    API_KEY = "api_key"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expires_within(expiry: Optional[datetime], now: datetime, seconds: float) -> bool:
    """True when ``expiry`` is unknown or less than ``seconds`` away from ``now``."""
    if expiry is None:
        return True
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry - now <= timedelta(seconds=seconds)


# =============================================================================
# Credentials
# =============================================================================


@dataclass
class ApiKeyCredential:
    value: str

    mode = AuthMode.API_KEY

    def is_fresh(self, now: datetime, min_lifetime: float) -> bool:
        return True

    def __repr__(self) -> str:
        return f"ApiKeyCredential(value={mask_secret(self.value)!r})"


@dataclass
class OAuthCredential:
    access_token: str
    refresh_token: str
    expiry: Optional[datetime] = None

    mode = AuthMode.OAUTH

    def is_fresh(self, now: datetime, min_lifetime: float) -> bool:
        if not self.access_token:
            return False
        return not expires_within(self.expiry, now, min_lifetime)

    def __repr__(self) -> str:
        return (
            f"OAuthCredential(access_token={mask_secret(self.access_token)!r}, "
            f"refresh_token={mask_secret(self.refresh_token)!r}, expiry={self.expiry!r})"
        )


@dataclass
class VertexCredential:
    """A Vertex AI credential.

    ``api_key`` is set only for the API-key sub-mode, in which case the
    credential never expires and ``access_token`` is empty.
    """

    access_token: str
    expiry: Optional[datetime]
    project_id: str
    location: str
    api_key: Optional[str] = None

    mode = AuthMode.VERTEX

    def is_fresh(self, now: datetime, min_lifetime: float) -> bool:
        if self.api_key:
            return True
        if not self.access_token:
            return False
        return not expires_within(self.expiry, now, min_lifetime)

    def __repr__(self) -> str:
        secret = self.api_key or self.access_token
        return (
            f"VertexCredential(token={mask_secret(secret)!r}, expiry={self.expiry!r}, "
            f"project_id={self.project_id!r}, location={self.location!r})"
        )


Credential = Union[ApiKeyCredential, OAuthCredential, VertexCredential]


def _format_expiry(expiry: Optional[datetime]) -> Optional[str]:
    return expiry.isoformat() if expiry is not None else None


def _parse_expiry(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def credential_to_dict(credential: Credential) -> dict[str, Any]:
    """Serialize a credential for a persistent store."""
    if isinstance(credential, ApiKeyCredential):
        return {"mode": AuthMode.API_KEY.value, "value": credential.value}
    if isinstance(credential, OAuthCredential):
        return {
            "mode": AuthMode.OAUTH.value,
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
            "expiry": _format_expiry(credential.expiry),
        }
    return {
        "mode": AuthMode.VERTEX.value,
        "access_token": credential.access_token,
        "expiry": _format_expiry(credential.expiry),
        "project_id": credential.project_id,
        "location": credential.location,
        "api_key": credential.api_key,
    }


def credential_from_dict(data: Mapping[str, Any]) -> Credential:
    """Inverse of ``credential_to_dict``."""
    mode = AuthMode(data.get("mode"))
    if mode is AuthMode.API_KEY:
        return ApiKeyCredential(value=str(data.get("value") or ""))
    if mode is AuthMode.OAUTH:
        return OAuthCredential(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            expiry=_parse_expiry(data.get("expiry")),
        )
    return VertexCredential(
        access_token=str(data.get("access_token") or ""),
        expiry=_parse_expiry(data.get("expiry")),
        project_id=str(data.get("project_id") or ""),
        location=str(data.get("location") or ""),
        api_key=data.get("api_key") or None,
    )


# =============================================================================
# Profiles
# =============================================================================


@dataclass
class OAuthSettings:
    client_id: str
    client_secret: str
    refresh_token: str
    access_token: Optional[str] = None
    token_uri: str = GOOGLE_TOKEN_URI


@dataclass
class VertexSettings:
    project_id: str
    location: str
    source: VertexSource = VertexSource.ADC
    service_account_file: Optional[str] = None
    service_account_info: Optional[dict[str, Any]] = field(default=None, repr=False)
    api_key: Optional[str] = field(default=None, repr=False)
    scopes: tuple[str, ...] = (CLOUD_PLATFORM_SCOPE,)


@dataclass
class CredentialProfile:
    """Configuration for one credential.

    Attributes:
        name: Identity of the credential. Refreshes are coalesced per name.
        mode: Which of the three auth modes this profile uses.
        api_key: Static key for ``AuthMode.API_KEY``.
        oauth: Client and seed tokens for ``AuthMode.OAUTH``.
        vertex: Project, location and token source for ``AuthMode.VERTEX``.
        min_token_lifetime: Seconds a returned token must remain valid for.
    """

    name: str
    mode: AuthMode
    api_key: Optional[str] = field(default=None, repr=False)
    oauth: Optional[OAuthSettings] = field(default=None, repr=False)
    vertex: Optional[VertexSettings] = None
    min_token_lifetime: float = DEFAULT_MIN_TOKEN_LIFETIME

    def validate(self) -> None:
        """Raise ``ConfigurationError`` unless exactly the fields for ``mode`` are usable."""
        if not self.name:
            raise ConfigurationError("Credential profile requires a name")
        if self.mode is AuthMode.API_KEY:
            if not self.api_key:
                raise ConfigurationError(
                    f"Credential '{self.name}': api_key mode requires 'api_key'"
                )
        elif self.mode is AuthMode.OAUTH:
            if self.oauth is None or not self.oauth.refresh_token:
                raise ConfigurationError(
                    f"Credential '{self.name}': oauth mode requires 'oauth.refresh_token'"
                )
        elif self.mode is AuthMode.VERTEX:
            vertex = self.vertex
            if vertex is None or not vertex.project_id or not vertex.location:
                raise ConfigurationError(
                    f"Credential '{self.name}': vertex mode requires 'project_id' and 'location'"
                )
            if vertex.source is VertexSource.API_KEY and not vertex.api_key:
                raise ConfigurationError(
                    f"Credential '{self.name}': vertex api_key source requires 'api_key'"
                )
            if vertex.source is VertexSource.SERVICE_ACCOUNT and not (
                vertex.service_account_file or vertex.service_account_info
            ):
                raise ConfigurationError(
                    f"Credential '{self.name}': service_account source requires "
                    "'service_account_file' or 'service_account_info'"
                )
        if self.min_token_lifetime < 0:
            raise ConfigurationError(
                f"Credential '{self.name}': min_token_lifetime must be >= 0"
            )

    def seed_credential(self) -> Optional[Credential]:
        """Build the initial credential from configuration alone.

        OAuth and Vertex token credentials start without a usable expiry, so
        the first ``get`` refreshes them.
        """
        if self.mode is AuthMode.API_KEY:
            return ApiKeyCredential(value=self.api_key or "")
        if self.mode is AuthMode.OAUTH and self.oauth is not None:
            return OAuthCredential(
                access_token=self.oauth.access_token or "",
                refresh_token=self.oauth.refresh_token,
                expiry=None,
            )
        if self.mode is AuthMode.VERTEX and self.vertex is not None:
            if self.vertex.source is VertexSource.API_KEY:
                return VertexCredential(
                    access_token="",
                    expiry=None,
                    project_id=self.vertex.project_id,
                    location=self.vertex.location,
                    api_key=self.vertex.api_key,
                )
            return None
        return None
