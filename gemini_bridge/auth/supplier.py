"""Credential supplier for the three Gemini auth modes.

``CredentialSupplier.get(name)`` always returns a credential that stays valid
for at least the profile's ``min_token_lifetime``:

- API key: the configured key, no network call, never expires.
- OAuth: cached access token, refreshed against the token endpoint with the
  refresh token when it is close to expiry.
- Vertex: cached access token from ADC or a service-account key (via
  google-auth), or a static Vertex API key.

Refreshes are coalesced per credential name with ``SingleFlight``. Some OAuth
servers rotate the refresh token on every use, so two parallel refreshes with
the same refresh token would invalidate each other.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import fields
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import httpx

from ..core.exceptions import AuthError, ConfigurationError
from ..core.upstream_transport import build_upstream_client, format_httpx_error
from ..logging.masking import mask_secret
from .credentials import (
    AuthMode,
    Credential,
    CredentialProfile,
    OAuthCredential,
    VertexCredential,
    VertexSource,
    utcnow,
)
from .google_auth import VertexTokenSource, build_token_source
from .singleflight import SingleFlight
from .store import CredentialStore, InMemoryCredentialStore

logger = logging.getLogger("gemini-bridge")

TOKEN_REQUEST_TIMEOUT = 30.0


def _apply_refresh(current: Optional[Credential], refreshed: Credential) -> Credential:
    """Copy a refreshed credential into the cached object so holders see the new token."""
    if current is None or type(current) is not type(refreshed):
        return refreshed
    for item in fields(refreshed):
        setattr(current, item.name, getattr(refreshed, item.name))
    return current


class CredentialSupplier:
    """Hands out valid credentials and owns their refresh.

    Args:
        profiles: Configured credential profiles, keyed by their ``name``.
        store: Persistence collaborator. Defaults to an in-memory store.
        http_client: Client for the OAuth token endpoint. When omitted a
            short-lived client is created per refresh.
        token_source_factory: Builds the Vertex token source for a profile.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self,
        profiles: Union[Iterable[CredentialProfile], Mapping[str, CredentialProfile]],
        store: Optional[CredentialStore] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        token_source_factory: Optional[Callable[[Any], VertexTokenSource]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if isinstance(profiles, Mapping):
            profiles = profiles.values()
        self._profiles: dict[str, CredentialProfile] = {}
        for profile in profiles:
            profile.validate()
            if profile.name in self._profiles:
                raise ConfigurationError(f"Duplicate credential profile '{profile.name}'")
            self._profiles[profile.name] = profile

        self._store: CredentialStore = store if store is not None else InMemoryCredentialStore()
        self._http_client = http_client
        self._token_source_factory = token_source_factory or build_token_source
        self._token_sources: dict[str, VertexTokenSource] = {}
        self._clock = clock or utcnow
        self._cache: dict[str, Credential] = {}
        self._invalidated: set[str] = set()
        self._refreshes: SingleFlight[Credential] = SingleFlight()

    @property
    def profile_names(self) -> list[str]:
        return list(self._profiles)

    def profile(self, name: str) -> CredentialProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise ConfigurationError(f"Unknown credential profile '{name}'") from None

    def mode(self, name: str) -> AuthMode:
        return self.profile(name).mode

    async def get(self, name: str) -> Credential:
        """Return a credential for ``name`` valid for at least the minimum lifetime.

        Raises:
            AuthError: The credential needed a refresh and the refresh failed.
            ConfigurationError: ``name`` is not a configured profile.
        """
        profile = self.profile(name)
        credential = self._current(profile)
        if self._usable(profile, credential):
            return credential  # type: ignore[return-value]

        logger.debug("Credential '%s' needs refresh", name)
        return await self._refreshes.do(name, lambda: self._refresh(profile))

    def invalidate(self, name: str) -> None:
        """Force the next ``get`` for ``name`` to refresh.

        Static API keys have nothing to refresh, so this is a no-op for them.
        """
        profile = self.profile(name)
        if self._is_static(profile):
            return
        logger.info("Invalidating %s credential '%s'", profile.mode.value, name)
        self._invalidated.add(name)

    # ------------------------------------------------------------------
    # Cache handling
    # ------------------------------------------------------------------

    @staticmethod
    def _is_static(profile: CredentialProfile) -> bool:
        if profile.mode is AuthMode.API_KEY:
            return True
        return (
            profile.mode is AuthMode.VERTEX
            and profile.vertex is not None
            and profile.vertex.source is VertexSource.API_KEY
        )

    def _current(self, profile: CredentialProfile) -> Optional[Credential]:
        """Cached credential, else the stored one, else the configured seed."""
        credential = self._cache.get(profile.name)
        if credential is not None:
            return credential
        credential = self._store.load(profile.mode, profile.name)
        if credential is not None and credential.mode is not profile.mode:
            logger.warning(
                "Ignoring stored credential for '%s': mode %s does not match profile mode %s",
                profile.name,
                credential.mode.value,
                profile.mode.value,
            )
            credential = None
        if credential is None:
            credential = profile.seed_credential()
        if credential is not None:
            self._cache[profile.name] = credential
        return credential

    def _usable(self, profile: CredentialProfile, credential: Optional[Credential]) -> bool:
        if credential is None:
            return False
        if profile.name in self._invalidated and not self._is_static(profile):
            return False
        return credential.is_fresh(self._clock(), profile.min_token_lifetime)

    async def _refresh(self, profile: CredentialProfile) -> Credential:
        # A caller may have queued behind a refresh that just completed
        credential = self._current(profile)
        if self._usable(profile, credential):
            return credential  # type: ignore[return-value]

        if profile.mode is AuthMode.OAUTH:
            refreshed: Credential = await self._refresh_oauth(profile, credential)
        elif profile.mode is AuthMode.VERTEX:
            refreshed = await self._refresh_vertex(profile)
        else:
            # API keys are always usable; reaching here means an empty key
            raise AuthError(f"Credential '{profile.name}' has no API key configured")

        await self._save(profile, refreshed)
        credential = _apply_refresh(credential, refreshed)
        self._cache[profile.name] = credential
        self._invalidated.discard(profile.name)
        return credential

    async def _save(self, profile: CredentialProfile, credential: Credential) -> None:
        """Persist a refreshed credential before it replaces the cached one."""
        try:
            await asyncio.to_thread(self._store.save, profile.mode, profile.name, credential)
        except Exception as exc:
            logger.error("Saving credential '%s' failed: %s", profile.name, exc)
            raise AuthError(f"Failed to persist refreshed credential: {exc}") from exc

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def _post_token_request(self, token_uri: str, data: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._http_client is not None:
            return await self._http_client.post(token_uri, data=data, headers=headers)
        async with build_upstream_client(token_uri, TOKEN_REQUEST_TIMEOUT) as client:
            return await client.post(token_uri, data=data, headers=headers)

    async def _refresh_oauth(
        self, profile: CredentialProfile, current: Optional[Credential]
    ) -> OAuthCredential:
        oauth = profile.oauth
        assert oauth is not None
        refresh_token = oauth.refresh_token
        if isinstance(current, OAuthCredential) and current.refresh_token:
            refresh_token = current.refresh_token

        logger.info(
            "Refreshing OAuth token for '%s' (refresh_token=%s)",
            profile.name,
            mask_secret(refresh_token),
        )
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": oauth.client_id,
            "client_secret": oauth.client_secret,
        }
        try:
            response = await self._post_token_request(oauth.token_uri, data)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, oauth.token_uri)
            logger.error("OAuth refresh for '%s' failed: %s", profile.name, detail)
            raise AuthError(f"Failed to refresh OAuth token: {detail}") from exc

        if not response.is_success:
            body = response.text[:500]
            logger.error(
                "OAuth refresh for '%s' returned HTTP %s: %s",
                profile.name,
                response.status_code,
                body,
            )
            raise AuthError(
                f"Failed to refresh OAuth token: token endpoint returned "
                f"HTTP {response.status_code}: {body}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Failed to refresh OAuth token: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise AuthError("Failed to refresh OAuth token: response is not a JSON object")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthError("Failed to refresh OAuth token: response has no access_token")
        expires_in = payload.get("expires_in", 3600)
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError) as exc:
            raise AuthError(
                f"Failed to refresh OAuth token: invalid expires_in {expires_in!r}"
            ) from exc
        rotated = payload.get("refresh_token")
        new_refresh_token = rotated if isinstance(rotated, str) and rotated else refresh_token
        expiry = self._clock() + timedelta(seconds=lifetime)

        credential = OAuthCredential(
            access_token=access_token,
            refresh_token=new_refresh_token,
            expiry=expiry,
        )
        logger.info("OAuth token for '%s' refreshed, expires at %s", profile.name, expiry)
        return credential

    # ------------------------------------------------------------------
    # Vertex
    # ------------------------------------------------------------------

    def _token_source(self, profile: CredentialProfile) -> VertexTokenSource:
        source = self._token_sources.get(profile.name)
        if source is None:
            source = self._token_source_factory(profile.vertex)
            self._token_sources[profile.name] = source
        return source

    async def _refresh_vertex(self, profile: CredentialProfile) -> VertexCredential:
        vertex = profile.vertex
        assert vertex is not None
        if vertex.source is VertexSource.API_KEY:
            raise AuthError(f"Vertex credential '{profile.name}' has no API key configured")

        logger.info(
            "Acquiring Vertex token for '%s' via %s", profile.name, vertex.source.value
        )
        try:
            access_token, expiry = await self._token_source(profile).fetch()
        except AuthError:
            raise
        except Exception as exc:
            raise AuthError(
                f"Vertex {vertex.source.value} token acquisition failed: {exc}"
            ) from exc
        if not access_token:
            raise AuthError("Vertex token source returned an empty access token")

        return VertexCredential(
            access_token=access_token,
            expiry=expiry,
            project_id=vertex.project_id,
            location=vertex.location,
        )
