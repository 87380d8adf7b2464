"""Vertex AI token acquisition via google-auth.

Application Default Credentials and service-account keys are both handled by
``google-auth``. Its refresh call is blocking, so it runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import google.auth
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ..core.exceptions import AuthError
from .credentials import VertexSettings, VertexSource

logger = logging.getLogger("gemini-bridge")


class VertexTokenSource(Protocol):
    """Produces a fresh (access_token, expiry) pair on each call."""

    async def fetch(self) -> tuple[str, Optional[datetime]]:
        ...


class GoogleAuthTokenSource:
    """Token source backed by ADC or a service-account key."""

    def __init__(self, settings: VertexSettings) -> None:
        if settings.source is VertexSource.API_KEY:
            raise ValueError("API-key Vertex profiles do not use a token source")
        self.settings = settings
        self._credentials: Any = None

    def _load_credentials(self) -> Any:
        scopes = list(self.settings.scopes)
        if self.settings.source is VertexSource.SERVICE_ACCOUNT:
            if self.settings.service_account_info:
                return service_account.Credentials.from_service_account_info(
                    self.settings.service_account_info, scopes=scopes
                )
            return service_account.Credentials.from_service_account_file(
                self.settings.service_account_file, scopes=scopes
            )
        credentials, project = google.auth.default(scopes=scopes)
        if project and project != self.settings.project_id:
            logger.debug(
                "ADC project %s differs from configured Vertex project %s",
                project,
                self.settings.project_id,
            )
        return credentials

    def _refresh_blocking(self) -> tuple[str, Optional[datetime]]:
        if self._credentials is None:
            self._credentials = self._load_credentials()
        self._credentials.refresh(Request())
        token = self._credentials.token
        if not token:
            raise AuthError("google-auth refresh returned no access token")
        expiry = self._credentials.expiry
        # google-auth reports naive UTC datetimes
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return token, expiry

    async def fetch(self) -> tuple[str, Optional[datetime]]:
        try:
            return await asyncio.to_thread(self._refresh_blocking)
        except (GoogleAuthError, OSError, ValueError) as exc:
            raise AuthError(
                f"Vertex {self.settings.source.value} token acquisition failed: {exc}"
            ) from exc


def build_token_source(settings: VertexSettings) -> VertexTokenSource:
    return GoogleAuthTokenSource(settings)
