"""Tests for secret masking in logs."""

import logging

from gemini_bridge.auth.credentials import ApiKeyCredential, OAuthCredential
from gemini_bridge.logging import mask_secret, safe_headers, safe_url, setup_logging


class TestMaskSecret:
    """Tests for mask_secret."""

    def test_keeps_prefix(self):
        assert mask_secret("AIzaSyABCDEF") == "AIz****"

    def test_short_and_empty(self):
        assert mask_secret("abc") == "****"
        assert mask_secret("") == "****"
        assert mask_secret(None) == "****"


class TestSafeHeaders:
    """Tests for safe_headers."""

    def test_bearer_masked(self):
        masked = safe_headers({"Authorization": "Bearer ya29.secret", "Content-Type": "application/json"})
        assert masked == {"Authorization": "Bearer ya2****", "Content-Type": "application/json"}

    def test_api_key_header_masked(self):
        assert safe_headers({"x-goog-api-key": "AIzaSecret"}) == {"x-goog-api-key": "AIz****"}


class TestSafeUrl:
    """Tests for safe_url."""

    def test_key_query_masked(self):
        url = "https://generativelanguage.googleapis.com/v1beta/models/m:generateContent?key=AIzaSecret"
        assert safe_url(url).endswith("?key=AIz****")

    def test_other_params_kept(self):
        url = "https://host/path:streamGenerateContent?alt=sse&key=AIzaSecret"
        masked = safe_url(url)
        assert "alt=sse" in masked
        assert "AIzaSecret" not in masked

    def test_url_without_query(self):
        assert safe_url("https://host/path") == "https://host/path"


class TestCredentialRepr:
    """Credentials never render their secrets."""

    def test_reprs_masked(self):
        assert "AIzaSecret" not in repr(ApiKeyCredential("AIzaSecret"))
        rendered = repr(OAuthCredential("ya29.secret", "1//refresh"))
        assert "ya29.secret" not in rendered
        assert "1//refresh" not in rendered


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_idempotent_handlers(self):
        logger = setup_logging(logging.DEBUG)
        setup_logging(logging.DEBUG)
        assert logger.name == "gemini-bridge"
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
