"""Tests for credential stores."""

from datetime import datetime, timezone

import pytest
import yaml

from conftest import oauth_profile
from gemini_bridge.auth import (
    ApiKeyCredential,
    AuthMode,
    CredentialSupplier,
    InMemoryCredentialStore,
    OAuthCredential,
    VertexCredential,
    YamlCredentialStore,
)


class TestInMemoryCredentialStore:
    """Tests for InMemoryCredentialStore."""

    def test_keyed_by_mode_and_name(self):
        store = InMemoryCredentialStore()
        store.save(AuthMode.API_KEY, "gemini", ApiKeyCredential("AIzaOne"))

        assert store.load(AuthMode.API_KEY, "gemini") == ApiKeyCredential("AIzaOne")
        assert store.load(AuthMode.OAUTH, "gemini") is None
        assert store.load(AuthMode.API_KEY, "other") is None

    @pytest.mark.asyncio
    async def test_cleared_store_reseeds_from_config(self, token_endpoint, clock):
        store = InMemoryCredentialStore()
        store.save(AuthMode.OAUTH, "gemini-oauth", OAuthCredential("", "1//stale"))
        store.clear()

        supplier = CredentialSupplier(
            [oauth_profile()], store, http_client=token_endpoint.client(), clock=clock
        )
        await supplier.get("gemini-oauth")

        assert token_endpoint.requests[0]["refresh_token"] == "1//refresh-token"


class TestYamlCredentialStore:
    """Tests for YamlCredentialStore."""

    def test_missing_file_loads_nothing(self, tmp_path):
        store = YamlCredentialStore(tmp_path / "creds.yaml")
        assert store.load(AuthMode.API_KEY, "gemini") is None

    def test_oauth_round_trip(self, tmp_path):
        path = tmp_path / "state" / "creds.yaml"
        expiry = datetime(2025, 1, 1, 13, 0, tzinfo=timezone.utc)
        YamlCredentialStore(path).save(
            AuthMode.OAUTH, "gemini-oauth", OAuthCredential("ya29.a", "1//r", expiry)
        )

        loaded = YamlCredentialStore(path).load(AuthMode.OAUTH, "gemini-oauth")

        assert loaded == OAuthCredential("ya29.a", "1//r", expiry)
        on_disk = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert on_disk["oauth:gemini-oauth"]["mode"] == "oauth"

    def test_vertex_round_trip_keeps_other_entries(self, tmp_path):
        store = YamlCredentialStore(tmp_path / "creds.yaml")
        store.save(AuthMode.API_KEY, "gemini", ApiKeyCredential("AIzaKey"))
        vertex = VertexCredential("tok", None, "my-project", "us-central1")
        store.save(AuthMode.VERTEX, "gemini-vertex", vertex)

        assert store.load(AuthMode.API_KEY, "gemini") == ApiKeyCredential("AIzaKey")
        assert store.load(AuthMode.VERTEX, "gemini-vertex") == vertex

    def test_malformed_file_ignored(self, tmp_path):
        path = tmp_path / "creds.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert YamlCredentialStore(path).load(AuthMode.API_KEY, "gemini") is None
