"""Tests for model identifier mapping."""

import pytest

from gemini_bridge.auth.credentials import AuthMode
from gemini_bridge.core.exceptions import ModelNotFoundError
from gemini_bridge.core.models import normalize_model_name, resolve_model


class TestResolveModel:
    """Tests for resolve_model."""

    def test_alias_mapped_for_api_key(self):
        assert resolve_model("claude-sonnet-4-5", AuthMode.API_KEY) == "gemini-2.5-pro"

    def test_unknown_alias_passes_through(self):
        assert resolve_model("my-tuned-model", AuthMode.OAUTH) == "my-tuned-model"

    def test_vertex_prefix(self):
        assert (
            resolve_model("claude-3-5-haiku-latest", AuthMode.VERTEX)
            == "publishers/google/models/gemini-2.5-flash-lite"
        )

    def test_vertex_accepts_known_gemini_id(self):
        assert resolve_model("gemini-2.0-flash", "vertex") == "publishers/google/models/gemini-2.0-flash"

    def test_vertex_rejects_unknown(self):
        with pytest.raises(ModelNotFoundError):
            resolve_model("my-tuned-model", AuthMode.VERTEX)

    def test_custom_alias_table(self):
        aliases = {"fast": "gemini-2.0-flash-lite"}
        assert resolve_model("fast", AuthMode.API_KEY, aliases) == "gemini-2.0-flash-lite"
        assert resolve_model("claude-sonnet-4-5", AuthMode.API_KEY, aliases) == "claude-sonnet-4-5"

    def test_empty_model(self):
        with pytest.raises(ModelNotFoundError):
            resolve_model("  ", AuthMode.API_KEY)


class TestNormalizeModelName:
    """Tests for normalize_model_name."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("models/gemini-2.5-pro", "gemini-2.5-pro"),
            ("google/gemini-2.5-pro", "gemini-2.5-pro"),
            ("publishers/google/models/gemini-2.5-pro", "gemini-2.5-pro"),
            ("  gemini-2.5-pro ", "gemini-2.5-pro"),
        ],
    )
    def test_prefixes_stripped(self, raw, expected):
        assert normalize_model_name(raw) == expected
