"""Configuration loading from YAML files with environment variable support."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .auth.credentials import (
    DEFAULT_MIN_TOKEN_LIFETIME,
    GOOGLE_TOKEN_URI,
    AuthMode,
    CredentialProfile,
    OAuthSettings,
    VertexSettings,
    VertexSource,
)
from .auth.store import CredentialStore
from .auth.supplier import CredentialSupplier
from .core.backend import DEFAULT_TIMEOUT, DEFAULT_TOP_K, GeminiBackend
from .core.exceptions import ConfigurationError
from .core.models import DEFAULT_MODEL_ALIASES
from .core.router import GeminiGateway

logger = logging.getLogger("gemini-bridge")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config.yaml"

# Environment variable to override the config path
CONFIG_PATH = os.getenv("GEMINI_BRIDGE_CONFIG", DEFAULT_CONFIG_PATH)

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    stem = config_path.stem
    if stem.startswith("config_"):
        suffix = stem[len("config_"):]
        return config_path.with_name(f".env_{suffix}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to GEMINI_BRIDGE_CONFIG,
              or configs/config.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigurationError: The file is missing or is not a YAML mapping.
    """
    if path is None:
        path = CONFIG_PATH

    config_path = resolve_config_path(path)

    logger.info(f"Loading configuration from {config_path}")

    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(
    obj: Any, env_values: Optional[Mapping[str, str]] = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports two formats:
    - ${VAR_NAME}: Braced format
    - $VAR_NAME: Simple format

    Values from ``env_values`` win over the process environment. Unset
    variables keep their literal placeholder.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        def replace_var(match: re.Match) -> str:
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"Check your .env file or export it in your shell. "
                    f"The literal placeholder will be used (request will likely fail)."
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


# =============================================================================
# Gateway settings
# =============================================================================


def _as_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"'{where}' must be a mapping")
    return value


def _optional_number(value: Any, where: str, cast: type) -> Any:
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{where}' must be a number, got {value!r}") from exc


def _parse_auth_mode(value: Any) -> AuthMode:
    try:
        return AuthMode(str(value or AuthMode.API_KEY.value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(mode.value for mode in AuthMode)
        raise ConfigurationError(f"Unknown auth mode {value!r}; expected one of: {choices}") from exc


def _parse_oauth(section: Mapping[str, Any]) -> OAuthSettings:
    return OAuthSettings(
        client_id=str(section.get("client_id") or ""),
        client_secret=str(section.get("client_secret") or ""),
        refresh_token=str(section.get("refresh_token") or ""),
        access_token=section.get("access_token") or None,
        token_uri=str(section.get("token_uri") or GOOGLE_TOKEN_URI),
    )


def _parse_vertex(section: Mapping[str, Any]) -> VertexSettings:
    raw_source = str(section.get("credentials") or VertexSource.ADC.value).strip().lower()
    try:
        source = VertexSource(raw_source)
    except ValueError as exc:
        choices = ", ".join(item.value for item in VertexSource)
        raise ConfigurationError(
            f"Unknown vertex credentials {raw_source!r}; expected one of: {choices}"
        ) from exc

    info = section.get("service_account_info")
    return VertexSettings(
        project_id=str(section.get("project_id") or ""),
        location=str(section.get("location") or ""),
        source=source,
        service_account_file=section.get("service_account_file") or None,
        service_account_info=dict(info) if isinstance(info, Mapping) else None,
        api_key=section.get("api_key") or None,
    )


def build_credential_profile(name: str, auth: Mapping[str, Any]) -> CredentialProfile:
    """Build and validate a credential profile from an ``auth`` section."""
    mode = _parse_auth_mode(auth.get("mode"))
    min_lifetime = _optional_number(auth.get("min_token_lifetime"), "auth.min_token_lifetime", float)
    profile = CredentialProfile(
        name=name,
        mode=mode,
        api_key=auth.get("api_key") or None,
        oauth=_parse_oauth(_as_mapping(auth.get("oauth"), "auth.oauth"))
        if mode is AuthMode.OAUTH
        else None,
        vertex=_parse_vertex(_as_mapping(auth.get("vertex"), "auth.vertex"))
        if mode is AuthMode.VERTEX
        else None,
        min_token_lifetime=DEFAULT_MIN_TOKEN_LIFETIME if min_lifetime is None else min_lifetime,
    )
    profile.validate()
    return profile


def build_gateway_settings(config: Mapping[str, Any]) -> tuple[GeminiBackend, CredentialProfile]:
    """Turn the ``gemini:`` section into a backend and its credential profile.

    Raises:
        ConfigurationError: The section is missing or invalid.
    """
    section = config.get("gemini")
    if not isinstance(section, Mapping):
        raise ConfigurationError("Config requires a 'gemini' section")

    name = str(section.get("name") or "gemini")

    models = section.get("models") or []
    if not isinstance(models, list):
        raise ConfigurationError("'gemini.models' must be a list")

    aliases = dict(DEFAULT_MODEL_ALIASES)
    aliases.update(
        {str(k): str(v) for k, v in _as_mapping(section.get("model_aliases"), "gemini.model_aliases").items()}
    )
    custom_headers = {
        str(k): str(v)
        for k, v in _as_mapping(section.get("custom_headers"), "gemini.custom_headers").items()
    }

    timeout = _optional_number(section.get("timeout"), "gemini.timeout", float)
    top_k = section.get("default_top_k", DEFAULT_TOP_K)
    top_k = _optional_number(top_k, "gemini.default_top_k", int)

    profile = build_credential_profile(name, _as_mapping(section.get("auth"), "gemini.auth"))

    backend = GeminiBackend(
        name=name,
        credential=profile.name,
        base_url=(section.get("base_url") or None),
        models=[str(model) for model in models],
        model_aliases=aliases,
        custom_headers=custom_headers,
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        default_top_k=top_k,
    )
    logger.info(
        "Configured Gemini backend '%s' (auth=%s, models=%s)",
        backend.name,
        profile.mode.value,
        backend.models or "any",
    )
    return backend, profile


def build_gateway(
    config: Mapping[str, Any],
    store: Optional[CredentialStore] = None,
) -> GeminiGateway:
    """Build a ready-to-use gateway from a loaded config."""
    backend, profile = build_gateway_settings(config)
    supplier = CredentialSupplier([profile], store)
    return GeminiGateway(backend, supplier)
