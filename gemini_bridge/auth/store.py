"""Credential stores.

The supplier only needs ``load`` and ``save``; where tokens actually live is
up to the embedding application. Two small stores are provided: an in-memory
one and a YAML file store for single-host deployments.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Any, Optional, Protocol

import yaml

from .credentials import AuthMode, Credential, credential_from_dict, credential_to_dict

logger = logging.getLogger("gemini-bridge")


class CredentialStore(Protocol):
    """Persistence collaborator used by ``CredentialSupplier``."""

    def load(self, mode: AuthMode, name: str) -> Optional[Credential]:
        ...

    def save(self, mode: AuthMode, name: str, credential: Credential) -> None:
        ...


def _store_key(mode: AuthMode, name: str) -> str:
    return f"{mode.value}:{name}"


class InMemoryCredentialStore:
    """Process-local store. Cleared stores make the supplier re-seed from config."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: dict[str, Credential] = {}

    def load(self, mode: AuthMode, name: str) -> Optional[Credential]:
        with self._lock:
            return self._items.get(_store_key(mode, name))

    def save(self, mode: AuthMode, name: str, credential: Credential) -> None:
        with self._lock:
            self._items[_store_key(mode, name)] = credential

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class YamlCredentialStore:
    """Persist credentials to a YAML file keyed by ``<mode>:<name>``."""

    def __init__(self, path: str | Path) -> None:
        self._lock = Lock()
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed credential file %s", self.path)
            return {}
        return data

    def load(self, mode: AuthMode, name: str) -> Optional[Credential]:
        with self._lock:
            entry = self._read().get(_store_key(mode, name))
        if not isinstance(entry, dict):
            return None
        return credential_from_dict(entry)

    def save(self, mode: AuthMode, name: str, credential: Credential) -> None:
        with self._lock:
            data = self._read()
            data[_store_key(mode, name)] = credential_to_dict(credential)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as fh:
                yaml.safe_dump(data, fh, sort_keys=True)
            tmp_path.replace(self.path)
        logger.debug("Persisted %s credential '%s' to %s", mode.value, name, self.path)
