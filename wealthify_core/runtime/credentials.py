"""
Credential storage.

CredentialStore owns exactly two entries, the access credential and the
refresh credential, on top of a pluggable key-value backend. It holds no
decision logic: the refresh coordinator and the login/logout flow decide
when to write or clear.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional, Protocol

from loguru import logger


class KeyValueStore(Protocol):
    """Persistent key-value backend."""

    def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        ...

    def set(self, key: str, value: str) -> None:
        """Set value for key."""
        ...

    def delete(self, key: str) -> None:
        """Delete key. Missing keys are ignored."""
        ...


class InMemoryKeyValueStore:
    """
    In-memory storage for tests and short-lived processes.

    Note: Does not persist across restarts.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class JsonFileKeyValueStore:
    """
    JSON file storage that survives restarts.

    The whole file is rewritten on every change through a temp file and
    an atomic rename, so a crash never leaves a half-written file.

    Usage:
        store = JsonFileKeyValueStore("~/.wealthify/credentials.json")
        store.set("wealthify_access_token", token)
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class CredentialStore:
    """Access and refresh credentials, kept consistent as a pair.

    Reads always go to the backend so consumers never hold a stale value.
    All operations are synchronous: a read followed by a write never spans
    a suspension point.

    Example:
        store = CredentialStore()
        store.set_tokens("access", "refresh")
        store.access_token  # "access"
        store.clear()
    """

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        access_key: str | None = None,
        refresh_key: str | None = None,
    ):
        """Initialize the store.

        Args:
            backend: Key-value backend. Defaults to an in-memory store.
            access_key: Backend key for the access credential.
            refresh_key: Backend key for the refresh credential.
        """
        from wealthify_core.config import settings

        self.backend: KeyValueStore = backend if backend is not None else InMemoryKeyValueStore()
        self.access_key = access_key or settings.ACCESS_TOKEN_KEY
        self.refresh_key = refresh_key or settings.REFRESH_TOKEN_KEY

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> "CredentialStore":
        """Create a store persisted to a JSON file.

        Args:
            path: File path. Defaults to settings.CREDENTIALS_FILE.

        Returns:
            A CredentialStore backed by JsonFileKeyValueStore.
        """
        from wealthify_core.config import settings

        return cls(backend=JsonFileKeyValueStore(path or settings.CREDENTIALS_FILE))

    @property
    def access_token(self) -> Optional[str]:
        return self.backend.get(self.access_key)

    @property
    def refresh_token(self) -> Optional[str]:
        return self.backend.get(self.refresh_key)

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_token)

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        """Store a freshly issued credential pair (login).

        Raises:
            ValueError: If either credential is empty.
        """
        if not access_token or not refresh_token:
            raise ValueError("Both access and refresh credentials are required")
        self.backend.set(self.access_key, access_token)
        self.backend.set(self.refresh_key, refresh_token)

    def replace_access_token(self, access_token: str, refresh_token: str | None = None) -> None:
        """Store the result of a refresh exchange.

        The existing refresh credential is kept when the server did not
        rotate it.

        Raises:
            ValueError: If the access credential is empty.
        """
        if not access_token:
            raise ValueError("Access credential is required")
        self.backend.set(self.access_key, access_token)
        if refresh_token:
            self.backend.set(self.refresh_key, refresh_token)

    def clear(self) -> None:
        """Remove both credentials."""
        self.backend.delete(self.access_key)
        self.backend.delete(self.refresh_key)
        logger.info("Cleared stored credentials")
