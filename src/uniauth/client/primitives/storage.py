"""Token storage adapters and the key/value media behind them.

Adapters never raise because a medium is unavailable: reads fall back to
``None`` and writes become logged no-ops. None of them perform network I/O.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "uniauth_access_token"
REFRESH_TOKEN_KEY = "uniauth_refresh_token"


class KeyValueStore(Protocol):
    """String key/value medium, the counterpart of browser web storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_items(self, keys: Iterable[str]) -> None:
        """Remove all given keys in a single operation."""
        ...


class MemoryKeyValueStore:
    """Dict-backed medium that lives as long as the object does."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_items(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._items.pop(key, None)


class FileKeyValueStore:
    """Medium persisted as a JSON object in a single file.

    Survives process restarts. Every write replaces the whole file through a
    temporary file so readers see either the old or the new content.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get_item(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_items(self, keys: Iterable[str]) -> None:
        items = self._load()
        removed = False
        for key in keys:
            if key in items:
                del items[key]
                removed = True
        if removed:
            self._save(items)

    def _load(self) -> dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Storage file {self.path} unreadable, treating as empty: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Storage file {self.path} is not a JSON object, ignoring")
            return {}
        return data

    def _save(self, items: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(items, f)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning(f"Storage file {self.path} not writable, skipping write: {e}")


class TokenStorage(Protocol):
    """Persistence contract for the access/refresh token pair."""

    def get_access_token(self) -> str | None: ...

    def set_access_token(self, token: str) -> None: ...

    def get_refresh_token(self) -> str | None: ...

    def set_refresh_token(self, token: str) -> None: ...

    def clear(self) -> None: ...


class KeyValueTokenStorage:
    """Token storage over a key/value medium.

    Backs both the durable and the session-scoped variants; the medium decides
    how long tokens live. A ``None`` medium behaves as permanently empty.
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        access_token_key: str = ACCESS_TOKEN_KEY,
        refresh_token_key: str = REFRESH_TOKEN_KEY,
    ):
        self._store = store
        self._access_token_key = access_token_key
        self._refresh_token_key = refresh_token_key

    def get_access_token(self) -> str | None:
        if self._store is None:
            return None
        return self._store.get_item(self._access_token_key)

    def set_access_token(self, token: str) -> None:
        if self._store is None:
            return
        self._store.set_item(self._access_token_key, token)

    def get_refresh_token(self) -> str | None:
        if self._store is None:
            return None
        return self._store.get_item(self._refresh_token_key)

    def set_refresh_token(self, token: str) -> None:
        if self._store is None:
            return
        self._store.set_item(self._refresh_token_key, token)

    def clear(self) -> None:
        if self._store is None:
            return
        self._store.remove_items([self._access_token_key, self._refresh_token_key])


class MemoryTokenStorage:
    """Volatile storage private to one client instance."""

    def __init__(self) -> None:
        self._access_token: str | None = None
        self._refresh_token: str | None = None

    def get_access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str) -> None:
        self._access_token = token

    def get_refresh_token(self) -> str | None:
        return self._refresh_token

    def set_refresh_token(self, token: str) -> None:
        self._refresh_token = token

    def clear(self) -> None:
        self._access_token = None
        self._refresh_token = None


def create_token_storage(
    kind: str,
    durable_store: KeyValueStore | None,
    session_store: KeyValueStore | None,
) -> TokenStorage:
    """Select the token storage variant for a storage kind."""
    if kind == "session":
        return KeyValueTokenStorage(session_store)
    if kind == "memory":
        return MemoryTokenStorage()
    return KeyValueTokenStorage(durable_store)
