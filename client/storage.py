"""Local persistence for tokens and session flags.

Tokens live in durable storage so they survive restarts; the refresh
timestamp and auth check status live in session scoped storage and are
gone when the process ends.
"""
import json
import os
import time

from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Protocol

import logfire

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
CACHED_USER_KEY = "cached_user_data"
LAST_REFRESH_KEY = "last_token_refresh"
AUTH_CHECK_STATUS_KEY = "auth_check_status"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Session scoped storage."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileStorage:
    """Durable storage backed by a JSON file.

    Every write replaces the file atomically. An unreadable file is
    treated as empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._items: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logfire.warning(f"Ignoring unreadable token storage {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        # Stored values are always strings
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._items), encoding="utf-8")
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()


class TokenStore:
    """Access and refresh token persistence. Knows nothing about expiry."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self.storage.set_item(ACCESS_TOKEN_KEY, access_token)
        self.storage.set_item(REFRESH_TOKEN_KEY, refresh_token)

    def get_access_token(self) -> Optional[str]:
        return self.storage.get_item(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get_item(REFRESH_TOKEN_KEY)

    def clear_tokens(self) -> bool:
        """Drop both tokens and the cached profile.

        Returns:
            bool: True if a token was stored before the call.
        """
        had_tokens = bool(self.get_access_token() or self.get_refresh_token())
        self.storage.remove_item(ACCESS_TOKEN_KEY)
        self.storage.remove_item(REFRESH_TOKEN_KEY)
        self.storage.remove_item(CACHED_USER_KEY)
        return had_tokens

    def get_cached_user(self) -> Optional[dict]:
        raw = self.storage.get_item(CACHED_USER_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self.storage.remove_item(CACHED_USER_KEY)
            return None

    def set_cached_user(self, user: dict) -> None:
        self.storage.set_item(CACHED_USER_KEY, json.dumps(user))


class AuthCheckStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SessionState:
    """Per session flags: last refresh time and auth check status."""

    def __init__(self, storage: KeyValueStorage | None = None):
        self.storage = storage if storage is not None else MemoryStorage()

    def record_refresh(self, now: float | None = None) -> None:
        self.storage.set_item(LAST_REFRESH_KEY, repr(time.time() if now is None else now))

    def get_last_refresh_time(self) -> Optional[float]:
        raw = self.storage.get_item(LAST_REFRESH_KEY)
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    def set_auth_check_status(self, status: AuthCheckStatus) -> None:
        self.storage.set_item(AUTH_CHECK_STATUS_KEY, status.value)

    def get_auth_check_status(self) -> Optional[AuthCheckStatus]:
        raw = self.storage.get_item(AUTH_CHECK_STATUS_KEY)
        try:
            return AuthCheckStatus(raw) if raw else None
        except ValueError:
            return None
