"""Per-user completion-provider keys.

A user may store their own provider key; the pipeline falls back to it when
no key is configured for the whole installation. Keys are kept in
``{data_dir}/credentials.json`` as a flat ``{user_id: key}`` object.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from roleplay_forge.errors import PersistenceError, ValidationError
from roleplay_forge.storage import write_text_atomic

CREDENTIALS_FILENAME = "credentials.json"


class CredentialStore(Protocol):
    def get_stored_key(self, user_id: str) -> str | None: ...

    def save_stored_key(self, user_id: str, key: str) -> None: ...

    def delete_stored_key(self, user_id: str) -> bool: ...


def _clean_key(key: str) -> str:
    key = key.strip()
    if not key:
        raise ValidationError("API key must not be empty")
    return key


class JsonCredentialStore:
    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / CREDENTIALS_FILENAME
        data_dir.mkdir(parents=True, exist_ok=True)

    def _read(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self._path} must contain a JSON object")
        return data

    def get_stored_key(self, user_id: str) -> str | None:
        return self._read().get(user_id) or None

    def save_stored_key(self, user_id: str, key: str) -> None:
        keys = self._read()
        keys[user_id] = _clean_key(key)
        write_text_atomic(self._path, json.dumps(keys, indent=2))

    def delete_stored_key(self, user_id: str) -> bool:
        """Remove a user's key. Returns False if there was none."""
        keys = self._read()
        if keys.pop(user_id, None) is None:
            return False
        write_text_atomic(self._path, json.dumps(keys, indent=2))
        return True


class MemoryCredentialStore:
    def __init__(self, keys: dict[str, str] | None = None) -> None:
        self._keys: dict[str, str] = dict(keys or {})

    def get_stored_key(self, user_id: str) -> str | None:
        return self._keys.get(user_id) or None

    def save_stored_key(self, user_id: str, key: str) -> None:
        self._keys[user_id] = _clean_key(key)

    def delete_stored_key(self, user_id: str) -> bool:
        return self._keys.pop(user_id, None) is not None
