"""JSON file persistence for the entity store.

The store's whole state lives in one JSON document, the key-value slot it
writes through to after every mutation. There is no database or ORM.

Directory layout:

    {data_dir}/
      state.json          ← characters, conversations, active id, view prefs
      credentials.json    ← per-user provider keys (see credentials.py)

Writes go to a sibling temp file that is then moved over the target with
os.replace(), so a reader never observes a half-written document.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from roleplay_forge.errors import PersistenceError, StorageQuotaExceeded
from roleplay_forge.models import StoreState

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


# ---------------------------------------------------------------------------
# Persistence protocol: what the entity store needs
# ---------------------------------------------------------------------------

class Persistence(Protocol):
    def load_state(self) -> StoreState | None: ...

    def save_state(self, state: StoreState) -> None: ...


def write_text_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` without exposing a partial file.

    Raises PersistenceError (StorageQuotaExceeded when the disk is full).
    """
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(text)
        os.replace(tmp, path)
    except OSError as e:
        if e.errno in _QUOTA_ERRNOS:
            raise StorageQuotaExceeded(f"No space left to write {path}") from e
        raise PersistenceError(f"Cannot write {path}: {e}") from e


# ---------------------------------------------------------------------------
# JsonFileStorage
# ---------------------------------------------------------------------------

class JsonFileStorage:
    """Keeps the store state in ``{data_dir}/state.json``."""

    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / STATE_FILENAME
        data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load_state(self) -> StoreState | None:
        if not self._path.is_file():
            return None
        try:
            return StoreState.model_validate_json(self._path.read_text())
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored state in {self._path} is invalid: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read {self._path}: {e}") from e

    def save_state(self, state: StoreState) -> None:
        write_text_atomic(self._path, state.model_dump_json(by_alias=True, indent=2))
        logger.debug(
            "state saved path=%s characters=%d messages=%d",
            self._path, len(state.characters), len(state.conversations),
        )


# ---------------------------------------------------------------------------
# MemoryStorage
# ---------------------------------------------------------------------------

class MemoryStorage:
    """In-memory slot holding the same JSON document JsonFileStorage writes.

    Useful for tests and for throwaway sessions; state does not outlive
    the process.
    """

    def __init__(self, document: str | None = None) -> None:
        self.document = document
        self.saves = 0

    def load_state(self) -> StoreState | None:
        if self.document is None:
            return None
        try:
            return StoreState.model_validate_json(self.document)
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored state in memory is invalid: {e}") from e

    def save_state(self, state: StoreState) -> None:
        self.document = state.model_dump_json(by_alias=True)
        self.saves += 1
