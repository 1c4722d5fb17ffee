"""Tests for JSON file persistence of the store state."""

import errno
import json
from unittest.mock import patch

import pytest

from roleplay_forge.errors import PersistenceError, StorageQuotaExceeded
from roleplay_forge.models import Character, StoreState
from roleplay_forge.storage import JsonFileStorage, MemoryStorage, write_text_atomic
from roleplay_forge.store import EntityStore


def test_load_missing_file_returns_none(tmp_path):
    assert JsonFileStorage(tmp_path).load_state() is None


def test_creates_data_dir(tmp_path):
    data_dir = tmp_path / "nested" / "data"
    JsonFileStorage(data_dir)
    assert data_dir.is_dir()


def test_save_and_load_roundtrip(tmp_path):
    storage = JsonFileStorage(tmp_path)
    state = StoreState(characters=[Character(name="Nova")], sort_by="name")
    storage.save_state(state)
    assert storage.load_state() == state


def test_file_uses_camel_case_keys(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save_state(StoreState(characters=[Character(name="Nova")]))
    data = json.loads(storage.path.read_text())
    assert "activeCharacterId" in data
    assert "isFavorite" in data["characters"][0]


def test_no_temp_file_left_behind(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save_state(StoreState())
    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]


def test_corrupt_file_raises_persistence_error(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.path.write_text('{"characters": "oops"}')
    with pytest.raises(PersistenceError):
        storage.load_state()


def test_disk_full_raises_quota_error(tmp_path):
    storage = JsonFileStorage(tmp_path)
    with patch("roleplay_forge.storage.os.replace", side_effect=OSError(errno.ENOSPC, "No space")):
        with pytest.raises(StorageQuotaExceeded):
            storage.save_state(StoreState())


def test_other_os_error_raises_persistence_error(tmp_path):
    storage = JsonFileStorage(tmp_path)
    with patch("roleplay_forge.storage.os.replace", side_effect=OSError(errno.EACCES, "Denied")):
        with pytest.raises(PersistenceError) as exc_info:
            storage.save_state(StoreState())
    assert not isinstance(exc_info.value, StorageQuotaExceeded)


def test_failed_write_keeps_previous_file(tmp_path):
    path = tmp_path / "doc.json"
    write_text_atomic(path, "old")
    with patch("roleplay_forge.storage.os.replace", side_effect=OSError(errno.EIO, "I/O")):
        with pytest.raises(PersistenceError):
            write_text_atomic(path, "new")
    assert path.read_text() == "old"


def test_store_survives_restart_on_disk(tmp_path):
    store = EntityStore(JsonFileStorage(tmp_path))
    cid = store.create_character({"name": "Nova", "backstory": "b" * 60})
    store.add_message(cid, "hello", is_user=True)

    reopened = EntityStore(JsonFileStorage(tmp_path))
    assert reopened.get_character(cid).name == "Nova"
    assert [m.text for m in reopened.get_messages(cid)] == ["hello"]


def test_quota_error_from_store_leaves_memory_state(tmp_path):
    store = EntityStore(JsonFileStorage(tmp_path))
    cid = store.create_character({"name": "Nova", "backstory": "b" * 60})
    with patch("roleplay_forge.storage.os.replace", side_effect=OSError(errno.ENOSPC, "No space")):
        with pytest.raises(StorageQuotaExceeded):
            store.add_message(cid, "hello", is_user=True)
    assert store.get_messages(cid) == []


# ── MemoryStorage ────────────────────────────────────────


def test_memory_storage_starts_empty():
    assert MemoryStorage().load_state() is None


def test_memory_storage_roundtrip_counts_saves():
    storage = MemoryStorage()
    state = StoreState(characters=[Character(name="Nova")])
    storage.save_state(state)
    storage.save_state(state)
    assert storage.saves == 2
    assert storage.load_state() == state


def test_memory_storage_invalid_document_raises_persistence_error():
    with pytest.raises(PersistenceError):
        MemoryStorage('{"characters": 5}').load_state()
