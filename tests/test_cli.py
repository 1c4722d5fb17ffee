"""Tests for the roleplay-forge command line."""

import json
import os

import pytest

from roleplay_forge.cli import build_parser, find_character, main
from roleplay_forge.errors import NotFoundError
from roleplay_forge.storage import JsonFileStorage
from roleplay_forge.store import EntityStore

BACKSTORY = (
    "Raised by hackers in the neon slums, she trusts information more than people."
)


@pytest.fixture
def cli(tmp_path, monkeypatch, capsys):
    """Run ``main`` against a scratch data dir; returns (exit code, stdout, stderr)."""
    environ = {k: v for k, v in os.environ.items() if not k.startswith(("FORGE_", "GROQ_"))}
    monkeypatch.setattr(os, "environ", environ)
    data_dir = tmp_path / "data"
    base = ["--data-dir", str(data_dir), "--env-file", str(tmp_path / "none.env")]

    def _run(*argv: str):
        code = main([*base, *argv])
        out, err = capsys.readouterr()
        return code, out, err

    _run.data_dir = data_dir
    return _run


def _create(cli, name="Nova", personality="sarcastic"):
    code, out, _ = cli("create", "--name", name, "--personality", personality, "--backstory", BACKSTORY)
    assert code == 0
    return out.strip()


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_create_and_list(cli):
    cid = _create(cli)
    assert len(cid) == 32
    code, out, _ = cli("list")
    assert code == 0
    assert "Nova" in out
    assert "(sarcastic)" in out
    assert cid[:8] in out


def test_create_invalid_reports_error(cli):
    code, out, err = cli("create", "--name", "N", "--backstory", BACKSTORY)
    assert code == 1
    assert "error:" in err
    assert "at least 2 characters" in err


def test_list_filters(cli):
    _create(cli, "Nova", "sarcastic")
    _create(cli, "Lyra", "friendly")
    _, out, _ = cli("list", "--personality", "friendly")
    assert "Lyra" in out and "Nova" not in out
    _, out, _ = cli("list", "--personality", "all", "--search", "nov")
    assert "Nova" in out and "Lyra" not in out


def test_favorite_toggles(cli):
    _create(cli)
    assert cli("favorite", "nova")[1].strip() == "favorite"
    assert cli("favorite", "Nova")[1].strip() == "not favorite"


def test_unknown_character(cli):
    code, _, err = cli("delete", "Ghost")
    assert code == 1
    assert "No single character" in err


def test_delete(cli):
    _create(cli)
    assert cli("delete", "Nova")[0] == 0
    assert cli("list")[1] == ""


def test_demo_and_stats(cli):
    code, out, _ = cli("demo")
    assert code == 0
    assert "Created 6 characters" in out
    _, out, _ = cli("stats")
    stats = json.loads(out)
    assert stats["totalCharacters"] == 6
    assert stats["totalMessages"] == 0
    assert stats["mostActiveCharacter"] is None


def test_export_import(cli, tmp_path):
    _create(cli)
    path = tmp_path / "backup.json"
    assert cli("export", str(path))[0] == 0
    exported = json.loads(path.read_text())
    assert exported["version"] == "1.0"
    assert [c["name"] for c in exported["characters"]] == ["Nova"]

    cli("delete", "Nova")
    assert cli("import", str(path))[0] == 0
    assert "Nova" in cli("list")[1]


def test_import_garbage(cli, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("not json")
    code, _, err = cli("import", str(path))
    assert code == 1
    assert "error:" in err


def test_key_set_and_delete(cli):
    assert cli("key", "set", "alice", "gsk_1")[0] == 0
    creds = json.loads((cli.data_dir / "credentials.json").read_text())
    assert creds == {"alice": "gsk_1"}
    assert cli("key", "delete", "alice")[0] == 0
    code, _, err = cli("key", "delete", "alice")
    assert code == 1
    assert "No stored key" in err


def test_key_set_needs_value(cli):
    assert cli("key", "set", "alice")[0] == 2


def test_chat_echo(cli, monkeypatch):
    _create(cli)
    lines = iter(["hello there", "", "/quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))

    code, out, _ = cli("chat", "Nova", "--echo")

    assert code == 0
    assert "Chatting with Nova" in out
    assert "Nova> hello there" in out
    _, out, _ = cli("history", "Nova")
    assert "you: hello there" in out
    assert "Nova: hello there" in out


def test_chat_ends_on_eof(cli, monkeypatch):
    _create(cli)

    def _eof(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", _eof)
    assert cli("chat", "Nova", "--echo")[0] == 0


def test_chat_sets_active_character(cli, monkeypatch):
    cid = _create(cli)
    monkeypatch.setattr("builtins.input", lambda prompt="": "/exit")
    cli("chat", "Nova", "--echo")
    store = EntityStore(JsonFileStorage(cli.data_dir))
    assert store.active_character_id == cid


class TestFindCharacter:
    @pytest.fixture
    def ids(self, store):
        return [
            store.create_character({"name": "Nova", "backstory": BACKSTORY}),
            store.create_character({"name": "Nova Prime", "backstory": BACKSTORY}),
        ]

    def test_by_id(self, store, ids):
        assert find_character(store, ids[1]).name == "Nova Prime"

    def test_by_name_case_insensitive(self, store, ids):
        assert find_character(store, "NOVA").id == ids[0]

    def test_by_id_prefix(self, store, ids):
        assert find_character(store, ids[1][:10]).name == "Nova Prime"

    def test_no_match(self, store, ids):
        with pytest.raises(NotFoundError):
            find_character(store, "Lyra")


def test_import_missing_file(cli, tmp_path):
    code, _, err = cli("import", str(tmp_path / "nowhere.json"))
    assert code == 1
    assert "error: Cannot read" in err


def test_export_to_missing_directory(cli, tmp_path):
    code, _, err = cli("export", str(tmp_path / "no" / "such" / "dir.json"))
    assert code == 1
    assert "error:" in err
