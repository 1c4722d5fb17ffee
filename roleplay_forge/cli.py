"""Roleplay Forge command line: manage characters and chat with them."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from roleplay_forge.config import Settings, load_settings
from roleplay_forge.credentials import JsonCredentialStore
from roleplay_forge.demo import create_demo_data
from roleplay_forge.errors import ForgeError, NotFoundError, PersistenceError
from roleplay_forge.llm import EchoProvider
from roleplay_forge.models import SORT_ORDERS, Character
from roleplay_forge.pipeline import ConversationPipeline, conversation_starters
from roleplay_forge.storage import JsonFileStorage, write_text_atomic
from roleplay_forge.store import EntityStore

QUIT_COMMANDS = {"/quit", "/exit"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="roleplay-forge", description="Roleplay Forge")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: FORGE_DATA_DIR or ./data)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help="Load settings from this .env file")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List characters")
    p.add_argument("--search", default=None)
    p.add_argument("--personality", default=None)
    p.add_argument("--sort", choices=SORT_ORDERS, default=None)

    p = sub.add_parser("create", help="Create a character")
    p.add_argument("--name", required=True)
    p.add_argument("--personality", default="friendly")
    p.add_argument("--backstory", required=True)
    p.add_argument("--age", default=None)
    p.add_argument("--gender", default=None)

    p = sub.add_parser("delete", help="Delete a character and its messages")
    p.add_argument("character")

    p = sub.add_parser("favorite", help="Toggle a character's favorite flag")
    p.add_argument("character")

    p = sub.add_parser("chat", help="Chat with a character")
    p.add_argument("character")
    p.add_argument("--user", default=None, help="User id whose stored API key to use")
    p.add_argument("--echo", action="store_true",
                   help="Echo messages back instead of calling the provider")

    p = sub.add_parser("history", help="Show a conversation")
    p.add_argument("character")
    p.add_argument("--search", default="")

    sub.add_parser("stats", help="Show statistics")

    p = sub.add_parser("export", help="Export all data to a JSON file")
    p.add_argument("path", type=Path)

    p = sub.add_parser("import", help="Replace all data with a JSON export")
    p.add_argument("path", type=Path)

    sub.add_parser("demo", help="Wipe data and create the starter characters")

    p = sub.add_parser("key", help="Manage a user's stored provider key")
    p.add_argument("action", choices=["set", "delete"])
    p.add_argument("user")
    p.add_argument("value", nargs="?")

    return parser


def find_character(store: EntityStore, ref: str) -> Character:
    """Look a character up by id, id prefix or (case-insensitive) name."""
    matches = [c for c in store.characters if c.id == ref]
    if not matches:
        matches = [c for c in store.characters if c.name.lower() == ref.lower()]
    if not matches:
        matches = [c for c in store.characters if c.id.startswith(ref)]
    if len(matches) != 1:
        raise NotFoundError(f"No single character matches {ref!r}")
    return matches[0]


def _print_character(c: Character) -> None:
    star = "*" if c.is_favorite else " "
    print(f"{star} {c.id[:8]}  {c.name}  ({c.personality.value})")


def _chat(store: EntityStore, pipeline: ConversationPipeline, character: Character, user: str | None) -> None:
    store.set_active_character(character.id)
    print(f"Chatting with {character.name}. Type /quit to leave.")
    for starter in conversation_starters(character.personality):
        print(f"  try: {starter}")
    while True:
        try:
            line = input("you> ")
        except EOFError:
            break
        if line.strip() in QUIT_COMMANDS:
            break
        if not line.strip():
            continue
        result = asyncio.run(pipeline.send_message(character.id, line, user_id=user))
        if result.reply is not None:
            print(f"{character.name}> {result.reply.text}")


def run(args: argparse.Namespace, settings: Settings) -> int:
    data_dir = args.data_dir or settings.data_dir
    store = EntityStore(JsonFileStorage(data_dir))
    credentials = JsonCredentialStore(data_dir)

    if args.command == "list":
        if args.search is not None:
            store.set_search_query(args.search)
        if args.personality is not None:
            store.set_filter_personality(args.personality)
        if args.sort is not None:
            store.set_sort_by(args.sort)
        for c in store.get_filtered_characters():
            _print_character(c)

    elif args.command == "create":
        print(store.create_character({
            "name": args.name, "personality": args.personality, "backstory": args.backstory,
            "age": args.age, "gender": args.gender,
        }))

    elif args.command == "delete":
        store.delete_character(find_character(store, args.character).id)

    elif args.command == "favorite":
        is_favorite = store.toggle_favorite(find_character(store, args.character).id)
        print("favorite" if is_favorite else "not favorite")

    elif args.command == "chat":
        factory = (lambda _key: EchoProvider()) if args.echo else None
        if args.echo and not settings.api_key:
            settings = settings.model_copy(update={"api_key": "echo"})
        pipeline = ConversationPipeline(
            store, settings=settings, credentials=credentials, provider_factory=factory,
        )
        _chat(store, pipeline, find_character(store, args.character), args.user)

    elif args.command == "history":
        character = find_character(store, args.character)
        for m in store.search_messages(character.id, args.search):
            who = "you" if m.is_user else character.name
            mark = " (edited)" if m.edited else ""
            print(f"[{m.timestamp:%Y-%m-%d %H:%M:%S}] {who}: {m.text}{mark}")

    elif args.command == "stats":
        print(store.get_stats().model_dump_json(by_alias=True, indent=2))

    elif args.command == "export":
        write_text_atomic(args.path, json.dumps(store.export_data(), indent=2))

    elif args.command == "import":
        try:
            blob = args.path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Cannot read {args.path}: {e}") from e
        store.import_data(blob)

    elif args.command == "demo":
        ids = create_demo_data(store)
        print(f"Created {len(ids)} characters")

    elif args.command == "key":
        if args.action == "set":
            if not args.value:
                print("key set needs a value", file=sys.stderr)
                return 2
            credentials.save_stored_key(args.user, args.value)
        elif not credentials.delete_stored_key(args.user):
            print(f"No stored key for {args.user}", file=sys.stderr)
            return 1

    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return run(args, load_settings(args.env_file))
    except ForgeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
