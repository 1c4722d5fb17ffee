"""Entity store — the single source of truth for characters and messages.

All reads are derived from one StoreState; all writes go through the named
methods below. Each mutation builds the next state, hands it to the
persistence collaborator, and only swaps it in once the save succeeded, so
a failed write (PersistenceError) leaves the in-memory state untouched and
multi-entity changes such as a cascading delete are never half applied.

Message timestamps come from a monotonic clock: every appended message is
stamped strictly later than the previous one, even when the wall clock
does not advance between two calls.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from roleplay_forge.errors import ImportFormatError, NotFoundError, ValidationError
from roleplay_forge.models import (
    SORT_ORDERS,
    Character,
    CharacterDraft,
    Message,
    Personality,
    Stats,
    StoreState,
    utcnow,
)
from roleplay_forge.storage import Persistence

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

_TICK = timedelta(microseconds=1)
_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})
_EDITABLE_FIELDS = frozenset(Character.model_fields) - _IMMUTABLE_FIELDS

Listener = Callable[[StoreState], None]


def _error_summary(e: PydanticValidationError) -> str:
    return "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())


class EntityStore:
    def __init__(
        self,
        persistence: Persistence,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self._state = persistence.load_state() or StoreState()
        self._last_timestamp = _latest_timestamp(self._state.conversations)
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def characters(self) -> list[Character]:
        return list(self._state.characters)

    @property
    def conversations(self) -> list[Message]:
        return list(self._state.conversations)

    @property
    def active_character_id(self) -> str | None:
        return self._state.active_character_id

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every commit.

        Returns a function that removes the listener again. A listener that
        raises is logged and skipped; the commit stands.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _commit(self, **changes: Any) -> None:
        state = self._state.model_copy(update=changes)
        self._persistence.save_state(state)
        self._state = state
        if "conversations" in changes:
            latest = _latest_timestamp(state.conversations)
            if latest is not None and (self._last_timestamp is None or latest > self._last_timestamp):
                self._last_timestamp = latest
        for listener in list(self._listeners):
            # committed already: listener errors are logged, not raised
            try:
                listener(state)
            except Exception as e:
                logger.warning("store listener %r failed: %r", listener, e)

    def _character_index(self, character_id: str) -> int:
        for i, c in enumerate(self._state.characters):
            if c.id == character_id:
                return i
        raise NotFoundError(f"Character {character_id!r} not found")

    def _message_index(self, message_id: str) -> int:
        for i, m in enumerate(self._state.conversations):
            if m.id == message_id:
                return i
        raise NotFoundError(f"Message {message_id!r} not found")

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + _TICK
        return now

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def get_character(self, character_id: str) -> Character:
        return self._state.characters[self._character_index(character_id)]

    def create_character(
        self,
        draft: CharacterDraft | Mapping[str, Any],
        *,
        character_id: str | None = None,
    ) -> str:
        """Add a character and return its id.

        ``character_id`` lets a caller that already owns an id (e.g. a
        remote row) keep it; it must be non-empty and unused.
        """
        if not isinstance(draft, CharacterDraft):
            try:
                draft = CharacterDraft.model_validate(draft)
            except PydanticValidationError as e:
                raise ValidationError(_error_summary(e)) from e

        now = self._clock()
        fields: dict[str, Any] = draft.model_dump()
        if character_id is not None:
            if not character_id.strip():
                raise ValidationError("Character id must not be empty")
            fields["id"] = character_id
        character = Character(**fields, is_favorite=False, created_at=now, updated_at=now)

        if any(c.id == character.id for c in self._state.characters):
            raise ValidationError(f"Character id {character.id!r} already exists")

        self._commit(characters=[*self._state.characters, character])
        logger.debug("character created id=%s name=%r", character.id, character.name)
        return character.id

    def update_character(self, character_id: str, **fields: Any) -> Character:
        """Merge ``fields`` into a character and refresh ``updated_at``."""
        immutable = _IMMUTABLE_FIELDS.intersection(fields)
        if immutable:
            raise ValidationError(f"Cannot change {', '.join(sorted(immutable))}")
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown character fields: {', '.join(sorted(unknown))}")

        index = self._character_index(character_id)
        current = self._state.characters[index]
        try:
            updated = Character.model_validate(
                {**current.model_dump(), **fields, "updated_at": self._clock()}
            )
        except PydanticValidationError as e:
            raise ValidationError(_error_summary(e)) from e

        characters = list(self._state.characters)
        characters[index] = updated
        self._commit(characters=characters)
        return updated

    def toggle_favorite(self, character_id: str) -> bool:
        """Flip ``is_favorite`` and return the new value."""
        index = self._character_index(character_id)
        current = self._state.characters[index]
        characters = list(self._state.characters)
        characters[index] = current.model_copy(
            update={"is_favorite": not current.is_favorite, "updated_at": self._clock()}
        )
        self._commit(characters=characters)
        return characters[index].is_favorite

    def delete_character(self, character_id: str) -> None:
        """Remove a character together with all of its messages."""
        self._character_index(character_id)
        self._delete_characters({character_id})

    def bulk_delete_characters(self, character_ids: Iterable[str]) -> int:
        """Remove several characters (and their messages). Unknown ids are ignored.

        Returns the number of characters removed.
        """
        ids = set(character_ids)
        removed = sum(1 for c in self._state.characters if c.id in ids)
        if removed:
            self._delete_characters(ids)
        return removed

    def _delete_characters(self, ids: set[str]) -> None:
        state = self._state
        active = state.active_character_id
        self._commit(
            characters=[c for c in state.characters if c.id not in ids],
            conversations=[m for m in state.conversations if m.character_id not in ids],
            active_character_id=None if active in ids else active,
        )
        logger.debug("characters deleted ids=%s", sorted(ids))

    def set_active_character(self, character_id: str | None) -> None:
        if character_id is not None:
            self._character_index(character_id)
        self._commit(active_character_id=character_id)

    def get_active_character(self) -> Character | None:
        active = self._state.active_character_id
        if active is None:
            return None
        for c in self._state.characters:
            if c.id == active:
                return c
        return None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, character_id: str, text: str, is_user: bool) -> Message:
        """Append a message; existing messages are never touched."""
        self._character_index(character_id)
        if not text or not text.strip():
            raise ValidationError("Message text must not be empty")

        timestamp = self._next_timestamp()
        message = Message(
            character_id=character_id, text=text, is_user=is_user, timestamp=timestamp,
        )
        self._commit(conversations=[*self._state.conversations, message])
        return message

    def delete_message(self, message_id: str) -> None:
        index = self._message_index(message_id)
        conversations = list(self._state.conversations)
        del conversations[index]
        self._commit(conversations=conversations)

    def edit_message(self, message_id: str, new_text: str) -> Message:
        if not new_text or not new_text.strip():
            raise ValidationError("Message text must not be empty")
        index = self._message_index(message_id)
        conversations = list(self._state.conversations)
        conversations[index] = conversations[index].model_copy(
            update={"text": new_text.strip(), "edited": True, "edited_at": self._clock()}
        )
        self._commit(conversations=conversations)
        return conversations[index]

    def get_messages(self, character_id: str) -> list[Message]:
        """All messages for a character, in insertion order."""
        return [m for m in self._state.conversations if m.character_id == character_id]

    def search_messages(self, character_id: str, query: str) -> list[Message]:
        messages = self.get_messages(character_id)
        if not query:
            return messages
        needle = query.lower()
        return [m for m in messages if needle in m.text.lower()]

    def clear_conversation(self, character_id: str) -> int:
        """Delete every message of one character. Returns how many were removed."""
        kept = [m for m in self._state.conversations if m.character_id != character_id]
        removed = len(self._state.conversations) - len(kept)
        if removed:
            self._commit(conversations=kept)
        return removed

    # ------------------------------------------------------------------
    # View preferences and derived views
    # ------------------------------------------------------------------

    def set_search_query(self, query: str) -> None:
        self._commit(search_query=query)

    def set_filter_personality(self, personality: str | Personality) -> None:
        value = "all" if personality == "all" else Personality.resolve(personality)
        self._commit(filter_personality=value)

    def set_sort_by(self, sort_by: str) -> None:
        if sort_by not in SORT_ORDERS:
            raise ValidationError(
                f"Unknown sort order {sort_by!r}; expected one of {', '.join(SORT_ORDERS)}"
            )
        self._commit(sort_by=sort_by)

    def _message_counts(self) -> Counter[str]:
        return Counter(m.character_id for m in self._state.conversations)

    def get_filtered_characters(self) -> list[Character]:
        """Characters after search, personality filter and sort, in that order."""
        state = self._state
        characters = list(state.characters)

        if state.search_query:
            q = state.search_query.lower()
            characters = [
                c for c in characters
                if q in c.name.lower() or q in c.personality.value or q in c.backstory.lower()
            ]

        if state.filter_personality != "all":
            characters = [c for c in characters if c.personality == state.filter_personality]

        return _sort_characters(characters, state.sort_by, self._message_counts())

    def get_stats(self) -> Stats:
        """Totals, personality histogram and the most active character.

        The most active character is the one with the most messages; ties
        go to the lowest id. None when no character has any message.
        """
        state = self._state
        counts = self._message_counts()
        personalities: Counter[str] = Counter(c.personality.value for c in state.characters)

        most_active: Character | None = None
        for c in sorted(state.characters, key=lambda c: c.id):
            if counts[c.id] > (counts[most_active.id] if most_active else 0):
                most_active = c

        return Stats(
            total_characters=len(state.characters),
            total_messages=len(state.conversations),
            personalities=dict(personalities),
            most_active_character=most_active,
        )

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_data(self) -> dict[str, Any]:
        state = self._state
        return {
            "characters": [c.model_dump(mode="json", by_alias=True) for c in state.characters],
            "conversations": [
                m.model_dump(mode="json", by_alias=True) for m in state.conversations
            ],
            "exportedAt": self._clock().isoformat(),
            "version": EXPORT_VERSION,
        }

    def import_data(self, blob: Mapping[str, Any] | str | bytes) -> None:
        """Replace all characters and conversations with ``blob``'s.

        Any object with a ``characters`` array is accepted. Anything else
        raises ImportFormatError and leaves the store exactly as it was.
        """
        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ImportFormatError(f"Import data is not valid JSON: {e}") from e

        if not isinstance(blob, Mapping) or not isinstance(blob.get("characters"), list):
            logger.warning("import rejected: no 'characters' array")
            raise ImportFormatError("Import data must contain a 'characters' array")

        raw_messages = blob.get("conversations") or []
        if not isinstance(raw_messages, list):
            raise ImportFormatError("'conversations' must be an array")

        try:
            characters = [Character.model_validate(c) for c in blob["characters"]]
            messages = [Message.model_validate(m) for m in raw_messages]
        except PydanticValidationError as e:
            logger.warning("import rejected: %s", _error_summary(e))
            raise ImportFormatError(f"Invalid import entry: {_error_summary(e)}") from e

        for kind, ids in (("character", [c.id for c in characters]), ("message", [m.id for m in messages])):
            duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
            if duplicates:
                raise ImportFormatError(f"Duplicate {kind} ids: {', '.join(duplicates)}")

        known = {c.id for c in characters}
        orphans = [m for m in messages if m.character_id not in known]
        if orphans:
            logger.warning("import dropped %d messages without a character", len(orphans))
            messages = [m for m in messages if m.character_id in known]

        active = self._state.active_character_id
        self._commit(
            characters=characters,
            conversations=messages,
            active_character_id=active if active in known else None,
        )
        logger.debug("imported characters=%d messages=%d", len(characters), len(messages))

    def clear_all_data(self) -> None:
        """Drop every character, message and view preference."""
        self._commit(**StoreState().model_dump())


def _latest_timestamp(messages: Iterable[Message]) -> datetime | None:
    return max((m.timestamp for m in messages), default=None)


def _sort_characters(
    characters: list[Character], sort_by: str, counts: Mapping[str, int]
) -> list[Character]:
    # Stable sorts: sort by the tie-breaker (newest first) before the primary key.
    newest = sorted(characters, key=lambda c: c.created_at, reverse=True)
    if sort_by == "oldest":
        return sorted(characters, key=lambda c: c.created_at)
    if sort_by == "name":
        return sorted(characters, key=lambda c: (c.name.casefold(), c.name))
    if sort_by == "mostChats":
        return sorted(newest, key=lambda c: counts.get(c.id, 0), reverse=True)
    if sort_by == "favorites":
        return sorted(newest, key=lambda c: not c.is_favorite)
    return newest
