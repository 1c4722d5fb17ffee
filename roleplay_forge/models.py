"""Core domain models.

The entity store and the conversation pipeline operate on these types.
Pydantic is used for validation and serialisation at every data boundary:
persisted state, import payloads and the character creation form all enter
through model_validate().

Serialised keys are camelCase (isFavorite, characterId, createdAt ...) so
exported files stay readable by the web client; Python code uses the
snake_case attribute names. Both spellings are accepted on input.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_NAME_LENGTH = 2
MIN_BACKSTORY_LENGTH = 50

SortOrder = Literal["newest", "oldest", "name", "mostChats", "favorites"]
SORT_ORDERS: tuple[str, ...] = ("newest", "oldest", "name", "mostChats", "favorites")


def new_id() -> str:
    """Return a fresh collision-resistant identifier (uuid4, hex)."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from older exports are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class Personality(str, Enum):
    """Closed set of character personalities.

    Raw strings are resolved once, when data enters the system. Anything
    unrecognised becomes UNKNOWN, which behaves exactly like FRIENDLY.
    """

    FRIENDLY = "friendly"
    SARCASTIC = "sarcastic"
    WISE = "wise"
    DARK = "dark"
    MYSTERIOUS = "mysterious"
    CHEERFUL = "cheerful"
    SERIOUS = "serious"
    ROMANTIC = "romantic"
    ADVENTUROUS = "adventurous"
    UNKNOWN = "unknown"

    @classmethod
    def resolve(cls, value: Any) -> Personality:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN

    @property
    def effective(self) -> Personality:
        """The personality used for prompts, canned replies and pacing."""
        return Personality.FRIENDLY if self is Personality.UNKNOWN else self


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Character(_Model):
    """A user-authored persona to chat with."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, min_length=1)
    name: str
    personality: Personality = Personality.FRIENDLY
    backstory: str = ""
    is_favorite: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime | None = None
    age: str | None = None
    gender: str | None = None
    image_url: str | None = None

    @field_validator("personality", mode="before")
    @classmethod
    def _resolve_personality(cls, v: Any) -> Personality:
        return Personality.resolve(v)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Character name must not be empty")
        return v

    @field_validator("age", mode="before")
    @classmethod
    def _age_as_text(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)


class Message(_Model):
    """A single chat line between the user and one character."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, min_length=1)
    character_id: str
    text: str = Field(min_length=1)
    is_user: bool
    timestamp: UtcDatetime
    edited: bool = False
    edited_at: UtcDatetime | None = None


class CharacterDraft(_Model):
    """Input of the create-character form.

    Carries the same checks the form enforces before anything reaches the
    store: a name of at least two characters, a backstory of at least fifty,
    and an optional positive age.
    """

    name: str
    personality: Personality = Personality.FRIENDLY
    backstory: str
    age: str | None = None
    gender: str | None = None
    image_url: str | None = None

    @field_validator("personality", mode="before")
    @classmethod
    def _resolve_personality(cls, v: Any) -> Personality:
        return Personality.resolve(v)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Character name is required")
        if len(v) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        return v

    @field_validator("backstory")
    @classmethod
    def _check_backstory(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Backstory is required")
        if len(v) < MIN_BACKSTORY_LENGTH:
            raise ValueError(f"Backstory must be at least {MIN_BACKSTORY_LENGTH} characters")
        return v

    @field_validator("age", mode="before")
    @classmethod
    def _check_age(cls, v: Any) -> str | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            age = int(str(v).strip())
        except ValueError:
            raise ValueError("Please enter a valid age") from None
        if age < 1:
            raise ValueError("Please enter a valid age")
        return str(age)


class StoreState(_Model):
    """Everything the entity store persists in its key-value slot."""

    characters: list[Character] = Field(default_factory=list)
    conversations: list[Message] = Field(default_factory=list)
    active_character_id: str | None = None
    search_query: str = ""
    filter_personality: Personality | Literal["all"] = "all"
    sort_by: SortOrder = "newest"

    @field_validator("filter_personality", mode="before")
    @classmethod
    def _resolve_filter(cls, v: Any) -> Personality | str:
        if v == "all":
            return v
        return Personality.resolve(v)


class Stats(_Model):
    total_characters: int
    total_messages: int
    personalities: dict[str, int]
    most_active_character: Character | None = None
