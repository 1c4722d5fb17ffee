import random
from datetime import datetime, timedelta, timezone

import pytest

from roleplay_forge.config import Settings
from roleplay_forge.storage import MemoryStorage
from roleplay_forge.store import EntityStore

BACKSTORY = (
    "Grew up above a lighthouse, learned to read the weather before learning to read books."
)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> None:
        self.now += timedelta(seconds=seconds)


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns at once and remembers delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(memory_storage: MemoryStorage, clock: FakeClock) -> EntityStore:
    return EntityStore(memory_storage, clock=clock)


@pytest.fixture
def make_character(store: EntityStore, clock: FakeClock):
    """Create a character; each call is one second later than the previous."""

    def _make(name: str = "Nova", personality: str = "friendly", backstory: str = BACKSTORY) -> str:
        clock.advance()
        return store.create_character(
            {"name": name, "personality": personality, "backstory": backstory}
        )

    return _make


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def settings() -> Settings:
    return Settings()
