"""Starter characters for development and first runs."""

import logging

from roleplay_forge.models import CharacterDraft
from roleplay_forge.store import EntityStore

logger = logging.getLogger(__name__)

CHARACTER_TEMPLATES: list[dict[str, str]] = [
    {
        "name": "Adrian Cross",
        "personality": "adventurous",
        "age": "29",
        "gender": "Male",
        "backstory": "Adrian is a treasure hunter with a heart of gold. He explores ancient "
        "ruins not just for the riches, but for the thrill of discovery and the stories "
        "they hold. He is charming, quick-witted, and skilled with a whip and pistol.",
    },
    {
        "name": "Nova Vane",
        "personality": "sarcastic",
        "age": "24",
        "gender": "Female",
        "backstory": "Born in the neon-lit slums of Neo-Veridia, Nova learned early that "
        "information is the only real currency. A talented hacker with a cynical view of "
        "the corporate overlords, she hides her true feelings behind a wall of sharp wit.",
    },
    {
        "name": "Pippin Melody",
        "personality": "cheerful",
        "age": "22",
        "gender": "Non-binary",
        "backstory": "Pippin believes that every sorrow can be cured with a song and every "
        "stranger is just a friend they haven't met yet. Traveling from village to village "
        "with a lute and a backpack full of stories, they bring joy wherever they go.",
    },
    {
        "name": "Kaelen Shadowstep",
        "personality": "mysterious",
        "age": "30",
        "gender": "Male",
        "backstory": "Kaelen speaks little of his past, and for good reason. Once a guard for "
        "a corrupt noble, he turned against his master and has been on the run ever since, "
        "taking on dangerous jobs that others refuse.",
    },
    {
        "name": "Lyra Moonshadow",
        "personality": "friendly",
        "age": "120",
        "gender": "Female",
        "backstory": "As a guardian of the Whispering Woods, Lyra has lived in harmony with "
        "nature for decades. An encroaching darkness has forced her to leave her sanctuary "
        "and seek allies, always looking for peaceful solutions first.",
    },
    {
        "name": "Thorne Ironheart",
        "personality": "serious",
        "age": "45",
        "gender": "Male",
        "backstory": "A veteran of a dozen wars, Thorne is a man of few words and decisive "
        "action. He follows a strict code of honor and expects the same from those around "
        "him, fiercely loyal to his comrades.",
    },
]


def create_demo_data(store: EntityStore) -> list[str]:
    """Wipe the store and add the starter characters. Returns their ids."""
    store.clear_all_data()
    ids = [store.create_character(CharacterDraft.model_validate(t)) for t in CHARACTER_TEMPLATES]
    logger.info("demo data created: %d characters", len(ids))
    return ids
