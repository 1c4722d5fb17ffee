"""Offline replies: canned lines per personality and humanlike pacing.

Used when no provider key is available or the provider is rate limited.
Five response sets exist (friendly, sarcastic, wise, dark, cheerful);
mysterious characters share the dark set and every other personality
answers with the friendly one.

Typing delay = base delay of the personality + uniform jitter in
[0, JITTER_MS) milliseconds.
"""

import random

from roleplay_forge.models import Personality

FALLBACK_RESPONSES: dict[Personality, tuple[str, ...]] = {
    Personality.FRIENDLY: (
        "That's really interesting! Tell me more about that.",
        "I totally understand what you mean!",
        "Thanks for sharing that with me!",
        "That sounds amazing! What happened next?",
    ),
    Personality.SARCASTIC: (
        "Oh, how fascinating... truly groundbreaking stuff.",
        "Wow, I've never heard anything like that before... *eye roll*",
        "Right, because that's exactly how things work.",
        "Sure, and I'm the queen of England.",
    ),
    Personality.WISE: (
        "In my years of experience, I've learned that such matters require careful thought.",
        "Consider this from a different perspective, young one.",
        "Wisdom comes not from knowing, but from understanding.",
        "The path you seek may not be the one you expect.",
    ),
    Personality.DARK: (
        "The shadows whisper secrets you cannot comprehend...",
        "Interesting... your words echo through the void.",
        "Darkness is not to be feared, but understood.",
        "I sense a deeper truth beneath your words.",
    ),
    Personality.CHEERFUL: (
        "Oh my gosh, that's so exciting!",
        "Yay! I love talking about this!",
        "This is going to be so much fun!",
        "You always have the best stories!",
    ),
}

BASE_DELAYS_MS: dict[Personality, int] = {
    Personality.FRIENDLY: 800,
    Personality.SARCASTIC: 1200,
    Personality.WISE: 1500,
    Personality.DARK: 1000,
    Personality.CHEERFUL: 600,
}
DEFAULT_DELAY_MS = 1000
JITTER_MS = 800

CONVERSATION_STARTERS: dict[Personality, tuple[str, ...]] = {
    Personality.FRIENDLY: (
        "Hey! How was your day?",
        "I need some advice...",
        "Want to hear something funny?",
        "Tell me about yourself!",
    ),
    Personality.SARCASTIC: (
        "Impress me.",
        "I've got a joke for you...",
        "What's your opinion on this?",
        "Challenge accepted?",
    ),
    Personality.WISE: (
        "What is the meaning of life?",
        "Teach me something new.",
        "I seek guidance...",
        "Share your wisdom with me.",
    ),
    Personality.DARK: (
        "Tell me a secret...",
        "What lurks in the shadows?",
        "Share your darkest thought.",
        "The night is young...",
    ),
    Personality.CHEERFUL: (
        "Let's have some fun!",
        "What makes you happy?",
        "Tell me something exciting!",
        "Let's celebrate something!",
    ),
}

_ALIASES = {Personality.MYSTERIOUS: Personality.DARK}


def _canonical(personality: Personality) -> Personality:
    personality = personality.effective
    return _ALIASES.get(personality, personality)


def responses_for(personality: Personality) -> tuple[str, ...]:
    return FALLBACK_RESPONSES.get(_canonical(personality), FALLBACK_RESPONSES[Personality.FRIENDLY])


def pick_response(personality: Personality, rng: random.Random) -> str:
    """Uniform random choice from the personality's canned responses."""
    return rng.choice(responses_for(personality))


def typing_delay(personality: Personality, rng: random.Random) -> float:
    """Seconds to wait before a canned reply appears."""
    base = BASE_DELAYS_MS.get(_canonical(personality), DEFAULT_DELAY_MS)
    return (base + rng.random() * JITTER_MS) / 1000


def conversation_starters(personality: Personality) -> list[str]:
    """Suggested opening lines for a new conversation."""
    starters = CONVERSATION_STARTERS.get(
        _canonical(personality), CONVERSATION_STARTERS[Personality.FRIENDLY]
    )
    return list(starters)
