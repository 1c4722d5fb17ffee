"""Handlebars rendering of the character system prompt."""

from collections.abc import Callable
from typing import Any

import pybars

from roleplay_forge.models import Character

DEFAULT_SYSTEM_PROMPT = (
    "You are {{{name}}}, a {{personality}} character. Backstory: {{{backstory}}}. "
    "Respond in character, matching your personality. "
    "Keep responses natural and conversational."
)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def character_context(character: Character) -> dict[str, Any]:
    """Template variables describing one character."""
    return {
        "name": character.name,
        "personality": character.personality.effective.value,
        "backstory": character.backstory,
        "age": character.age,
        "gender": character.gender,
    }


def build_system_prompt(character: Character, template_str: str = DEFAULT_SYSTEM_PROMPT) -> str:
    return render_prompt(template_str, character_context(character))
