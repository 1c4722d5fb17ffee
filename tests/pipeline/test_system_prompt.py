"""Tests for Handlebars system-prompt rendering."""

import pytest

from roleplay_forge.models import Character
from roleplay_forge.pipeline.prompts import (
    PromptError,
    build_system_prompt,
    character_context,
    render_prompt,
)


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_missing_variable():
    assert render_prompt("Hello {{name}}!", {}) == "Hello !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


def test_default_prompt_mentions_name_personality_backstory():
    c = Character(name="Nova", personality="sarcastic", backstory="Raised by hackers in Neo-Veridia.")
    prompt = build_system_prompt(c)
    assert prompt.startswith("You are Nova, a sarcastic character.")
    assert "Backstory: Raised by hackers in Neo-Veridia." in prompt
    assert "Respond in character" in prompt


def test_default_prompt_does_not_html_escape():
    c = Character(name="O'Brien", backstory='Says "hello" & leaves.')
    prompt = build_system_prompt(c)
    assert "O'Brien" in prompt
    assert 'Says "hello" & leaves.' in prompt


def test_unknown_personality_rendered_as_friendly():
    c = Character(name="Zoe", personality="grumpy")
    assert "a friendly character" in build_system_prompt(c)


def test_custom_template():
    c = Character(name="Zoe", age="31")
    tpl = "{{name}}{{#if age}} ({{age}}){{/if}}"
    assert build_system_prompt(c, tpl) == "Zoe (31)"


def test_character_context_keys():
    ctx = character_context(Character(name="Zoe"))
    assert set(ctx) == {"name", "personality", "backstory", "age", "gender"}
