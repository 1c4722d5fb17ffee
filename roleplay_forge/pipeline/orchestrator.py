"""Conversation pipeline — runs one "user sends, character replies" round.

Send flow (SendState):
  IDLE
    → USER_MESSAGE_COMMITTED   trimmed user text appended to the store
    → AWAITING_REPLY           a provider key exists: one completion request
        → REPLY_RECEIVED       provider answered (empty content → placeholder)
        → PROVIDER_FAILED
            → FALLBACK_GENERATION     rate limited / quota exhausted
            → ERROR_REPLY_GENERATION  any other failure, or the timeout
    → FALLBACK_GENERATION      no provider key at all
  FALLBACK_GENERATION / ERROR_REPLY_GENERATION → REPLY_RECEIVED
  REPLY_RECEIVED → IDLE        reply appended with is_user=False

Suspension points are the provider call and the typing delays. Only one
send per character may be in flight; a second one fails with BusyError.

If the awaiting task is cancelled the pending reply is discarded: the user
message stays, nothing else is appended. A reply whose character was
deleted in the meantime is discarded too.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from roleplay_forge.config import Settings
from roleplay_forge.credentials import CredentialStore
from roleplay_forge.errors import BusyError, EmptyMessageError, NotFoundError, PersistenceError
from roleplay_forge.llm import CompletionProvider, HttpProvider, is_rate_limited
from roleplay_forge.models import Character, Message
from roleplay_forge.store import EntityStore

from .fallback import pick_response, typing_delay
from .prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt

logger = logging.getLogger(__name__)

EMPTY_REPLY_PLACEHOLDER = "Sorry, I could not respond."
ERROR_REPLY = "I apologize, but I'm having trouble responding right now. Please try again."

PROVIDER_REPLY_DELAY = 0.8  # seconds
ERROR_REPLY_DELAY = 0.5

ReplySource = Literal["provider", "fallback", "error"]
ProviderFactory = Callable[[str], CompletionProvider]
Sleep = Callable[[float], Awaitable[object]]


class SendState(str, Enum):
    IDLE = "idle"
    USER_MESSAGE_COMMITTED = "user_message_committed"
    AWAITING_REPLY = "awaiting_reply"
    PROVIDER_FAILED = "provider_failed"
    FALLBACK_GENERATION = "fallback_generation"
    ERROR_REPLY_GENERATION = "error_reply_generation"
    REPLY_RECEIVED = "reply_received"


class SendResult(BaseModel):
    """Outcome of one send: both messages and the path taken."""

    user_message: Message
    reply: Message | None
    source: ReplySource
    states: list[SendState]


class ConversationPipeline:
    """Drives sends for every conversation of one entity store.

    Args:
        store:            Entity store the messages are written to.
        settings:         Provider connection, sampling options and timeout.
        credentials:      Per-user key lookup, consulted when settings carry no key.
        provider_factory: Builds a provider for a key. Defaults to HttpProvider.
        rng:              Source of randomness for canned replies and jitter.
        sleep:            Awaitable delay, asyncio.sleep unless replaced.
        system_prompt:    Handlebars template for the system prompt.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        settings: Settings | None = None,
        credentials: CredentialStore | None = None,
        provider_factory: ProviderFactory | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        self._credentials = credentials
        self._provider_factory = provider_factory or self._http_provider
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._system_prompt = system_prompt
        self._in_flight: set[str] = set()

    def _http_provider(self, api_key: str) -> CompletionProvider:
        return HttpProvider(
            api_key=api_key,
            base_url=self._settings.provider_url,
            model=self._settings.model,
            timeout=self._settings.provider_timeout,
        )

    def is_busy(self, character_id: str) -> bool:
        return character_id in self._in_flight

    async def send_message(
        self, character_id: str, text: str, *, user_id: str | None = None
    ) -> SendResult:
        """Commit the user's message and the character's reply.

        Raises EmptyMessageError, BusyError or NotFoundError before anything
        is written. Provider failures never raise: they become a canned or
        apologetic reply.
        """
        message = (text or "").strip()
        if not message:
            raise EmptyMessageError("Message text is empty")
        if character_id in self._in_flight:
            raise BusyError(f"A reply from {character_id!r} is already on its way")
        character = self._store.get_character(character_id)

        self._in_flight.add(character_id)
        try:
            return await self._run(character, message, user_id)
        except asyncio.CancelledError:
            logger.debug("send to %s cancelled; pending reply discarded", character_id)
            raise
        finally:
            self._in_flight.discard(character_id)

    async def _run(self, character: Character, message: str, user_id: str | None) -> SendResult:
        states = [SendState.IDLE]

        def enter(state: SendState) -> None:
            states.append(state)
            logger.debug("send to %s: %s", character.id, state.value)

        user_msg = self._store.add_message(character.id, message, is_user=True)
        enter(SendState.USER_MESSAGE_COMMITTED)

        source: ReplySource
        api_key = self._resolve_api_key(user_id)
        if api_key is None:
            enter(SendState.FALLBACK_GENERATION)
            reply_text = await self._fallback_reply(character)
            source = "fallback"
        else:
            enter(SendState.AWAITING_REPLY)
            try:
                reply_text = await self._provider_reply(api_key, character, message)
                source = "provider"
            except Exception as e:
                enter(SendState.PROVIDER_FAILED)
                if is_rate_limited(e):
                    logger.info("provider rate limited for %s; using canned reply", character.id)
                    enter(SendState.FALLBACK_GENERATION)
                    reply_text = await self._fallback_reply(character)
                    source = "fallback"
                else:
                    logger.warning("provider failed for %s: %r", character.id, e)
                    enter(SendState.ERROR_REPLY_GENERATION)
                    await self._sleep(ERROR_REPLY_DELAY)
                    reply_text = ERROR_REPLY
                    source = "error"

        enter(SendState.REPLY_RECEIVED)
        reply = self._commit_reply(character.id, reply_text)
        enter(SendState.IDLE)
        return SendResult(user_message=user_msg, reply=reply, source=source, states=states)

    def _resolve_api_key(self, user_id: str | None) -> str | None:
        """Installation key first, then the user's stored key."""
        if self._settings.api_key:
            return self._settings.api_key
        if user_id is None or self._credentials is None:
            return None
        try:
            return self._credentials.get_stored_key(user_id) or None
        except PersistenceError as e:
            logger.warning("cannot read stored key for %s, using canned replies: %s", user_id, e)
            return None

    async def _provider_reply(self, api_key: str, character: Character, message: str) -> str:
        provider = self._provider_factory(api_key)
        system_prompt = build_system_prompt(character, self._system_prompt)
        text = await asyncio.wait_for(
            provider.complete(
                system_prompt,
                message,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
            ),
            timeout=self._settings.provider_timeout,
        )
        text = (text or "").strip() or EMPTY_REPLY_PLACEHOLDER
        await self._sleep(PROVIDER_REPLY_DELAY)
        return text

    async def _fallback_reply(self, character: Character) -> str:
        delay = typing_delay(character.personality, self._rng)
        await self._sleep(delay)
        return pick_response(character.personality, self._rng)

    def _commit_reply(self, character_id: str, text: str) -> Message | None:
        try:
            return self._store.add_message(character_id, text, is_user=False)
        except NotFoundError:
            logger.warning("character %s deleted before its reply arrived; reply discarded", character_id)
            return None
