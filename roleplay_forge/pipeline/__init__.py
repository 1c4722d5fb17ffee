"""Conversation pipeline: one round of "user sends, character replies".

  1. Validate and commit the user's message (EmptyMessageError / BusyError).
  2. Resolve a provider key: installation key, then the user's stored key.
  3. With a key, ask the completion provider for an in-character reply,
     using a Handlebars system prompt built from name, personality and
     backstory. Rate limits fall back to canned replies; other failures
     produce one apologetic reply.
  4. Without a key, pick a canned reply for the personality after a
     humanlike typing delay.
  5. Commit the reply as a strictly later, non-user message.

Modules:
  orchestrator — ConversationPipeline state machine, SendState, SendResult
  fallback     — canned responses, typing delays, conversation starters
  prompts      — system prompt rendering
"""

from .fallback import (  # noqa: F401
    conversation_starters,
    pick_response,
    responses_for,
    typing_delay,
)
from .orchestrator import (  # noqa: F401
    EMPTY_REPLY_PLACEHOLDER,
    ERROR_REPLY,
    ConversationPipeline,
    SendResult,
    SendState,
)
from .prompts import (  # noqa: F401
    DEFAULT_SYSTEM_PROMPT,
    PromptError,
    build_system_prompt,
    render_prompt,
)
