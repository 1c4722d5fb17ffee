"""Completion provider client — HTTP connection to a chat-completion backend.

The pipeline depends only on the protocol:

    async def complete(self, system_prompt: str, user_message: str, *,
                       temperature: float, max_tokens: int) -> str: ...

Failures are reported with two exception types: ProviderRateLimited when
the backend signals quota or rate-limit exhaustion (the pipeline answers
with a canned reply instead), and ProviderError for everything else.

Two implementations are provided:

    HttpProvider  — OpenAI-compatible /chat/completions client (Groq by
                    default).
    EchoProvider  — answers with the user's message. Useful for checking the
                    pipeline wiring without a running model.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "llama-3.3-70b-versatile"

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "quota", "too many requests")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ProviderError(RuntimeError):
    """Raised when the provider cannot be reached or returns an error."""


class ProviderRateLimited(ProviderError):
    """The provider refused the request because of rate limits or quota."""


def is_rate_limited(error: BaseException) -> bool:
    """True if ``error`` signals quota or rate-limit exhaustion.

    Providers are opaque to the pipeline, so besides ProviderRateLimited
    this also recognises an HTTP 429 status attribute and the usual wording
    in the error message.
    """
    if isinstance(error, ProviderRateLimited):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    return _mentions_rate_limit(str(error))


def _mentions_rate_limit(text: str) -> bool:
    text = text.lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


# ---------------------------------------------------------------------------
# Provider protocol: what the pipeline calls
# ---------------------------------------------------------------------------

class CompletionProvider(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HTTP provider
# ---------------------------------------------------------------------------

class HttpProvider:
    """Async HTTP client for OpenAI-compatible chat-completion backends.

    POST {base_url}/chat/completions
      {"model": ..., "messages": [{"role": "system", ...}, {"role": "user", ...}],
       "temperature": ..., "max_tokens": ...}
    Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        api_key:  Bearer token.
        base_url: Base URL of the backend, e.g. "https://api.groq.com/openai/v1".
        model:    Model identifier.
        timeout:  HTTP timeout in seconds. Defaults to 30.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_PROVIDER_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self, system_prompt: str, user_message: str, temperature: float, max_tokens: int
    ) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _parse_response(self, data: Any) -> str:
        """Extract the reply text. Empty content comes back as ""."""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict) or "message" not in choices[0]:
            raise ProviderError("Unexpected response format from completion provider")
        return choices[0]["message"].get("content") or ""

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        url = f"{self._base_url}/chat/completions"
        body = self._build_body(system_prompt, user_message, temperature, max_tokens)
        logger.debug("completion call url=%s model=%s prompt_len=%d", url, self._model, len(system_prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise ProviderError(f"Cannot connect to completion provider at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429 or _mentions_rate_limit(e.response.text):
                raise ProviderRateLimited(f"Completion provider rate limited (HTTP {status})") from e
            raise ProviderError(f"Completion provider returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"Completion provider timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Completion request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError("Completion provider returned invalid JSON") from e

        text = self._parse_response(data)
        logger.debug("completion response len=%d", len(text))
        return text


# ---------------------------------------------------------------------------
# Echo provider (offline)
# ---------------------------------------------------------------------------

class EchoProvider:
    """Returns the user message as the reply.

    Lets you drive the whole send workflow (prompt rendering, store writes,
    pacing) end to end without a model or an API key.
    """

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        logger.debug("EchoProvider prompt_len=%d", len(system_prompt))
        return user_message
