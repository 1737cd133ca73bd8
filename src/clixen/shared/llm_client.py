"""Async OpenAI API wrapper used for intent extraction and placeholder values."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from typing import Any, Callable

from openai import AsyncOpenAI, APIConnectionError, APITimeoutError, RateLimitError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
MAX_TOKENS = 4_096

# Retry settings for rate-limit (429) errors
_RATE_LIMIT_MAX_RETRIES = 6
_RATE_LIMIT_BASE_DELAY = 2  # seconds, floor for exponential backoff


def _parse_retry_after(exc: Exception) -> float | None:
    """Extract the suggested retry delay from an OpenAI rate limit error.

    Checks the ``Retry-After`` header first, then falls back to parsing
    the "Please try again in Xs / Xms" substring from the error message.
    Returns seconds as a float, or None if not found.
    """
    try:
        headers = exc.response.headers  # type: ignore[attr-defined]
        if retry_after := headers.get("retry-after"):
            return float(retry_after)
    except (AttributeError, TypeError, ValueError):
        pass

    m = re.search(r"try again in (\d+(?:\.\d+)?)\s*(ms|s)\b", str(exc), re.IGNORECASE)
    if m:
        value = float(m.group(1))
        return value / 1000 if m.group(2).lower() == "ms" else value

    return None


TokensCallback = Callable[[int, int], None]
"""Called with (input_tokens, output_tokens) when a completion finishes."""


class LLMClient:
    """Thin async wrapper around the OpenAI SDK.

    Provides two methods:
    - ``chat_completion``: a full message list (used for re-format retries).
    - ``simple_completion``: single system + user request/response.
    """

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def _call_with_retry(self, **kwargs: Any) -> Any:
        """Call chat.completions.create with exponential backoff on 429 errors.

        Waits at least as long as OpenAI's suggested retry-after time, uses
        exponential backoff as a floor and adds ±25% jitter.

        Fails immediately if the error indicates the request itself exceeds
        the token limit.
        """
        for attempt in range(_RATE_LIMIT_MAX_RETRIES):
            try:
                return await self._client.chat.completions.create(**kwargs)
            except RateLimitError as exc:
                msg = str(exc).lower()
                if "request too large" in msg or "context_length_exceeded" in msg:
                    logger.error("Request exceeds token limit (not retryable): %s", exc)
                    raise
                if attempt == _RATE_LIMIT_MAX_RETRIES - 1:
                    raise

                backoff = _RATE_LIMIT_BASE_DELAY * (2 ** attempt)
                suggested = _parse_retry_after(exc)
                base_delay = max(suggested or 0.0, backoff)
                jitter = random.uniform(-0.25 * base_delay, 0.25 * base_delay)
                delay = max(1.0, base_delay + jitter)

                logger.warning(
                    "Rate limited (429), retrying in %.1fs (attempt %d/%d, "
                    "suggested=%.1fs, backoff=%ds): %s",
                    delay, attempt + 1, _RATE_LIMIT_MAX_RETRIES,
                    suggested or 0.0, backoff, exc,
                )
                await asyncio.sleep(delay)
            except (APIConnectionError, APITimeoutError) as exc:
                if attempt == _RATE_LIMIT_MAX_RETRIES - 1:
                    raise
                backoff = _RATE_LIMIT_BASE_DELAY * (2 ** min(attempt, 3))
                jitter = random.uniform(-0.25 * backoff, 0.25 * backoff)
                delay = max(1.0, backoff + jitter)
                logger.warning(
                    "Connection error, retrying in %.1fs (attempt %d/%d): %s",
                    delay, attempt + 1, _RATE_LIMIT_MAX_RETRIES, exc,
                )
                await asyncio.sleep(delay)

    async def chat_completion(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = True,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        """Single request/response over an explicit message history.

        When ``json_mode`` is True (default), the OpenAI API guarantees
        the response is valid JSON.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "system", "content": system}, *messages],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._call_with_retry(**kwargs)
        usage = getattr(response, "usage", None)
        if on_tokens and usage:
            on_tokens(getattr(usage, "prompt_tokens", 0), getattr(usage, "completion_tokens", 0))
        return response.choices[0].message.content or ""

    async def simple_completion(
        self,
        *,
        system: str,
        user_message: str,
        json_mode: bool = True,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        """Single system + user request/response."""
        return await self.chat_completion(
            system=system,
            messages=[{"role": "user", "content": user_message}],
            json_mode=json_mode,
            temperature=temperature,
            max_tokens=max_tokens,
            on_tokens=on_tokens,
        )


# ======================================================================
# Dry-run mock client, zero API calls
# ======================================================================

# Canned responses keyed by the prompt family detected in the system prompt
_DRY_RUN_RESPONSES: dict[str, str] = {
    "intent": json.dumps({
        "trigger": {"app": "webhook", "event": "new_form_submission", "conditions": []},
        "actions": [{"app": "email", "operation": "send_email", "target": "sales team"}],
        "data_mappings": [{"source": "form.email", "target": "email.replyTo"}],
        "extracted_values": {
            "description": "send an email to the sales team for every new form submission",
            "recipient_email": "sales@example.com",
        },
        "complexity_score": 0.2,
    }),
    "strict": json.dumps({
        "trigger_app": "webhook",
        "action_app": "email",
        "operation": "form_submission",
        "requirements": [],
    }),
    "value": "dry-run value",
}


class DryRunClient:
    """Drop-in replacement for LLMClient that makes zero API calls."""

    model = "dry-run"

    async def chat_completion(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = True,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        key = self._detect_prompt(system)
        logger.info("[dry-run] %s completion (%d messages)", key, len(messages))
        return _DRY_RUN_RESPONSES[key]

    async def simple_completion(
        self,
        *,
        system: str,
        user_message: str,
        json_mode: bool = True,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        return await self.chat_completion(
            system=system,
            messages=[{"role": "user", "content": user_message}],
            json_mode=json_mode,
        )

    @staticmethod
    def _detect_prompt(system: str) -> str:
        """Guess the prompt family from the system prompt.

        Order matters: the strict prompt also mentions workflow requests.
        """
        if "EXACT template matching" in system:
            return "strict"
        if "Placeholder Value" in system:
            return "value"
        return "intent"
