"""Base agent ABC: a single LLM call whose JSON answer parses into a model."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ValidationError

from clixen.errors import AgentOutputError
from clixen.shared.llm_client import LLMClient, TokensCallback

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (ValueError, json.JSONDecodeError, KeyError, TypeError, ValidationError)


class BaseAgent(ABC):
    """Abstract base class for the LLM-backed steps of the pipeline.

    Subclasses implement:
    - ``name``: human-readable agent name
    - ``get_system_prompt()``: returns the system prompt string
    - ``parse_output(raw_text)``: parses the final text into a Pydantic model
    """

    temperature: float | None = None

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for log lines."""

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Return the system prompt for this agent."""

    @abstractmethod
    def parse_output(self, raw_text: str) -> BaseModel:
        """Parse the model's final text response into a Pydantic model."""

    async def run(
        self,
        user_message: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> BaseModel:
        """Send one JSON-mode request and return the parsed output model.

        If parsing fails, asks the model to re-format as JSON (one retry);
        a second failure raises ``AgentOutputError``.
        """
        system = system or self.get_system_prompt()
        temperature = self.temperature if temperature is None else temperature
        messages: list[dict[str, Any]] = [{"role": "user", "content": user_message}]

        raw = await self.client.chat_completion(
            system=system,
            messages=messages,
            json_mode=True,
            temperature=temperature,
            on_tokens=on_tokens,
        )
        logger.debug("Agent %s raw output:\n%s", self.name, raw[:500])
        return await self._parse_with_retry(raw, messages, system=system, temperature=temperature)

    async def _parse_with_retry(
        self,
        raw: str,
        messages: list[dict[str, Any]],
        *,
        system: str,
        temperature: float | None = None,
    ) -> BaseModel:
        """Try to parse model output; on failure ask the model to re-format once."""
        try:
            return self.parse_output(raw)
        except _PARSE_ERRORS as first_err:
            logger.warning(
                "Agent %s output was not valid JSON, requesting re-format. Error: %s",
                self.name,
                first_err,
            )

        messages.append({"role": "assistant", "content": raw})
        messages.append({
            "role": "user",
            "content": (
                "I need the output as a single JSON object (no markdown, no "
                "explanation — just raw JSON) matching the schema described in "
                "your instructions. Please re-format your response now."
            ),
        })

        raw_retry = await self.client.chat_completion(
            system=system,
            messages=messages,
            json_mode=True,
            temperature=temperature,
        )
        logger.debug("Agent %s retry output:\n%s", self.name, raw_retry[:500])
        try:
            return self.parse_output(raw_retry)
        except _PARSE_ERRORS as exc:
            logger.error("Agent %s output still unparseable after re-format: %s", self.name, exc)
            raise AgentOutputError(self.name, exc) from exc


def extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from text that may contain markdown fences."""
    text = text.strip()

    # 1. Try direct parse (clean JSON response)
    if text.startswith("{"):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Might have trailing text, try raw_decode
            try:
                obj, _ = json.JSONDecoder().raw_decode(text)
                return obj
            except json.JSONDecodeError:
                pass

    # 2. Look for ```json ... ``` or ``` ... ``` fenced blocks
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if match:
        return json.loads(match.group(1).strip())

    # 3. Find the first { and try to parse a JSON object starting there
    try:
        start = text.index("{")
        obj, _ = json.JSONDecoder().raw_decode(text, idx=start)
        return obj
    except (ValueError, json.JSONDecodeError):
        pass

    raise ValueError(
        f"Could not extract JSON from model response (length={len(text)}). "
        f"First 300 chars: {text[:300]!r}"
    )
