"""Placeholder Value agent: asks the LLM for one template value."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from clixen.agents.placeholder_value.prompts import SYSTEM_PROMPT, USER_TEMPLATE
from clixen.schemas.intent import IntentAnalysis
from clixen.schemas.template import Placeholder
from clixen.shared.llm_client import LLMClient

logger = logging.getLogger(__name__)

MAX_VALUE_TOKENS = 100


class PlaceholderValueAgent:
    """Plain-text completion; the answer is the value itself."""

    def __init__(self, client: LLMClient, temperature: float = 0.1) -> None:
        self.client = client
        self.temperature = temperature

    @property
    def name(self) -> str:
        return "Placeholder Value"

    async def extract(
        self,
        placeholder: Placeholder,
        intent: IntentAnalysis,
        context: dict[str, Any] | None = None,
    ) -> str | None:
        """Return the extracted value, or None if empty or rejected by the regex."""
        user_message = USER_TEMPLATE.format(
            description=placeholder.description,
            hint=placeholder.ai_hint,
            intent=intent.model_dump_json(),
            context=json.dumps(context, default=str),
        )
        raw = await self.client.simple_completion(
            system=SYSTEM_PROMPT,
            user_message=user_message,
            json_mode=False,
            temperature=self.temperature,
            max_tokens=MAX_VALUE_TOKENS,
        )
        value = raw.strip()
        if not value:
            return None

        if placeholder.validation_regex:
            try:
                pattern = re.compile(placeholder.validation_regex)
            except re.error as exc:
                logger.warning(
                    "Placeholder %s has an invalid validation_regex %r: %s",
                    placeholder.key, placeholder.validation_regex, exc,
                )
                return None
            if not pattern.search(value):
                logger.info("AI value for %s rejected by validation_regex", placeholder.key)
                return None

        return value
