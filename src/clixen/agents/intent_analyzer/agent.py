"""Intent Analyzer: turns a free-text request into structured intent."""

from __future__ import annotations

import json
import logging
from typing import Any

from clixen.agents.base import BaseAgent, extract_json
from clixen.agents.intent_analyzer.prompts import STRICT_SYSTEM_PROMPT, SYSTEM_PROMPT
from clixen.schemas.intent import IntentAnalysis, StrictIntent
from clixen.shared.llm_client import LLMClient

logger = logging.getLogger(__name__)


class IntentAnalyzerAgent(BaseAgent):
    """Extracts trigger, actions, mappings and concrete values from a prompt."""

    temperature = 0.3

    def __init__(self, client: LLMClient, temperature: float | None = None) -> None:
        super().__init__(client)
        if temperature is not None:
            self.temperature = temperature

    @property
    def name(self) -> str:
        return "Intent Analyzer"

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def parse_output(self, raw_text: str) -> IntentAnalysis:
        data = extract_json(raw_text)
        return IntentAnalysis(**data)

    async def analyze(self, prompt: str, context: dict[str, Any] | None = None) -> IntentAnalysis:
        user_message = (
            f'Analyze this workflow request: "{prompt}"\n\n'
            f"User context: {json.dumps(context, default=str)}"
        )
        intent = await self.run(user_message)
        logger.info(
            "Intent: trigger=%s/%s actions=%s",
            intent.trigger.app,
            intent.trigger.event,
            [a.app for a in intent.actions],
        )
        return intent


class StrictIntentAgent(BaseAgent):
    """Conservative variant used by the strict matcher."""

    temperature = 0.1

    def __init__(self, client: LLMClient, temperature: float | None = None) -> None:
        super().__init__(client)
        if temperature is not None:
            self.temperature = temperature

    @property
    def name(self) -> str:
        return "Strict Intent Analyzer"

    def get_system_prompt(self) -> str:
        return STRICT_SYSTEM_PROMPT

    def parse_output(self, raw_text: str) -> StrictIntent:
        data = extract_json(raw_text)
        return StrictIntent(**data)

    async def analyze(self, prompt: str) -> StrictIntent:
        return await self.run(prompt)
