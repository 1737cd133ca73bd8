"""Tests for the Intent Analyzer agents."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from clixen.agents.intent_analyzer.agent import IntentAnalyzerAgent, StrictIntentAgent
from clixen.errors import AgentOutputError, ClixenError
from clixen.schemas.intent import DataMapping, IntentAnalysis, StrictIntent, TriggerSpec
from clixen.shared.llm_client import LLMClient


SAMPLE_INTENT = {
    "trigger": {"app": "shopify", "event": "new_order", "conditions": "order total > 100"},
    "actions": [{"app": "slack", "operation": "post_message", "target": None}],
    "data_mappings": None,
    "extracted_values": {"channel": "#sales"},
    "complexity_score": 1.7,
}


class TestIntentSchema:
    def test_parse_coerces_loose_fields(self) -> None:
        intent = IntentAnalysis(**SAMPLE_INTENT)
        assert intent.trigger.conditions == ["order total > 100"]
        assert intent.actions[0].target == ""
        assert intent.data_mappings == []
        assert intent.complexity_score == 1.0
        assert intent.description == ""

    def test_unparseable_complexity(self) -> None:
        assert IntentAnalysis(complexity_score="very").complexity_score == 0.0

    def test_strict_requirements_coerced(self) -> None:
        assert StrictIntent(requirements="realtime").requirements == ["realtime"]
        assert StrictIntent(requirements=None, trigger_app=None).trigger_app == ""

    def test_structured_conditions_become_text(self) -> None:
        trigger = TriggerSpec(conditions=[{"field": "amount", "op": ">", "value": 100}, "weekdays only", None])
        assert trigger.conditions == ['{"field": "amount", "op": ">", "value": 100}', "weekdays only"]

    def test_single_structured_condition(self) -> None:
        assert TriggerSpec(conditions={"status": "paid"}).conditions == ['{"status": "paid"}']

    def test_mapping_with_null_side(self) -> None:
        intent = IntentAnalysis(data_mappings=[{"source": "charge.amount", "target": None}, {"source": None}])
        assert intent.data_mappings[0] == DataMapping(source="charge.amount", target="")
        assert intent.data_mappings[1] == DataMapping()


class TestIntentAnalyzerAgent:
    def test_metadata(self) -> None:
        client = LLMClient.__new__(LLMClient)
        agent = IntentAnalyzerAgent(client)
        assert agent.name == "Intent Analyzer"
        assert agent.temperature == 0.3
        assert "trigger" in agent.get_system_prompt()

    def test_temperature_override(self) -> None:
        client = LLMClient.__new__(LLMClient)
        assert IntentAnalyzerAgent(client, temperature=0.0).temperature == 0.0

    @pytest.mark.asyncio
    async def test_analyze_sends_prompt_and_context(self) -> None:
        client = LLMClient.__new__(LLMClient)
        client.chat_completion = AsyncMock(return_value=json.dumps(SAMPLE_INTENT))
        agent = IntentAnalyzerAgent(client)

        intent = await agent.analyze("Tell sales about big orders", {"user_id": "u1"})

        assert intent.trigger.app == "shopify"
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["temperature"] == 0.3
        content = kwargs["messages"][0]["content"]
        assert 'Analyze this workflow request: "Tell sales about big orders"' in content
        assert '"user_id": "u1"' in content

    @pytest.mark.asyncio
    async def test_fenced_output_is_accepted(self) -> None:
        client = LLMClient.__new__(LLMClient)
        client.chat_completion = AsyncMock(return_value=f"```json\n{json.dumps(SAMPLE_INTENT)}\n```")
        intent = await IntentAnalyzerAgent(client).analyze("x")
        assert intent.extracted_values == {"channel": "#sales"}

    @pytest.mark.asyncio
    async def test_loose_structured_answer_is_accepted(self) -> None:
        client = LLMClient.__new__(LLMClient)
        client.chat_completion = AsyncMock(return_value=json.dumps({
            "trigger": {
                "app": "stripe", "event": "charge_succeeded",
                "conditions": [{"field": "amount", "op": ">", "value": 100}],
            },
            "actions": [{"app": "slack", "operation": "post_message"}],
            "data_mappings": [{"source": "charge.amount", "target": None}],
        }))

        intent = await IntentAnalyzerAgent(client).analyze("Ping slack on big charges")

        assert intent.trigger.conditions == ['{"field": "amount", "op": ">", "value": 100}']
        assert intent.data_mappings[0].target == ""
        assert client.chat_completion.await_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_answer_raises_clixen_error(self) -> None:
        client = LLMClient.__new__(LLMClient)
        client.chat_completion = AsyncMock(side_effect=["I think it's a webhook", "still prose"])

        with pytest.raises(AgentOutputError, match="Intent Analyzer") as exc_info:
            await IntentAnalyzerAgent(client).analyze("x")

        assert isinstance(exc_info.value, ClixenError)
        assert client.chat_completion.await_count == 2


class TestStrictIntentAgent:
    @pytest.mark.asyncio
    async def test_analyze(self) -> None:
        client = LLMClient.__new__(LLMClient)
        client.chat_completion = AsyncMock(return_value=json.dumps({
            "trigger_app": "webhook", "action_app": "email", "operation": "form_submission",
        }))
        agent = StrictIntentAgent(client)

        intent = await agent.analyze("Email me form submissions")

        assert intent == StrictIntent(trigger_app="webhook", action_app="email", operation="form_submission")
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"][0]["content"] == "Email me form submissions"
        assert agent.name == "Strict Intent Analyzer"
