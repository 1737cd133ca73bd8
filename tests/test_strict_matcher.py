"""Tests for the StrictTemplateMatcher."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from clixen.errors import ClixenError, StoreError
from clixen.schemas.intent import StrictIntent
from clixen.schemas.template import TemplateDeployment, UnmatchedRequest, UserRequest
from clixen.services.strict_matcher import StrictTemplateMatcher
from clixen.shared.llm_client import LLMClient
from clixen.store.local_store import LocalTemplateStore


@pytest.fixture
def matcher(mock_llm_client: LLMClient, local_store: LocalTemplateStore) -> StrictTemplateMatcher:
    return StrictTemplateMatcher(mock_llm_client, local_store)


def _request(prompt: str = "Email me when a form is submitted") -> UserRequest:
    return UserRequest(prompt=prompt, user_id="u1", project_id="p1")


class TestMatchRequest:
    @pytest.mark.asyncio
    async def test_confident_match(self, matcher: StrictTemplateMatcher, local_store: LocalTemplateStore) -> None:
        matcher.agent.analyze = AsyncMock(return_value=StrictIntent(
            trigger_app="webhook", action_app="email", operation="form_submission",
        ))

        result = await matcher.match_request(_request())

        assert result.success is True
        assert result.template.id == "tpl-1"
        assert result.template.name == "Webhook Email"
        assert result.template.confidence == 1.0
        assert result.request_logged is False
        assert local_store.count_unmatched_requests() == 0

    @pytest.mark.asyncio
    async def test_rejection_logs_and_suggests(
        self, matcher: StrictTemplateMatcher, local_store: LocalTemplateStore,
    ) -> None:
        matcher.agent.analyze = AsyncMock(return_value=StrictIntent(
            trigger_app="webhook", action_app="google_sheets", operation="append_row",
        ))

        result = await matcher.match_request(_request("Log form submissions to a sheet"))

        assert result.success is False
        assert result.template is None
        assert result.rejection_reason == (
            "I don't have a template for webhook to google_sheets workflows yet. "
            "Our team has been notified and we'll work on adding this template soon!"
        )
        assert result.suggestions == [
            "Webhook Email: send an email for every new form submission",
            "Webhook Slack: post to slack",
        ]
        assert result.request_logged is True
        assert local_store.count_unmatched_requests() == 1

    @pytest.mark.asyncio
    async def test_below_threshold_is_rejected(
        self, mock_llm_client: LLMClient, local_store: LocalTemplateStore,
    ) -> None:
        matcher = StrictTemplateMatcher(mock_llm_client, local_store, min_confidence=0.95)
        matcher.agent.analyze = AsyncMock(return_value=StrictIntent(
            trigger_app="webhook", action_app="email", operation="payment",
        ))

        result = await matcher.match_request(_request())
        assert result.success is False

    @pytest.mark.asyncio
    async def test_logging_failure_is_not_raised(self, mock_llm_client: LLMClient) -> None:
        store = MagicMock()
        store.list_templates.return_value = []
        store.find_related_templates.return_value = []
        store.record_unmatched_request.side_effect = StoreError("insert failed")
        matcher = StrictTemplateMatcher(mock_llm_client, store)
        matcher.agent.analyze = AsyncMock(return_value=StrictIntent(trigger_app="x", action_app="y"))

        result = await matcher.match_request(_request())

        assert result.success is False
        assert result.request_logged is False
        assert result.suggestions == []

    @pytest.mark.asyncio
    async def test_unmatched_row_contents(self, mock_llm_client: LLMClient) -> None:
        store = MagicMock()
        store.list_templates.return_value = []
        store.find_related_templates.return_value = []
        matcher = StrictTemplateMatcher(mock_llm_client, store)
        intent = StrictIntent(trigger_app="stripe", action_app="slack", requirements=["realtime"])
        matcher.agent.analyze = AsyncMock(return_value=intent)
        request = _request("Ping slack on payments")

        await matcher.match_request(request)

        row: UnmatchedRequest = store.record_unmatched_request.call_args.args[0]
        assert row.prompt == "Ping slack on payments"
        assert row.project_id == "p1"
        assert row.status == "pending_template"
        assert row.analyzed_intent["requirements"] == ["realtime"]
        assert row.timestamp == request.timestamp
        store.find_related_templates.assert_called_once_with("stripe", "slack", limit=3)

    @pytest.mark.asyncio
    async def test_requires_client(self, local_store: LocalTemplateStore) -> None:
        matcher = StrictTemplateMatcher(None, local_store)
        with pytest.raises(ClixenError, match="needs an LLM client"):
            await matcher.match_request(_request())

    @pytest.mark.asyncio
    async def test_strict_agent_settings(self, mock_llm_client: LLMClient, local_store: LocalTemplateStore) -> None:
        message = SimpleNamespace(
            content='{"trigger_app": "webhook", "action_app": "email", "operation": "form_submission"}',
            tool_calls=None,
        )
        create = AsyncMock(return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None))
        mock_llm_client._client.chat.completions.create = create

        result = await StrictTemplateMatcher(mock_llm_client, local_store).match_request(_request())

        assert result.success is True
        kwargs = create.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert "EXACT template matching" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1]["content"] == "Email me when a form is submitted"


class TestFindStrictMatches:
    def test_sorted_by_confidence(self, mock_llm_client: LLMClient, template_factory) -> None:
        store = MagicMock()
        store.list_templates.return_value = [
            template_factory(id="partial", trigger_type="", tags=[]),
            template_factory(id="full"),
        ]
        matcher = StrictTemplateMatcher(mock_llm_client, store)
        intent = StrictIntent(trigger_app="webhook", action_app="email", operation="form_submission")

        matches = matcher.find_strict_matches(intent)

        assert [(t.id, c) for t, c in matches] == [("full", 1.0), ("partial", 0.8)]
        store.list_templates.assert_called_once_with(status="active", trigger_app="webhook")

    def test_store_error_means_no_matches(self, mock_llm_client: LLMClient) -> None:
        store = MagicMock()
        store.list_templates.side_effect = StoreError("boom")
        matcher = StrictTemplateMatcher(mock_llm_client, store)
        assert matcher.find_strict_matches(StrictIntent(trigger_app="webhook")) == []


class TestCatalog:
    def test_available_templates_by_usage(self, matcher: StrictTemplateMatcher) -> None:
        names = [t.name for t in matcher.get_available_templates()]
        assert names == ["Webhook Slack", "Webhook Email"]

    def test_stats(self, matcher: StrictTemplateMatcher, local_store: LocalTemplateStore) -> None:
        now = datetime.now(timezone.utc)
        for status in ("success", "success", "failed", "partial", "success", "success", "success", "partial"):
            local_store.record_deployment(
                TemplateDeployment(template_id="tpl-1", user_id="u", deployment_status=status)
            )
        # Outside the 30-day window
        local_store.record_deployment(TemplateDeployment(
            template_id="tpl-1", user_id="u", deployment_status="failed",
            deployed_at=now - timedelta(days=45),
        ))
        local_store.record_unmatched_request(UnmatchedRequest(user_id="u", prompt="a"))
        local_store.record_unmatched_request(
            UnmatchedRequest(user_id="u", prompt="old", timestamp=now - timedelta(days=10))
        )

        stats = matcher.get_template_stats()

        assert stats.total_templates == 2
        assert stats.categories == ["notifications"]
        assert stats.unmatched_last_week == 1
        # 5 of 8 → 62.5% rounds half up
        assert stats.success_rate == 63

    def test_stats_without_deployments(self, matcher: StrictTemplateMatcher) -> None:
        stats = matcher.get_template_stats()
        assert stats.success_rate == 0
        assert stats.unmatched_last_week == 0
