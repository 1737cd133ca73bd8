"""Strict Template Matcher: accept only confident template matches, log the rest."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from clixen.agents.intent_analyzer.agent import StrictIntentAgent
from clixen.errors import ClixenError, StoreError
from clixen.schemas.intent import StrictIntent
from clixen.schemas.template import (
    MatchedTemplate,
    StrictMatchResult,
    TemplateStats,
    UnmatchedRequest,
    UserRequest,
    WorkflowTemplate,
)
from clixen.services.scoring import strict_confidence
from clixen.shared.llm_client import LLMClient
from clixen.store.base import TemplateStore

logger = logging.getLogger(__name__)

MIN_CONFIDENCE_THRESHOLD = 0.75
MAX_SUGGESTIONS = 3
UNMATCHED_WINDOW = timedelta(days=7)
SUCCESS_RATE_WINDOW = timedelta(days=30)


class StrictTemplateMatcher:
    def __init__(
        self,
        client: LLMClient | None,
        store: TemplateStore,
        *,
        min_confidence: float = MIN_CONFIDENCE_THRESHOLD,
        temperature: float | None = None,
    ) -> None:
        self.store = store
        self.min_confidence = min_confidence
        # Listing and stats work without a client; matching needs one
        self.agent = StrictIntentAgent(client, temperature=temperature) if client is not None else None

    async def match_request(self, request: UserRequest) -> StrictMatchResult:
        if self.agent is None:
            raise ClixenError("StrictTemplateMatcher needs an LLM client to match requests")
        logger.info("Attempting strict template match for: %s", request.prompt)
        intent = await self.agent.analyze(request.prompt)

        matches = self.find_strict_matches(intent)
        if matches:
            template, confidence = matches[0]
            logger.info("Found confident match: %s (%.2f)", template.name, confidence)
            return StrictMatchResult(
                success=True,
                template=MatchedTemplate(id=template.id, name=template.name, confidence=confidence),
            )

        logged = self.log_unmatched_request(request, intent)
        return StrictMatchResult(
            success=False,
            rejection_reason=self.generate_rejection_message(intent),
            suggestions=self.find_similar_templates(intent),
            request_logged=logged,
        )

    def find_strict_matches(
        self, intent: StrictIntent,
    ) -> list[tuple[WorkflowTemplate, float]]:
        """Active templates at or above ``min_confidence``, best first."""
        try:
            templates = self.store.list_templates(status="active", trigger_app=intent.trigger_app)
        except StoreError as exc:
            logger.error("Error fetching templates: %s", exc)
            return []

        scored = [(t, strict_confidence(t, intent)) for t in templates]
        confident = [(t, c) for t, c in scored if c >= self.min_confidence]
        confident.sort(key=lambda pair: pair[1], reverse=True)
        return confident

    def log_unmatched_request(self, request: UserRequest, intent: StrictIntent) -> bool:
        """Record the request for future template development; False if the store failed."""
        unmatched = UnmatchedRequest(
            user_id=request.user_id,
            project_id=request.project_id,
            prompt=request.prompt,
            analyzed_intent=intent.model_dump(),
            timestamp=request.timestamp,
        )
        try:
            self.store.record_unmatched_request(unmatched)
        except StoreError as exc:
            logger.error("Failed to log unmatched request: %s", exc)
            return False
        logger.info("Logged unmatched request for future template development")
        return True

    def find_similar_templates(self, intent: StrictIntent) -> list[str]:
        try:
            similar = self.store.find_related_templates(
                intent.trigger_app, intent.action_app, limit=MAX_SUGGESTIONS,
            )
        except StoreError as exc:
            logger.error("Error fetching similar templates: %s", exc)
            return []
        return [f"{t.name}: {t.use_case}" for t in similar]

    @staticmethod
    def generate_rejection_message(intent: StrictIntent) -> str:
        return (
            f"I don't have a template for {intent.trigger_app} to {intent.action_app} "
            "workflows yet. Our team has been notified and we'll work on adding this "
            "template soon!"
        )

    def get_available_templates(self) -> list[WorkflowTemplate]:
        return self.store.list_templates_by_usage()

    def get_template_stats(self) -> TemplateStats:
        now = datetime.now(timezone.utc)
        templates = self.store.list_templates(status="active")
        categories = list(dict.fromkeys(t.category for t in templates))

        return TemplateStats(
            total_templates=len(templates),
            categories=categories,
            unmatched_last_week=self.store.count_unmatched_requests(since=now - UNMATCHED_WINDOW),
            success_rate=self._calculate_success_rate(now - SUCCESS_RATE_WINDOW),
        )

    def _calculate_success_rate(self, since: datetime) -> int:
        deployments = self.store.list_deployments(since=since)
        if not deployments:
            return 0
        successful = sum(1 for d in deployments if d.deployment_status == "success")
        # Half-up rounding, so 62.5% reports as 63
        return math.floor(successful / len(deployments) * 100 + 0.5)
