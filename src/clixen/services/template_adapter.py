"""Template Adapter: turns a prompt into a user-specific n8n workflow.

Pipeline:
    analyze intent → rank active templates → load best → fill placeholders
    → structural validation → (optional n8n deploy) → record deployment
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Callable

from clixen.agents.intent_analyzer.agent import IntentAnalyzerAgent
from clixen.agents.placeholder_value.agent import PlaceholderValueAgent
from clixen.errors import N8nError, NoTemplateMatchError, StoreError
from clixen.schemas.config import LLMConfig, MatchingConfig
from clixen.schemas.intent import IntentAnalysis
from clixen.schemas.pipeline import GenerationReport
from clixen.schemas.template import (
    AdaptedWorkflow,
    Placeholder,
    TemplateDeployment,
    TemplateMatch,
    WorkflowTemplate,
)
from clixen.services.scoring import find_matching_key, rank_templates
from clixen.services.workflow_validator import WorkflowValidator, validate_workflow
from clixen.shared.llm_client import LLMClient
from clixen.shared.n8n_client import N8nClient
from clixen.store.base import TemplateStore

logger = logging.getLogger(__name__)

CONFIDENCE_CLEAN = 0.95
CONFIDENCE_WITH_WARNINGS = 0.75

ProgressCallback = Callable[[str], None]


class TemplateAdapterService:
    """Template-based workflow generation for one store and one LLM client."""

    def __init__(
        self,
        client: LLMClient,
        store: TemplateStore,
        *,
        llm: LLMConfig | None = None,
        matching: MatchingConfig | None = None,
        n8n_factory: Callable[[], N8nClient] | None = None,
        activate: bool = False,
    ) -> None:
        llm = llm or LLMConfig()
        self.store = store
        self.matching = matching or MatchingConfig()
        self.intent_agent = IntentAnalyzerAgent(client, temperature=llm.intent_temperature)
        self.value_agent = PlaceholderValueAgent(client, temperature=llm.value_temperature)
        self.validator = WorkflowValidator()
        self._n8n_factory = n8n_factory or N8nClient
        self.activate = activate

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def generate_workflow(
        self,
        user_prompt: str,
        user_id: str,
        context: dict[str, Any] | None = None,
    ) -> AdaptedWorkflow:
        report = await self.run(user_prompt, user_id, context)
        return report.adapted

    async def run(
        self,
        user_prompt: str,
        user_id: str,
        context: dict[str, Any] | None = None,
        *,
        project_id: str | None = None,
        deploy: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationReport:
        """Execute the full pipeline and return every intermediate artefact."""

        def progress(message: str) -> None:
            logger.info(message)
            if on_progress:
                on_progress(message)

        progress("Analyzing intent")
        intent = await self.analyze_intent(user_prompt, context)

        progress("Matching templates")
        matches = await self.find_matching_templates(intent)
        if not matches:
            raise NoTemplateMatchError()

        best = matches[0]
        progress(f"Selected template: {best.template_name} ({best.match_score} pts)")
        template = self.load_template(best.template_id)

        progress("Filling placeholders")
        adapted = await self.adapt_template(template, intent, user_id, context)

        progress("Validating workflow")
        self.validate_workflow(adapted)
        validation = self.validator.validate(adapted.workflow)
        if not validation.valid:
            logger.warning(
                "Adapted workflow has %d reliability issue(s): %s",
                len(validation.errors),
                "; ".join(e.message for e in validation.errors),
            )

        workflow_id: str | None = None
        if deploy:
            progress("Deploying to n8n")
            try:
                workflow_id = await self.deploy(adapted)
            except N8nError as exc:
                self.track_deployment(
                    best.template_id, user_id, user_prompt, adapted,
                    project_id=project_id, status="failed", error_message=str(exc),
                )
                raise

        progress("Recording deployment")
        deployment = self.track_deployment(
            best.template_id, user_id, user_prompt, adapted,
            project_id=project_id, workflow_id=workflow_id,
        )

        return GenerationReport(
            prompt=user_prompt,
            user_id=user_id,
            intent=intent,
            matches=matches,
            adapted=adapted,
            validation=validation,
            deployment=deployment,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def analyze_intent(
        self, prompt: str, context: dict[str, Any] | None = None,
    ) -> IntentAnalysis:
        return await self.intent_agent.analyze(prompt, context)

    async def find_matching_templates(self, intent: IntentAnalysis) -> list[TemplateMatch]:
        """Rank active templates that share the intent's trigger app."""
        try:
            templates = self.store.list_templates(status="active", trigger_app=intent.trigger.app)
        except StoreError as exc:
            logger.error("Error fetching templates: %s", exc)
            return []

        matches = rank_templates(
            templates,
            intent,
            limit=self.matching.max_candidates,
            similarity_threshold=self.matching.similarity_threshold,
        )
        logger.info("Found %d potential templates", len(matches))
        return matches

    def load_template(self, template_id: str) -> WorkflowTemplate:
        return self.store.get_template(template_id)

    async def adapt_template(
        self,
        template: WorkflowTemplate,
        intent: IntentAnalysis,
        user_id: str,
        context: dict[str, Any] | None = None,
    ) -> AdaptedWorkflow:
        workflow = copy.deepcopy(template.n8n_json)
        warnings: list[str] = []
        filled: dict[str, Any] = {}

        # User isolation
        workflow["name"] = f"[USR-{user_id}] {workflow.get('name') or template.name}"

        for placeholder in template.placeholders:
            value = await self.extract_placeholder_value(placeholder, intent, context)
            if value is None and placeholder.required:
                warnings.append(f"Required value missing: {placeholder.description}")

            final = value or placeholder.default_value
            workflow = self.replace_placeholder(workflow, placeholder.key, final)
            if final is not None:
                filled[placeholder.key] = final

        if intent.trigger.conditions:
            workflow.setdefault("meta", {})["conditions"] = list(intent.trigger.conditions)

        return AdaptedWorkflow(
            workflow=workflow,
            confidence_score=CONFIDENCE_WITH_WARNINGS if warnings else CONFIDENCE_CLEAN,
            warnings=warnings,
            requires_review=bool(warnings),
            template_used=template.name,
            placeholders_filled=filled,
        )

    async def extract_placeholder_value(
        self,
        placeholder: Placeholder,
        intent: IntentAnalysis,
        context: dict[str, Any] | None = None,
    ) -> Any:
        """Resolve a value from extracted values, then context, then the LLM."""
        key = find_matching_key(placeholder.key, intent.extracted_values.keys())
        if key is not None:
            return intent.extracted_values[key]

        if context:
            if "EMAIL" in placeholder.key and context.get("user_email"):
                return context["user_email"]
            if "USER_ID" in placeholder.key:
                return context.get("user_id")

        if placeholder.ai_hint:
            return await self.value_agent.extract(placeholder, intent, context)

        return None

    @staticmethod
    def replace_placeholder(workflow: dict[str, Any], key: str, value: Any) -> dict[str, Any]:
        """Replace every literal occurrence of ``key`` in the serialized document.

        The value is JSON-escaped so the document stays parseable. ``None``
        leaves the placeholder in place.
        """
        if value is None or not key:
            return workflow

        text = value if isinstance(value, str) else json.dumps(value)
        escaped_key = json.dumps(key)[1:-1]
        escaped_value = json.dumps(text)[1:-1]
        return json.loads(json.dumps(workflow).replace(escaped_key, escaped_value))

    def validate_workflow(self, adapted: AdaptedWorkflow) -> None:
        validate_workflow(adapted.workflow)

    async def deploy(self, adapted: AdaptedWorkflow) -> str:
        """Create the workflow in n8n (and activate it if configured); returns its id."""
        async with self._n8n_factory() as n8n:
            created = await n8n.create_workflow(adapted.workflow)
            workflow_id = str(created.get("id", ""))
            if not workflow_id:
                raise N8nError("n8n did not return a workflow id")
            if self.activate:
                await n8n.activate_workflow(workflow_id)
                logger.info("Activated n8n workflow %s", workflow_id)
        return workflow_id

    def track_deployment(
        self,
        template_id: str,
        user_id: str,
        user_prompt: str,
        adapted: AdaptedWorkflow,
        *,
        project_id: str | None = None,
        workflow_id: str | None = None,
        status: str | None = None,
        error_message: str | None = None,
    ) -> TemplateDeployment:
        """Record the deployment; a store failure is logged and does not abort the run."""
        deployment = TemplateDeployment(
            template_id=template_id,
            user_id=user_id,
            project_id=project_id,
            workflow_id=workflow_id,
            deployment_status=status or ("partial" if adapted.requires_review else "success"),
            error_message=error_message,
            placeholders_filled=adapted.placeholders_filled,
            user_prompt=user_prompt,
            confidence_score=adapted.confidence_score,
        )
        try:
            self.store.record_deployment(deployment)
        except StoreError as exc:
            logger.error("Failed to record deployment for template %s: %s", template_id, exc)
        return deployment
