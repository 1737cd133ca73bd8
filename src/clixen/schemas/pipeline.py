"""Per-run generation report model."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from clixen.schemas.intent import IntentAnalysis
from clixen.schemas.template import AdaptedWorkflow, TemplateDeployment, TemplateMatch
from clixen.schemas.validation import ValidationReport


class GenerationReport(BaseModel):
    """Everything one ``TemplateAdapterService.run`` produced."""

    generated_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    prompt: str
    user_id: str
    intent: IntentAnalysis
    matches: list[TemplateMatch] = []
    adapted: AdaptedWorkflow
    validation: ValidationReport | None = None
    deployment: TemplateDeployment | None = None
