"""Pydantic models for the template library and the adapter's outputs.

Field names mirror the ``workflow_templates`` / ``template_deployments`` /
``unmatched_requests`` tables so rows round-trip without renaming.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Placeholder(BaseModel):
    """A literal token inside a template document that is swapped for a user value."""

    key: str  # e.g. "{{RECIPIENT_EMAIL}}"
    description: str = ""
    required: bool = False
    default_value: Any = None
    ai_hint: str = ""
    validation_regex: str = ""

    @field_validator("description", "ai_hint", "validation_regex", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v


class WorkflowTemplate(BaseModel):
    """A battle-tested n8n workflow with placeholders."""

    id: str
    name: str
    slug: str = ""
    version: str = "1.0.0"
    category: str = "custom"
    tags: list[str] = []
    persona: str = "universal"
    use_case: str = ""
    trigger_app: str
    trigger_type: str = ""
    action_apps: list[str] = []
    complexity: str = "simple"  # "simple", "moderate", "advanced"
    n8n_json: dict[str, Any] = {}
    placeholders: list[Placeholder] = []
    usage_count: int = 0
    success_rate: float = 1.0
    description: str = ""
    requirements: list[str] = []
    limitations: list[str] = []
    example_prompt: str = ""
    status: str = "draft"  # "draft", "testing", "active", "deprecated"

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: object) -> object:
        """Supabase returns UUIDs as strings, local files sometimes as ints."""
        return str(v) if v is not None and not isinstance(v, str) else v

    @field_validator("tags", "action_apps", "placeholders", "requirements", "limitations", mode="before")
    @classmethod
    def _none_to_list(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator(
        "slug", "use_case", "trigger_type", "description", "example_prompt", "persona", mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("usage_count", mode="before")
    @classmethod
    def _none_to_zero(cls, v: object) -> object:
        return 0 if v is None else v


class TemplateMatch(BaseModel):
    """A scored candidate template."""

    template_id: str
    template_name: str
    match_score: int = 0
    confidence: Literal["high", "medium", "low"] = "low"
    missing_features: list[str] = []


class AdaptedWorkflow(BaseModel):
    """A template document filled in for a specific user."""

    workflow: dict[str, Any]
    confidence_score: float
    warnings: list[str] = []
    requires_review: bool = False
    template_used: str
    placeholders_filled: dict[str, Any] = {}


class TemplateDeployment(BaseModel):
    """One row of ``template_deployments``."""

    template_id: str
    user_id: str
    project_id: str | None = None
    workflow_id: str | None = None  # n8n workflow id once deployed
    deployment_status: Literal["pending", "success", "failed", "partial"] = "pending"
    error_message: str | None = None
    placeholders_filled: dict[str, Any] = {}
    user_prompt: str = ""
    confidence_score: float | None = None
    deployed_at: datetime = Field(default_factory=_utcnow)


class UnmatchedRequest(BaseModel):
    """One row of ``unmatched_requests``, input for future template development."""

    user_id: str
    project_id: str | None = None
    prompt: str
    analyzed_intent: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=_utcnow)
    status: str = "pending_template"


class UserRequest(BaseModel):
    """A request handed to the strict matcher."""

    prompt: str
    user_id: str
    project_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class MatchedTemplate(BaseModel):
    id: str
    name: str
    confidence: float


class StrictMatchResult(BaseModel):
    """Outcome of a strict match: either a confident template or a logged rejection."""

    success: bool
    template: MatchedTemplate | None = None
    rejection_reason: str | None = None
    suggestions: list[str] = []
    request_logged: bool = False


class TemplateStats(BaseModel):
    total_templates: int = 0
    categories: list[str] = []
    unmatched_last_week: int = 0
    success_rate: int = 0  # percent, last 30 days


class DiscoveredTemplate(BaseModel):
    """A template found on an external gallery, cached for review before import."""

    source: Literal["n8n.io", "community", "github", "custom"] = "n8n.io"
    external_id: str = ""
    external_url: str = ""
    title: str
    description: str = ""
    author: str = ""
    tags: list[str] = []
    relevance_score: float = 0.0
    discovered_at: datetime = Field(default_factory=_utcnow)

    @field_validator("external_url", "description", "author", "external_id", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _none_to_list(cls, v: object) -> object:
        return [] if v is None else v
