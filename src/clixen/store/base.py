"""Template store ABC: the database seam the pipeline reads and writes through."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from clixen.schemas.template import (
    DiscoveredTemplate,
    TemplateDeployment,
    UnmatchedRequest,
    WorkflowTemplate,
)


class TemplateStore(ABC):
    """Abstract access to templates, deployments and unmatched requests.

    Implementations raise ``clixen.errors.StoreError`` on backend failures and
    ``clixen.errors.TemplateNotFoundError`` from ``get_template``.
    """

    @abstractmethod
    def list_templates(
        self,
        *,
        status: str | None = "active",
        trigger_app: str | None = None,
    ) -> list[WorkflowTemplate]:
        """Templates filtered by status and (optionally) exact trigger app."""

    @abstractmethod
    def get_template(self, template_id: str) -> WorkflowTemplate:
        """Full template including ``n8n_json`` and placeholders."""

    @abstractmethod
    def find_related_templates(
        self, trigger_app: str, action_app: str, *, limit: int = 3,
    ) -> list[WorkflowTemplate]:
        """Active templates sharing the trigger app OR containing the action app."""

    @abstractmethod
    def list_templates_by_usage(self) -> list[WorkflowTemplate]:
        """Active templates, most used first."""

    @abstractmethod
    def upsert_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Insert or replace a template, keyed by slug."""

    @abstractmethod
    def record_deployment(self, deployment: TemplateDeployment) -> TemplateDeployment:
        """Insert a ``template_deployments`` row."""

    @abstractmethod
    def list_deployments(self, *, since: datetime | None = None) -> list[TemplateDeployment]:
        """Deployments, optionally only those at or after ``since``."""

    @abstractmethod
    def record_unmatched_request(self, request: UnmatchedRequest) -> None:
        """Insert an ``unmatched_requests`` row."""

    @abstractmethod
    def count_unmatched_requests(self, *, since: datetime | None = None) -> int:
        """Number of unmatched requests at or after ``since``."""

    @abstractmethod
    def record_discovery(self, entry: DiscoveredTemplate) -> None:
        """Insert a ``template_discovery_cache`` row."""
