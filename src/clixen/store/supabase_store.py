"""Supabase-backed template store (service-role access over PostgREST)."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from clixen.errors import StoreError, TemplateNotFoundError
from clixen.schemas.template import (
    DiscoveredTemplate,
    TemplateDeployment,
    UnmatchedRequest,
    WorkflowTemplate,
)
from clixen.store.base import TemplateStore

logger = logging.getLogger(__name__)

TEMPLATES_TABLE = "workflow_templates"
DEPLOYMENTS_TABLE = "template_deployments"
UNMATCHED_TABLE = "unmatched_requests"
DISCOVERY_TABLE = "template_discovery_cache"


def _execute(query: Any, action: str) -> Any:
    """Run a PostgREST query, translating client errors into StoreError."""
    try:
        return query.execute()
    except (APIError, httpx.HTTPError) as exc:
        logger.error("Supabase %s failed: %s", action, exc)
        raise StoreError(f"Supabase {action} failed: {exc}") from exc


def _quoted(value: str) -> str:
    """Double-quote a value for a PostgREST ``or`` filter so commas and parentheses stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class SupabaseTemplateStore(TemplateStore):
    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_env(cls) -> "SupabaseTemplateStore":
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        if not url or not key:
            raise StoreError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set for the supabase store"
            )
        return cls(create_client(url, key))

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(
        self,
        *,
        status: str | None = "active",
        trigger_app: str | None = None,
    ) -> list[WorkflowTemplate]:
        query = self._client.table(TEMPLATES_TABLE).select("*")
        if status is not None:
            query = query.eq("status", status)
        if trigger_app is not None:
            query = query.eq("trigger_app", trigger_app)
        response = _execute(query, "template listing")
        return [WorkflowTemplate(**row) for row in response.data or []]

    def get_template(self, template_id: str) -> WorkflowTemplate:
        query = self._client.table(TEMPLATES_TABLE).select("*").eq("id", template_id).limit(1)
        response = _execute(query, "template load")
        if not response.data:
            raise TemplateNotFoundError(template_id)
        return WorkflowTemplate(**response.data[0])

    def find_related_templates(
        self, trigger_app: str, action_app: str, *, limit: int = 3,
    ) -> list[WorkflowTemplate]:
        query = self._client.table(TEMPLATES_TABLE).select("*").eq("status", "active")
        if action_app:
            query = query.or_(
                f"trigger_app.eq.{_quoted(trigger_app)},action_apps.cs.{{{_quoted(action_app)}}}"
            )
        else:
            query = query.eq("trigger_app", trigger_app)
        response = _execute(query.limit(limit), "related template lookup")
        return [WorkflowTemplate(**row) for row in response.data or []]

    def list_templates_by_usage(self) -> list[WorkflowTemplate]:
        query = (
            self._client.table(TEMPLATES_TABLE)
            .select("*")
            .eq("status", "active")
            .order("usage_count", desc=True)
        )
        response = _execute(query, "template listing")
        return [WorkflowTemplate(**row) for row in response.data or []]

    def upsert_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        row = template.model_dump(mode="json")
        query = self._client.table(TEMPLATES_TABLE).upsert(row, on_conflict="slug")
        response = _execute(query, "template upsert")
        if response.data:
            return WorkflowTemplate(**response.data[0])
        return template

    # ------------------------------------------------------------------
    # Deployments / unmatched requests / discovery
    # ------------------------------------------------------------------

    def record_deployment(self, deployment: TemplateDeployment) -> TemplateDeployment:
        row = deployment.model_dump(mode="json", exclude={"confidence_score"}, exclude_none=True)
        # template_deployments has no confidence column; keep it with the customisation data
        row["modifications_made"] = {"confidence_score": deployment.confidence_score}
        _execute(self._client.table(DEPLOYMENTS_TABLE).insert(row), "deployment insert")
        return deployment

    def list_deployments(self, *, since: datetime | None = None) -> list[TemplateDeployment]:
        query = self._client.table(DEPLOYMENTS_TABLE).select(
            "template_id, user_id, project_id, workflow_id, deployment_status, "
            "error_message, placeholders_filled, user_prompt, deployed_at"
        )
        if since is not None:
            query = query.gte("deployed_at", since.isoformat())
        response = _execute(query, "deployment listing")
        return [TemplateDeployment(**self._clean_deployment_row(row)) for row in response.data or []]

    def record_unmatched_request(self, request: UnmatchedRequest) -> None:
        row = request.model_dump(mode="json", exclude_none=True)
        _execute(self._client.table(UNMATCHED_TABLE).insert(row), "unmatched request insert")

    def count_unmatched_requests(self, *, since: datetime | None = None) -> int:
        query = self._client.table(UNMATCHED_TABLE).select("id", count="exact")
        if since is not None:
            query = query.gte("timestamp", since.isoformat())
        response = _execute(query, "unmatched request count")
        if response.count is not None:
            return response.count
        return len(response.data or [])

    def record_discovery(self, entry: DiscoveredTemplate) -> None:
        row = entry.model_dump(mode="json")
        _execute(self._client.table(DISCOVERY_TABLE).insert(row), "discovery insert")

    @staticmethod
    def _clean_deployment_row(row: dict[str, Any]) -> dict[str, Any]:
        """Drop NULL JSONB / text columns so model defaults apply."""
        return {k: v for k, v in row.items() if v is not None or k in ("project_id", "workflow_id")}
