"""File-backed template store for dry runs, offline use and tests.

Templates are read from ``*.json`` files in a directory (one template object
or a list of them per file). Deployments, unmatched requests and discovery
entries are kept in memory and, when ``state_file`` is set, persisted as JSON
together with the usage increments from successful deployments.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from clixen.errors import StoreError, TemplateNotFoundError
from clixen.schemas.template import (
    DiscoveredTemplate,
    TemplateDeployment,
    UnmatchedRequest,
    WorkflowTemplate,
)
from clixen.store.base import TemplateStore

logger = logging.getLogger(__name__)


class LocalTemplateStore(TemplateStore):
    def __init__(
        self,
        templates_dir: str | Path,
        state_file: str | Path | None = None,
    ) -> None:
        self.templates_dir = Path(templates_dir)
        self.state_file = Path(state_file) if state_file else None
        self._templates: dict[str, WorkflowTemplate] = {}
        self._sources: dict[str, Path] = {}  # template id -> file it lives in
        self._usage: Counter[str] = Counter()  # successful deployments per template id
        self._deployments: list[TemplateDeployment] = []
        self._unmatched: list[UnmatchedRequest] = []
        self._discoveries: list[DiscoveredTemplate] = []
        self._load_templates()
        self._load_state()

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    def _load_templates(self) -> None:
        if not self.templates_dir.is_dir():
            raise StoreError(f"Templates directory does not exist: {self.templates_dir}")

        for path in sorted(self.templates_dir.glob("*.json")):
            try:
                raw = json.loads(path.read_text())
                items = raw if isinstance(raw, list) else [raw]
                for item in items:
                    template = WorkflowTemplate(**item)
                    self._templates[template.id] = template
                    self._sources[template.id] = path
            except (json.JSONDecodeError, ValidationError, TypeError) as exc:
                raise StoreError(f"Invalid template file {path}: {exc}") from exc

        logger.debug("Loaded %d templates from %s", len(self._templates), self.templates_dir)

    def _load_state(self) -> None:
        if not self.state_file or not self.state_file.exists():
            return
        try:
            raw = json.loads(self.state_file.read_text())
            self._deployments = [TemplateDeployment(**d) for d in raw.get("deployments", [])]
            self._unmatched = [UnmatchedRequest(**u) for u in raw.get("unmatched_requests", [])]
            self._discoveries = [DiscoveredTemplate(**d) for d in raw.get("discoveries", [])]
            self._usage = Counter({str(k): int(v) for k, v in raw.get("usage_increments", {}).items()})
        except (json.JSONDecodeError, ValidationError, AttributeError, TypeError, ValueError) as exc:
            raise StoreError(f"Invalid state file {self.state_file}: {exc}") from exc

        for template_id, count in self._usage.items():
            if template_id in self._templates:
                self._templates[template_id].usage_count += count

    def _save_state(self) -> None:
        if not self.state_file:
            return
        payload = {
            "deployments": [d.model_dump(mode="json") for d in self._deployments],
            "unmatched_requests": [u.model_dump(mode="json") for u in self._unmatched],
            "discoveries": [d.model_dump(mode="json") for d in self._discoveries],
            "usage_increments": dict(self._usage),
        }
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self.state_file.write_text(json.dumps(payload, indent=2))

    def _write_template_file(self, path: Path) -> None:
        """Rewrite ``path`` with the templates that live in it; remove it when none are left."""
        # usage increments live in the state file, not in the template files
        items = [
            {**t.model_dump(mode="json"), "usage_count": t.usage_count - self._usage[template_id]}
            for template_id, t in self._templates.items()
            if self._sources.get(template_id) == path
        ]
        if not items:
            path.unlink(missing_ok=True)
            return
        path.write_text(json.dumps(items[0] if len(items) == 1 else items, indent=2))

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(
        self,
        *,
        status: str | None = "active",
        trigger_app: str | None = None,
    ) -> list[WorkflowTemplate]:
        return [
            t for t in self._templates.values()
            if (status is None or t.status == status)
            and (trigger_app is None or t.trigger_app == trigger_app)
        ]

    def get_template(self, template_id: str) -> WorkflowTemplate:
        try:
            return self._templates[template_id].model_copy(deep=True)
        except KeyError:
            raise TemplateNotFoundError(template_id) from None

    def find_related_templates(
        self, trigger_app: str, action_app: str, *, limit: int = 3,
    ) -> list[WorkflowTemplate]:
        related = [
            t for t in self.list_templates()
            if t.trigger_app == trigger_app or (action_app and action_app in t.action_apps)
        ]
        return related[:limit]

    def list_templates_by_usage(self) -> list[WorkflowTemplate]:
        return sorted(self.list_templates(), key=lambda t: t.usage_count, reverse=True)

    def upsert_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Replace any template with the same id or slug, on disk as well as in memory."""
        replaced = [
            t.id for t in self._templates.values()
            if t.id == template.id or (template.slug and t.slug == template.slug)
        ]
        touched = {self._sources.pop(i) for i in replaced if i in self._sources}
        for template_id in replaced:
            del self._templates[template_id]
        if [self._usage.pop(i) for i in replaced if i in self._usage]:
            self._save_state()

        target = self.templates_dir / f"{template.slug or template.id}.json"
        self._templates[template.id] = template
        self._sources[template.id] = target

        for path in touched | {target}:
            self._write_template_file(path)
        return template

    # ------------------------------------------------------------------
    # Deployments / unmatched requests / discovery
    # ------------------------------------------------------------------

    def record_deployment(self, deployment: TemplateDeployment) -> TemplateDeployment:
        self._deployments.append(deployment)
        # Mirrors the update_template_stats trigger on the Supabase side
        if deployment.deployment_status == "success" and deployment.template_id in self._templates:
            self._templates[deployment.template_id].usage_count += 1
            self._usage[deployment.template_id] += 1
        self._save_state()
        return deployment

    def list_deployments(self, *, since: datetime | None = None) -> list[TemplateDeployment]:
        if since is None:
            return list(self._deployments)
        return [d for d in self._deployments if d.deployed_at >= since]

    def record_unmatched_request(self, request: UnmatchedRequest) -> None:
        self._unmatched.append(request)
        self._save_state()

    def count_unmatched_requests(self, *, since: datetime | None = None) -> int:
        if since is None:
            return len(self._unmatched)
        return sum(1 for u in self._unmatched if u.timestamp >= since)

    def record_discovery(self, entry: DiscoveredTemplate) -> None:
        self._discoveries.append(entry)
        self._save_state()

    @property
    def discoveries(self) -> list[DiscoveredTemplate]:
        return list(self._discoveries)
