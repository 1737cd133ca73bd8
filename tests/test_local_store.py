"""Tests for the file-backed template store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from clixen.errors import StoreError, TemplateNotFoundError
from clixen.schemas.template import (
    DiscoveredTemplate,
    TemplateDeployment,
    UnmatchedRequest,
)
from clixen.store.local_store import LocalTemplateStore


class TestLoading:
    def test_loads_single_and_list_files(self, local_store: LocalTemplateStore) -> None:
        ids = {t.id for t in local_store.list_templates(status=None)}
        assert ids == {"tpl-1", "tpl-2", "tpl-3"}

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError, match="does not exist"):
            LocalTemplateStore(tmp_path / "nope")

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "broken.json").write_text("{not json")
        with pytest.raises(StoreError, match="broken.json"):
            LocalTemplateStore(tmp_path)

    def test_invalid_template(self, tmp_path: Path) -> None:
        (tmp_path / "bad.json").write_text(json.dumps({"name": "no id or trigger"}))
        with pytest.raises(StoreError, match="Invalid template file"):
            LocalTemplateStore(tmp_path)

    def test_integer_ids_are_coerced(self, tmp_path: Path) -> None:
        (tmp_path / "t.json").write_text(json.dumps({"id": 7, "name": "N", "trigger_app": "webhook"}))
        store = LocalTemplateStore(tmp_path)
        assert store.get_template("7").name == "N"

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert LocalTemplateStore(tmp_path).list_templates() == []


class TestTemplates:
    def test_active_by_default(self, local_store: LocalTemplateStore) -> None:
        assert [t.id for t in local_store.list_templates()] == ["tpl-1", "tpl-2"]

    def test_filter_by_trigger_app(self, local_store: LocalTemplateStore) -> None:
        assert local_store.list_templates(trigger_app="schedule") == []
        assert len(local_store.list_templates(trigger_app="webhook")) == 2

    def test_get_template_returns_copy(self, local_store: LocalTemplateStore) -> None:
        template = local_store.get_template("tpl-1")
        template.n8n_json["name"] = "changed"
        assert local_store.get_template("tpl-1").n8n_json["name"] == "Notify"

    def test_get_missing(self, local_store: LocalTemplateStore) -> None:
        with pytest.raises(TemplateNotFoundError, match="missing not found"):
            local_store.get_template("missing")

    def test_related(self, local_store: LocalTemplateStore) -> None:
        related = local_store.find_related_templates("schedule", "slack")
        assert [t.id for t in related] == ["tpl-2"]
        assert len(local_store.find_related_templates("webhook", "x", limit=1)) == 1

    def test_by_usage(self, local_store: LocalTemplateStore) -> None:
        assert [t.id for t in local_store.list_templates_by_usage()] == ["tpl-2", "tpl-1"]

    def test_upsert_replaces_by_slug(self, local_store: LocalTemplateStore, template_factory) -> None:
        local_store.upsert_template(template_factory(id="tpl-9", name="Replacement"))

        ids = {t.id for t in local_store.list_templates(status=None)}
        assert "tpl-1" not in ids
        assert "tpl-9" in ids
        saved = json.loads((local_store.templates_dir / "webhook-email.json").read_text())
        assert saved["id"] == "tpl-9"
        assert not (local_store.templates_dir / "email.json").exists()

        reloaded = LocalTemplateStore(local_store.templates_dir)
        slugs = [t.slug for t in reloaded.list_templates(status=None)]
        assert slugs.count("webhook-email") == 1
        assert reloaded.get_template("tpl-9").name == "Replacement"
        with pytest.raises(TemplateNotFoundError):
            reloaded.get_template("tpl-1")

    def test_upsert_rewrites_shared_file(self, local_store: LocalTemplateStore, template_factory) -> None:
        local_store.upsert_template(template_factory(id="tpl-2b", slug="webhook-slack", name="Slack v2"))

        remaining = json.loads((local_store.templates_dir / "others.json").read_text())
        assert remaining["id"] == "tpl-3"

        reloaded = LocalTemplateStore(local_store.templates_dir)
        ids = {t.id for t in reloaded.list_templates(status=None)}
        assert ids == {"tpl-1", "tpl-2b", "tpl-3"}

    def test_upsert_survives_reload(self, local_store: LocalTemplateStore, template_factory) -> None:
        local_store.upsert_template(template_factory(id="tpl-new", slug="brand-new", name="Fresh"))
        reloaded = LocalTemplateStore(local_store.templates_dir)
        assert reloaded.get_template("tpl-new").name == "Fresh"


class TestState:
    def test_success_increments_usage(self, local_store: LocalTemplateStore) -> None:
        local_store.record_deployment(
            TemplateDeployment(template_id="tpl-1", user_id="u", deployment_status="success")
        )
        local_store.record_deployment(
            TemplateDeployment(template_id="tpl-1", user_id="u", deployment_status="partial")
        )
        assert local_store.get_template("tpl-1").usage_count == 1
        assert len(local_store.list_deployments()) == 2

    def test_since_filters(self, local_store: LocalTemplateStore) -> None:
        now = datetime.now(timezone.utc)
        old = now - timedelta(days=3)
        local_store.record_deployment(TemplateDeployment(template_id="tpl-1", user_id="u", deployed_at=old))
        local_store.record_deployment(TemplateDeployment(template_id="tpl-1", user_id="u"))
        local_store.record_unmatched_request(UnmatchedRequest(user_id="u", prompt="p", timestamp=old))

        cutoff = now - timedelta(days=1)
        assert len(local_store.list_deployments(since=cutoff)) == 1
        assert local_store.count_unmatched_requests(since=cutoff) == 0
        assert local_store.count_unmatched_requests() == 1

    def test_state_file_round_trip(self, templates_dir: Path, tmp_path: Path) -> None:
        state = tmp_path / "state" / "clixen-state.json"
        store = LocalTemplateStore(templates_dir, state_file=state)
        store.record_deployment(TemplateDeployment(template_id="tpl-1", user_id="u", workflow_id="wf-1"))
        store.record_unmatched_request(UnmatchedRequest(user_id="u", prompt="sheets please"))
        store.record_discovery(DiscoveredTemplate(title="Found", external_id="42"))

        assert state.exists()
        reloaded = LocalTemplateStore(templates_dir, state_file=state)
        assert reloaded.list_deployments()[0].workflow_id == "wf-1"
        assert reloaded.count_unmatched_requests() == 1
        assert reloaded.discoveries[0].title == "Found"

    def test_usage_survives_reload(self, templates_dir: Path, tmp_path: Path) -> None:
        state = tmp_path / "state.json"
        store = LocalTemplateStore(templates_dir, state_file=state)
        store.record_deployment(TemplateDeployment(template_id="tpl-1", user_id="u", deployment_status="success"))
        store.record_deployment(TemplateDeployment(template_id="tpl-2", user_id="u", deployment_status="failed"))

        reloaded = LocalTemplateStore(templates_dir, state_file=state)
        assert reloaded.get_template("tpl-1").usage_count == 1
        assert reloaded.get_template("tpl-2").usage_count == 9
        assert [t.id for t in reloaded.list_templates_by_usage()] == ["tpl-2", "tpl-1"]

    def test_rewritten_file_does_not_double_count_usage(
        self, templates_dir: Path, tmp_path: Path, template_factory,
    ) -> None:
        state = tmp_path / "state.json"
        store = LocalTemplateStore(templates_dir, state_file=state)
        store.record_deployment(TemplateDeployment(template_id="tpl-3", user_id="u", deployment_status="success"))
        store.upsert_template(template_factory(id="tpl-2b", slug="webhook-slack"))

        reloaded = LocalTemplateStore(templates_dir, state_file=state)
        assert reloaded.get_template("tpl-3").usage_count == 1

    def test_invalid_state_file(self, templates_dir: Path, tmp_path: Path) -> None:
        state = tmp_path / "state.json"
        state.write_text("[]")
        with pytest.raises(StoreError, match="Invalid state file"):
            LocalTemplateStore(templates_dir, state_file=state)

    def test_no_state_file_keeps_memory_only(self, local_store: LocalTemplateStore) -> None:
        local_store.record_discovery(DiscoveredTemplate(title="x"))
        assert len(local_store.discoveries) == 1
        assert not list(local_store.templates_dir.glob("*state*"))
