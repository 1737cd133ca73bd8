"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from clixen.schemas.intent import IntentAnalysis
from clixen.schemas.template import WorkflowTemplate
from clixen.shared.llm_client import LLMClient
from clixen.store.local_store import LocalTemplateStore


def make_workflow(**overrides: Any) -> dict[str, Any]:
    """A small, fully valid webhook → email workflow."""
    workflow: dict[str, Any] = {
        "name": "Notify",
        "nodes": [
            {
                "id": "1",
                "name": "Webhook",
                "type": "n8n-nodes-base.webhook",
                "position": [0, 0],
                "parameters": {"path": "hook", "httpMethod": "POST"},
            },
            {
                "id": "2",
                "name": "Send Email",
                "type": "n8n-nodes-base.emailSend",
                "position": [200, 0],
                "parameters": {"toEmail": "{{RECIPIENT_EMAIL}}", "subject": "{{SUBJECT}}"},
            },
        ],
        "connections": {
            "Webhook": {"main": [[{"node": "Send Email", "type": "main", "index": 0}]]},
        },
    }
    workflow.update(overrides)
    return workflow


def make_template(**overrides: Any) -> WorkflowTemplate:
    data: dict[str, Any] = {
        "id": "tpl-1",
        "name": "Webhook Email",
        "slug": "webhook-email",
        "category": "notifications",
        "tags": ["webhook", "email"],
        "use_case": "send an email for every new form submission",
        "trigger_app": "webhook",
        "trigger_type": "form_submission",
        "action_apps": ["email"],
        "status": "active",
        "n8n_json": make_workflow(),
        "placeholders": [
            {
                "key": "{{RECIPIENT_EMAIL}}",
                "description": "Recipient address",
                "required": True,
            },
            {
                "key": "{{SUBJECT}}",
                "description": "Subject line",
                "default_value": "New submission",
            },
        ],
    }
    data.update(overrides)
    return WorkflowTemplate(**data)


@pytest.fixture
def tmp_config(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML (local store) and return its path."""
    templates_dir = tmp_path / "templates"
    templates_dir.mkdir(exist_ok=True)
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        """\
store:
  backend: local
  templates_dir: "{templates}"
output_directory: "{out}"
""".format(templates=str(templates_dir), out=str(tmp_path / "output"))
    )
    return cfg


@pytest.fixture
def mock_llm_client() -> LLMClient:
    """Return an LLMClient with a mocked OpenAI SDK underneath."""
    client = LLMClient.__new__(LLMClient)
    client._client = AsyncMock()
    client.model = "test-model"
    return client


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    """A directory holding two active webhook templates and one draft."""
    directory = tmp_path / "templates"
    directory.mkdir(exist_ok=True)

    email = make_template()
    slack = make_template(
        id="tpl-2",
        name="Webhook Slack",
        slug="webhook-slack",
        tags=["webhook", "slack"],
        use_case="post to slack",
        action_apps=["slack"],
        usage_count=9,
        placeholders=[],
    )
    draft = make_template(id="tpl-3", name="Draft", slug="draft", status="draft")

    (directory / "email.json").write_text(json.dumps(email.model_dump(mode="json")))
    (directory / "others.json").write_text(
        json.dumps([slack.model_dump(mode="json"), draft.model_dump(mode="json")])
    )
    return directory


@pytest.fixture
def template_factory():
    """Build a WorkflowTemplate with keyword overrides."""
    return make_template


@pytest.fixture
def workflow_factory():
    return make_workflow


@pytest.fixture
def local_store(templates_dir: Path) -> LocalTemplateStore:
    return LocalTemplateStore(templates_dir)


@pytest.fixture
def sample_intent() -> IntentAnalysis:
    return IntentAnalysis(
        trigger={"app": "webhook", "event": "new_form_submission", "conditions": []},
        actions=[{"app": "email", "operation": "send_email"}],
        extracted_values={
            "description": "send an email for every new form submission",
            "recipient_email": "sales@example.com",
        },
        complexity_score=0.2,
    )
