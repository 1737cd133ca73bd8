"""Workflow validation: the adapter's structural gate plus an extended reliability check."""

from __future__ import annotations

import copy
import itertools
import json
import logging
from typing import Any

from clixen.errors import WorkflowValidationError
from clixen.schemas.validation import ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

# Node types verified to run without per-user OAuth
COMPATIBLE_NODES: dict[str, list[str]] = {
    "triggers": [
        "n8n-nodes-base.webhook",
        "n8n-nodes-base.scheduleTrigger",
        "n8n-nodes-base.manualTrigger",
        "n8n-nodes-base.errorTrigger",
        "n8n-nodes-base.interval",
    ],
    "data_processing": [
        "n8n-nodes-base.set",
        "n8n-nodes-base.function",
        "n8n-nodes-base.code",
        "n8n-nodes-base.if",
        "n8n-nodes-base.switch",
        "n8n-nodes-base.merge",
        "n8n-nodes-base.splitInBatches",
        "n8n-nodes-base.itemLists",
        "n8n-nodes-base.aggregate",
        "n8n-nodes-base.limit",
        "n8n-nodes-base.sort",
        "n8n-nodes-base.removeDuplicates",
    ],
    "communication": [
        "n8n-nodes-base.httpRequest",
        "n8n-nodes-base.emailSend",
        "n8n-nodes-base.respondToWebhook",
        "n8n-nodes-base.mqtt",
        "n8n-nodes-base.redis",
    ],
    "files_and_data": [
        "n8n-nodes-base.readBinaryFile",
        "n8n-nodes-base.writeBinaryFile",
        "n8n-nodes-base.moveBinaryData",
        "n8n-nodes-base.csv",
        "n8n-nodes-base.xml",
        "n8n-nodes-base.html",
        "n8n-nodes-base.markdown",
        "n8n-nodes-base.spreadsheetFile",
    ],
    "utilities": [
        "n8n-nodes-base.crypto",
        "n8n-nodes-base.dateTime",
        "n8n-nodes-base.wait",
        "n8n-nodes-base.noOp",
        "n8n-nodes-base.stopAndError",
    ],
    "ai": [
        "n8n-nodes-base.openAi",
        "@n8n/n8n-nodes-langchain.openAi",
        "n8n-nodes-firecrawl",
    ],
    "databases": [
        "n8n-nodes-base.postgres",
        "n8n-nodes-base.supabase",
    ],
}

ALLOWED_NODES = frozenset(itertools.chain.from_iterable(COMPATIBLE_NODES.values()))
TRIGGER_NODES = frozenset(COMPATIBLE_NODES["triggers"])

# Require per-user OAuth
BLOCKED_NODES = frozenset({
    "n8n-nodes-base.googleSheets",
    "n8n-nodes-base.gmail",
    "n8n-nodes-base.googleDrive",
    "n8n-nodes-base.slack",
    "n8n-nodes-base.discord",
    "n8n-nodes-base.twitter",
    "n8n-nodes-base.github",
    "n8n-nodes-base.notion",
    "n8n-nodes-base.airtable",
    "n8n-nodes-base.hubspot",
    "n8n-nodes-base.salesforce",
    "n8n-nodes-base.microsoftTeams",
    "n8n-nodes-base.zoom",
})

ALTERNATIVES: dict[str, str] = {
    "n8n-nodes-base.googleSheets": "n8n-nodes-base.spreadsheetFile",
    "n8n-nodes-base.gmail": "n8n-nodes-base.emailSend",
    "n8n-nodes-base.slack": "n8n-nodes-base.httpRequest (with webhook URL)",
    "n8n-nodes-base.discord": "n8n-nodes-base.httpRequest (with webhook URL)",
    "n8n-nodes-base.github": "n8n-nodes-base.httpRequest (with API)",
    "n8n-nodes-base.notion": "n8n-nodes-base.httpRequest (with API)",
}

OUTPUT_NODES = frozenset({
    "n8n-nodes-base.respondToWebhook",
    "n8n-nodes-base.emailSend",
    "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.writeBinaryFile",
})

PLACEHOLDER_URL = "https://api.example.com/endpoint"
PLACEHOLDER_EMAIL = '={{$json["email"]}}'


def validate_workflow(workflow: Any) -> None:
    """Structural gate for an adapted workflow; raises ``WorkflowValidationError``."""
    if not isinstance(workflow, dict):
        raise WorkflowValidationError("Invalid workflow structure: not an object")

    nodes = workflow.get("nodes")
    if not nodes or not isinstance(nodes, list):
        raise WorkflowValidationError("Invalid workflow structure: missing nodes")

    if workflow.get("connections") is None:
        raise WorkflowValidationError("Invalid workflow structure: missing connections")

    for node in nodes:
        if not isinstance(node, dict) or not (node.get("id") and node.get("type") and node.get("position")):
            raise WorkflowValidationError(f"Invalid node structure: {json.dumps(node, default=str)}")


def _iter_targets(connections: Any):
    """Yield ``(source, connection)`` for every ``main`` output link."""
    if not isinstance(connections, dict):
        return
    for source, outputs in connections.items():
        if not isinstance(outputs, dict):
            continue
        main = outputs.get("main")
        if not isinstance(main, list):
            continue
        for group in main:
            if not isinstance(group, list):
                continue
            for connection in group:
                if isinstance(connection, dict):
                    yield source, connection


class WorkflowValidator:
    """Extended reliability check: node whitelist, parameters, connections, completeness."""

    def validate(self, workflow: Any) -> ValidationReport:
        issues: list[ValidationIssue] = []
        suggestions: list[str] = []

        issues.extend(self._validate_structure(workflow))
        if not isinstance(workflow, dict):
            return self._build_report(issues, suggestions)

        nodes = workflow.get("nodes") if isinstance(workflow.get("nodes"), list) else []
        for node in nodes:
            issues.extend(self._validate_node(node))

        if isinstance(workflow.get("connections"), dict):
            issues.extend(self._validate_connections(nodes, workflow["connections"]))

        completeness, completeness_suggestions = self._check_completeness(nodes)
        issues.extend(completeness)
        suggestions.extend(completeness_suggestions)

        return self._build_report(issues, suggestions)

    @staticmethod
    def _build_report(issues: list[ValidationIssue], suggestions: list[str]) -> ValidationReport:
        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]
        score = max(0, min(100, 100 - 20 * len(errors) - 5 * len(warnings)))
        return ValidationReport(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            score=score,
            suggestions=suggestions,
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _validate_structure(self, workflow: Any) -> list[ValidationIssue]:
        if not isinstance(workflow, dict):
            return [ValidationIssue(type="INVALID_STRUCTURE", message="Workflow must be a valid object")]

        issues: list[ValidationIssue] = []
        nodes = workflow.get("nodes")
        if not isinstance(nodes, list) or not nodes:
            issues.append(ValidationIssue(type="MISSING_NODES", message="Workflow must have a nodes array"))
        if not isinstance(workflow.get("connections"), dict):
            issues.append(ValidationIssue(
                type="MISSING_CONNECTIONS", message="Workflow must have a connections object",
            ))
        if isinstance(nodes, list) and not any(self.is_trigger_node(n) for n in nodes):
            issues.append(ValidationIssue(
                type="NO_TRIGGER", message="Workflow must have at least one trigger node",
            ))
        return issues

    def _validate_node(self, node: Any) -> list[ValidationIssue]:
        if not isinstance(node, dict) or not (node.get("id") and node.get("name") and node.get("type")):
            name = node.get("name", "unknown") if isinstance(node, dict) else "unknown"
            return [ValidationIssue(
                type="INCOMPLETE_NODE",
                message="Node missing required fields (id, name, or type)",
                node=name,
            )]

        issues: list[ValidationIssue] = []
        name, node_type = node["name"], node["type"]

        if node_type in BLOCKED_NODES:
            issues.append(ValidationIssue(
                type="BLOCKED_NODE",
                message=f"Node type '{node_type}' requires OAuth and is not supported",
                node=name,
            ))
            if alternative := ALTERNATIVES.get(node_type):
                issues.append(ValidationIssue(
                    type="ALTERNATIVE_AVAILABLE",
                    message=f"Consider using '{alternative}' instead of '{node_type}'",
                    node=name,
                    severity="warning",
                ))
        elif node_type not in ALLOWED_NODES:
            issues.append(ValidationIssue(
                type="UNKNOWN_NODE",
                message=f"Node type '{node_type}' is not in the verified list",
                node=name,
                severity="warning",
            ))

        issues.extend(self._validate_parameters(node))

        position = node.get("position")
        if not isinstance(position, list) or len(position) != 2:
            issues.append(ValidationIssue(
                type="MISSING_POSITION",
                message="Node should have a position array [x, y]",
                node=name,
                severity="warning",
            ))
        return issues

    @staticmethod
    def _validate_parameters(node: dict[str, Any]) -> list[ValidationIssue]:
        params = node.get("parameters") or {}
        name = node["name"]

        match node["type"]:
            case "n8n-nodes-base.webhook":
                if not params.get("path") and not params.get("httpMethod"):
                    return [ValidationIssue(
                        type="MISSING_WEBHOOK_CONFIG",
                        message="Webhook node should have path and httpMethod",
                        node=name,
                        severity="warning",
                    )]
            case "n8n-nodes-base.httpRequest":
                if not params.get("url"):
                    return [ValidationIssue(
                        type="MISSING_URL",
                        message="HTTP Request node requires a URL",
                        node=name,
                        parameter="url",
                    )]
            case "n8n-nodes-base.emailSend":
                if not params.get("toEmail"):
                    return [ValidationIssue(
                        type="MISSING_EMAIL",
                        message="Email Send node requires toEmail parameter",
                        node=name,
                        parameter="toEmail",
                    )]
            case "n8n-nodes-base.code" | "n8n-nodes-base.function":
                if not params.get("jsCode") and not params.get("functionCode"):
                    return [ValidationIssue(
                        type="MISSING_CODE",
                        message="Code node requires jsCode or functionCode",
                        node=name,
                        parameter="jsCode",
                    )]
        return []

    def _validate_connections(
        self, nodes: list[Any], connections: dict[str, Any],
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        node_names = {n.get("name") for n in nodes if isinstance(n, dict)}

        for source, outputs in connections.items():
            if source not in node_names:
                issues.append(ValidationIssue(
                    type="INVALID_CONNECTION_SOURCE",
                    message=f"Connection source '{source}' does not exist",
                ))
            elif not isinstance(outputs, dict):
                issues.append(ValidationIssue(
                    type="INVALID_CONNECTION_STRUCTURE",
                    message=f"Invalid connection structure for '{source}'",
                ))

        connected: set[str] = set()
        for source, connection in _iter_targets(connections):
            if source not in node_names:
                continue
            target = connection.get("node")
            connected.add(target)
            if not target or target not in node_names:
                issues.append(ValidationIssue(
                    type="INVALID_CONNECTION_TARGET",
                    message=f"Connection target '{target}' does not exist",
                    node=source,
                ))

        for node in nodes:
            if not isinstance(node, dict) or self.is_trigger_node(node):
                continue
            if node.get("name") not in connected:
                issues.append(ValidationIssue(
                    type="ORPHANED_NODE",
                    message=f"Node '{node.get('name')}' is not connected",
                    node=node.get("name"),
                    severity="warning",
                ))
        return issues

    @staticmethod
    def _check_completeness(nodes: list[Any]) -> tuple[list[ValidationIssue], list[str]]:
        issues: list[ValidationIssue] = []
        suggestions: list[str] = []

        if len(nodes) < 2:
            issues.append(ValidationIssue(
                type="TOO_SIMPLE", message="Workflow has less than 2 nodes", severity="warning",
            ))
            suggestions.append("Consider adding more nodes to create a meaningful workflow")

        if not any(isinstance(n, dict) and n.get("type") in OUTPUT_NODES for n in nodes):
            issues.append(ValidationIssue(
                type="NO_OUTPUT", message="Workflow has no apparent output action", severity="warning",
            ))
            suggestions.append("Add an output node like Email Send, HTTP Request, or Respond to Webhook")

        return issues, suggestions

    @staticmethod
    def is_trigger_node(node: Any) -> bool:
        return isinstance(node, dict) and node.get("type") in TRIGGER_NODES

    # ------------------------------------------------------------------
    # Auto-fix
    # ------------------------------------------------------------------

    def auto_fix(self, workflow: dict[str, Any], errors: list[ValidationIssue]) -> dict[str, Any]:
        """Return a deep copy with common errors repaired; the input is untouched."""
        fixed = copy.deepcopy(workflow)
        nodes: list[dict[str, Any]] = fixed.setdefault("nodes", [])

        def find(name: str | None) -> dict[str, Any] | None:
            return next((n for n in nodes if n.get("name") == name), None)

        for error in errors:
            match error.type:
                case "BLOCKED_NODE":
                    node = find(error.node)
                    if node is not None and (alternative := self._alternative_node(node)):
                        nodes[nodes.index(node)] = alternative
                case "MISSING_URL":
                    if (node := find(error.node)) is not None:
                        node.setdefault("parameters", {})["url"] = PLACEHOLDER_URL
                case "MISSING_EMAIL":
                    if (node := find(error.node)) is not None:
                        node.setdefault("parameters", {})["toEmail"] = PLACEHOLDER_EMAIL
                case "NO_TRIGGER":
                    nodes.insert(0, {
                        "id": "manual_trigger",
                        "name": "Manual Trigger",
                        "type": "n8n-nodes-base.manualTrigger",
                        "typeVersion": 1,
                        "position": [250, 300],
                        "parameters": {},
                    })
                case "INVALID_CONNECTION_TARGET":
                    names = {n.get("name") for n in nodes if isinstance(n, dict)}
                    for outputs in (fixed.get("connections") or {}).values():
                        if isinstance(outputs, dict) and isinstance(outputs.get("main"), list):
                            outputs["main"] = [
                                [c for c in group if isinstance(c, dict) and c.get("node") in names]
                                for group in outputs["main"]
                                if isinstance(group, list)
                            ]

        logger.debug("Auto-fixed %d issue(s)", len(errors))
        return fixed

    @staticmethod
    def _alternative_node(blocked: dict[str, Any]) -> dict[str, Any] | None:
        params = blocked.get("parameters") or {}
        match blocked.get("type"):
            case "n8n-nodes-base.googleSheets":
                return {
                    **blocked,
                    "type": "n8n-nodes-base.spreadsheetFile",
                    "parameters": {"operation": "read", "fileFormat": "csv"},
                }
            case "n8n-nodes-base.gmail":
                return {
                    **blocked,
                    "type": "n8n-nodes-base.emailSend",
                    "parameters": {
                        "fromEmail": "{{$credentials.smtp.user}}",
                        "toEmail": params.get("toEmail") or PLACEHOLDER_EMAIL,
                        "subject": params.get("subject") or "Notification from n8n",
                        "text": params.get("message") or '={{$json["message"]}}',
                    },
                }
            case "n8n-nodes-base.slack":
                return {
                    **blocked,
                    "type": "n8n-nodes-base.httpRequest",
                    "parameters": {
                        "url": "={{$credentials.slack.webhookUrl}}",
                        "method": "POST",
                        "bodyParametersJson": json.dumps({"text": params.get("text") or "Message from n8n"}),
                        "options": {"headers": {"Content-Type": "application/json"}},
                    },
                }
        return None
