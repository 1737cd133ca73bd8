"""Markdown report builder: renders a GenerationReport for humans."""

from __future__ import annotations

from clixen.schemas.pipeline import GenerationReport


def render_generation_report(report: GenerationReport) -> str:
    """Render a GenerationReport into a Markdown string."""
    sections: list[str] = []

    sections.append(f"# Workflow Generation Report: {report.adapted.template_used}\n")
    sections.append(f"*Generated: {report.generated_at}*\n")

    # Request
    sections.append("## Request\n")
    sections.append(f"> {report.prompt}\n")
    sections.append(f"- **User:** {report.user_id}")
    sections.append("")

    # Intent
    intent = report.intent
    sections.append("## Intent\n")
    trigger = f"{intent.trigger.app} / {intent.trigger.event}" if intent.trigger.event else intent.trigger.app
    sections.append(f"- **Trigger:** {trigger or 'N/A'}")
    if intent.trigger.conditions:
        sections.append(f"- **Conditions:** {', '.join(intent.trigger.conditions)}")
    sections.append("- **Actions:**")
    for action in intent.actions:
        target = f" → {action.target}" if action.target else ""
        sections.append(f"  - {action.app}: {action.operation}{target}")
    if intent.extracted_values:
        sections.append("- **Extracted values:**")
        for key, value in intent.extracted_values.items():
            sections.append(f"  - `{key}`: {value}")
    sections.append(f"- **Complexity:** {intent.complexity_score:.2f}")
    sections.append("")

    # Candidates
    if report.matches:
        sections.append("## Candidate Templates\n")
        sections.append("| # | Template | Score | Confidence | Missing |")
        sections.append("|---|----------|-------|------------|---------|")
        for i, match in enumerate(report.matches, 1):
            missing = ", ".join(match.missing_features) if match.missing_features else "—"
            sections.append(
                f"| {i} | {match.template_name} | {match.match_score} | {match.confidence} | {missing} |"
            )
        sections.append("")

    # Adapted workflow
    adapted = report.adapted
    sections.append("## Adapted Workflow\n")
    sections.append(f"- **Name:** {adapted.workflow.get('name', '')}")
    sections.append(f"- **Template:** {adapted.template_used}")
    sections.append(f"- **Confidence:** {adapted.confidence_score:.2f}")
    sections.append(f"- **Requires review:** {'yes' if adapted.requires_review else 'no'}")
    if adapted.placeholders_filled:
        sections.append("- **Placeholders filled:**")
        for key, value in adapted.placeholders_filled.items():
            sections.append(f"  - `{key}` = {value}")
    sections.append("")

    if adapted.warnings:
        sections.append("### Warnings\n")
        for warning in adapted.warnings:
            sections.append(f"- ⚠️ {warning}")
        sections.append("")

    # Validation
    if report.validation:
        v = report.validation
        status = "✅ valid" if v.valid else "❌ invalid"
        sections.append("## Validation\n")
        sections.append(f"**Status:** {status} | **Score:** {v.score}/100\n")
        for issue in v.errors:
            where = f" ({issue.node})" if issue.node else ""
            sections.append(f"- 🔴 `{issue.type}`{where}: {issue.message}")
        for issue in v.warnings:
            where = f" ({issue.node})" if issue.node else ""
            sections.append(f"- 🟡 `{issue.type}`{where}: {issue.message}")
        if v.suggestions:
            sections.append("\n**Suggestions:**")
            for s in v.suggestions:
                sections.append(f"- {s}")
        sections.append("")

    # Deployment
    if report.deployment:
        d = report.deployment
        sections.append("## Deployment\n")
        sections.append(f"- **Status:** {d.deployment_status}")
        sections.append(f"- **n8n workflow id:** {d.workflow_id or 'not deployed'}")
        if d.project_id:
            sections.append(f"- **Project:** {d.project_id}")
        if d.error_message:
            sections.append(f"- **Error:** {d.error_message}")
        sections.append(f"- **Recorded:** {d.deployed_at.isoformat()}")
        sections.append("")

    return "\n".join(sections)
