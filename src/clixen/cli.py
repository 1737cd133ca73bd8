"""Typer CLI: ``clixen generate``, ``match``, ``templates`` and friends."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from clixen.config import load_config
from clixen.errors import ClixenError
from clixen.schemas.config import ClixenConfig
from clixen.schemas.template import DiscoveredTemplate
from clixen.store.base import TemplateStore

# Load .env file from project root (if it exists)
load_dotenv()

app = typer.Typer(
    name="clixen",
    help="Clixen — turn natural-language requests into n8n workflows from tested templates.",
    no_args_is_help=True,
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every HTTP request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config_or_exit(path: Path) -> ClixenConfig:
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError, ValidationError) as exc:
        console.print(f"[red]Config validation failed:[/] {exc}")
        raise typer.Exit(code=1)


def _build_store(cfg: ClixenConfig, *, dry_run: bool = False) -> TemplateStore:
    """Supabase unless configured (or forced by --dry-run) to use local files."""
    if dry_run or cfg.store.backend == "local":
        from clixen.store.local_store import LocalTemplateStore
        return LocalTemplateStore(cfg.store.templates_dir, cfg.store.state_file or None)

    from clixen.store.supabase_store import SupabaseTemplateStore
    return SupabaseTemplateStore.from_env()


def _build_client(cfg: ClixenConfig, *, dry_run: bool = False) -> Any:
    if dry_run:
        from clixen.shared.llm_client import DryRunClient
        return DryRunClient()

    from clixen.shared.llm_client import LLMClient
    return LLMClient(model=cfg.llm.model)


def _fail(exc: ClixenError) -> typer.Exit:
    console.print(f"[red]Error:[/] {exc}")
    return typer.Exit(code=1)


@app.command()
def validate(
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Validate a configuration file without running anything."""
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    console.print("[green]Config is valid![/]\n")
    console.print(f"  Store backend:  {cfg.store.backend}")
    if cfg.store.backend == "local":
        console.print(f"  Templates dir:  {cfg.store.templates_dir}")
        console.print(f"  State file:     {cfg.store.state_file or '(in-memory)'}")
    console.print(f"  LLM model:      {cfg.llm.model}")
    console.print(f"  Max candidates: {cfg.matching.max_candidates}")
    console.print(f"  Strict min:     {cfg.matching.strict_min_confidence}")
    console.print(f"  n8n base URL:   {cfg.n8n.base_url or '(from N8N_API_URL)'}")
    console.print(f"  Deploy:         {cfg.n8n.deploy}  |  Activate: {cfg.n8n.activate}")
    if cfg.discovery_keywords:
        console.print(f"  Discovery keywords: {', '.join(cfg.discovery_keywords)}")
    console.print(f"  Output dir:     {cfg.output_directory}")


@app.command()
def generate(
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    prompt: str = typer.Option(..., "--prompt", "-p", help="Natural-language workflow request."),
    user_id: str = typer.Option(..., "--user-id", "-u"),
    user_email: str = typer.Option("", "--user-email", help="Used for *EMAIL* placeholders."),
    project_id: str = typer.Option(None, "--project-id"),
    deploy: bool = typer.Option(False, "--deploy", help="Create the workflow in n8n."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Use canned LLM output and the local store (no API calls)."),
) -> None:
    """Generate a workflow from the best matching template.

    Example:

        clixen generate -c config/clixen-config.yml -u 42 -p "Email sales on every form submission"
    """
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    if dry_run:
        console.print("[yellow]DRY-RUN mode — no API calls will be made.[/]\n")
        deploy = False

    context: dict[str, Any] = {"user_id": user_id}
    if user_email:
        context["user_email"] = user_email

    try:
        asyncio.run(_run_generate(
            cfg, prompt, user_id, context,
            project_id=project_id,
            deploy=deploy or (cfg.n8n.deploy and not dry_run),
            dry_run=dry_run,
        ))
    except ClixenError as exc:
        raise _fail(exc)


async def _run_generate(
    cfg: ClixenConfig,
    prompt: str,
    user_id: str,
    context: dict[str, Any],
    *,
    project_id: str | None,
    deploy: bool,
    dry_run: bool,
) -> None:
    from clixen.output.markdown import render_generation_report
    from clixen.services.template_adapter import TemplateAdapterService
    from clixen.shared.n8n_client import N8nClient
    from clixen.shared.progress import PipelineProgress

    service = TemplateAdapterService(
        _build_client(cfg, dry_run=dry_run),
        _build_store(cfg, dry_run=dry_run),
        llm=cfg.llm,
        matching=cfg.matching,
        n8n_factory=lambda: N8nClient(cfg.n8n.base_url or None),
        activate=cfg.n8n.activate,
    )

    step = "Template pipeline"
    with PipelineProgress() as progress:
        progress.print_phase("Generating workflow")
        progress.start_step(step)
        try:
            report = await service.run(
                prompt, user_id, context,
                project_id=project_id,
                deploy=deploy,
                on_progress=lambda m: progress.update_step(step, m),
            )
        except ClixenError as exc:
            progress.fail_step(step, str(exc))
            raise
        progress.finish_step(step)

    out_dir = Path(cfg.output_directory)
    out_dir.mkdir(parents=True, exist_ok=True)

    workflow_path = out_dir / "adapted-workflow.json"
    workflow_path.write_text(json.dumps(report.adapted.workflow, indent=2))
    console.print(f"\n[green]Workflow written to:[/] {workflow_path}")

    report_path = out_dir / "generation-report.json"
    report_path.write_text(report.model_dump_json(indent=2))
    console.print(f"[green]Report written to:[/] {report_path}")

    md_path = out_dir / "generation-report.md"
    md_path.write_text(render_generation_report(report))
    console.print(f"[green]Markdown report written to:[/] {md_path}")

    adapted = report.adapted
    console.print(
        f"\n[bold]{adapted.workflow.get('name', '')}[/] "
        f"(confidence {adapted.confidence_score:.2f})"
    )
    for warning in adapted.warnings:
        console.print(f"  [yellow]⚠ {warning}[/]")
    if report.deployment and report.deployment.workflow_id:
        console.print(f"  Deployed as n8n workflow [cyan]{report.deployment.workflow_id}[/]")


@app.command()
def match(
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    prompt: str = typer.Option(..., "--prompt", "-p"),
    user_id: str = typer.Option(..., "--user-id", "-u"),
    project_id: str = typer.Option(None, "--project-id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Use canned LLM output and the local store (no API calls)."),
) -> None:
    """Strictly match a request to an existing template (no generation)."""
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    if dry_run:
        console.print("[yellow]DRY-RUN mode — no API calls will be made.[/]\n")

    try:
        asyncio.run(_run_match(cfg, prompt, user_id, project_id, dry_run=dry_run))
    except ClixenError as exc:
        raise _fail(exc)


async def _run_match(
    cfg: ClixenConfig,
    prompt: str,
    user_id: str,
    project_id: str | None,
    *,
    dry_run: bool,
) -> None:
    from clixen.schemas.template import UserRequest
    from clixen.services.strict_matcher import StrictTemplateMatcher

    matcher = StrictTemplateMatcher(
        _build_client(cfg, dry_run=dry_run),
        _build_store(cfg, dry_run=dry_run),
        min_confidence=cfg.matching.strict_min_confidence,
        temperature=cfg.llm.strict_temperature,
    )
    result = await matcher.match_request(
        UserRequest(prompt=prompt, user_id=user_id, project_id=project_id)
    )

    if result.success and result.template:
        console.print(
            f"[green]Matched:[/] {result.template.name} "
            f"(id {result.template.id}, confidence {result.template.confidence:.2f})"
        )
        return

    console.print(f"[yellow]No template match.[/] {result.rejection_reason}")
    if result.request_logged:
        console.print("[dim]Request logged for future template development.[/]")
    if result.suggestions:
        console.print("\nYou might be interested in these similar workflows:")
        for suggestion in result.suggestions:
            console.print(f"  - {suggestion}")


@app.command()
def templates(
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    stats: bool = typer.Option(False, "--stats", help="Show library statistics instead of the list."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List active templates by usage, or show library statistics."""
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    from clixen.services.strict_matcher import StrictTemplateMatcher

    try:
        # Listing and stats never touch the LLM
        matcher = StrictTemplateMatcher(None, _build_store(cfg))
        if stats:
            s = matcher.get_template_stats()
            console.print(f"  Active templates:     {s.total_templates}")
            console.print(f"  Categories:           {', '.join(s.categories) or '(none)'}")
            console.print(f"  Unmatched (7 days):   {s.unmatched_last_week}")
            console.print(f"  Success rate (30 d):  {s.success_rate}%")
            return
        available = matcher.get_available_templates()
    except ClixenError as exc:
        raise _fail(exc)

    table = Table(title="Active templates")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Trigger")
    table.add_column("Actions")
    table.add_column("Uses", justify="right")
    for t in available:
        table.add_row(t.name, t.category, t.trigger_app, ", ".join(t.action_apps), str(t.usage_count))
    console.print(table)


@app.command("import-templates")
def import_templates(
    paths: list[Path] = typer.Argument(..., help="Template JSON files (object or list of objects)."),
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Upsert template JSON files into the configured store (keyed by slug)."""
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    from clixen.schemas.template import WorkflowTemplate

    loaded: list[WorkflowTemplate] = []
    for path in paths:
        try:
            raw = json.loads(path.read_text())
            items = raw if isinstance(raw, list) else [raw]
            loaded.extend(WorkflowTemplate(**item) for item in items)
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as exc:
            console.print(f"[red]Invalid template file {path}:[/] {exc}")
            raise typer.Exit(code=1)

    try:
        store = _build_store(cfg)
        for template in loaded:
            store.upsert_template(template)
            console.print(f"  [green]✓[/] {template.name} ({template.slug or template.id})")
    except ClixenError as exc:
        raise _fail(exc)

    console.print(f"\n[green]Imported {len(loaded)} template(s).[/]")


@app.command("check-workflow")
def check_workflow(
    file: Path = typer.Argument(..., help="n8n workflow JSON file."),
    fix: bool = typer.Option(False, "--fix", help="Write an auto-fixed copy next to the file."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run the extended reliability check on a workflow JSON file."""
    _setup_logging(verbose)

    from clixen.services.workflow_validator import WorkflowValidator

    try:
        workflow = json.loads(file.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Could not read workflow:[/] {exc}")
        raise typer.Exit(code=1)

    validator = WorkflowValidator()
    report = validator.validate(workflow)

    status = "[green]valid[/]" if report.valid else "[red]invalid[/]"
    console.print(f"Workflow is {status} (score {report.score}/100)")
    for issue in report.errors:
        console.print(f"  [red]✗ {issue.type}[/] {issue.message}")
    for issue in report.warnings:
        console.print(f"  [yellow]! {issue.type}[/] {issue.message}")
    for suggestion in report.suggestions:
        console.print(f"  [dim]→ {suggestion}[/]")

    if fix and report.errors and isinstance(workflow, dict):
        fixed = validator.auto_fix(workflow, report.errors)
        fixed_path = file.with_name(f"{file.stem}.fixed.json")
        fixed_path.write_text(json.dumps(fixed, indent=2))
        after = validator.validate(fixed)
        console.print(f"\n[green]Fixed workflow written to:[/] {fixed_path} (score {after.score}/100)")

    if not report.valid and not fix:
        raise typer.Exit(code=1)


@app.command()
def discover(
    config: Path = typer.Option(..., "--config", "-c", help="Path to clixen-config.yml"),
    category: str = typer.Option(None, "--category", help="n8n.io gallery category."),
    url: str = typer.Option(None, "--url", help="Scrape this page instead of the n8n.io gallery."),
    query: list[str] = typer.Option(None, "--query", "-q", help="Relevance keyword (repeatable)."),
    limit: int = typer.Option(50, "--limit"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Scrape the n8n.io template gallery (or a custom page) and cache entries for review."""
    _setup_logging(verbose)
    cfg = _load_config_or_exit(config)

    try:
        entries = asyncio.run(_run_discover(cfg, category, query or None, limit, url=url))
    except ClixenError as exc:
        raise _fail(exc)

    table = Table(title=f"Discovered templates ({len(entries)})")
    table.add_column("Relevance", justify="right")
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("URL")
    for e in entries:
        table.add_row(f"{e.relevance_score:.2f}", e.title, e.author, e.external_url)
    console.print(table)


async def _run_discover(
    cfg: ClixenConfig,
    category: str | None,
    keywords: list[str] | None,
    limit: int,
    *,
    url: str | None = None,
) -> list[DiscoveredTemplate]:
    from clixen.services.discovery import TemplateDiscoveryService
    from clixen.shared.firecrawl_client import FirecrawlClient

    store = _build_store(cfg)
    async with FirecrawlClient() as firecrawl:
        service = TemplateDiscoveryService(firecrawl, store, cfg.discovery_keywords)
        if url:
            return await service.discover_url(url, keywords=keywords, limit=limit)
        return await service.discover(category, keywords=keywords, limit=limit)
