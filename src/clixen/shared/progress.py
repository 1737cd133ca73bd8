"""Rich progress display for the generation pipeline."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

console = Console()


class PipelineProgress:
    """Tracks named pipeline steps with a spinner each."""

    def __init__(self) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_ids: dict[str, int] = {}

    def __enter__(self) -> "PipelineProgress":
        self._progress.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        self._progress.__exit__(*args)

    def start_step(self, name: str) -> None:
        tid = self._progress.add_task(f"[cyan]{name}[/]", total=None)
        self._task_ids[name] = tid

    def update_step(self, name: str, status: str) -> None:
        if name in self._task_ids:
            self._progress.update(
                self._task_ids[name],
                description=f"[cyan]{name}[/] — {status}",
            )

    def finish_step(self, name: str) -> None:
        if name in self._task_ids:
            self._progress.update(
                self._task_ids[name],
                description=f"[green]✓ {name}[/]",
                completed=True,
            )

    def fail_step(self, name: str, error: str) -> None:
        if name in self._task_ids:
            self._progress.update(
                self._task_ids[name],
                description=f"[red]✗ {name}: {error}[/]",
                completed=True,
            )

    def log_event(self, name: str, message: str, style: str = "dim") -> None:
        """Print a persistent log line above the spinner."""
        self._progress.console.print(f"  [{style}]{name}:[/] {message}")

    def print_phase(self, label: str) -> None:
        self._progress.console.print(Panel(f"[bold]{label}[/bold]", style="blue"))
