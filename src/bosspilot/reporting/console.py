"""Rich-powered console output."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bosspilot.models import ProgressMessage, RunSummary, Severity

_console = Console()

_STYLE_MAP = {
    Severity.INFO: "dim",
    Severity.WARNING: "bold yellow",
    Severity.ERROR: "bold red",
    Severity.PROGRESS: "cyan",
    Severity.SUCCESS: "bold green",
}


def print_banner() -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            "[bold cyan]BossPilot[/bold cyan]  Automated greetings for BOSS Zhipin job search",
            border_style="cyan",
        )
    )


def print_progress(message: ProgressMessage) -> None:
    """Print one progress message as a styled line."""
    style = _STYLE_MAP.get(message.severity, "")
    counter = ""
    if message.total:
        counter = f"{message.current or 0:>4}/{message.total:<4}"
    _console.print(
        f"  [{style}]{message.severity.value:<8}[/{style}]  {counter}  {message.message}",
        highlight=False,
    )


def print_run_report(summary: RunSummary) -> None:
    """Display a run summary table."""
    table = Table(title="Run Report", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Inspected", str(summary.total_inspected))
    table.add_row("Delivered", str(summary.total_delivered))
    table.add_row("Filtered", str(summary.total_filtered))
    table.add_row("Failed", str(summary.total_failed))
    table.add_row("Skipped", str(summary.total_skipped))
    table.add_row("Run ID", summary.run_id)
    table.add_row("Started", summary.started_at)
    table.add_row("Ended", summary.ended_at or "-")
    if summary.aborted:
        table.add_row("Ended early", summary.aborted, style="red")

    _console.print()
    _console.print(table)
    _console.print()
