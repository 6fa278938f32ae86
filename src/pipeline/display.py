"""Rich-based terminal display for jobs, agent runs and sweeps.

All functions share the module-level ``_console`` so output formatting is
consistent across a CLI invocation.
"""

from __future__ import annotations

from typing import Iterable

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.pipeline.stuck_recovery import SweepOutcome
from src.shared.models.jobs import (
    GATE_STATUSES,
    PROCESSING_STATUSES,
    AgentRun,
    ArtifactRecord,
    Job,
    JobStatus,
)

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_DELIVERABLES = [
    ("Brief", "brief_markdown"),
    ("Specification", "spec_markdown"),
    ("Plan", "plan_markdown"),
    ("Tests", "tests_markdown"),
    ("Security review", "security_review_markdown"),
    ("Code review", "code_review_markdown"),
]


def status_markup(status: JobStatus) -> str:
    """Return *status* wrapped in Rich markup for its category."""
    if status is JobStatus.DONE:
        return f"[green]{status.value.upper()}[/green]"
    if status is JobStatus.FAILED:
        return f"[red]{status.value.upper()}[/red]"
    if status in GATE_STATUSES:
        return f"[cyan]{status.value.upper()}[/cyan]"
    if status in PROCESSING_STATUSES:
        return f"[yellow]{status.value.upper()}[/yellow]"
    return f"[dim]{status.value.upper()}[/dim]"


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_job(
    job: Job,
    runs: Iterable[AgentRun] = (),
    artifacts: Iterable[ArtifactRecord] = (),
    token_totals: dict[str, int] | None = None,
) -> None:
    """Print a panel for *job* followed by its agent runs and files.

    Args:
        job: The job to show.
        runs: Audit rows for the job, oldest first.
        artifacts: Catalogue rows for the job's generated files.
        token_totals: Summed ``input_tokens`` and ``output_tokens`` across runs.
    """
    header = Text()
    header.append("Job: ", style="bold")
    header.append(f"{job.id}\n", style="cyan")
    header.append("Title: ", style="bold")
    header.append(f"{job.title or '(untitled)'}\n")
    header.append("Owner: ", style="bold")
    header.append(f"{job.owner_id}\n")
    header.append("Updated: ", style="bold")
    header.append(f"{job.updated_at.isoformat()}\n", style="dim")
    if token_totals is not None:
        header.append("Tokens: ", style="bold")
        header.append(
            f"{token_totals['input_tokens']:,} in / {token_totals['output_tokens']:,} out\n"
        )
    if job.error_message:
        header.append("Error: ", style="bold")
        header.append(job.error_message, style="red")

    deliverables = Table(show_header=True, header_style="bold")
    deliverables.add_column("Deliverable", style="cyan", min_width=16)
    deliverables.add_column("Size", justify="right", min_width=8)
    for label, field in _DELIVERABLES:
        value = getattr(job, field)
        deliverables.add_row(label, f"{len(value)} chars" if value else "-")

    _console.print(
        Panel(
            Group(header, deliverables),
            title=f"[bold]{status_markup(job.status)}[/bold]",
            border_style="blue",
            expand=False,
        )
    )
    print_agent_runs(list(runs))
    print_artifacts(list(artifacts))


def print_agent_runs(runs: list[AgentRun]) -> None:
    if not runs:
        _console.print("[dim]No agent runs recorded.[/dim]")
        return

    table = Table(title="Agent Runs", show_header=True, header_style="bold magenta")
    table.add_column("Agent", style="cyan", min_width=18)
    table.add_column("Status", justify="center", min_width=9)
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Note")

    for run in runs:
        status = "[green]OK[/green]" if run.status == "success" else "[red]FAILED[/red]"
        table.add_row(
            run.agent_name,
            status,
            str(run.input_tokens),
            str(run.output_tokens),
            run.error_message or "",
        )
    _console.print(table)


def print_artifacts(artifacts: list[ArtifactRecord]) -> None:
    if not artifacts:
        _console.print("[dim]No generated files.[/dim]")
        return
    table = Table(title="Generated Files", show_header=True, header_style="bold magenta")
    table.add_column("Path", style="cyan")
    table.add_column("Bytes", justify="right")
    table.add_column("SHA-256", style="dim")
    for record in sorted(artifacts, key=lambda r: r.file_path):
        table.add_row(record.file_path, str(record.size_bytes), record.content_hash[:12])
    _console.print(table)


def print_jobs(jobs: list[Job]) -> None:
    """Print one row per job, newest first as given."""
    if not jobs:
        _console.print("[dim]No jobs found.[/dim]")
        return
    table = Table(title="Jobs", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", min_width=12)
    table.add_column("Title", min_width=20)
    table.add_column("Status", justify="center", min_width=14)
    table.add_column("Updated", justify="right")
    for job in jobs:
        table.add_row(job.id, job.title, status_markup(job.status), job.updated_at.isoformat())
    _console.print(table)


def print_sweep_results(outcomes: list[SweepOutcome], threshold_minutes: int) -> None:
    if not outcomes:
        _console.print(
            f"[green]No jobs stuck for more than {threshold_minutes} minutes.[/green]"
        )
        return
    table = Table(title="Stuck-Job Sweep", show_header=True, header_style="bold magenta")
    table.add_column("Job", style="cyan")
    table.add_column("Was", justify="center")
    table.add_column("Result", justify="center")
    for outcome in outcomes:
        if outcome.recovered:
            result = "[red]FAILED[/red]"
        elif outcome.error:
            result = f"[yellow]ERROR: {outcome.error}[/yellow]"
        else:
            result = "[dim]SKIPPED[/dim]"
        table.add_row(outcome.job_id, outcome.status, result)
    _console.print(table)


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red Rich panel."""
    _console.print(
        Panel(
            Text(str(error), style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )
