"""Command-line entry point for the feature pipeline.

Commands::

    feature-pipeline init-db
    feature-pipeline serve --host 0.0.0.0 --port 8000
    feature-pipeline worker
    feature-pipeline sweep
    feature-pipeline status <job-id>
    feature-pipeline jobs --owner <owner-id>
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
import uvicorn

from src.persistence.artifacts import ArtifactCatalog
from src.persistence.job_store import JobStore
from src.persistence.run_tracker import AgentRunRecorder
from src.pipeline.display import (
    print_error_panel,
    print_job,
    print_jobs,
    print_sweep_results,
)
from src.pipeline.shutdown import GracefulShutdown
from src.pipeline.stuck_recovery import StuckJobSweeper
from src.shared.config import PipelineSettings
from src.shared.constants import VERSION, WORKER_SERVICE_NAME
from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_pipeline_db
from src.shared.logging import setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="feature-pipeline",
    help="Staged AI feature pipeline: brief, spec, plan, tests, code, review.",
    add_completion=False,
)

_DATABASE_HELP = "SQLite database path (default: DATABASE_PATH or ./data/pipeline.db)"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"feature-pipeline {VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Staged AI feature pipeline."""


def _load_settings(database: Optional[str]) -> PipelineSettings:
    settings = PipelineSettings()
    if database:
        settings = settings.model_copy(update={"database_path": database})
    return settings


def _open_pool(settings: PipelineSettings) -> ConnectionPool:
    pool = ConnectionPool(settings.database_path)
    init_pipeline_db(pool)
    return pool


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db(
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """Create the pipeline tables if they do not exist."""
    settings = _load_settings(database)
    pool = _open_pool(settings)
    pool.close()
    typer.echo(f"Initialised database at {settings.database_path}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """Run the HTTP API together with the step consumers and the sweeper."""
    from src.api.main import create_app

    settings = _load_settings(database)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level)


@app.command()
def worker(
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", min=1, help="Seconds between sweeps"
    ),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """Run the stuck-job sweep periodically until SIGINT or SIGTERM."""
    settings = _load_settings(database)
    setup_logging(WORKER_SERVICE_NAME, settings.log_level)
    asyncio.run(_run_sweeper(settings, interval or settings.sweep_interval_seconds))


async def _run_sweeper(settings: PipelineSettings, interval: int) -> None:
    pool = _open_pool(settings)
    sweeper = StuckJobSweeper(JobStore(pool), settings.stuck_threshold_minutes)
    shutdown = GracefulShutdown()
    shutdown.install()
    try:
        await sweeper.run_forever(interval, shutdown.stop_event)
    finally:
        pool.close()


@app.command()
def sweep(
    threshold: Optional[int] = typer.Option(
        None, "--threshold", "-t", min=1, help="Minutes without progress before a job is failed"
    ),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """Fail every job stuck in a processing status, once."""
    settings = _load_settings(database)
    minutes = threshold or settings.stuck_threshold_minutes
    pool = _open_pool(settings)
    try:
        outcomes = StuckJobSweeper(JobStore(pool), minutes).sweep()
    finally:
        pool.close()
    print_sweep_results(outcomes, minutes)


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Job identifier"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """Show a job and everything recorded for it."""
    settings = _load_settings(database)
    pool = _open_pool(settings)
    try:
        job = JobStore(pool).get_job(job_id)
        if job is None:
            print_error_panel(f"Job not found: {job_id}")
            raise typer.Exit(code=1)
        recorder = AgentRunRecorder(pool)
        runs = recorder.list_for_job(job_id)
        totals = recorder.token_totals(job_id)
        artifacts = ArtifactCatalog(pool).list_for_job(job_id, job.owner_id)
    finally:
        pool.close()
    print_job(job, runs, artifacts, totals)


@app.command("jobs")
def list_jobs(
    owner: str = typer.Option(..., "--owner", "-o", help="Owner whose jobs to list"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help=_DATABASE_HELP),
) -> None:
    """List an owner's jobs, newest first."""
    settings = _load_settings(database)
    pool = _open_pool(settings)
    try:
        jobs = JobStore(pool).list_jobs(owner)
    finally:
        pool.close()
    print_jobs(jobs)


if __name__ == "__main__":
    app()
