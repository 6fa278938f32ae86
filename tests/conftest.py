"""Shared test fixtures for the feature pipeline test suite."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.persistence.artifacts import ArtifactCatalog, ArtifactRepository, FileArtifactStore
from src.persistence.job_store import JobStore
from src.persistence.run_tracker import AgentRunRecorder
from src.persistence.secret_store import SecretStore
from src.shared.config import PipelineSettings
from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_pipeline_db
from src.shared.models.jobs import Job, JobStatus


@pytest.fixture(autouse=True)
def _restore_src_logger() -> Generator[None, None, None]:
    """Undo ``setup_logging`` so caplog keeps seeing ``src.*`` records."""
    yield
    src_logger = logging.getLogger("src")
    src_logger.handlers.clear()
    src_logger.propagate = True
    src_logger.setLevel(logging.NOTSET)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Return a path for a temporary database file."""
    return tmp_path / "test.db"


@pytest.fixture
def connection_pool(tmp_db_path: Path) -> Generator[ConnectionPool, None, None]:
    """Provide a ConnectionPool with the pipeline schema, closed after the test."""
    pool = ConnectionPool(tmp_db_path)
    init_pipeline_db(pool)
    yield pool
    pool.close()


@pytest.fixture
def job_store(connection_pool: ConnectionPool) -> JobStore:
    return JobStore(connection_pool)


@pytest.fixture
def secret_store(connection_pool: ConnectionPool) -> SecretStore:
    return SecretStore(connection_pool)


@pytest.fixture
def recorder(connection_pool: ConnectionPool) -> AgentRunRecorder:
    return AgentRunRecorder(connection_pool)


@pytest.fixture
def artifact_repository(connection_pool: ConnectionPool, tmp_path: Path) -> ArtifactRepository:
    return ArtifactRepository(
        FileArtifactStore(tmp_path / "artifacts"), ArtifactCatalog(connection_pool)
    )


@pytest.fixture
def make_job(job_store: JobStore) -> Callable[..., Job]:
    """Factory creating a job and forcing it into a given status and fields."""

    def _make(
        status: JobStatus = JobStatus.DRAFTING,
        owner_id: str = "owner-1",
        title: str = "Team invites",
        brief_markdown: str | None = "# Brief\nLet admins invite teammates by email.",
        **fields: Any,
    ) -> Job:
        job = job_store.create_job(owner_id, title=title, brief_markdown=brief_markdown)
        updates: dict[str, Any] = dict(fields)
        if status is not JobStatus.DRAFTING:
            updates["status"] = status
        if updates:
            job_store.update_job(job.id, updates)
        refreshed = job_store.get_job(job.id)
        assert refreshed is not None
        return refreshed

    return _make


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def api_settings(tmp_path: Path) -> PipelineSettings:
    return PipelineSettings(
        database_path=str(tmp_path / "api.db"),
        artifacts_path=str(tmp_path / "api-artifacts"),
    )


@pytest.fixture
def api_client(api_settings: PipelineSettings) -> Generator[TestClient, None, None]:
    """TestClient over an app whose consumers are not started.

    Enqueued steps stay on the in-memory queue, so tests can inspect them
    through ``client.app.state.runtime.queue``.
    """
    app = create_app(api_settings, run_workers=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return {"X-Owner-Id": "owner-1"}
