"""Pipeline storage -- jobs, secrets, artifacts and the agent audit trail."""
from src.persistence.artifacts import (
    ArtifactCatalog,
    ArtifactRepository,
    FileArtifactStore,
    artifact_key,
)
from src.persistence.job_store import JobStore, UpdateResult
from src.persistence.run_tracker import AgentRunRecorder
from src.persistence.secret_store import SecretStore

__all__ = [
    "AgentRunRecorder",
    "ArtifactCatalog",
    "ArtifactRepository",
    "FileArtifactStore",
    "JobStore",
    "SecretStore",
    "UpdateResult",
    "artifact_key",
]
