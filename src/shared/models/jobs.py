"""Job Pydantic v2 data models and status sets."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Lifecycle status of a job, in pipeline order."""
    DRAFTING = "drafting"
    SPEC_GENERATING = "spec_generating"
    SPEC_READY = "spec_ready"
    PLAN_GENERATING = "plan_generating"
    PLAN_READY = "plan_ready"
    TESTS_GENERATING = "tests_generating"
    TESTS_READY = "tests_ready"
    IMPLEMENTING = "implementing"
    REVIEW = "review"
    DONE = "done"
    FAILED = "failed"


# Statuses that wait for an explicit approval.
GATE_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.SPEC_READY,
    JobStatus.PLAN_READY,
    JobStatus.TESTS_READY,
})

# Statuses in which a queued step owns the job.
PROCESSING_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.SPEC_GENERATING,
    JobStatus.PLAN_GENERATING,
    JobStatus.TESTS_GENERATING,
    JobStatus.IMPLEMENTING,
    JobStatus.REVIEW,
})

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.DONE,
    JobStatus.FAILED,
})


class Job(BaseModel):
    """One feature request moving through the pipeline."""
    id: str
    owner_id: str
    title: str = ""
    status: JobStatus = JobStatus.DRAFTING
    brief_markdown: str | None = None
    spec_markdown: str | None = None
    plan_markdown: str | None = None
    tests_markdown: str | None = None
    security_review_markdown: str | None = None
    code_review_markdown: str | None = None
    spec_recommendation: str | None = None
    plan_recommendation: str | None = None
    tests_recommendation: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# Columns that steps and lifecycle operations may write.
JOB_WRITABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "status",
    "brief_markdown",
    "spec_markdown",
    "plan_markdown",
    "tests_markdown",
    "security_review_markdown",
    "code_review_markdown",
    "spec_recommendation",
    "plan_recommendation",
    "tests_recommendation",
    "error_message",
})


class JobSummary(BaseModel):
    """Listing row for a job."""
    id: str
    title: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AgentRun(BaseModel):
    """Audit record of one model call."""
    job_id: str
    owner_id: str
    agent_name: str
    status: str = Field(pattern=r"^(success|failed)$")
    input_tokens: int = 0
    output_tokens: int = 0
    error_message: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ArtifactRecord(BaseModel):
    """Catalogue entry for a stored generated file."""
    job_id: str
    owner_id: str
    file_path: str
    storage_key: str
    size_bytes: int = 0
    content_hash: str
    artifact_type: str = Field(
        default="implementation",
        pattern=r"^(implementation|test|review)$",
    )

    model_config = {"from_attributes": True}


class CreateJobRequest(BaseModel):
    """Body of ``POST /api/jobs``."""
    title: str = Field(default="", max_length=200)
    brief_markdown: str | None = None


class ConfirmBriefRequest(BaseModel):
    """Optional body of ``POST /api/jobs/{id}/confirm``."""
    brief_markdown: str | None = Field(default=None, min_length=1)
