"""Queue message schema for pipeline steps."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class StepType(str, Enum):
    """The seven step kinds carried on the queue."""
    GENERATE_SPEC = "generate-spec"
    GENERATE_PLAN = "generate-plan"
    GENERATE_TESTS = "generate-tests"
    IMPLEMENT = "implement"
    SECURITY_REVIEW = "security-review"
    CODE_REVIEW = "code-review"
    RESOLVE_VERDICT = "resolve-verdict"


class PipelineMessage(BaseModel):
    """One step of one job.

    Serialised with the wire field names ``type``, ``jobId``, ``ownerId``
    and the optional ``title``.
    """
    type: StepType
    job_id: str = Field(alias="jobId", min_length=1)
    owner_id: str = Field(alias="ownerId", min_length=1)
    title: str | None = None

    model_config = {"populate_by_name": True, "frozen": True}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, payload: str | bytes) -> "PipelineMessage":
        return cls.model_validate_json(payload)
