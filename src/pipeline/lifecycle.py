"""User-triggered job transitions: confirm, approve, revise and retry.

Each operation loads the job, checks that the caller owns it, asks the
state machine where the trigger leads, writes the new status with a
compare-and-swap against the status it read, and enqueues the step that
the new status calls for.  A rejected transition raises
:class:`InvalidTransitionError` and writes nothing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.persistence.artifacts import ArtifactRepository
from src.persistence.job_store import JobStore, UpdateResult
from src.pipeline.exceptions import InvalidTransitionError, JobNotFoundError
from src.pipeline.messages import PipelineMessage, StepType
from src.pipeline.queue import PipelineQueue
from src.pipeline.state_machine import next_status
from src.shared.models.jobs import Job, JobStatus

logger = logging.getLogger(__name__)

# Step that starts when a job enters each processing status via a user action.
STEP_FOR_STATUS: dict[JobStatus, StepType] = {
    JobStatus.SPEC_GENERATING: StepType.GENERATE_SPEC,
    JobStatus.PLAN_GENERATING: StepType.GENERATE_PLAN,
    JobStatus.TESTS_GENERATING: StepType.GENERATE_TESTS,
    JobStatus.IMPLEMENTING: StepType.IMPLEMENT,
}

# Deliverables in production order, each with the columns it owns.
_DELIVERABLE_COLUMNS: list[tuple[str, ...]] = [
    ("spec_markdown", "spec_recommendation"),
    ("plan_markdown", "plan_recommendation"),
    ("tests_markdown", "tests_recommendation"),
    ("security_review_markdown", "code_review_markdown"),
]

# Index of the first deliverable that must be cleared when landing on a status.
_FIRST_CLEARED: dict[JobStatus, int] = {
    JobStatus.DRAFTING: 0,
    JobStatus.SPEC_GENERATING: 0,
    JobStatus.SPEC_READY: 1,
    JobStatus.PLAN_READY: 2,
    JobStatus.TESTS_READY: 3,
}

_REJECTION_MESSAGES: dict[str, str] = {
    "confirm_brief": "Feature is not in drafting status",
    "approve_spec": "Feature specification is not ready for approval",
    "approve_plan": "Feature plan is not ready for approval",
    "approve_tests": "Feature tests are not ready for approval",
    "revise": "Feature is not awaiting approval",
    "retry": "Only failed features can be retried",
}


def downstream_fields(status: JobStatus) -> dict[str, None]:
    """Columns to null out when a job is rewound or rolled back to *status*.

    Always includes ``error_message``.  Generated files are cleared
    separately through the artifact repository.
    """
    first = _FIRST_CLEARED[status]
    cleared: dict[str, None] = {"error_message": None}
    for columns in _DELIVERABLE_COLUMNS[first:]:
        for column in columns:
            cleared[column] = None
    return cleared


class JobLifecycle:
    """Applies user actions to jobs.

    Args:
        store: Job store.
        artifacts: Generated-file repository, cleared on rewind/rollback.
        queue: Destination for the next step message.
    """

    def __init__(
        self, store: JobStore, artifacts: ArtifactRepository, queue: PipelineQueue
    ) -> None:
        self._store = store
        self._artifacts = artifacts
        self._queue = queue

    async def confirm_brief(
        self, job_id: str, owner_id: str, brief_markdown: str | None = None
    ) -> Job:
        """Start the pipeline for a drafted job."""
        fields: dict[str, Any] = {}
        if brief_markdown is not None:
            fields["brief_markdown"] = brief_markdown
        return await self._apply(job_id, owner_id, "confirm_brief", fields)

    async def approve_spec(self, job_id: str, owner_id: str) -> Job:
        return await self._apply(job_id, owner_id, "approve_spec")

    async def approve_plan(self, job_id: str, owner_id: str) -> Job:
        return await self._apply(job_id, owner_id, "approve_plan")

    async def approve_tests(self, job_id: str, owner_id: str) -> Job:
        return await self._apply(job_id, owner_id, "approve_tests")

    async def revise(self, job_id: str, owner_id: str) -> Job:
        """Regenerate the specification from a gate, discarding later work."""
        return await self._apply(job_id, owner_id, "revise", clear_downstream=True)

    async def retry(self, job_id: str, owner_id: str) -> Job:
        """Roll a failed job back to its most recent intact checkpoint."""
        return await self._apply(job_id, owner_id, "retry", clear_downstream=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, job_id: str, owner_id: str) -> Job:
        job = await asyncio.to_thread(self._store.get_job, job_id)
        if job is None or job.owner_id != owner_id:
            raise JobNotFoundError(job_id)
        return job

    async def _apply(
        self,
        job_id: str,
        owner_id: str,
        trigger: str,
        fields: dict[str, Any] | None = None,
        clear_downstream: bool = False,
    ) -> Job:
        job = await self._load(job_id, owner_id)
        rejection = _REJECTION_MESSAGES[trigger]

        target = await next_status(job, trigger)
        if target is None:
            logger.info(
                "Rejected %s for job %s in status %s", trigger, job_id, job.status.value
            )
            raise InvalidTransitionError(job_id, trigger, job.status.value, rejection)

        update: dict[str, Any] = {}
        if clear_downstream:
            update.update(downstream_fields(target))
        update.update(fields or {})
        update["status"] = target

        result = await asyncio.to_thread(self._store.update_job, job_id, update, job.status)
        if result is UpdateResult.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result is UpdateResult.MISMATCH:
            logger.info("Status of job %s changed during %s; write rejected", job_id, trigger)
            raise InvalidTransitionError(job_id, trigger, job.status.value, rejection)

        if clear_downstream:
            await asyncio.to_thread(self._artifacts.clear_job, owner_id, job_id)

        logger.info(
            "Job %s moved %s -> %s via %s", job_id, job.status.value, target.value, trigger
        )

        step = STEP_FOR_STATUS.get(target)
        if step is not None:
            await self._queue.send(PipelineMessage(
                type=step,
                job_id=job_id,
                owner_id=owner_id,
                title=job.title if step is StepType.GENERATE_SPEC else None,
            ))

        updated = await asyncio.to_thread(self._store.get_job, job_id)
        if updated is None:
            raise JobNotFoundError(job_id)
        return updated
