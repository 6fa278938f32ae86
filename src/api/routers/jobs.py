"""Job router: creation, reads and the user actions that move a job."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

from fastapi import APIRouter, Depends

from src.api.dependencies import get_owner_id, get_runtime
from src.pipeline.exceptions import InvalidTransitionError, JobNotFoundError
from src.pipeline.runtime import PipelineRuntime
from src.shared.errors import ConflictError, NotFoundError
from src.shared.models.jobs import ConfirmBriefRequest, CreateJobRequest, Job, JobSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


async def _act(action: Awaitable[Job]) -> Job:
    """Await a lifecycle action, mapping pipeline errors to HTTP errors."""
    try:
        return await action
    except JobNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except InvalidTransitionError as exc:
        raise ConflictError(str(exc)) from exc


@router.get("")
async def list_jobs(
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> list[JobSummary]:
    jobs = await asyncio.to_thread(runtime.jobs.list_jobs, owner_id)
    return [JobSummary.model_validate(job.model_dump()) for job in jobs]


@router.post("", status_code=201)
async def create_job(
    body: CreateJobRequest,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    """Create a job in ``drafting`` status."""
    return await asyncio.to_thread(
        runtime.jobs.create_job, owner_id, body.title, body.brief_markdown
    )


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    job = await asyncio.to_thread(runtime.jobs.get_job, job_id)
    if job is None or job.owner_id != owner_id:
        raise NotFoundError("Feature not found")
    return job


@router.post("/{job_id}/confirm")
async def confirm_brief(
    job_id: str,
    body: ConfirmBriefRequest | None = None,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    """Confirm the brief and start specification generation."""
    brief = body.brief_markdown if body else None
    return await _act(runtime.lifecycle.confirm_brief(job_id, owner_id, brief))


@router.post("/{job_id}/approve-spec")
async def approve_spec(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    return await _act(runtime.lifecycle.approve_spec(job_id, owner_id))


@router.post("/{job_id}/approve-plan")
async def approve_plan(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    return await _act(runtime.lifecycle.approve_plan(job_id, owner_id))


@router.post("/{job_id}/approve-tests")
async def approve_tests(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    return await _act(runtime.lifecycle.approve_tests(job_id, owner_id))


@router.post("/{job_id}/revise")
async def revise(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    """Send a job waiting at a gate back to specification generation."""
    return await _act(runtime.lifecycle.revise(job_id, owner_id))


@router.post("/{job_id}/retry")
async def retry(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Job:
    """Roll a failed job back to its last intact checkpoint."""
    return await _act(runtime.lifecycle.retry(job_id, owner_id))
