"""Periodic safety net that fails jobs stuck in a processing status.

A step that crashed the worker, or whose completion message was lost,
leaves its job in a ``*_generating``, ``implementing`` or ``review``
status forever.  The sweep fails such jobs once their last update is
older than the threshold.  Each write is conditional on the status still
being the stale value, so a job that finished between the read and the
write is left alone.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from src.persistence.job_store import JobStore, UpdateResult
from src.shared.constants import STUCK_THRESHOLD_MINUTES
from src.shared.models.jobs import PROCESSING_STATUSES, JobStatus

logger = logging.getLogger(__name__)


def timeout_message(status: str, threshold_minutes: int) -> str:
    return (
        f'Pipeline timed out after {threshold_minutes} minutes in "{status}" status. '
        'Use "Retry from last checkpoint" to try again.'
    )


@dataclass(frozen=True)
class SweepOutcome:
    """What happened to one stale job."""
    job_id: str
    status: str
    result: UpdateResult | None
    error: str | None = None

    @property
    def recovered(self) -> bool:
        return self.result is UpdateResult.OK


class StuckJobSweeper:
    """Fails jobs whose processing step has gone quiet.

    Args:
        store: Job store.
        threshold_minutes: Age of the last update after which a job in a
            processing status counts as stuck.
    """

    def __init__(self, store: JobStore, threshold_minutes: int = STUCK_THRESHOLD_MINUTES) -> None:
        self._store = store
        self._threshold_minutes = threshold_minutes

    @property
    def threshold_minutes(self) -> int:
        return self._threshold_minutes

    def sweep(self, now: datetime | None = None) -> list[SweepOutcome]:
        """Run one pass and return an outcome per stale job found."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self._threshold_minutes)
        stale = self._store.list_stale_jobs(PROCESSING_STATUSES, cutoff)
        if not stale:
            logger.debug("Stuck-job sweep found nothing older than %s", cutoff.isoformat())
            return []

        logger.info("Stuck-job sweep found %d stale job(s)", len(stale))
        outcomes = []
        for job in stale:
            status = job.status.value
            try:
                result = self._store.update_job(
                    job.id,
                    {
                        "status": JobStatus.FAILED,
                        "error_message": timeout_message(status, self._threshold_minutes),
                    },
                    expected_status=job.status,
                )
            except Exception as exc:
                logger.error("Failed to recover stuck job %s: %s", job.id, exc)
                outcomes.append(SweepOutcome(job.id, status, None, str(exc)))
                continue

            if result is UpdateResult.OK:
                logger.warning(
                    "Recovered stuck job %s from %s (last update %s)",
                    job.id, status, job.updated_at.isoformat(),
                    extra={"event": "pipeline.stuck_recovery"},
                )
            else:
                logger.info(
                    "Skipped stuck job %s: status moved on from %s (%s)",
                    job.id, status, result.value,
                )
            outcomes.append(SweepOutcome(job.id, status, result))
        return outcomes

    async def run_forever(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        """Sweep every *interval_seconds* until *stop_event* is set."""
        logger.info(
            "Stuck-job sweeper running every %ss (threshold %d minutes)",
            interval_seconds, self._threshold_minutes,
        )
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as exc:
                logger.error("Stuck-job sweep failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Stuck-job sweeper stopped")
