"""Job storage layer with compare-and-swap status updates."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from src.pipeline.exceptions import PersistenceError
from src.shared.db.connection import ConnectionPool
from src.shared.models.jobs import JOB_WRITABLE_FIELDS, Job, JobStatus
from src.shared.utils import to_iso

logger = logging.getLogger(__name__)


class UpdateResult(str, Enum):
    """Outcome of :meth:`JobStore.update_job`."""
    OK = "ok"
    NOT_FOUND = "not_found"
    MISMATCH = "mismatch"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """Persists and retrieves jobs from the ``jobs`` table.

    Every write refreshes ``updated_at``, which is what the stuck-job sweep
    measures staleness against.  Timestamps are stored as UTC ISO-8601
    strings so they order correctly as text.

    Args:
        pool: Shared connection pool.
        clock: Source of the current time.
    """

    def __init__(
        self, pool: ConnectionPool, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._pool = pool
        self._clock = clock

    def create_job(
        self,
        owner_id: str,
        title: str = "",
        brief_markdown: str | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Insert a new job in ``drafting`` status and return it."""
        job_id = job_id or str(uuid.uuid4())
        now = to_iso(self._clock())
        try:
            with self._pool.transaction() as conn:
                conn.execute(
                    """INSERT INTO jobs (id, owner_id, title, status, brief_markdown,
                                         created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (job_id, owner_id, title, JobStatus.DRAFTING.value, brief_markdown, now, now),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to create job: {exc}") from exc
        logger.info("Created job %s for owner %s", job_id, owner_id)
        job = self.get_job(job_id)
        assert job is not None
        return job

    def get_job(self, job_id: str) -> Job | None:
        """Return the job, or ``None`` when it does not exist."""
        try:
            row = self._pool.get().execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read job: {exc}") from exc
        if row is None:
            return None
        return Job.model_validate(dict(row))

    def list_jobs(self, owner_id: str) -> list[Job]:
        """Return the owner's jobs, newest first."""
        try:
            rows = self._pool.get().execute(
                "SELECT * FROM jobs WHERE owner_id = ? ORDER BY created_at DESC",
                (owner_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list jobs: {exc}") from exc
        return [Job.model_validate(dict(r)) for r in rows]

    def update_job(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        expected_status: JobStatus | str | None = None,
    ) -> UpdateResult:
        """Write *fields* to a job.

        When *expected_status* is given the write only applies if the stored
        status still equals it at write time.

        Args:
            job_id: Job to update.
            fields: Column values; keys must be writable job columns.
            expected_status: Optional compare-and-swap guard.

        Returns:
            ``OK`` when the row was written, ``NOT_FOUND`` when no such job
            exists, ``MISMATCH`` when the status guard rejected the write.

        Raises:
            ValueError: If *fields* names a column that cannot be written.
            PersistenceError: If the database rejects the statement.
        """
        unknown = set(fields) - JOB_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        values = {k: _column_value(v) for k, v in fields.items()}
        values["updated_at"] = to_iso(self._clock())
        assignments = ", ".join(f"{column} = ?" for column in values)
        params: list[Any] = list(values.values())

        sql = f"UPDATE jobs SET {assignments} WHERE id = ?"
        params.append(job_id)
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(_column_value(expected_status))

        try:
            with self._pool.transaction() as conn:
                cursor = conn.execute(sql, params)
                if cursor.rowcount:
                    return UpdateResult.OK
                exists = conn.execute(
                    "SELECT 1 FROM jobs WHERE id = ?", (job_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

        return UpdateResult.MISMATCH if exists else UpdateResult.NOT_FOUND

    def list_stale_jobs(
        self, statuses: Iterable[JobStatus | str], cutoff: datetime
    ) -> list[Job]:
        """Return jobs in *statuses* whose last update is older than *cutoff*."""
        status_values = [_column_value(s) for s in statuses]
        if not status_values:
            return []
        placeholders = ", ".join("?" for _ in status_values)
        try:
            rows = self._pool.get().execute(
                f"""SELECT * FROM jobs
                    WHERE status IN ({placeholders}) AND updated_at < ?
                    ORDER BY updated_at""",
                (*status_values, to_iso(cutoff)),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list stale jobs: {exc}") from exc
        return [Job.model_validate(dict(r)) for r in rows]


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value
