"""Tests for JobStore -- job rows and compare-and-swap updates."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.persistence.job_store import JobStore, UpdateResult
from src.pipeline.exceptions import PersistenceError
from src.shared.db.connection import ConnectionPool
from src.shared.models.jobs import JobStatus


class _Clock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> _Clock:
    return _Clock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(connection_pool: ConnectionPool, clock: _Clock) -> JobStore:
    return JobStore(connection_pool, clock=clock)


class TestCreateAndRead:
    def test_create_job_defaults(self, store: JobStore) -> None:
        job = store.create_job("owner-1", title="Invites", brief_markdown="# Brief")
        assert job.status is JobStatus.DRAFTING
        assert job.owner_id == "owner-1"
        assert job.brief_markdown == "# Brief"
        assert job.created_at == job.updated_at

    def test_create_job_with_explicit_id(self, store: JobStore) -> None:
        job = store.create_job("owner-1", job_id="fixed-id")
        assert job.id == "fixed-id"

    def test_get_missing_job(self, store: JobStore) -> None:
        assert store.get_job("missing") is None

    def test_list_jobs_newest_first_and_scoped(self, store: JobStore, clock: _Clock) -> None:
        first = store.create_job("owner-1", title="first")
        clock.advance(minutes=1)
        second = store.create_job("owner-1", title="second")
        store.create_job("owner-2", title="foreign")

        assert [j.id for j in store.list_jobs("owner-1")] == [second.id, first.id]

    def test_duplicate_id_raises_persistence_error(self, store: JobStore) -> None:
        store.create_job("owner-1", job_id="dup")
        with pytest.raises(PersistenceError):
            store.create_job("owner-1", job_id="dup")


class TestUpdateJob:
    def test_unconditional_update(self, store: JobStore, clock: _Clock) -> None:
        job = store.create_job("owner-1")
        clock.advance(seconds=30)

        result = store.update_job(job.id, {"spec_markdown": "# Spec", "status": JobStatus.SPEC_READY})

        assert result is UpdateResult.OK
        updated = store.get_job(job.id)
        assert updated.spec_markdown == "# Spec"
        assert updated.status is JobStatus.SPEC_READY
        assert updated.updated_at == clock.now

    def test_compare_and_swap_matches(self, store: JobStore) -> None:
        job = store.create_job("owner-1")
        result = store.update_job(
            job.id, {"status": JobStatus.SPEC_GENERATING}, expected_status=JobStatus.DRAFTING
        )
        assert result is UpdateResult.OK

    def test_compare_and_swap_mismatch_writes_nothing(self, store: JobStore) -> None:
        job = store.create_job("owner-1")
        result = store.update_job(
            job.id,
            {"status": JobStatus.FAILED, "error_message": "late"},
            expected_status=JobStatus.REVIEW,
        )
        assert result is UpdateResult.MISMATCH
        unchanged = store.get_job(job.id)
        assert unchanged.status is JobStatus.DRAFTING
        assert unchanged.error_message is None

    def test_missing_job(self, store: JobStore) -> None:
        assert store.update_job("nope", {"title": "x"}) is UpdateResult.NOT_FOUND

    def test_expected_status_accepts_plain_string(self, store: JobStore) -> None:
        job = store.create_job("owner-1")
        assert store.update_job(job.id, {"title": "t"}, expected_status="drafting") is UpdateResult.OK

    def test_unknown_field_rejected(self, store: JobStore) -> None:
        job = store.create_job("owner-1")
        with pytest.raises(ValueError, match="owner_id"):
            store.update_job(job.id, {"owner_id": "someone-else"})

    def test_null_clears_column(self, store: JobStore) -> None:
        job = store.create_job("owner-1")
        store.update_job(job.id, {"plan_markdown": "# Plan"})
        store.update_job(job.id, {"plan_markdown": None})
        assert store.get_job(job.id).plan_markdown is None


class TestListStaleJobs:
    def test_returns_only_old_jobs_in_given_statuses(self, store: JobStore, clock: _Clock) -> None:
        old = store.create_job("owner-1")
        store.update_job(old.id, {"status": JobStatus.IMPLEMENTING})
        gate = store.create_job("owner-1")
        store.update_job(gate.id, {"status": JobStatus.SPEC_READY})
        clock.advance(minutes=15)
        fresh = store.create_job("owner-1")
        store.update_job(fresh.id, {"status": JobStatus.REVIEW})

        cutoff = clock.now - timedelta(minutes=10)
        stale = store.list_stale_jobs([JobStatus.IMPLEMENTING, JobStatus.REVIEW], cutoff)

        assert [j.id for j in stale] == [old.id]

    def test_empty_status_list(self, store: JobStore) -> None:
        assert store.list_stale_jobs([], datetime.now(timezone.utc)) == []
