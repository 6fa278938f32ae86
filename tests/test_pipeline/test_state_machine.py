"""Tests for the job state machine."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.pipeline.state_machine import STATES, TRIGGERS, next_status
from src.shared.models.jobs import GATE_STATUSES, TERMINAL_STATUSES, Job, JobStatus

PASS = "Looks good.\nVERDICT: PASS"
FAIL = "Problems.\nVERDICT: FAIL"


def _job(status: JobStatus, **fields) -> Job:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return Job(id="job-1", owner_id="owner-1", status=status, created_at=now, updated_at=now, **fields)


class TestForwardPath:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, trigger, expected",
        [
            (JobStatus.DRAFTING, "confirm_brief", JobStatus.SPEC_GENERATING),
            (JobStatus.SPEC_GENERATING, "spec_generated", JobStatus.SPEC_READY),
            (JobStatus.SPEC_READY, "approve_spec", JobStatus.PLAN_GENERATING),
            (JobStatus.PLAN_GENERATING, "plan_generated", JobStatus.PLAN_READY),
            (JobStatus.PLAN_READY, "approve_plan", JobStatus.TESTS_GENERATING),
            (JobStatus.TESTS_GENERATING, "tests_generated", JobStatus.TESTS_READY),
            (JobStatus.TESTS_READY, "approve_tests", JobStatus.IMPLEMENTING),
        ],
    )
    async def test_unguarded_transitions(self, status, trigger, expected):
        assert await next_status(_job(status), trigger) is expected

    @pytest.mark.asyncio
    async def test_trigger_from_wrong_status_rejected(self):
        assert await next_status(_job(JobStatus.DRAFTING), "approve_spec") is None
        assert await next_status(_job(JobStatus.PLAN_READY), "approve_spec") is None


class TestGuards:
    @pytest.mark.asyncio
    async def test_implementation_requires_files(self):
        job = _job(JobStatus.IMPLEMENTING)
        assert await next_status(job, "implementation_done", generated_files=0) is None
        assert await next_status(job, "implementation_done", generated_files=3) is JobStatus.REVIEW

    @pytest.mark.asyncio
    async def test_reviews_passed_requires_both(self):
        assert await next_status(
            _job(JobStatus.REVIEW, security_review_markdown=PASS, code_review_markdown=PASS),
            "reviews_passed",
        ) is JobStatus.DONE
        assert await next_status(
            _job(JobStatus.REVIEW, security_review_markdown=PASS, code_review_markdown=FAIL),
            "reviews_passed",
        ) is None
        assert await next_status(
            _job(JobStatus.REVIEW, security_review_markdown=PASS), "reviews_passed"
        ) is None


class TestRevise:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", sorted(GATE_STATUSES, key=lambda s: s.value))
    async def test_from_each_gate(self, status):
        assert await next_status(_job(status), "revise") is JobStatus.SPEC_GENERATING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [JobStatus.DRAFTING, JobStatus.IMPLEMENTING, JobStatus.DONE])
    async def test_rejected_elsewhere(self, status):
        assert await next_status(_job(status), "revise") is None


class TestRetry:
    @pytest.mark.asyncio
    async def test_rolls_back_to_latest_checkpoint(self):
        job = _job(JobStatus.FAILED, spec_markdown="s", plan_markdown="p", tests_markdown="t")
        assert await next_status(job, "retry") is JobStatus.TESTS_READY

    @pytest.mark.asyncio
    async def test_plan_checkpoint(self):
        job = _job(JobStatus.FAILED, spec_markdown="s", plan_markdown="p")
        assert await next_status(job, "retry") is JobStatus.PLAN_READY

    @pytest.mark.asyncio
    async def test_spec_checkpoint(self):
        assert await next_status(_job(JobStatus.FAILED, spec_markdown="s"), "retry") is JobStatus.SPEC_READY

    @pytest.mark.asyncio
    async def test_nothing_produced(self):
        assert await next_status(_job(JobStatus.FAILED), "retry") is JobStatus.DRAFTING

    @pytest.mark.asyncio
    async def test_empty_string_counts_as_produced(self):
        job = _job(JobStatus.FAILED, spec_markdown="")
        assert await next_status(job, "retry") is JobStatus.SPEC_READY

    @pytest.mark.asyncio
    async def test_only_from_failed(self):
        assert await next_status(_job(JobStatus.DONE, tests_markdown="t"), "retry") is None


class TestFail:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [s for s in JobStatus if s not in TERMINAL_STATUSES], ids=lambda s: s.value
    )
    async def test_from_any_non_terminal(self, status):
        assert await next_status(_job(status), "fail") is JobStatus.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    async def test_terminal_statuses_absorb(self, status):
        assert await next_status(_job(status), "fail") is None


class TestTables:
    def test_eleven_states(self):
        assert [s.name for s in STATES] == [s.value for s in JobStatus]

    @pytest.mark.asyncio
    async def test_unknown_trigger(self):
        assert "deploy" not in TRIGGERS
        with pytest.raises(ValueError, match="Unknown trigger"):
            await next_status(_job(JobStatus.DRAFTING), "deploy")
