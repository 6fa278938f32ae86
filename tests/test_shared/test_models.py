"""Tests for the shared Pydantic models."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.shared.models.common import ApiKeyRequest, HealthStatus
from src.shared.models.files import GeneratedFile, GeneratedFileSet
from src.shared.models.jobs import (
    GATE_STATUSES,
    PROCESSING_STATUSES,
    TERMINAL_STATUSES,
    AgentRun,
    CreateJobRequest,
    Job,
    JobStatus,
)


class TestJobStatus:
    def test_eleven_statuses(self):
        assert len(JobStatus) == 11

    def test_status_sets_are_disjoint(self):
        assert not GATE_STATUSES & PROCESSING_STATUSES
        assert not GATE_STATUSES & TERMINAL_STATUSES
        assert not PROCESSING_STATUSES & TERMINAL_STATUSES

    def test_drafting_is_in_no_set(self):
        assert JobStatus.DRAFTING not in GATE_STATUSES | PROCESSING_STATUSES | TERMINAL_STATUSES


class TestJob:
    def test_parses_iso_timestamps(self):
        job = Job(
            id="j1",
            owner_id="o1",
            status="spec_ready",
            created_at="2026-01-01T00:00:00+00:00",
            updated_at="2026-01-01T00:05:00+00:00",
        )
        assert job.status is JobStatus.SPEC_READY
        assert job.updated_at == datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc)
        assert job.spec_markdown is None


class TestGeneratedFile:
    def test_accepts_nested_path(self):
        f = GeneratedFile(path="src/app/routes.py", content="print('hi')\n")
        assert f.path == "src/app/routes.py"

    @pytest.mark.parametrize(
        "path, message",
        [
            ("", "Must not be empty"),
            ("/etc/passwd", "Must start with alphanumeric"),
            (".env", "Must start with alphanumeric"),
            ("src/../secrets.txt", 'Must not contain ".."'),
            ("src\\..\\secrets.txt", 'Must not contain ".."'),
            ("a" * 501, "Must be at most 500 characters"),
            ("src//app.ts", 'Must not contain empty or "." segments'),
            ("src/./app.ts", 'Must not contain empty or "." segments'),
            ("src/", 'Must not contain empty or "." segments'),
        ],
    )
    def test_rejects_bad_paths(self, path, message):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFile(path=path, content="x")
        assert exc_info.value.errors()[0]["msg"] == message

    def test_allows_double_dot_inside_segment(self):
        assert GeneratedFile(path="docs/v1..v2.md", content="x").path == "docs/v1..v2.md"

    def test_rejects_empty_content(self):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFile(path="a.py", content="")
        assert exc_info.value.errors()[0]["msg"] == "Must not be empty"


class TestGeneratedFileSet:
    def test_requires_one_file(self):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFileSet(files=[])
        assert exc_info.value.errors()[0]["msg"] == "At least one file required"

    def test_rejects_duplicate_paths(self):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFileSet(files=[
                {"path": "a.py", "content": "1"},
                {"path": "a.py", "content": "2"},
            ])
        assert exc_info.value.errors()[0]["msg"] == "No duplicate paths"

    def test_rejects_paths_equal_after_normalising(self):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFileSet(files=[
                {"path": "src/a.py", "content": "1"},
                {"path": "src\\a.py", "content": "2"},
            ])
        assert exc_info.value.errors()[0]["msg"] == "No duplicate paths"

    def test_rejects_file_used_as_directory(self):
        with pytest.raises(ValidationError) as exc_info:
            GeneratedFileSet(files=[
                {"path": "src", "content": "1"},
                {"path": "src/a.py", "content": "2"},
            ])
        assert exc_info.value.errors()[0]["msg"] == 'Path "src" is also used as a directory by "src/a.py"'


class TestRequestModels:
    def test_create_job_title_limit(self):
        with pytest.raises(ValidationError):
            CreateJobRequest(title="x" * 201)

    def test_api_key_required(self):
        with pytest.raises(ValidationError):
            ApiKeyRequest(api_key="")

    def test_agent_run_status_pattern(self):
        with pytest.raises(ValidationError):
            AgentRun(job_id="j", owner_id="o", agent_name="spec", status="running")


class TestHealthStatus:
    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            HealthStatus(status="sleepy", service_name="s", version="1", uptime_seconds=0.0)
