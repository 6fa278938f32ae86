"""Tests for the /api/jobs routes."""
from __future__ import annotations

from fastapi.testclient import TestClient

from src.pipeline.messages import PipelineMessage, StepType
from src.shared.models.jobs import JobStatus


def _create(client: TestClient, headers: dict[str, str], **body) -> dict:
    payload = {"title": "Team invites", "brief_markdown": "# Brief"}
    payload.update(body)
    response = client.post("/api/jobs", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


def _runtime(client: TestClient):
    return client.app.state.runtime


class TestOwnerHeader:
    def test_missing_header_is_unauthorized(self, api_client):
        response = api_client.get("/api/jobs")
        assert response.status_code == 401
        assert response.json() == {"detail": "Missing X-Owner-Id header"}

    def test_blank_header_is_unauthorized(self, api_client):
        response = api_client.get("/api/jobs", headers={"X-Owner-Id": "   "})
        assert response.status_code == 401


class TestCreateAndRead:
    def test_create_returns_drafting_job(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        assert job["status"] == "drafting"
        assert job["owner_id"] == "owner-1"
        assert job["title"] == "Team invites"
        assert job["brief_markdown"] == "# Brief"

    def test_title_too_long_is_rejected(self, api_client, owner_headers):
        response = api_client.post(
            "/api/jobs", json={"title": "x" * 201}, headers=owner_headers
        )
        assert response.status_code == 422

    def test_list_returns_only_own_jobs(self, api_client, owner_headers):
        _create(api_client, owner_headers, title="Mine")
        _create(api_client, {"X-Owner-Id": "owner-2"}, title="Theirs")

        response = api_client.get("/api/jobs", headers=owner_headers)

        assert response.status_code == 200
        assert [j["title"] for j in response.json()] == ["Mine"]

    def test_get_own_job(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.get(f"/api/jobs/{job['id']}", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["id"] == job["id"]

    def test_foreign_job_is_not_found(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.get(f"/api/jobs/{job['id']}", headers={"X-Owner-Id": "owner-2"})
        assert response.status_code == 404
        assert response.json() == {"detail": "Feature not found"}


class TestActions:
    def test_confirm_enqueues_spec_step(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)

        response = api_client.post(f"/api/jobs/{job['id']}/confirm", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "spec_generating"
        queue = _runtime(api_client).queue
        assert queue.pending() == 1
        message = PipelineMessage.from_json(queue._queue.get_nowait().body)
        assert message.type is StepType.GENERATE_SPEC
        assert message.title == "Team invites"

    def test_confirm_with_edited_brief(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.post(
            f"/api/jobs/{job['id']}/confirm",
            json={"brief_markdown": "# Edited"},
            headers=owner_headers,
        )
        assert response.status_code == 200
        assert response.json()["brief_markdown"] == "# Edited"

    def test_second_confirm_conflicts(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        api_client.post(f"/api/jobs/{job['id']}/confirm", headers=owner_headers)

        response = api_client.post(f"/api/jobs/{job['id']}/confirm", headers=owner_headers)

        assert response.status_code == 409
        assert response.json() == {"detail": "Feature is not in drafting status"}
        assert _runtime(api_client).queue.pending() == 1

    def test_approve_from_wrong_status_conflicts(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.post(f"/api/jobs/{job['id']}/approve-spec", headers=owner_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "Feature specification is not ready for approval"

    def test_action_on_foreign_job_is_not_found(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.post(
            f"/api/jobs/{job['id']}/confirm", headers={"X-Owner-Id": "owner-2"}
        )
        assert response.status_code == 404

    def test_action_on_missing_job_is_not_found(self, api_client, owner_headers):
        response = api_client.post("/api/jobs/missing/approve-plan", headers=owner_headers)
        assert response.status_code == 404

    def test_approve_plan_moves_to_tests_generation(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        _runtime(api_client).jobs.update_job(
            job["id"],
            {"status": JobStatus.PLAN_READY, "spec_markdown": "# Spec", "plan_markdown": "# Plan"},
        )

        response = api_client.post(f"/api/jobs/{job['id']}/approve-plan", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "tests_generating"

    def test_revise_clears_later_deliverables(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        _runtime(api_client).jobs.update_job(
            job["id"],
            {"status": JobStatus.PLAN_READY, "spec_markdown": "# Spec", "plan_markdown": "# Plan"},
        )

        response = api_client.post(f"/api/jobs/{job['id']}/revise", headers=owner_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "spec_generating"
        assert body["spec_markdown"] is None
        assert body["plan_markdown"] is None

    def test_retry_requires_failed_job(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        response = api_client.post(f"/api/jobs/{job['id']}/retry", headers=owner_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "Only failed features can be retried"

    def test_retry_returns_to_checkpoint(self, api_client, owner_headers):
        job = _create(api_client, owner_headers)
        _runtime(api_client).jobs.update_job(
            job["id"],
            {"status": JobStatus.FAILED, "spec_markdown": "# Spec", "error_message": "boom"},
        )

        response = api_client.post(f"/api/jobs/{job['id']}/retry", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "spec_ready"
        assert response.json()["error_message"] is None
        assert _runtime(api_client).queue.pending() == 0
