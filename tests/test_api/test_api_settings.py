"""Tests for the /api/settings routes."""
from __future__ import annotations

from src.shared.constants import API_KEY_SECRET_NAME


class TestApiKey:
    def test_store_trims_and_saves(self, api_client, owner_headers):
        response = api_client.put(
            "/api/settings/api-key", json={"api_key": "  sk-ant-123  "}, headers=owner_headers
        )

        assert response.status_code == 204
        secrets = api_client.app.state.runtime.secrets
        assert secrets.read_secret("owner-1", API_KEY_SECRET_NAME) == "sk-ant-123"

    def test_store_replaces_existing_key(self, api_client, owner_headers):
        api_client.put("/api/settings/api-key", json={"api_key": "first"}, headers=owner_headers)
        api_client.put("/api/settings/api-key", json={"api_key": "second"}, headers=owner_headers)

        secrets = api_client.app.state.runtime.secrets
        assert secrets.read_secret("owner-1", API_KEY_SECRET_NAME) == "second"

    def test_blank_key_is_rejected(self, api_client, owner_headers):
        response = api_client.put(
            "/api/settings/api-key", json={"api_key": "   "}, headers=owner_headers
        )
        assert response.status_code == 422
        assert response.json() == {"detail": "API key must not be empty"}

    def test_missing_key_field_is_rejected(self, api_client, owner_headers):
        response = api_client.put("/api/settings/api-key", json={}, headers=owner_headers)
        assert response.status_code == 422

    def test_delete(self, api_client, owner_headers):
        api_client.put("/api/settings/api-key", json={"api_key": "sk"}, headers=owner_headers)

        response = api_client.delete("/api/settings/api-key", headers=owner_headers)

        assert response.status_code == 204
        secrets = api_client.app.state.runtime.secrets
        assert secrets.read_secret("owner-1", API_KEY_SECRET_NAME) is None

    def test_delete_without_key_is_not_found(self, api_client, owner_headers):
        response = api_client.delete("/api/settings/api-key", headers=owner_headers)
        assert response.status_code == 404
        assert response.json() == {"detail": "No API key stored"}

    def test_keys_are_per_owner(self, api_client, owner_headers):
        api_client.put("/api/settings/api-key", json={"api_key": "sk"}, headers=owner_headers)
        response = api_client.delete(
            "/api/settings/api-key", headers={"X-Owner-Id": "owner-2"}
        )
        assert response.status_code == 404

    def test_requires_owner(self, api_client):
        response = api_client.put("/api/settings/api-key", json={"api_key": "sk"})
        assert response.status_code == 401
