"""Tests for SecretStore -- per-owner secrets."""
from __future__ import annotations

from src.persistence.secret_store import SecretStore


class TestSecretStore:
    def test_read_missing(self, secret_store: SecretStore) -> None:
        assert secret_store.read_secret("owner-1", "anthropic_key") is None

    def test_store_and_read(self, secret_store: SecretStore) -> None:
        secret_store.store_secret("owner-1", "anthropic_key", "sk-ant-1")
        assert secret_store.read_secret("owner-1", "anthropic_key") == "sk-ant-1"

    def test_store_replaces(self, secret_store: SecretStore) -> None:
        secret_store.store_secret("owner-1", "anthropic_key", "sk-ant-1")
        secret_store.store_secret("owner-1", "anthropic_key", "sk-ant-2")
        assert secret_store.read_secret("owner-1", "anthropic_key") == "sk-ant-2"

    def test_scoped_to_owner(self, secret_store: SecretStore) -> None:
        secret_store.store_secret("owner-1", "anthropic_key", "sk-ant-1")
        assert secret_store.read_secret("owner-2", "anthropic_key") is None

    def test_empty_value_reads_as_missing(self, secret_store: SecretStore) -> None:
        secret_store.store_secret("owner-1", "anthropic_key", "")
        assert secret_store.read_secret("owner-1", "anthropic_key") is None

    def test_delete(self, secret_store: SecretStore) -> None:
        secret_store.store_secret("owner-1", "anthropic_key", "sk-ant-1")
        assert secret_store.delete_secret("owner-1", "anthropic_key") is True
        assert secret_store.delete_secret("owner-1", "anthropic_key") is False
        assert secret_store.read_secret("owner-1", "anthropic_key") is None
