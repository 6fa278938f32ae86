"""Tests for shared error classes and exception handlers."""
from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.shared.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    register_exception_handlers,
)


class TestAppError:
    """Tests for the base AppError exception."""

    def test_default_status_code(self):
        err = AppError(detail="something broke")
        assert err.status_code == 500
        assert err.detail == "something broke"

    def test_str_is_detail(self):
        assert str(AppError(detail="human readable")) == "human readable"


class TestSubclasses:
    @pytest.mark.parametrize(
        "cls, status, default",
        [
            (ValidationError, 422, "Validation error"),
            (NotFoundError, 404, "Resource not found"),
            (ConflictError, 409, "Conflict"),
            (UnauthorizedError, 401, "Unauthorized"),
        ],
    )
    def test_status_and_default_detail(self, cls, status, default):
        err = cls()
        assert err.status_code == status
        assert err.detail == default
        assert isinstance(err, AppError)


class TestExceptionHandlers:
    """AppError subclasses render as ``{"detail": ...}`` with their status."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/missing")
        async def missing():
            raise NotFoundError("Feature not found")

        @app.get("/conflict")
        async def conflict():
            raise ConflictError("Feature is not in drafting status")

        return TestClient(app)

    def test_not_found(self, client: TestClient):
        response = client.get("/missing")
        assert response.status_code == 404
        assert response.json() == {"detail": "Feature not found"}

    def test_conflict(self, client: TestClient):
        response = client.get("/conflict")
        assert response.status_code == 409
        assert response.json() == {"detail": "Feature is not in drafting status"}
