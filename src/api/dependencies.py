"""Request dependencies shared by the routers."""
from __future__ import annotations

from fastapi import Header, Request

from src.pipeline.runtime import PipelineRuntime
from src.shared.errors import UnauthorizedError


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Caller identity from the ``X-Owner-Id`` header.

    Authentication happens in front of this service; the header carries
    the already-verified user id.
    """
    if not x_owner_id or not x_owner_id.strip():
        raise UnauthorizedError("Missing X-Owner-Id header")
    return x_owner_id.strip()


def get_runtime(request: Request) -> PipelineRuntime:
    return request.app.state.runtime
