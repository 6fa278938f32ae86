"""Per-owner settings router: the provider API key."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Response

from src.api.dependencies import get_owner_id, get_runtime
from src.pipeline.runtime import PipelineRuntime
from src.shared.constants import API_KEY_SECRET_NAME
from src.shared.errors import NotFoundError, ValidationError
from src.shared.models.common import ApiKeyRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.put("/api-key", status_code=204)
async def store_api_key(
    body: ApiKeyRequest,
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Response:
    api_key = body.api_key.strip()
    if not api_key:
        raise ValidationError("API key must not be empty")
    await asyncio.to_thread(
        runtime.secrets.store_secret, owner_id, API_KEY_SECRET_NAME, api_key
    )
    return Response(status_code=204)


@router.delete("/api-key", status_code=204)
async def delete_api_key(
    owner_id: str = Depends(get_owner_id),
    runtime: PipelineRuntime = Depends(get_runtime),
) -> Response:
    deleted = await asyncio.to_thread(
        runtime.secrets.delete_secret, owner_id, API_KEY_SECRET_NAME
    )
    if not deleted:
        raise NotFoundError("No API key stored")
    logger.info("Deleted API key for owner %s", owner_id)
    return Response(status_code=204)
