"""Health check router."""
from __future__ import annotations

import asyncio
import sqlite3
import time

from fastapi import APIRouter, Request

from src.shared.constants import API_SERVICE_NAME, VERSION
from src.shared.models.common import HealthStatus

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health(request: Request) -> HealthStatus:
    """Health check endpoint returning service status."""

    def _check() -> HealthStatus:
        pool = request.app.state.pool
        start_time = request.app.state.start_time

        db_status = "connected"
        try:
            pool.get().execute("SELECT 1")
        except (sqlite3.Error, OSError):
            db_status = "disconnected"

        queue = request.app.state.runtime.queue
        return HealthStatus(
            status="healthy" if db_status == "connected" else "degraded",
            service_name=API_SERVICE_NAME,
            version=VERSION,
            database=db_status,
            uptime_seconds=time.time() - start_time,
            details={
                "consumers_running": queue.running,
                "pending_messages": queue.pending(),
                "dead_letters": len(queue.dead_letters),
            },
        )

    return await asyncio.to_thread(_check)
