"""Feature pipeline FastAPI application."""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.llm.anthropic_client import AnthropicClient
from src.pipeline.runtime import PipelineRuntime
from src.shared.config import PipelineSettings
from src.shared.constants import API_SERVICE_NAME, VERSION
from src.shared.errors import register_exception_handlers
from src.shared.logging import TraceIDMiddleware, setup_logging


def create_app(
    settings: PipelineSettings | None = None,
    client: AnthropicClient | None = None,
    run_workers: bool = True,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Process configuration; read from the environment when omitted.
        client: Transport client handed to the runtime.
        run_workers: Start the step consumers and the stuck-job sweep with
            the application.  The queue is in-memory, so a deployment that
            serves the API must also run the consumers.

    Returns:
        Configured ``FastAPI`` instance.
    """
    settings = settings or PipelineSettings()
    logger = setup_logging(API_SERVICE_NAME, settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan - initialize and cleanup resources."""
        app.state.start_time = time.time()

        runtime = PipelineRuntime(settings, client=client)
        app.state.runtime = runtime
        app.state.pool = runtime.pool
        if run_workers:
            await runtime.start()

        logger.info(
            "Service started: name=%s version=%s db=%s workers=%s",
            API_SERVICE_NAME, VERSION, settings.database_path, run_workers,
        )
        yield

        await runtime.stop()
        logger.info("Service stopped: name=%s", API_SERVICE_NAME)

    app = FastAPI(
        title="Feature Pipeline",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(TraceIDMiddleware)
    register_exception_handlers(app)

    from src.api.routers.health import router as health_router
    from src.api.routers.jobs import router as jobs_router
    from src.api.routers.settings import router as settings_router

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(settings_router)
    return app
