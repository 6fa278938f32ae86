"""Wires stores, the transport client, the queue and the step dispatcher."""

from __future__ import annotations

import asyncio
import logging

from src.agents.agent_config import load_agent_configs
from src.llm.anthropic_client import AnthropicClient
from src.persistence.artifacts import ArtifactCatalog, ArtifactRepository, FileArtifactStore
from src.persistence.job_store import JobStore
from src.persistence.run_tracker import AgentRunRecorder
from src.persistence.secret_store import SecretStore
from src.pipeline.dispatcher import StepDispatcher
from src.pipeline.lifecycle import JobLifecycle
from src.pipeline.queue import InMemoryPipelineQueue
from src.pipeline.stuck_recovery import StuckJobSweeper
from src.shared.config import PipelineSettings
from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_pipeline_db

logger = logging.getLogger(__name__)


class PipelineRuntime:
    """Everything one process needs to accept user actions and run steps.

    Args:
        settings: Process configuration.
        client: Optional transport client (tests inject one backed by
            ``httpx.MockTransport``).
    """

    def __init__(
        self, settings: PipelineSettings, client: AnthropicClient | None = None
    ) -> None:
        self.settings = settings
        self.pool = ConnectionPool(settings.database_path)
        init_pipeline_db(self.pool)

        self.jobs = JobStore(self.pool)
        self.secrets = SecretStore(self.pool)
        self.artifacts = ArtifactRepository(
            FileArtifactStore(settings.artifacts_path), ArtifactCatalog(self.pool)
        )
        self.recorder = AgentRunRecorder(self.pool)
        self.client = client or AnthropicClient(
            base_url=settings.anthropic_base_url,
            timeout=settings.anthropic_timeout_seconds,
        )

        self.queue = InMemoryPipelineQueue(
            concurrency=settings.queue_concurrency,
            max_retries=settings.queue_max_retries,
        )
        self.dispatcher = StepDispatcher(
            store=self.jobs,
            secrets=self.secrets,
            artifacts=self.artifacts,
            recorder=self.recorder,
            client=self.client,
            queue=self.queue,
            agent_configs=load_agent_configs(settings.agent_config_path),
        )
        self.queue.bind(self.dispatcher.process)
        self.lifecycle = JobLifecycle(self.jobs, self.artifacts, self.queue)
        self.sweeper = StuckJobSweeper(self.jobs, settings.stuck_threshold_minutes)

        self._stop_event: asyncio.Event | None = None
        self._sweep_task: asyncio.Task[None] | None = None

    async def start(self, sweep: bool = True) -> None:
        """Start the queue consumers and, optionally, the periodic sweep."""
        self.queue.start()
        if sweep:
            self._stop_event = asyncio.Event()
            self._sweep_task = asyncio.create_task(
                self.sweeper.run_forever(self.settings.sweep_interval_seconds, self._stop_event)
            )
        logger.info("Pipeline runtime started (db=%s)", self.settings.database_path)

    async def stop(self) -> None:
        """Stop background work and release resources."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._sweep_task is not None:
            await self._sweep_task
            self._sweep_task = None
        await self.queue.stop()
        await self.client.aclose()
        self.pool.close()
        logger.info("Pipeline runtime stopped")
