"""At-least-once in-process queue for pipeline step messages.

Messages travel as JSON, exactly as they would on an external queue.  A
pool of consumer tasks hands each message to the handler; a handler
exception puts the message back with its attempt count incremented, and
once ``max_retries`` redeliveries have failed the message moves to the
dead-letter list.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from pydantic import ValidationError

from src.pipeline.messages import PipelineMessage
from src.shared.constants import QUEUE_CONCURRENCY, QUEUE_MAX_RETRIES

logger = logging.getLogger(__name__)

MessageHandler = Callable[[PipelineMessage], Awaitable[None]]


class PipelineQueue(Protocol):
    """Anything steps and user actions can enqueue onto."""

    async def send(self, message: PipelineMessage) -> None: ...


@dataclass(frozen=True)
class Envelope:
    """A queued message body with its delivery count."""
    body: str
    attempts: int = 0


@dataclass(frozen=True)
class DeadLetter:
    body: str
    attempts: int
    error: str


class InMemoryPipelineQueue:
    """``asyncio.Queue``-backed implementation of :class:`PipelineQueue`.

    Args:
        handler: Coroutine invoked once per delivery.  May be bound after
            construction with :meth:`bind`.
        concurrency: Number of consumer tasks.
        max_retries: Redeliveries allowed after the first failure.
    """

    def __init__(
        self,
        handler: MessageHandler | None = None,
        concurrency: int = QUEUE_CONCURRENCY,
        max_retries: int = QUEUE_MAX_RETRIES,
    ) -> None:
        self._handler = handler
        self._concurrency = concurrency
        self._max_retries = max_retries
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self.dead_letters: list[DeadLetter] = []

    def bind(self, handler: MessageHandler) -> None:
        self._handler = handler

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def pending(self) -> int:
        return self._queue.qsize()

    async def send(self, message: PipelineMessage) -> None:
        """Enqueue *message* for delivery."""
        await self._queue.put(Envelope(body=message.to_json()))
        logger.info("Enqueued %s for job %s", message.type.value, message.job_id)

    def start(self) -> None:
        """Start the consumer tasks."""
        if self._handler is None:
            raise RuntimeError("No handler bound to the pipeline queue")
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._consume(i), name=f"pipeline-consumer-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("Started %d pipeline consumer(s)", self._concurrency)

    async def join(self) -> None:
        """Wait until every queued message, including redeliveries, is settled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the consumers.  Undelivered messages stay queued."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if workers:
            logger.info("Stopped pipeline consumers (%d message(s) pending)", self.pending())

    async def _consume(self, worker_id: int) -> None:
        assert self._handler is not None
        while True:
            envelope = await self._queue.get()
            try:
                await self._deliver(envelope)
            finally:
                self._queue.task_done()

    async def _deliver(self, envelope: Envelope) -> None:
        try:
            message = PipelineMessage.from_json(envelope.body)
        except ValidationError as exc:
            logger.error("Dead-lettering malformed pipeline message: %s", exc)
            self.dead_letters.append(DeadLetter(envelope.body, envelope.attempts + 1, str(exc)))
            return

        try:
            await self._handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            attempts = envelope.attempts + 1
            if attempts > self._max_retries:
                logger.error(
                    "Dead-lettering %s for job %s after %d attempt(s): %s",
                    message.type.value, message.job_id, attempts, exc,
                )
                self.dead_letters.append(DeadLetter(envelope.body, attempts, str(exc)))
                return
            logger.warning(
                "Redelivering %s for job %s (attempt %d failed): %s",
                message.type.value, message.job_id, attempts, exc,
            )
            self._queue.put_nowait(Envelope(body=envelope.body, attempts=attempts))
