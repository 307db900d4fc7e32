"""Single-node job queue for tests and single-process deployments.

Jobs are delivered in FIFO order. A job whose handler raises is re-queued
after ``RetryPolicy.delay_ms(attempt)`` until ``max_attempts`` deliveries
have been made, then moved to ``dead_letters`` exactly once. A job whose
handler returns a result is finished, successful or not.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from src.taskhub.application.consumer import JobConsumer
from src.taskhub.domain.exceptions import DependencyUnavailableError, JobTransientFailure
from src.taskhub.domain.models.jobs import JobEnvelope, JobResult
from src.taskhub.domain.repositories import JobQueueRepository

logger = logging.getLogger(__name__)

_DEPENDENCY = "memory job queue"


class JobState(str, Enum):
    QUEUED = "queued"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


@dataclass
class JobRecord:
    envelope: JobEnvelope
    state: JobState = JobState.QUEUED
    attempts: int = 0
    retry_delays_ms: list[int] = field(default_factory=list)
    result: JobResult | None = None
    last_error: str | None = None


@dataclass
class DeadLetter:
    envelope: JobEnvelope
    attempts: int
    error: str
    timestamp: float = field(default_factory=time.monotonic)


class InMemoryJobQueue(JobQueueRepository):
    def __init__(
        self,
        *,
        maxsize: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_dead_letter: Callable[[DeadLetter], None] | None = None,
    ) -> None:
        self._queue: asyncio.Queue[tuple[JobEnvelope, int]] = asyncio.Queue(maxsize)
        self._sleep = sleep
        self._on_dead_letter = on_dead_letter
        self._records: dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()
        self._pending_retries: set[asyncio.Task[None]] = set()
        self._closed = False
        self.dead_letters: list[DeadLetter] = []

    async def enqueue(self, envelope: JobEnvelope) -> str:
        if self._closed:
            raise DependencyUnavailableError(_DEPENDENCY, "queue is closed")
        async with self._lock:
            self._records[envelope.id] = JobRecord(envelope=envelope)
        try:
            self._queue.put_nowait((envelope, 1))
        except asyncio.QueueFull as exc:
            async with self._lock:
                self._records.pop(envelope.id, None)
            raise DependencyUnavailableError(_DEPENDENCY, "queue is full") from exc
        return envelope.id

    def get_record(self, job_id: str) -> JobRecord | None:
        return self._records.get(job_id)

    @property
    def records(self) -> list[JobRecord]:
        return list(self._records.values())

    def qsize(self) -> int:
        return self._queue.qsize()

    async def process_next(self, consumer: JobConsumer) -> None:
        envelope, attempt = await self._queue.get()
        await self._deliver_and_ack(consumer, envelope, attempt)

    async def _deliver_and_ack(
        self, consumer: JobConsumer, envelope: JobEnvelope, attempt: int
    ) -> None:
        try:
            await self._deliver(consumer, envelope, attempt)
        finally:
            self._queue.task_done()

    async def drain(self, consumer: JobConsumer) -> None:
        """Process until the queue is empty and no retry is waiting."""
        while True:
            while not self._queue.empty():
                await self.process_next(consumer)
            if not self._pending_retries:
                return
            await asyncio.gather(*list(self._pending_retries))

    async def serve(self, consumer: JobConsumer, stop_event: asyncio.Event) -> None:
        logger.info("In-memory job worker started")
        while not stop_event.is_set():
            try:
                envelope, attempt = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except TimeoutError:
                continue
            await self._deliver_and_ack(consumer, envelope, attempt)
        logger.info("In-memory job worker stopped")

    async def close(self) -> int:
        """Stop accepting jobs and discard undelivered ones; returns how many were dropped."""
        self._closed = True
        pending = list(self._pending_retries)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            discarded += 1
        discarded += sum(1 for task in pending if task.cancelled())
        if discarded:
            logger.warning(
                "Discarding undelivered jobs on close",
                extra={"discarded": discarded},
            )
        return discarded

    async def _deliver(self, consumer: JobConsumer, envelope: JobEnvelope, attempt: int) -> None:
        async with self._lock:
            record = self._records.setdefault(envelope.id, JobRecord(envelope=envelope))
            record.attempts = attempt

        try:
            result = await consumer.process(envelope, attempt)
        except JobTransientFailure as exc:
            await self._handle_transient(record, attempt, exc)
            return

        async with self._lock:
            record.result = result
            record.state = JobState.COMPLETED if result.success else JobState.FAILED
            record.last_error = result.error

    async def _handle_transient(
        self, record: JobRecord, attempt: int, exc: JobTransientFailure
    ) -> None:
        policy = record.envelope.retry
        error = str(exc.__cause__ or exc)
        if policy.can_retry(attempt):
            delay_ms = policy.delay_ms(attempt)
            async with self._lock:
                record.state = JobState.RETRYING
                record.last_error = error
                record.retry_delays_ms.append(delay_ms)
            task = asyncio.create_task(self._requeue_later(record.envelope, attempt + 1, delay_ms))
            self._pending_retries.add(task)
            task.add_done_callback(self._pending_retries.discard)
            return

        dead_letter = DeadLetter(envelope=record.envelope, attempts=attempt, error=error)
        async with self._lock:
            record.state = JobState.DEAD_LETTERED
            record.last_error = error
            self.dead_letters.append(dead_letter)
        logger.error(
            "Job dead-lettered after exhausting attempts",
            extra={"job_id": record.envelope.id, "kind": record.envelope.kind, "attempts": attempt},
        )
        if self._on_dead_letter is not None:
            self._on_dead_letter(dead_letter)

    async def _requeue_later(self, envelope: JobEnvelope, attempt: int, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        await self._queue.put((envelope, attempt))
