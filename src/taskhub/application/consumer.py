from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from src.taskhub.application.handlers import TaskJobHandler
from src.taskhub.domain.exceptions import JobPermanentFailure, JobTransientFailure
from src.taskhub.domain.models.jobs import JOB_PAYLOADS, JobEnvelope, JobKind, JobPayload, JobResult

logger = logging.getLogger(__name__)

JobHandler = Callable[[Any], Awaitable[JobResult]]


class JobConsumer:
    """Routes jobs by kind to their handler and classifies the outcome.

    - unknown kind or malformed payload: ``JobResult(success=False)``, never retried
    - handler returned a result: terminal, whatever ``success`` says
    - handler raised: ``JobTransientFailure``, the queue retries with backoff
    """

    def __init__(self, handler: TaskJobHandler | None = None) -> None:
        self._handlers: dict[JobKind, JobHandler] = {}
        handler = handler or TaskJobHandler()
        self.register(JobKind.TASK_STATUS_UPDATE, handler.handle_status_update)
        self.register(JobKind.OVERDUE_TASKS_NOTIFICATION, handler.handle_overdue_notification)

    def register(self, kind: JobKind, handler: JobHandler) -> None:
        self._handlers[kind] = handler

    def get_handler(self, kind: JobKind) -> JobHandler | None:
        return self._handlers.get(kind)

    def decode(self, envelope: JobEnvelope) -> tuple[JobHandler, JobPayload]:
        """Resolve the handler and validated payload, or raise ``JobPermanentFailure``."""
        try:
            kind = JobKind(envelope.kind)
        except ValueError:
            raise JobPermanentFailure(envelope.id, envelope.kind, "Unknown job type") from None
        handler = self.get_handler(kind)
        if handler is None:
            raise JobPermanentFailure(envelope.id, envelope.kind, "No handler registered")
        try:
            payload = JOB_PAYLOADS[kind].model_validate(envelope.payload)
        except ValidationError as exc:
            raise JobPermanentFailure(
                envelope.id, envelope.kind, f"Invalid payload: {exc.error_count()} error(s)"
            ) from exc
        return handler, payload

    async def process(self, envelope: JobEnvelope, attempt: int = 1) -> JobResult:
        logger.debug(
            "Processing job",
            extra={"job_id": envelope.id, "kind": envelope.kind, "attempt": attempt},
        )
        try:
            handler, payload = self.decode(envelope)
        except JobPermanentFailure as exc:
            logger.warning(
                "Rejecting job",
                extra={"job_id": envelope.id, "kind": envelope.kind, "reason": exc.reason},
            )
            return JobResult.failed(exc.reason)

        try:
            result = await handler(payload)
        except Exception as exc:
            logger.error(
                "Error processing job",
                extra={
                    "job_id": envelope.id,
                    "kind": envelope.kind,
                    "attempt": attempt,
                    "error": str(exc),
                },
            )
            raise JobTransientFailure(envelope.id, envelope.kind, attempt, exc) from exc

        if not result.success:
            logger.warning(
                "Job finished without success",
                extra={"job_id": envelope.id, "kind": envelope.kind, "error": result.error},
            )
        return result
