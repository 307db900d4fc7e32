from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

import inject

from src.taskhub.domain.exceptions import DependencyUnavailableError
from src.taskhub.domain.models.jobs import JobEnvelope, JobKind, JobPayload, RetryPolicy
from src.taskhub.domain.repositories import JobQueueRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchOutcome:
    accepted: bool
    kind: str
    job_id: str
    error: str | None = None


class JobDispatcher:
    """Best-effort job submission, called only after the owning transaction committed.

    The store and the queue are separate failure domains. A failed or timed out
    enqueue is logged and reported as a rejected ``DispatchOutcome``; it never
    raises into the caller, so a committed mutation can end up without its
    downstream job. Consumers re-derive state from the store to cover that gap.
    """

    def __init__(
        self,
        queue: JobQueueRepository | None = None,
        *,
        timeout_seconds: float = 2.0,
        retry_policies: Mapping[JobKind, RetryPolicy] | None = None,
    ) -> None:
        self._queue = queue or cast(JobQueueRepository, inject.instance(JobQueueRepository))
        self._timeout = timeout_seconds
        self._retry_policies = dict(retry_policies or {})

    def policy_for(self, kind: JobKind | str) -> RetryPolicy:
        try:
            return self._retry_policies[JobKind(kind)]
        except (KeyError, ValueError):
            return RetryPolicy()

    async def enqueue(
        self,
        kind: JobKind | str,
        payload: JobPayload | Mapping[str, Any],
        retry: RetryPolicy | None = None,
    ) -> DispatchOutcome:
        kind_value = kind.value if isinstance(kind, JobKind) else kind
        envelope = JobEnvelope(
            kind=kind_value,
            payload=payload.to_wire() if isinstance(payload, JobPayload) else dict(payload),
            retry=retry or self.policy_for(kind),
        )
        try:
            job_id = await asyncio.wait_for(self._queue.enqueue(envelope), self._timeout)
        except (DependencyUnavailableError, TimeoutError) as exc:
            error = str(exc) or f"enqueue timed out after {self._timeout}s"
            logger.error(
                "Failed to enqueue job",
                extra={"kind": kind_value, "job_id": envelope.id, "error": error},
            )
            return DispatchOutcome(accepted=False, kind=kind_value, job_id=envelope.id, error=error)
        except Exception as exc:
            logger.exception(
                "Unexpected error enqueuing job",
                extra={"kind": kind_value, "job_id": envelope.id},
            )
            return DispatchOutcome(
                accepted=False, kind=kind_value, job_id=envelope.id, error=str(exc)
            )

        logger.debug("Enqueued job", extra={"kind": kind_value, "job_id": job_id})
        return DispatchOutcome(accepted=True, kind=kind_value, job_id=job_id)
