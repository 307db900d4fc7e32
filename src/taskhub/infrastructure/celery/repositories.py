from __future__ import annotations

import asyncio

from kombu.exceptions import OperationalError

from src.taskhub.domain.exceptions import DependencyUnavailableError
from src.taskhub.domain.models.jobs import JobEnvelope
from src.taskhub.domain.repositories import JobQueueRepository
from src.taskhub.infrastructure.celery.app import celery_app
from src.taskhub.infrastructure.celery.task_registry import JobRegistry


class CeleryJobQueue(JobQueueRepository):
    """
    Publishes job envelopes to the Celery broker.
    """

    def __init__(self, celery_app_instance=celery_app, registry: JobRegistry | None = None):
        self._celery_app = celery_app_instance
        self._registry = registry or JobRegistry(
            default_queue=self._celery_app.conf.task_default_queue
        )

    async def enqueue(self, envelope: JobEnvelope) -> str:
        """
        Enqueue a job and return its id.
        """
        route = self._registry.route_for_kind(envelope.kind)
        try:
            async_result = await asyncio.to_thread(
                self._celery_app.send_task,
                route.celery_task,
                args=[envelope.model_dump(mode="json")],
                queue=route.queue,
                task_id=envelope.id,
                retry=False,
            )
        except (OperationalError, OSError) as exc:
            raise DependencyUnavailableError("celery broker", str(exc)) from exc
        return async_result.id
