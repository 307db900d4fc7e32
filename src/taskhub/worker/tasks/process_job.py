import logging

import inject

from src.setup.app_config import configure_di
from src.taskhub.application.consumer import JobConsumer
from src.taskhub.domain.exceptions import JobTransientFailure
from src.taskhub.domain.models.jobs import JobEnvelope
from src.taskhub.infrastructure.celery.app import celery_app
from src.taskhub.infrastructure.celery.task_registry import PROCESS_JOB_TASK
from src.taskhub.worker.runtime import run_async

logger = logging.getLogger(__name__)


def retry_countdown(envelope: JobEnvelope, attempt: int) -> float | None:
    """Seconds until the next delivery, or None once the attempts are used up."""
    if not envelope.retry.can_retry(attempt):
        return None
    return envelope.retry.delay_ms(attempt) / 1000


@celery_app.task(name=PROCESS_JOB_TASK, bind=True, max_retries=None)
def process_job(self, message: dict) -> dict:
    """
    Deliver one job envelope to the consumer.
    Retries on handler exceptions; returns the result dict otherwise.
    """
    configure_di()
    consumer: JobConsumer = inject.instance(JobConsumer)
    envelope = JobEnvelope.model_validate(message)
    attempt = self.request.retries + 1
    try:
        result = run_async(consumer.process(envelope, attempt))
    except JobTransientFailure as exc:
        countdown = retry_countdown(envelope, attempt)
        if countdown is None:
            logger.error(
                "Job dead-lettered after exhausting attempts",
                extra={"job_id": envelope.id, "kind": envelope.kind, "attempts": attempt},
            )
            raise
        raise self.retry(exc=exc, countdown=countdown)
    return result.model_dump(mode="json")
