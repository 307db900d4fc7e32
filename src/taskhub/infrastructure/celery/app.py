from celery import Celery

from src.setup.celery_config import get_celery_settings

_settings = get_celery_settings()

celery_app = Celery(
    "taskhub",
    broker=_settings.REDIS_URL,
    backend=_settings.REDIS_URL,
)

celery_app.conf.update(
    task_ignore_result=False,
    result_expires=_settings.RESULT_TTL_SECONDS,
    task_default_queue=_settings.TASK_QUEUE,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # A job is acknowledged only after the handler ran, so a crashed worker redelivers it.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
