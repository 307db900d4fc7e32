import inject

from src.setup.cache_config import get_cache_settings
from src.setup.db_config import get_database_settings
from src.setup.job_config import get_job_settings
from src.taskhub.application.cache import CacheCoordinator
from src.taskhub.application.consumer import JobConsumer
from src.taskhub.application.dispatcher import JobDispatcher
from src.taskhub.application.handlers import TaskJobHandler
from src.taskhub.application.notifier import LoggingTaskNotifier, TaskNotifier
from src.taskhub.application.scanner import OverdueScanner
from src.taskhub.application.services import TaskService
from src.taskhub.domain.repositories import CacheRepository, JobQueueRepository, TaskRepository
from src.taskhub.infrastructure.memory.queue import InMemoryJobQueue
from src.taskhub.infrastructure.postgres.orm import PostgresOrm
from src.taskhub.infrastructure.postgres.repositories import PostgresTaskRepository
from src.taskhub.infrastructure.redis.cache import RedisCacheRepository
from src.taskhub.infrastructure.redis.client import RedisClient


def _build_job_queue() -> JobQueueRepository:
    if get_job_settings().JOB_BACKEND == "memory":
        return inject.instance(InMemoryJobQueue)
    # Imported lazily so the memory backend does not need a Celery broker configured.
    from src.taskhub.infrastructure.celery.repositories import CeleryJobQueue

    return CeleryJobQueue()


def _build_cache_repository() -> CacheRepository:
    settings = get_cache_settings()
    client = RedisClient(
        settings.REDIS_URL,
        max_connections=settings.CACHE_MAX_CONNECTIONS,
        socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.CACHE_TIMEOUT_SECONDS,
    )
    return RedisCacheRepository(client, key_prefix=settings.CACHE_KEY_PREFIX)


def _bindings(binder: inject.Binder) -> None:
    db_settings = get_database_settings()
    cache_settings = get_cache_settings()
    job_settings = get_job_settings()

    binder.bind_to_constructor(
        PostgresOrm,
        lambda: PostgresOrm(db_settings.DATABASE_URL, echo=db_settings.DATABASE_ECHO),
    )
    binder.bind_to_constructor(
        TaskRepository, lambda: PostgresTaskRepository(inject.instance(PostgresOrm))
    )
    binder.bind_to_constructor(CacheRepository, _build_cache_repository)
    binder.bind_to_constructor(InMemoryJobQueue, InMemoryJobQueue)
    binder.bind_to_constructor(JobQueueRepository, _build_job_queue)
    binder.bind_to_constructor(TaskNotifier, LoggingTaskNotifier)
    binder.bind_to_constructor(
        CacheCoordinator,
        lambda: CacheCoordinator(
            default_ttl_seconds=cache_settings.CACHE_TTL_SECONDS,
            timeout_seconds=cache_settings.CACHE_TIMEOUT_SECONDS,
        ),
    )
    binder.bind_to_constructor(
        JobDispatcher,
        lambda: JobDispatcher(
            timeout_seconds=job_settings.ENQUEUE_TIMEOUT_SECONDS,
            retry_policies=job_settings.retry_policies(),
        ),
    )
    binder.bind_to_constructor(TaskService, TaskService)
    binder.bind_to_constructor(JobConsumer, lambda: JobConsumer(TaskJobHandler()))
    binder.bind_to_constructor(OverdueScanner, OverdueScanner)


def configure_di() -> None:
    """Configure the process-wide injector once; later calls are no-ops."""
    if inject.is_configured():
        return
    inject.configure(_bindings)
