import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import inject
from fastapi import Depends, FastAPI

from src.setup.api_config import ApiSettings
from src.setup.app_config import configure_di
from src.setup.job_config import get_job_settings
from src.setup.logging_config import configure_logging
from src.setup.rate_limit_config import get_rate_limit_settings
from src.taskhub.application.consumer import JobConsumer
from src.taskhub.application.rate_limiter import FixedWindowRateLimiter
from src.taskhub.application.scanner import OverdueScanner
from src.taskhub.infrastructure.memory.queue import InMemoryJobQueue
from src.taskhub.infrastructure.postgres.orm import PostgresOrm
from src.taskhub.presentation.errors import register_exception_handlers
from src.taskhub.presentation.guards import RateLimitGuard

settings = ApiSettings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.LOG_LEVEL)
    configure_di()
    job_settings = get_job_settings()
    orm: PostgresOrm = inject.instance(PostgresOrm)
    await orm.create_schema()

    stop = asyncio.Event()
    background: list[asyncio.Task[None]] = []
    memory_queue: InMemoryJobQueue | None = None
    if job_settings.JOB_BACKEND == "memory":
        memory_queue = inject.instance(InMemoryJobQueue)
        background.append(
            asyncio.create_task(memory_queue.serve(inject.instance(JobConsumer), stop))
        )
    if job_settings.RUN_SCANNER:
        scanner: OverdueScanner = inject.instance(OverdueScanner)
        background.append(
            asyncio.create_task(
                scanner.run_periodically(job_settings.OVERDUE_SCAN_INTERVAL_SECONDS, stop)
            )
        )
    try:
        yield
    finally:
        stop.set()
        await asyncio.gather(*background, return_exceptions=True)
        if memory_queue is not None:
            await memory_queue.close()
        await orm.dispose()


def create_app(
    rate_limiter: FixedWindowRateLimiter | None = None,
    *,
    with_lifespan: bool = True,
) -> FastAPI:
    """Build the API shell: error mapping, the global rate-limit guard and background jobs.

    Task routes are mounted by the caller with ``app.include_router``.
    """
    if rate_limiter is None:
        rate_settings = get_rate_limit_settings()
        rate_limiter = FixedWindowRateLimiter(
            limit=rate_settings.RATE_LIMIT, window_ms=rate_settings.RATE_WINDOW_MS
        )
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Task store with read-through cache and async job pipeline",
        lifespan=lifespan if with_lifespan else None,
        dependencies=[Depends(RateLimitGuard())],
    )
    app.state.rate_limiter = rate_limiter
    register_exception_handlers(app)
    return app


app = create_app()
