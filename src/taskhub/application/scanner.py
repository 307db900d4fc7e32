from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import cast

import inject

from src.taskhub.application.dispatcher import DispatchOutcome, JobDispatcher
from src.taskhub.domain.models.jobs import JobKind, OverdueNotificationPayload
from src.taskhub.domain.repositories import TaskRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanReport:
    found: int = 0
    enqueued: int = 0
    failed: int = 0
    failed_task_ids: tuple[str, ...] = field(default_factory=tuple)


class OverdueScanner:
    """Finds PENDING tasks past their due date and queues one notification each.

    The scan reads state straight from the store, so a status change whose job
    was never enqueued is still picked up on the next run. Only a failing
    query is a scan error; enqueue failures are counted and reported.
    """

    def __init__(
        self,
        repository: TaskRepository | None = None,
        dispatcher: JobDispatcher | None = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._repository = repository or cast(TaskRepository, inject.instance(TaskRepository))
        self._dispatcher = dispatcher or cast(JobDispatcher, inject.instance(JobDispatcher))
        self._clock = clock

    async def scan(self, now: datetime | None = None) -> ScanReport:
        now = now or self._clock()
        logger.debug("Checking for overdue tasks", extra={"now": now.isoformat()})
        task_ids = await self._repository.find_overdue_ids(now)
        if not task_ids:
            logger.debug("No overdue tasks found")
            return ScanReport()

        outcomes = await asyncio.gather(
            *(
                self._dispatcher.enqueue(
                    JobKind.OVERDUE_TASKS_NOTIFICATION,
                    OverdueNotificationPayload(task_id=task_id),
                )
                for task_id in task_ids
            ),
            return_exceptions=True,
        )
        failed_ids = tuple(
            task_id
            for task_id, outcome in zip(task_ids, outcomes)
            if not (isinstance(outcome, DispatchOutcome) and outcome.accepted)
        )
        report = ScanReport(
            found=len(task_ids),
            enqueued=len(task_ids) - len(failed_ids),
            failed=len(failed_ids),
            failed_task_ids=failed_ids,
        )
        logger.info(
            "Enqueued overdue jobs",
            extra={"found": report.found, "enqueued": report.enqueued, "failed": report.failed},
        )
        return report

    async def run_periodically(
        self,
        interval_seconds: float,
        stop_event: asyncio.Event,
    ) -> None:
        """Scan every ``interval_seconds`` until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                await self.scan()
            except Exception:
                logger.exception("Error checking overdue tasks")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                continue
