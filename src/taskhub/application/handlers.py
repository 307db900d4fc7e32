import logging
from typing import cast

import inject

from src.taskhub.application.notifier import TaskNotifier
from src.taskhub.application.services import TaskService
from src.taskhub.domain.exceptions import TaskNotFoundError
from src.taskhub.domain.models.jobs import (
    JobResult,
    OverdueNotificationPayload,
    TaskStatusUpdatePayload,
)

logger = logging.getLogger(__name__)


class TaskJobHandler:
    """Job handlers for task lifecycle jobs.

    Returning ``JobResult.failed`` ends the job for good; raising asks the
    queue for another attempt. A missing task is permanent: it was deleted
    after the job was produced and no retry will bring it back.
    """

    def __init__(
        self,
        service: TaskService | None = None,
        notifier: TaskNotifier | None = None,
    ) -> None:
        self._service = service or cast(TaskService, inject.instance(TaskService))
        self._notifier = notifier or cast(TaskNotifier, inject.instance(TaskNotifier))

    async def handle_status_update(self, payload: TaskStatusUpdatePayload) -> JobResult:
        """Write the status carried by the job.

        The payload holds an absolute status and is applied unconditionally. A
        retried or reordered job, such as the PENDING job queued at creation,
        can overwrite a newer status set in the meantime.
        """
        # update_status invalidates the cache and never dispatches another job.
        try:
            task = await self._service.update_status(payload.task_id, payload.status)
        except TaskNotFoundError as exc:
            logger.warning("Status update for missing task", extra={"task_id": payload.task_id})
            return JobResult.failed(str(exc), task_id=payload.task_id)
        return JobResult(
            success=True,
            task_id=task.id,
            data={"newStatus": task.status.value},
        )

    async def handle_overdue_notification(self, payload: OverdueNotificationPayload) -> JobResult:
        try:
            task = await self._service.find_one(payload.task_id)
        except TaskNotFoundError as exc:
            logger.warning("Overdue task no longer exists", extra={"task_id": payload.task_id})
            return JobResult.failed(str(exc), task_id=payload.task_id)
        await self._notifier.notify_overdue(task)
        logger.debug(
            "Overdue notification sent",
            extra={"task_id": task.id, "status": task.status.value},
        )
        return JobResult(success=True, task_id=task.id)
