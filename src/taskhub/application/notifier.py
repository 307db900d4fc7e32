from __future__ import annotations

import logging
from typing import Protocol

from src.taskhub.domain.models.task import Task

logger = logging.getLogger(__name__)


class TaskNotifier(Protocol):
    async def notify_overdue(self, task: Task) -> None:
        """Tell interested parties that ``task`` is past its due date."""


class LoggingTaskNotifier(TaskNotifier):
    async def notify_overdue(self, task: Task) -> None:
        logger.info(
            "Task is overdue",
            extra={
                "task_id": task.id,
                "user_id": task.user_id,
                "status": task.status.value,
                "due_date": task.due_date.isoformat() if task.due_date else None,
            },
        )
