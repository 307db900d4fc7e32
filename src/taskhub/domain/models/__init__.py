from src.taskhub.domain.models.jobs import (
    JOB_PAYLOADS,
    JobEnvelope,
    JobKind,
    JobPayload,
    JobResult,
    OverdueNotificationPayload,
    RetryPolicy,
    TaskStatusUpdatePayload,
)
from src.taskhub.domain.models.task import Task, TaskCreate, TaskUpdate
from src.taskhub.domain.models.task_filter import SORTABLE_FIELDS, TaskFilter
from src.taskhub.domain.models.task_page import TaskPage
from src.taskhub.domain.models.task_priority import TaskPriority
from src.taskhub.domain.models.task_stats import TaskStats
from src.taskhub.domain.models.task_status import TaskStatus

__all__ = [
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TaskStatus",
    "TaskPriority",
    "TaskFilter",
    "TaskPage",
    "TaskStats",
    "SORTABLE_FIELDS",
    "JobKind",
    "JobPayload",
    "JobEnvelope",
    "JobResult",
    "RetryPolicy",
    "TaskStatusUpdatePayload",
    "OverdueNotificationPayload",
    "JOB_PAYLOADS",
]
