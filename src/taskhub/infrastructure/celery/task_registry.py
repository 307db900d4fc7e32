from dataclasses import dataclass

from src.taskhub.domain.models.jobs import JobKind

PROCESS_JOB_TASK = "taskhub.process_job"


@dataclass(frozen=True)
class JobRoute:
    kind: str
    celery_task: str
    queue: str | None = None


class JobRegistry:
    """Registry mapping job kinds to Celery routing info."""

    def __init__(self, default_queue: str | None = None) -> None:
        self._default = JobRoute(kind="*", celery_task=PROCESS_JOB_TASK, queue=default_queue)
        self._registry: dict[str, JobRoute] = {
            JobKind.TASK_STATUS_UPDATE.value: JobRoute(
                kind=JobKind.TASK_STATUS_UPDATE.value,
                celery_task=PROCESS_JOB_TASK,
                queue=default_queue,
            ),
            JobKind.OVERDUE_TASKS_NOTIFICATION.value: JobRoute(
                kind=JobKind.OVERDUE_TASKS_NOTIFICATION.value,
                celery_task=PROCESS_JOB_TASK,
                queue=default_queue,
            ),
        }

    def route_for_kind(self, kind: str) -> JobRoute:
        # Unknown kinds still travel to the worker, which rejects them as permanent failures.
        return self._registry.get(kind, self._default)
