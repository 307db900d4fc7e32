from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.taskhub.domain.models.task_status import TaskStatus


class JobKind(str, Enum):
    TASK_STATUS_UPDATE = "task-status-update"
    OVERDUE_TASKS_NOTIFICATION = "overdue-tasks-notification"


class RetryPolicy(BaseModel):
    """Exponential backoff: delay doubles after every failed attempt."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_base_delay_ms: int = Field(default=1000, gt=0)
    backoff_kind: Literal["exponential"] = "exponential"

    def delay_ms(self, attempt: int) -> int:
        """Delay before the retry that follows failed ``attempt`` (1-based)."""
        return self.backoff_base_delay_ms * 2 ** (attempt - 1)

    def can_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


class JobPayload(BaseModel):
    """Base class for job payloads. Wire names are camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TaskStatusUpdatePayload(JobPayload):
    task_id: str = Field(alias="taskId", min_length=1)
    status: TaskStatus


class OverdueNotificationPayload(JobPayload):
    task_id: str = Field(alias="taskId", min_length=1)


JOB_PAYLOADS: dict[JobKind, type[JobPayload]] = {
    JobKind.TASK_STATUS_UPDATE: TaskStatusUpdatePayload,
    JobKind.OVERDUE_TASKS_NOTIFICATION: OverdueNotificationPayload,
}


class JobEnvelope(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: str = Field(description="Job kind tag; may be unknown to the consumer.")
    payload: dict[str, Any] = Field(default_factory=dict)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class JobResult(BaseModel):
    """Outcome returned by a job handler. ``success=False`` is terminal."""

    success: bool
    task_id: str | None = None
    error: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def failed(cls, error: str, task_id: str | None = None) -> JobResult:
        return cls(success=False, error=error, task_id=task_id)
