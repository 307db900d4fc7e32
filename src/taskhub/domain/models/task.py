from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.taskhub.domain.models.task_priority import TaskPriority
from src.taskhub.domain.models.task_status import TaskStatus


class Task(BaseModel):
    id: str = Field(description="Unique task identifier.")
    title: str = Field(description="Short task title.")
    description: str | None = Field(default=None, description="Free-form details.")
    status: TaskStatus = Field(description="Current workflow status.")
    priority: TaskPriority = Field(description="Task priority.")
    due_date: datetime | None = Field(default=None, description="When the task is due.")
    created_at: datetime = Field(description="Creation timestamp, set once.")
    updated_at: datetime | None = Field(default=None, description="Last mutation timestamp.")
    user_id: str = Field(description="Identifier of the owning user.")


class TaskCreate(BaseModel):
    """Fields accepted when creating a task."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    user_id: str = Field(min_length=1)


class TaskUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
