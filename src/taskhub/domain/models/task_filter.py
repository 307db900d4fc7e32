from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.taskhub.domain.models.task_priority import TaskPriority
from src.taskhub.domain.models.task_status import TaskStatus

SORTABLE_FIELDS = frozenset({"title", "createdAt", "dueDate", "priority", "status"})
DEFAULT_SORT_FIELD = "createdAt"


class TaskFilter(BaseModel):
    """Query shape for paginated task listing."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    q: str | None = Field(default=None, description="Case-insensitive search text.")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: Literal["ASC", "DESC"] = "DESC"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def effective_sort_by(self) -> str:
        """Requested sort field, or createdAt when it is not allow-listed."""
        if self.sort_by in SORTABLE_FIELDS:
            return self.sort_by
        return DEFAULT_SORT_FIELD

    def is_default(self) -> bool:
        return self == TaskFilter()
