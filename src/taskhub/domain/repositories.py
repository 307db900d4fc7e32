from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any, Protocol, TypeVar

from src.taskhub.domain.models.jobs import JobEnvelope
from src.taskhub.domain.models.task import Task, TaskCreate, TaskUpdate
from src.taskhub.domain.models.task_filter import TaskFilter
from src.taskhub.domain.models.task_stats import TaskStats
from src.taskhub.domain.models.task_status import TaskStatus

T = TypeVar("T")


class TaskTransaction(Protocol):
    """Handle passed to a transaction body; every call joins the same unit of work."""

    async def create(self, fields: TaskCreate) -> Task:
        """Insert a task and return it with its generated id and created_at."""

    async def get(self, task_id: str) -> Task:
        """Fetch a task for modification. Raises ``TaskNotFoundError``."""

    async def update(self, task_id: str, patch: TaskUpdate) -> Task:
        """Apply the explicitly set fields of ``patch``. Raises ``TaskNotFoundError``."""

    async def set_status(self, task_id: str, status: TaskStatus) -> Task:
        """Set a single task's status. Raises ``TaskNotFoundError``."""

    async def delete(self, task_id: str) -> int:
        """Delete a task and return the number of affected rows."""

    async def bulk_update_status(self, task_ids: Sequence[str], status: TaskStatus) -> int:
        """Set ``status`` on every matching task and return the matched row count."""

    async def bulk_delete(self, task_ids: Sequence[str]) -> int:
        """Delete every matching task and return the affected row count."""


class TaskRepository(Protocol):
    """Transactional entity store for tasks."""

    async def run_in_transaction(self, fn: Callable[[TaskTransaction], Awaitable[T]]) -> T:
        """Run ``fn`` in a transaction; commit iff it returns, roll back if it raises."""

    async def find_by_id(self, task_id: str) -> Task:
        """Fetch a task by id. Raises ``TaskNotFoundError``."""

    async def find_many(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        """Return one page of matching tasks and the total match count."""

    async def find_by_status(self, status: TaskStatus) -> list[Task]:
        """Return every task with ``status``, newest first."""

    async def find_overdue_ids(self, now: datetime) -> list[str]:
        """Return ids of PENDING tasks whose due date is before ``now``."""

    async def counts_by_status_and_priority(self) -> TaskStats:
        """Aggregate task counts per status plus the HIGH priority count."""


class CacheRepository(Protocol):
    """Generic key/value cache with per-entry TTL in seconds."""

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None on a miss."""

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serializable value."""

    async def delete(self, key: str) -> None:
        """Remove a key; missing keys are not an error."""


class JobQueueRepository(Protocol):
    """Queue broker contract used by the dispatcher."""

    async def enqueue(self, envelope: JobEnvelope) -> str:
        """Submit a job and return its broker id. Raises ``DependencyUnavailableError``."""
