from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

import pytest

from src.taskhub.application.cache import CacheCoordinator
from src.taskhub.application.consumer import JobConsumer
from src.taskhub.application.dispatcher import JobDispatcher
from src.taskhub.application.handlers import TaskJobHandler
from src.taskhub.application.notifier import TaskNotifier
from src.taskhub.application.services import TaskService
from src.taskhub.domain.exceptions import DependencyUnavailableError, TaskNotFoundError
from src.taskhub.domain.models.jobs import JobEnvelope
from src.taskhub.domain.models.task import Task, TaskCreate, TaskUpdate
from src.taskhub.domain.models.task_filter import TaskFilter
from src.taskhub.domain.models.task_priority import TaskPriority
from src.taskhub.domain.models.task_stats import TaskStats
from src.taskhub.domain.models.task_status import TaskStatus
from src.taskhub.domain.repositories import (
    CacheRepository,
    JobQueueRepository,
    TaskRepository,
    TaskTransaction,
)

T = TypeVar("T")

_SORT_ATTRIBUTES = {
    "title": "title",
    "createdAt": "created_at",
    "dueDate": "due_date",
    "priority": "priority",
    "status": "status",
}


class StubTaskTransaction(TaskTransaction):
    """Works on a private copy of the rows; the repository swaps it in on commit."""

    def __init__(self, rows: dict[str, Task], next_id: Callable[[], str]) -> None:
        self.rows = rows
        self._next_id = next_id

    def _require(self, task_id: str) -> Task:
        if task_id not in self.rows:
            raise TaskNotFoundError(task_id)
        return self.rows[task_id]

    async def create(self, fields: TaskCreate) -> Task:
        now = datetime.now(UTC)
        task = Task(id=self._next_id(), created_at=now, updated_at=now, **fields.model_dump())
        self.rows[task.id] = task
        return task

    async def get(self, task_id: str) -> Task:
        return self._require(task_id)

    async def update(self, task_id: str, patch: TaskUpdate) -> Task:
        task = self._require(task_id).model_copy(
            update={**patch.changes(), "updated_at": datetime.now(UTC)}
        )
        self.rows[task_id] = task
        return task

    async def set_status(self, task_id: str, status: TaskStatus) -> Task:
        task = self._require(task_id).model_copy(
            update={"status": status, "updated_at": datetime.now(UTC)}
        )
        self.rows[task_id] = task
        return task

    async def delete(self, task_id: str) -> int:
        return 1 if self.rows.pop(task_id, None) is not None else 0

    async def bulk_update_status(self, task_ids: Sequence[str], status: TaskStatus) -> int:
        affected = 0
        for task_id in task_ids:
            if task_id in self.rows:
                await self.set_status(task_id, status)
                affected += 1
        return affected

    async def bulk_delete(self, task_ids: Sequence[str]) -> int:
        return sum([await self.delete(task_id) for task_id in task_ids])


class StubTaskRepository(TaskRepository):
    """In-memory task store with all-or-nothing transactions."""

    def __init__(self) -> None:
        self.rows: dict[str, Task] = {}
        self.commits = 0
        self.rollbacks = 0
        self.find_many_calls = 0
        self.find_by_id_calls = 0
        self.fail_overdue_query = False
        self._ids = itertools.count(1)

    def _next_id(self) -> str:
        return f"task-{next(self._ids)}"

    async def run_in_transaction(self, fn: Callable[[TaskTransaction], Awaitable[T]]) -> T:
        working = dict(self.rows)
        try:
            result = await fn(StubTaskTransaction(working, self._next_id))
        except Exception:
            self.rollbacks += 1
            raise
        self.rows = working
        self.commits += 1
        return result

    async def find_by_id(self, task_id: str) -> Task:
        self.find_by_id_calls += 1
        if task_id not in self.rows:
            raise TaskNotFoundError(task_id)
        return self.rows[task_id]

    async def find_many(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        self.find_many_calls += 1
        matches = [task for task in self.rows.values() if _matches(task, task_filter)]
        attribute = _SORT_ATTRIBUTES[task_filter.effective_sort_by]

        def sort_key(task: Task) -> tuple[int, Any]:
            value = getattr(task, attribute)
            return (0, value) if value is not None else (1, "")

        matches.sort(key=sort_key, reverse=task_filter.sort_order == "DESC")
        start = task_filter.offset
        return matches[start : start + task_filter.limit], len(matches)

    async def find_by_status(self, status: TaskStatus) -> list[Task]:
        tasks = [task for task in self.rows.values() if task.status == status]
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    async def find_overdue_ids(self, now: datetime) -> list[str]:
        if self.fail_overdue_query:
            raise RuntimeError("database is down")
        return [
            task.id
            for task in self.rows.values()
            if task.due_date is not None
            and task.due_date < now
            and task.status == TaskStatus.PENDING
        ]

    async def counts_by_status_and_priority(self) -> TaskStats:
        tasks = list(self.rows.values())
        return TaskStats(
            total=len(tasks),
            completed=sum(task.status == TaskStatus.COMPLETED for task in tasks),
            in_progress=sum(task.status == TaskStatus.IN_PROGRESS for task in tasks),
            pending=sum(task.status == TaskStatus.PENDING for task in tasks),
            high_priority=sum(task.priority == TaskPriority.HIGH for task in tasks),
        )


def _matches(task: Task, task_filter: TaskFilter) -> bool:
    if task_filter.status is not None and task.status != task_filter.status:
        return False
    if task_filter.priority is not None and task.priority != task_filter.priority:
        return False
    if task_filter.q:
        needle = task_filter.q.lower()
        haystacks = (task.title, task.description or "")
        return any(needle in text.lower() for text in haystacks)
    return True


class StubCache(CacheRepository):
    """Dict-backed cache; values go through JSON like the Redis adapter."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.deleted: list[str] = []

    async def get(self, key: str) -> Any | None:
        raw = self.values.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.values[key] = json.dumps(value)
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.values.pop(key, None)
        self.ttls.pop(key, None)


class FailingCache(CacheRepository):
    async def get(self, key: str) -> Any | None:
        raise DependencyUnavailableError("redis cache", "connection refused")

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise DependencyUnavailableError("redis cache", "connection refused")

    async def delete(self, key: str) -> None:
        raise DependencyUnavailableError("redis cache", "connection refused")


class StubJobQueue(JobQueueRepository):
    """Records envelopes; refuses every job, or only those for chosen task ids."""

    def __init__(self) -> None:
        self.envelopes: list[JobEnvelope] = []
        self.fail_all = False
        self.fail_task_ids: set[str] = set()

    async def enqueue(self, envelope: JobEnvelope) -> str:
        if self.fail_all or envelope.payload.get("taskId") in self.fail_task_ids:
            raise DependencyUnavailableError("job queue", "broker unreachable")
        self.envelopes.append(envelope)
        return envelope.id


class RecordingNotifier(TaskNotifier):
    def __init__(self) -> None:
        self.notified: list[Task] = []

    async def notify_overdue(self, task: Task) -> None:
        self.notified.append(task)


@pytest.fixture
def task_repository() -> StubTaskRepository:
    return StubTaskRepository()


@pytest.fixture
def cache_store() -> StubCache:
    return StubCache()


@pytest.fixture
def cache(cache_store: StubCache) -> CacheCoordinator:
    return CacheCoordinator(cache_store, timeout_seconds=0.2)


@pytest.fixture
def job_queue() -> StubJobQueue:
    return StubJobQueue()


@pytest.fixture
def dispatcher(job_queue: StubJobQueue) -> JobDispatcher:
    return JobDispatcher(job_queue, timeout_seconds=0.2)


@pytest.fixture
def service(
    task_repository: StubTaskRepository,
    cache: CacheCoordinator,
    dispatcher: JobDispatcher,
) -> TaskService:
    return TaskService(task_repository, cache, dispatcher)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def consumer(service: TaskService, notifier: RecordingNotifier) -> JobConsumer:
    return JobConsumer(TaskJobHandler(service, notifier))


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: list[float]) -> Callable[[float], Awaitable[None]]:
    """Records requested delays instead of waiting for them."""

    async def sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)
        await asyncio.sleep(0)

    return sleep


@pytest.fixture
def new_task() -> Callable[..., TaskCreate]:
    def build(**overrides: Any) -> TaskCreate:
        fields: dict[str, Any] = {"title": "Write report", "user_id": "user-1"}
        fields.update(overrides)
        return TaskCreate(**fields)

    return build


@pytest.fixture
def failing_coordinator() -> CacheCoordinator:
    return CacheCoordinator(FailingCache(), timeout_seconds=0.1)
