import asyncio
import logging
from collections.abc import Sequence
from typing import Any, cast

import inject
from pydantic import BaseModel, ValidationError

from src.taskhub.application.cache import (
    STATS_KEY,
    CacheCoordinator,
    list_key,
    task_key,
)
from src.taskhub.application.dispatcher import DispatchOutcome, JobDispatcher
from src.taskhub.domain.exceptions import TaskNotFoundError, TaskValidationError
from src.taskhub.domain.models import (
    JobKind,
    Task,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskStats,
    TaskStatus,
    TaskStatusUpdatePayload,
    TaskUpdate,
)
from src.taskhub.domain.repositories import TaskRepository, TaskTransaction

logger = logging.getLogger(__name__)

_NON_NULLABLE_UPDATE_FIELDS = ("title", "status", "priority")


class TaskService:
    """Task reads and writes across the store, the cache and the job queue.

    Every mutation follows the same order: run the store transaction, then
    invalidate the cache, then dispatch jobs. Invalidation and dispatch only
    happen once the transaction has committed, and neither can fail the
    mutation.
    """

    def __init__(
        self,
        repository: TaskRepository | None = None,
        cache: CacheCoordinator | None = None,
        dispatcher: JobDispatcher | None = None,
    ) -> None:
        self._repository = repository or cast(TaskRepository, inject.instance(TaskRepository))
        self._cache = cache or cast(CacheCoordinator, inject.instance(CacheCoordinator))
        self._dispatcher = dispatcher or cast(JobDispatcher, inject.instance(JobDispatcher))

    async def create(self, fields: TaskCreate) -> Task:
        task = await self._repository.run_in_transaction(lambda tx: tx.create(fields))
        await self._cache.invalidate_tasks()
        await self._dispatch_status_updates([task.id], task.status)
        return task

    async def find_all(self, task_filter: TaskFilter | None = None) -> TaskPage:
        task_filter = task_filter or TaskFilter()
        cache_key = list_key(task_filter)
        cached = self._from_cache(TaskPage, await self._cache.get(cache_key), cache_key)
        if cached is not None:
            return cached

        items, total = await self._repository.find_many(task_filter)
        page = TaskPage.build(items, total, task_filter.page, task_filter.limit)
        await self._cache.set(cache_key, page.model_dump(mode="json"))
        return page

    async def find_one(self, task_id: str) -> Task:
        cache_key = task_key(task_id)
        cached = self._from_cache(Task, await self._cache.get(cache_key), cache_key)
        if cached is not None:
            return cached

        task = await self._repository.find_by_id(task_id)
        await self._cache.set(cache_key, task.model_dump(mode="json"))
        return task

    async def find_by_status(self, status: TaskStatus | str) -> list[Task]:
        return await self._repository.find_by_status(self._coerce_status(status))

    async def get_stats(self) -> TaskStats:
        cached = self._from_cache(TaskStats, await self._cache.get(STATS_KEY), STATS_KEY)
        if cached is not None:
            return cached

        stats = await self._repository.counts_by_status_and_priority()
        await self._cache.set(STATS_KEY, stats.model_dump(mode="json"))
        return stats

    async def update(self, task_id: str, patch: TaskUpdate) -> Task:
        changes = patch.changes()
        if not changes:
            raise TaskValidationError("Update must set at least one field")
        for field in _NON_NULLABLE_UPDATE_FIELDS:
            if field in changes and changes[field] is None:
                raise TaskValidationError(f"'{field}' cannot be null", field=field)

        async def apply(tx: TaskTransaction) -> tuple[TaskStatus, Task]:
            current = await tx.get(task_id)
            updated = await tx.update(task_id, patch)
            return current.status, updated

        previous_status, task = await self._repository.run_in_transaction(apply)
        await self._cache.invalidate_tasks([task_id])
        if task.status != previous_status:
            await self._dispatch_status_updates([task.id], task.status)
        return task

    async def update_status(self, task_id: str, status: TaskStatus | str) -> Task:
        """Set the status of one task. Used by the status-update job; dispatches nothing."""
        status = self._coerce_status(status)
        task = await self._repository.run_in_transaction(
            lambda tx: tx.set_status(task_id, status)
        )
        await self._cache.invalidate_tasks([task_id])
        return task

    async def remove(self, task_id: str) -> int:
        async def apply(tx: TaskTransaction) -> int:
            affected = await tx.delete(task_id)
            if affected == 0:
                raise TaskNotFoundError(task_id)
            return affected

        affected = await self._repository.run_in_transaction(apply)
        await self._cache.invalidate_tasks([task_id])
        return affected

    async def bulk_update_status(self, task_ids: Sequence[str], status: TaskStatus | str) -> int:
        status = self._coerce_status(status)
        ids = self._unique_ids(task_ids)
        if not ids:
            return 0

        affected = await self._repository.run_in_transaction(
            lambda tx: tx.bulk_update_status(ids, status)
        )
        await self._cache.invalidate_tasks(ids)
        await self._dispatch_status_updates(ids, status)
        return affected

    async def bulk_delete(self, task_ids: Sequence[str]) -> int:
        ids = self._unique_ids(task_ids)
        if not ids:
            return 0

        affected = await self._repository.run_in_transaction(lambda tx: tx.bulk_delete(ids))
        await self._cache.invalidate_tasks(ids)
        return affected

    async def _dispatch_status_updates(
        self, task_ids: Sequence[str], status: TaskStatus
    ) -> list[DispatchOutcome]:
        return list(
            await asyncio.gather(
                *(
                    self._dispatcher.enqueue(
                        JobKind.TASK_STATUS_UPDATE,
                        TaskStatusUpdatePayload(task_id=task_id, status=status),
                    )
                    for task_id in task_ids
                )
            )
        )

    @staticmethod
    def _from_cache(model: type[BaseModel], value: Any, key: str) -> Any:
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except ValidationError:
            logger.warning("Ignoring malformed cache entry", extra={"key": key})
            return None

    @staticmethod
    def _coerce_status(status: TaskStatus | str) -> TaskStatus:
        try:
            return TaskStatus(status)
        except ValueError:
            raise TaskValidationError(f"Invalid status value: {status!r}", field="status") from None

    @staticmethod
    def _unique_ids(task_ids: Sequence[str]) -> list[str]:
        if isinstance(task_ids, str):
            raise TaskValidationError("Task ids must be a sequence of identifiers", field="ids")
        return list(dict.fromkeys(task_ids))
