from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import TypeVar
from uuid import uuid4

from sqlalchemy import ColumnElement, Select, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.taskhub.domain.exceptions import TaskNotFoundError
from src.taskhub.domain.models.task import Task, TaskCreate, TaskUpdate
from src.taskhub.domain.models.task_filter import TaskFilter
from src.taskhub.domain.models.task_priority import TaskPriority
from src.taskhub.domain.models.task_stats import TaskStats
from src.taskhub.domain.models.task_status import TaskStatus
from src.taskhub.domain.repositories import TaskRepository, TaskTransaction
from src.taskhub.infrastructure.postgres.mappers import OrmMapper
from src.taskhub.infrastructure.postgres.orm import PostgresOrm, TaskRow

T = TypeVar("T")

# Only these columns may be used for ORDER BY; anything else falls back to created_at.
SORT_COLUMNS = {
    "title": TaskRow.title,
    "createdAt": TaskRow.created_at,
    "dueDate": TaskRow.due_date,
    "priority": TaskRow.priority,
    "status": TaskRow.status,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def filter_conditions(task_filter: TaskFilter) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if task_filter.status is not None:
        conditions.append(TaskRow.status == task_filter.status)
    if task_filter.priority is not None:
        conditions.append(TaskRow.priority == task_filter.priority)
    if task_filter.q:
        pattern = _like_pattern(task_filter.q)
        conditions.append(
            or_(
                TaskRow.title.ilike(pattern, escape="\\"),
                TaskRow.description.ilike(pattern, escape="\\"),
            )
        )
    return conditions


def build_list_statement(task_filter: TaskFilter) -> Select[tuple[TaskRow]]:
    column = SORT_COLUMNS[task_filter.effective_sort_by]
    ordering = column.asc() if task_filter.sort_order == "ASC" else column.desc()
    return (
        select(TaskRow)
        .where(*filter_conditions(task_filter))
        # id as tie-breaker keeps pages stable when sort values repeat.
        .order_by(ordering, TaskRow.id)
        .offset(task_filter.offset)
        .limit(task_filter.limit)
    )


def build_count_statement(task_filter: TaskFilter) -> Select[tuple[int]]:
    return select(func.count(TaskRow.id)).where(*filter_conditions(task_filter))


def build_stats_statement() -> Select:
    def count_where(condition: ColumnElement[bool]) -> ColumnElement[int]:
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    return select(
        func.count(TaskRow.id).label("total"),
        count_where(TaskRow.status == TaskStatus.COMPLETED).label("completed"),
        count_where(TaskRow.status == TaskStatus.IN_PROGRESS).label("in_progress"),
        count_where(TaskRow.status == TaskStatus.PENDING).label("pending"),
        count_where(TaskRow.priority == TaskPriority.HIGH).label("high_priority"),
    )


def build_overdue_statement(now: datetime) -> Select[tuple[str]]:
    return select(TaskRow.id).where(
        TaskRow.due_date < now,
        TaskRow.status == TaskStatus.PENDING,
    )


class SqlTaskTransaction(TaskTransaction):
    """Transaction handle bound to one session inside ``session.begin()``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, task_id: str) -> TaskRow:
        row = await self._session.get(TaskRow, task_id, with_for_update=True)
        if row is None:
            raise TaskNotFoundError(task_id)
        return row

    async def create(self, fields: TaskCreate) -> Task:
        row = OrmMapper.to_task_row(uuid4().hex, fields, _utcnow())
        self._session.add(row)
        await self._session.flush()
        return OrmMapper.to_domain_task(row)

    async def get(self, task_id: str) -> Task:
        return OrmMapper.to_domain_task(await self._load(task_id))

    async def update(self, task_id: str, patch: TaskUpdate) -> Task:
        row = await self._load(task_id)
        OrmMapper.apply_changes(row, patch.changes(), _utcnow())
        await self._session.flush()
        return OrmMapper.to_domain_task(row)

    async def set_status(self, task_id: str, status: TaskStatus) -> Task:
        row = await self._load(task_id)
        OrmMapper.apply_changes(row, {"status": status}, _utcnow())
        await self._session.flush()
        return OrmMapper.to_domain_task(row)

    async def delete(self, task_id: str) -> int:
        result = await self._session.execute(delete(TaskRow).where(TaskRow.id == task_id))
        return result.rowcount or 0

    async def bulk_update_status(self, task_ids: Sequence[str], status: TaskStatus) -> int:
        result = await self._session.execute(
            update(TaskRow)
            .where(TaskRow.id.in_(task_ids))
            .values(status=status, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def bulk_delete(self, task_ids: Sequence[str]) -> int:
        result = await self._session.execute(
            delete(TaskRow)
            .where(TaskRow.id.in_(task_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class PostgresTaskRepository(TaskRepository):
    """Postgres-backed task store using SQLAlchemy async sessions."""

    def __init__(self, orm: PostgresOrm) -> None:
        self._orm = orm

    async def run_in_transaction(self, fn: Callable[[TaskTransaction], Awaitable[T]]) -> T:
        async with self._orm.session_factory() as session:
            # session.begin() commits when the block exits cleanly, rolls back otherwise.
            async with session.begin():
                return await fn(SqlTaskTransaction(session))

    async def find_by_id(self, task_id: str) -> Task:
        async with self._orm.session_factory() as session:
            row = await session.get(TaskRow, task_id)
        if row is None:
            raise TaskNotFoundError(task_id)
        return OrmMapper.to_domain_task(row)

    async def find_many(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        async with self._orm.session_factory() as session:
            rows = (await session.execute(build_list_statement(task_filter))).scalars().all()
            total = (await session.execute(build_count_statement(task_filter))).scalar_one()
        return [OrmMapper.to_domain_task(row) for row in rows], total

    async def find_by_status(self, status: TaskStatus) -> list[Task]:
        statement = (
            select(TaskRow)
            .where(TaskRow.status == status)
            .order_by(TaskRow.created_at.desc(), TaskRow.id)
        )
        async with self._orm.session_factory() as session:
            rows = (await session.execute(statement)).scalars().all()
        return [OrmMapper.to_domain_task(row) for row in rows]

    async def find_overdue_ids(self, now: datetime) -> list[str]:
        async with self._orm.session_factory() as session:
            result = await session.execute(build_overdue_statement(now))
            return list(result.scalars().all())

    async def counts_by_status_and_priority(self) -> TaskStats:
        async with self._orm.session_factory() as session:
            row = (await session.execute(build_stats_statement())).one()
        return TaskStats(
            total=row.total,
            completed=row.completed,
            in_progress=row.in_progress,
            pending=row.pending,
            high_priority=row.high_priority,
        )
