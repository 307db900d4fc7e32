from __future__ import annotations

from datetime import datetime
from typing import Any

from src.taskhub.domain.models.task import Task, TaskCreate
from src.taskhub.infrastructure.postgres.orm import TaskRow


class OrmMapper:
    @staticmethod
    def to_task_row(task_id: str, fields: TaskCreate, created_at: datetime) -> TaskRow:
        return TaskRow(
            id=task_id,
            title=fields.title,
            description=fields.description,
            status=fields.status,
            priority=fields.priority,
            due_date=fields.due_date,
            created_at=created_at,
            updated_at=created_at,
            user_id=fields.user_id,
        )

    @staticmethod
    def to_domain_task(row: TaskRow) -> Task:
        return Task(
            id=row.id,
            title=row.title,
            description=row.description,
            status=row.status,
            priority=row.priority,
            due_date=row.due_date,
            created_at=row.created_at,
            updated_at=row.updated_at,
            user_id=row.user_id,
        )

    @staticmethod
    def apply_changes(row: TaskRow, changes: dict[str, Any], updated_at: datetime) -> None:
        # id, created_at and user_id are not part of TaskUpdate and never change here.
        for field in ("title", "description", "status", "priority", "due_date"):
            if field in changes:
                setattr(row, field, changes[field])
        row.updated_at = updated_at
