import math

from pydantic import BaseModel, Field

from src.taskhub.domain.models.task import Task


class TaskPage(BaseModel):
    items: list[Task] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    total_pages: int = Field(serialization_alias="totalPages")

    @classmethod
    def build(cls, items: list[Task], total: int, page: int, limit: int) -> "TaskPage":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )
