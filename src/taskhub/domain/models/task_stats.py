from pydantic import BaseModel, Field


class TaskStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = Field(default=0, serialization_alias="inProgress")
    pending: int = 0
    high_priority: int = Field(default=0, serialization_alias="highPriority")
