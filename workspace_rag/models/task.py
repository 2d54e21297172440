"""Background task status models for the task queue."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from workspace_rag.models.content import utc_now


class TaskState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(BaseModel):
    """Best-effort snapshot of a detached bulk job."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    name: str
    state: TaskState = TaskState.PENDING
    total: int = Field(default=0, ge=0, description="Items scheduled.")
    completed: int = Field(default=0, ge=0, description="Items that finished successfully.")
    failed: int = Field(default=0, ge=0, description="Items that raised.")
    error: str | None = Field(default=None, description="Job-level failure, if the job itself died.")
    created_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def percentage_complete(self) -> float:
        """Processed items as a percentage of scheduled items (0-100)."""
        if self.total == 0:
            return 100.0 if self.state in (TaskState.COMPLETED, TaskState.FAILED) else 0.0
        return round(100.0 * (self.completed + self.failed) / self.total, 1)


class TaskHandle(BaseModel):
    """Returned immediately by ``enqueue``."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    name: str
    scheduled: int = Field(default=0, ge=0, description="Number of items the job will process.")
