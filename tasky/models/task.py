from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ConfigDict, Field, model_validator

from .base import ApiModel
from .enums import TaskCategory, TaskPriority, TaskStatus

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000


def _as_utc(value: datetime) -> datetime:
    # MongoDB hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_overdue(due_date: Optional[datetime], status: Any, now: Optional[datetime] = None) -> bool:
    """A task is overdue when it has a due date in the past and is not completed."""
    if due_date is None:
        return False
    if TaskStatus(status) == TaskStatus.COMPLETED:
        return False
    now = _as_utc(now or datetime.now(timezone.utc))
    return _as_utc(due_date) < now


class TaskCreateRequest(ApiModel):
    """Fields accepted when creating a task. Ownership comes from the token."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    category: TaskCategory
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None


class TaskUpdateRequest(ApiModel):
    """Partial task update.

    Ownership, id and timestamps are not fields of this model, so any attempt to
    send them is dropped.
    """

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None

    @model_validator(mode="after")
    def _required_not_null(self) -> "TaskUpdateRequest":
        for field in ("title", "description", "category", "priority", "status"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"Field '{field}' cannot be null")
        return self


class TaskStatusUpdateRequest(ApiModel):
    status: TaskStatus


class TaskResponse(ApiModel):
    id: str
    owner_id: str
    title: str
    description: str
    category: TaskCategory
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_overdue: bool = False

    @classmethod
    def from_task(cls, task: Any, now: Optional[datetime] = None) -> "TaskResponse":
        return cls(
            id=str(task.id),
            owner_id=str(task.owner_id),
            title=task.title,
            description=task.description,
            category=task.category,
            priority=task.priority,
            status=task.status,
            due_date=getattr(task, "due_date", None),
            reminder=getattr(task, "reminder", None),
            created_at=getattr(task, "created_at", None),
            updated_at=getattr(task, "updated_at", None),
            is_overdue=is_overdue(getattr(task, "due_date", None), task.status, now),
        )


class TaskEnvelope(ApiModel):
    message: str
    task: TaskResponse


class TaskListResponse(ApiModel):
    message: str
    tasks: List[TaskResponse]
    total: int
