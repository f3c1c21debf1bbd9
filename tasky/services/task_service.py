from typing import Any

from tasky.core.exceptions import NotFoundError
from tasky.core.logging import get_logger
from tasky.core.validation import validate_payload
from tasky.models import (
    TaskCreateRequest,
    TaskListResponse,
    TaskResponse,
    TaskStatusUpdateRequest,
    TaskUpdateRequest,
)
from tasky.repositories.task_repository import TaskRepository

logger = get_logger("services.tasks")

TASK_NOT_FOUND = "Task not found"


class TaskService:
    """Owner-scoped task operations.

    A task that belongs to another user is indistinguishable from one that does
    not exist: both raise NotFoundError.
    """

    def __init__(self, task_repo: TaskRepository):
        self.task_repo = task_repo

    async def create(self, owner_id: str, fields: Any) -> TaskResponse:
        payload = validate_payload(TaskCreateRequest, fields)
        task = await self.task_repo.create_task(owner_id, payload.model_dump())
        logger.info("task_created", task_id=str(task.id), owner_id=owner_id)
        return TaskResponse.from_task(task)

    async def list(self, owner_id: str) -> TaskListResponse:
        tasks = [TaskResponse.from_task(task) for task in await self.task_repo.list_by_owner(owner_id)]
        return TaskListResponse(message="Tasks fetched successfully", tasks=tasks, total=len(tasks))

    async def get(self, owner_id: str, task_id: str) -> TaskResponse:
        task = await self.task_repo.get_for_owner(owner_id, task_id)
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        return TaskResponse.from_task(task)

    async def update(self, owner_id: str, task_id: str, fields: Any) -> TaskResponse:
        payload = validate_payload(TaskUpdateRequest, fields)
        task = await self.task_repo.update_for_owner(owner_id, task_id, payload.model_dump(exclude_unset=True))
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        logger.info("task_updated", task_id=task_id, owner_id=owner_id)
        return TaskResponse.from_task(task)

    async def update_status(self, owner_id: str, task_id: str, status: Any) -> TaskResponse:
        payload = validate_payload(TaskStatusUpdateRequest, {"status": status})
        task = await self.task_repo.update_for_owner(owner_id, task_id, {"status": payload.status})
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        logger.info("task_status_updated", task_id=task_id, status=payload.status.value)
        return TaskResponse.from_task(task)

    async def delete(self, owner_id: str, task_id: str) -> TaskResponse:
        task = await self.task_repo.delete_for_owner(owner_id, task_id)
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        logger.info("task_deleted", task_id=task_id, owner_id=owner_id)
        return TaskResponse.from_task(task)
