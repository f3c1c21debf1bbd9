from typing import Any, Dict, List, Optional

from tasky.models.documents import TaskDocument
from tasky.repositories import to_object_id


class TaskRepository:
    """Task store. Every lookup is scoped to the owning user."""

    async def create_task(self, owner_id: str, fields: Dict[str, Any]) -> TaskDocument:
        task = TaskDocument(owner_id=to_object_id(owner_id), **fields)
        await task.insert()
        return task

    async def list_by_owner(self, owner_id: str) -> List[TaskDocument]:
        oid = to_object_id(owner_id)
        if oid is None:
            return []
        return await TaskDocument.find(TaskDocument.owner_id == oid).sort(-TaskDocument.created_at).to_list()

    async def get_for_owner(self, owner_id: str, task_id: str) -> Optional[TaskDocument]:
        owner_oid = to_object_id(owner_id)
        task_oid = to_object_id(task_id)
        if owner_oid is None or task_oid is None:
            return None
        return await TaskDocument.find_one(TaskDocument.id == task_oid, TaskDocument.owner_id == owner_oid)

    async def update_for_owner(self, owner_id: str, task_id: str, fields: Dict[str, Any]) -> Optional[TaskDocument]:
        task = await self.get_for_owner(owner_id, task_id)
        if task is None:
            return None
        if fields:
            for key, value in fields.items():
                setattr(task, key, value)
            await task.save()
        return task

    async def delete_for_owner(self, owner_id: str, task_id: str) -> Optional[TaskDocument]:
        task = await self.get_for_owner(owner_id, task_id)
        if task is None:
            return None
        await task.delete()
        return task
