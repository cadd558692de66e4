"""Task list operations.

Every successful create/update/delete invalidates the whole cached task
list. A failed mutation leaves the cache untouched.
"""

from typing import Any, Dict, List

from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.database import Task, TaskCreate, TaskUpdate
from services.cache_aside import CacheAsideCoordinator, cache_key

logger = get_logger(__name__)

TASKS_RESOURCE = "tasks"


def serialize_task(task: Task) -> Dict[str, Any]:
    """JSON-ready representation used both in responses and in the cache."""
    return task.model_dump(mode="json")


class TaskService:
    """Store access for tasks with cache-aside listing."""

    def __init__(self, database: Database, coordinator: CacheAsideCoordinator,
                 settings: Settings):
        self.database = database
        self.coordinator = coordinator
        self.settings = settings
        self.list_key = cache_key(TASKS_RESOURCE)

    async def list_tasks(self) -> List[Dict[str, Any]]:
        """All tasks, served from the cache when possible."""
        async def load_all() -> List[Dict[str, Any]]:
            tasks = await self.database.get_all_tasks()
            return [serialize_task(task) for task in tasks]

        return await self.coordinator.read_through(
            self.list_key, self.settings.tasks_cache_ttl, load_all
        )

    async def get_task(self, task_id: str) -> Dict[str, Any]:
        task = await self.database.get_task(task_id)
        return serialize_task(task)

    async def create_task(self, data: TaskCreate) -> Dict[str, Any]:
        task = await self.database.create_task(data)
        await self.coordinator.invalidate(self.list_key)
        logger.info("Task created", task_id=task.id)
        return serialize_task(task)

    async def update_task(self, task_id: str, data: TaskUpdate) -> Dict[str, Any]:
        task = await self.database.update_task(task_id, data.model_dump(exclude_unset=True))
        await self.coordinator.invalidate(self.list_key)
        logger.info("Task updated", task_id=task_id)
        return serialize_task(task)

    async def delete_task(self, task_id: str) -> None:
        await self.database.delete_task(task_id)
        await self.coordinator.invalidate(self.list_key)
        logger.info("Task deleted", task_id=task_id)
