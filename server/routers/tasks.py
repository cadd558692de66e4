"""Task list routes."""

from fastapi import APIRouter, Depends, HTTPException, Request

from core.container import container
from core.logging import get_logger
from models.auth import UserRole
from models.database import TaskCreate, TaskUpdate
from services.tasks import TaskService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


def get_task_service() -> TaskService:
    return container.task_service()


def require_admin(request: Request) -> None:
    """Reject mutations from non-admin users."""
    if getattr(request.state, "role", None) != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Admin role required")


@router.get("")
async def list_tasks(tasks: TaskService = Depends(get_task_service)):
    """Get all tasks (cached for a short TTL)."""
    return {"success": True, "data": await tasks.list_tasks()}


@router.get("/{task_id}")
async def get_task(task_id: str, tasks: TaskService = Depends(get_task_service)):
    """Get a single task."""
    return {"success": True, "data": await tasks.get_task(task_id)}


@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_task(request: TaskCreate, tasks: TaskService = Depends(get_task_service)):
    """Create a new task (admin only)."""
    return {"success": True, "data": await tasks.create_task(request)}


@router.put("/{task_id}", dependencies=[Depends(require_admin)])
async def update_task(task_id: str, request: TaskUpdate,
                      tasks: TaskService = Depends(get_task_service)):
    """Update a task (admin only)."""
    return {"success": True, "data": await tasks.update_task(task_id, request)}


@router.delete("/{task_id}", dependencies=[Depends(require_admin)])
async def delete_task(task_id: str, tasks: TaskService = Depends(get_task_service)):
    """Delete a task (admin only)."""
    await tasks.delete_task(task_id)
    return {"success": True, "data": {"message": "Task deleted"}}
