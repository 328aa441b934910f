"""Task and subtask CRUD endpoints for the mobile client."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from grounded.core.db_client import DBClient
from grounded.domain.task import SubtaskCreate, SubtaskUpdate, SyncTaskItem, TaskCreate, TaskUpdate
from grounded.domain.user import AuthenticatedUser
from grounded.interface.dependencies import get_current_user, get_db
from grounded.services import task_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class SyncRequest(BaseModel):
    tasks: list[SyncTaskItem] = Field(default_factory=list)


def _success(data: Any) -> dict[str, Any]:
    return {"status": "success", "data": data}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    task = await task_service.create_task(db=db, user_id=user.uid, task=payload)
    return _success(task.model_dump(mode="json"))


@router.get("")
async def list_tasks(
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """List the caller's live tasks, optionally limited to an inclusive date range."""
    if start_date and end_date:
        tasks = await task_service.list_user_tasks_in_range(
            db=db, user_id=user.uid, start_date=start_date, end_date=end_date
        )
    else:
        tasks = await task_service.list_user_tasks(db=db, user_id=user.uid)
    return _success([task.model_dump(mode="json") for task in tasks])


@router.post("/sync")
async def sync_tasks(
    payload: SyncRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Apply a batch of offline changes; per-item failures are reported, not raised."""
    result = await task_service.sync_tasks(db=db, user_id=user.uid, items=payload.tasks)
    return _success(result.model_dump(mode="json"))


@router.put("/subtasks/{subtask_id}")
async def update_subtask(
    subtask_id: str,
    payload: SubtaskUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    subtask = await task_service.update_owned_subtask(db=db, user_id=user.uid, subtask_id=subtask_id, update=payload)
    return _success(subtask.model_dump(mode="json"))


@router.delete("/subtasks/{subtask_id}")
async def delete_subtask(
    subtask_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    await task_service.get_owned_subtask(db=db, subtask_id=subtask_id, user_id=user.uid)
    await task_service.delete_subtask(db=db, subtask_id=subtask_id)
    return _success(None)


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    task = await task_service.get_owned_task(db=db, task_id=task_id, user_id=user.uid)
    return _success(task.model_dump(mode="json"))


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Partially update a task. Completion changes recalculate the streak."""
    task = await task_service.update_owned_task(db=db, user_id=user.uid, task_id=task_id, update=payload)
    return _success(task.model_dump(mode="json"))


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    await task_service.delete_owned_task(db=db, user_id=user.uid, task_id=task_id)
    return {"status": "success", "message": "Task deleted successfully"}


@router.post("/{task_id}/subtasks", status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: str,
    payload: SubtaskCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    await task_service.get_owned_task(db=db, task_id=task_id, user_id=user.uid)
    subtask = await task_service.create_subtask(db=db, task_id=task_id, subtask=payload)
    return _success(subtask.model_dump(mode="json"))
