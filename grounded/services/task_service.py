"""Task store: task and subtask CRUD scoped to a single owner."""

import logging
from datetime import UTC, date, datetime
from typing import Any

from grounded.core.db_client import DBClient, sanitize_param
from grounded.core.errors import ForbiddenError, NotFoundError, RecordNotFoundError
from grounded.core.logging import span
from grounded.core.time_parser import resolve_task_window
from grounded.domain.task import (
    Subtask,
    SubtaskCreate,
    SubtaskUpdate,
    SyncResult,
    SyncTaskItem,
    Task,
    TaskCreate,
    TaskUpdate,
    dump_recurrence,
)
from grounded.services import streak_service


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _today() -> date:
    return datetime.now(UTC).date()


def _dump_tags(tags: list[Any]) -> list[Any]:
    return [str(tag) if isinstance(tag, str) else tag for tag in tags]


async def _load_subtasks(*, db: DBClient, task_id: str) -> list[Subtask]:
    records = await db.list_records(
        collection="subtasks",
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
        sort="+order_index,+created_at",
    )
    return [Subtask(**record) for record in records]


async def _hydrate(*, db: DBClient, record: dict[str, Any]) -> Task:
    subtasks = await _load_subtasks(db=db, task_id=record["id"])
    return Task(**record, subtasks=subtasks)


async def _hydrate_all(*, db: DBClient, records: list[dict[str, Any]]) -> list[Task]:
    return [await _hydrate(db=db, record=record) for record in records]


async def _insert_subtask(*, db: DBClient, task_id: str, subtask: SubtaskCreate) -> Subtask:
    now = _now()
    record = await db.create_record(
        collection="subtasks",
        data={
            "task_id": task_id,
            "title": subtask.title,
            "is_completed": subtask.is_completed,
            "order_index": subtask.order_index,
            "created_at": now,
            "updated_at": now,
        },
    )
    return Subtask(**record)


async def create_task(*, db: DBClient, user_id: str, task: TaskCreate, today: date | None = None) -> Task:
    """Create a task (and its subtasks) for a user.

    Missing scheduling fields are synthesized so the stored task always has a
    date and a forward start/end window.

    Args:
        db: Database client
        user_id: Owner's firebase uid
        task: Task payload
        today: Date used when the payload carries none (defaults to today, UTC)

    Returns:
        Created task with subtasks

    Raises:
        DatabaseError: If database operation fails
    """
    with span("task_service.create_task"):
        window = resolve_task_window(
            date_value=task.date,
            start=task.start_time,
            end=task.end_time,
            today=today or _today(),
        )
        now = _now()
        record = await db.create_record(
            collection="tasks",
            data={
                "user_id": user_id,
                "title": task.title,
                "description": task.description,
                "date": window.date,
                "start_time": window.start_time,
                "end_time": window.end_time,
                "tags": _dump_tags(task.tags),
                "recurrence": dump_recurrence(task.recurrence),
                "is_completed": task.is_completed,
                "is_deleted": False,
                "created_at": now,
                "updated_at": now,
            },
        )

        for subtask in task.subtasks:
            await _insert_subtask(db=db, task_id=record["id"], subtask=subtask)

        logger.info("task_created", extra={"user_id": user_id, "task_id": record["id"], "date": window.date})
        return await _hydrate(db=db, record=record)


async def get_task(*, db: DBClient, task_id: str) -> Task | None:
    """Find a task by ID. Soft-deleted tasks are reported as missing."""
    with span("task_service.get_task"):
        try:
            record = await db.get_record(collection="tasks", record_id=task_id)
        except RecordNotFoundError:
            return None
        if record["is_deleted"]:
            return None
        return await _hydrate(db=db, record=record)


async def get_owned_task(*, db: DBClient, task_id: str, user_id: str) -> Task:
    """Get a task and verify it belongs to the caller.

    Raises:
        NotFoundError: If the task does not exist or is soft-deleted
        ForbiddenError: If the task belongs to someone else
    """
    task = await get_task(db=db, task_id=task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if task.user_id != user_id:
        logger.warning("task_access_denied", extra={"user_id": user_id, "task_id": task_id})
        raise ForbiddenError("Unauthorized")
    return task


async def list_user_tasks(*, db: DBClient, user_id: str) -> list[Task]:
    """All live tasks of a user, ordered by date then start time."""
    with span("task_service.list_user_tasks"):
        records = await db.list_records(
            collection="tasks",
            filter_query=f'user_id = "{sanitize_param(user_id)}" && is_deleted = "false"',
            sort="+date,+start_time",
        )
        return await _hydrate_all(db=db, records=records)


async def list_user_tasks_in_range(*, db: DBClient, user_id: str, start_date: str, end_date: str) -> list[Task]:
    """Live tasks of a user whose date lies within [start_date, end_date]."""
    with span("task_service.list_user_tasks_in_range"):
        records = await db.list_records(
            collection="tasks",
            filter_query=(
                f'user_id = "{sanitize_param(user_id)}" && is_deleted = "false" '
                f'&& date >= "{sanitize_param(start_date)}" && date <= "{sanitize_param(end_date)}"'
            ),
            sort="+date,+start_time",
        )
        return await _hydrate_all(db=db, records=records)


async def list_user_tasks_for_date(*, db: DBClient, user_id: str, day: str) -> list[Task]:
    return await list_user_tasks_in_range(db=db, user_id=user_id, start_date=day, end_date=day)


async def update_task(*, db: DBClient, task_id: str, update: TaskUpdate, today: date | None = None) -> Task:
    """Apply a partial update to a task.

    Scheduling fields are merged with the stored ones and re-normalized. A
    ``subtasks`` list replaces every existing subtask.

    Raises:
        NotFoundError: If the task does not exist or is soft-deleted
        DatabaseError: If database operation fails
    """
    with span("task_service.update_task"):
        existing = await get_task(db=db, task_id=task_id)
        if existing is None:
            raise NotFoundError("Task not found")

        fields = update.model_dump(exclude_unset=True, exclude={"subtasks"})
        data: dict[str, Any] = {}

        for key in ("title", "description", "is_completed"):
            if key in fields and (fields[key] is not None or key == "description"):
                data[key] = fields[key]
        if update.tags is not None:
            data["tags"] = _dump_tags(update.tags)
        if update.recurrence is not None:
            data["recurrence"] = dump_recurrence(update.recurrence)

        if {"date", "start_time", "end_time"} & fields.keys():
            window = resolve_task_window(
                date_value=update.date or existing.date,
                start=update.start_time or existing.start_time,
                end=update.end_time if update.end_time else (None if update.start_time else existing.end_time),
                today=today or _today(),
            )
            data.update(date=window.date, start_time=window.start_time, end_time=window.end_time)

        data["updated_at"] = _now()
        await db.update_record(collection="tasks", record_id=task_id, data=data)

        if update.subtasks is not None:
            await db.execute("DELETE FROM subtasks WHERE task_id = ?", [task_id])
            for subtask in update.subtasks:
                await _insert_subtask(db=db, task_id=task_id, subtask=subtask)

        logger.info("task_updated", extra={"task_id": task_id, "fields": sorted(data)})
        task = await get_task(db=db, task_id=task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task


async def soft_delete_task(*, db: DBClient, task_id: str) -> None:
    """Flag a task as deleted. Subsequent reads treat it as missing."""
    with span("task_service.soft_delete_task"):
        await db.update_record(
            collection="tasks",
            record_id=task_id,
            data={"is_deleted": True, "updated_at": _now()},
        )
        logger.info("task_deleted", extra={"task_id": task_id})


async def update_owned_task(*, db: DBClient, user_id: str, task_id: str, update: TaskUpdate) -> Task:
    """Ownership-checked update that also keeps the streak in step with completion changes."""
    existing = await get_owned_task(db=db, task_id=task_id, user_id=user_id)
    task = await update_task(db=db, task_id=task_id, update=update)

    if existing.is_completed != task.is_completed:
        await streak_service.recalculate_streak_safely(db=db, user_id=user_id, day=task.date)
        if existing.date != task.date:
            await streak_service.recalculate_streak_safely(db=db, user_id=user_id, day=existing.date)
    return task


async def delete_owned_task(*, db: DBClient, user_id: str, task_id: str) -> None:
    await get_owned_task(db=db, task_id=task_id, user_id=user_id)
    await soft_delete_task(db=db, task_id=task_id)


async def create_subtask(*, db: DBClient, task_id: str, subtask: SubtaskCreate) -> Subtask:
    """Add a subtask to an existing task."""
    with span("task_service.create_subtask"):
        if await get_task(db=db, task_id=task_id) is None:
            raise NotFoundError("Task not found")
        created = await _insert_subtask(db=db, task_id=task_id, subtask=subtask)
        logger.info("subtask_created", extra={"task_id": task_id, "subtask_id": created.id})
        return created


async def get_owned_subtask(*, db: DBClient, subtask_id: str, user_id: str) -> Subtask:
    """Get a subtask, verifying its parent task belongs to the caller."""
    try:
        record = await db.get_record(collection="subtasks", record_id=subtask_id)
    except RecordNotFoundError as e:
        raise NotFoundError("Subtask not found") from e
    await get_owned_task(db=db, task_id=record["task_id"], user_id=user_id)
    return Subtask(**record)


async def update_subtask(*, db: DBClient, subtask_id: str, update: SubtaskUpdate) -> Subtask:
    """Apply a partial update to a subtask."""
    with span("task_service.update_subtask"):
        data: dict[str, Any] = {
            key: value for key, value in update.model_dump(exclude_unset=True).items() if value is not None
        }
        data["updated_at"] = _now()
        try:
            record = await db.update_record(collection="subtasks", record_id=subtask_id, data=data)
        except RecordNotFoundError as e:
            raise NotFoundError("Subtask not found") from e
        return Subtask(**record)


async def update_owned_subtask(*, db: DBClient, user_id: str, subtask_id: str, update: SubtaskUpdate) -> Subtask:
    """Update a subtask, then reconcile the parent task's completion and the streak.

    When every subtask is complete the parent is marked complete; when any is
    incomplete a completed parent is reopened. Reconciliation is best-effort.
    """
    await get_owned_subtask(db=db, subtask_id=subtask_id, user_id=user_id)
    subtask = await update_subtask(db=db, subtask_id=subtask_id, update=update)

    try:
        parent = await get_task(db=db, task_id=subtask.task_id)
        if parent is not None:
            all_done = all(item.is_completed for item in parent.subtasks)
            if all_done != parent.is_completed:
                logger.info(
                    "parent_completion_reconciled",
                    extra={"task_id": parent.id, "is_completed": all_done},
                )
                await update_task(db=db, task_id=parent.id, update=TaskUpdate(is_completed=all_done))
                await streak_service.recalculate_streak_safely(db=db, user_id=user_id, day=parent.date)
    except Exception:
        logger.exception("parent_reconcile_failed", extra={"subtask_id": subtask_id})

    return subtask


async def delete_subtask(*, db: DBClient, subtask_id: str) -> None:
    with span("task_service.delete_subtask"):
        try:
            await db.delete_record(collection="subtasks", record_id=subtask_id)
        except RecordNotFoundError as e:
            raise NotFoundError("Subtask not found") from e


async def sync_tasks(*, db: DBClient, user_id: str, items: list[SyncTaskItem]) -> SyncResult:
    """Apply the mobile client's offline queue.

    Each item is a delete (``is_deleted``), an update (known ``id``) or a
    create (no id, or an id the server has never seen). Failures are captured
    per item and do not stop the batch.
    """
    with span("task_service.sync_tasks"):
        result = SyncResult()

        for item in items:
            try:
                if item.is_deleted:
                    if item.id:
                        await delete_owned_task(db=db, user_id=user_id, task_id=item.id)
                        result.deleted.append({"id": item.id})
                    continue

                existing = await get_task(db=db, task_id=item.id) if item.id else None
                if existing is not None:
                    update = TaskUpdate(**item.model_dump(exclude_unset=True, exclude={"id", "is_deleted"}))
                    result.updated.append(
                        await update_owned_task(db=db, user_id=user_id, task_id=item.id, update=update)  # type: ignore[arg-type]
                    )
                    continue

                if not item.title:
                    raise ValueError("title is required to create a task")
                create = TaskCreate(
                    **item.model_dump(exclude_unset=True, exclude={"id", "is_deleted"}, exclude_none=True)
                )
                result.created.append(await create_task(db=db, user_id=user_id, task=create))
            except Exception as e:
                logger.warning("sync_item_failed", extra={"user_id": user_id, "task_id": item.id, "error": str(e)})
                result.errors.append(
                    {"task": item.model_dump(mode="json", exclude_unset=True), "error": getattr(e, "message", str(e))}
                )

        logger.info(
            "tasks_synced",
            extra={
                "user_id": user_id,
                "created": len(result.created),
                "updated": len(result.updated),
                "deleted": len(result.deleted),
                "errors": len(result.errors),
            },
        )
        return result
