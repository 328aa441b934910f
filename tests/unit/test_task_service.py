"""Unit tests for task and subtask storage."""

from datetime import date

import pytest

from grounded.core.db_client import DBClient
from grounded.core.errors import ForbiddenError, NotFoundError
from grounded.domain.task import (
    SubtaskCreate,
    SubtaskUpdate,
    SyncTaskItem,
    TaskCreate,
    TaskTag,
    TaskUpdate,
    UnknownRecurrence,
)
from grounded.services import task_service
from tests.conftest import add_task
from tests.mocks import OTHER_USER_ID, USER_ID


@pytest.mark.unit
class TestCreateTask:
    async def test_defaults_missing_schedule(self, db: DBClient):
        task = await task_service.create_task(
            db=db, user_id=USER_ID, task=TaskCreate(title="Read"), today=date(2026, 3, 4)
        )

        assert (task.date, task.start_time, task.end_time) == ("2026-03-04", "09:00", "10:00")
        assert task.is_completed is False
        assert task.is_deleted is False

    async def test_normalises_iso_start_time(self, db: DBClient):
        task = await task_service.create_task(
            db=db,
            user_id=USER_ID,
            task=TaskCreate(title="Dentist", start_time="2026-03-05T17:00:00Z"),
            today=date(2026, 3, 4),
        )

        assert (task.date, task.start_time, task.end_time) == ("2026-03-05", "17:00", "18:00")

    async def test_persists_tags_recurrence_and_subtasks(self, db: DBClient):
        created = await task_service.create_task(
            db=db,
            user_id=USER_ID,
            task=TaskCreate(
                title="Deep work",
                date="2026-03-04",
                tags=["grounded", {"color": "red"}],
                recurrence={"freq": "monthly"},
                subtasks=[SubtaskCreate(title="Outline", order_index=1), SubtaskCreate(title="Draft", order_index=0)],
            ),
        )

        task = await task_service.get_task(db=db, task_id=created.id)

        assert task is not None
        assert task.tags == [TaskTag.GROUNDED, {"color": "red"}]
        assert isinstance(task.recurrence, UnknownRecurrence)
        assert task.recurrence.raw == {"freq": "monthly"}
        assert [s.title for s in task.subtasks] == ["Draft", "Outline"]


@pytest.mark.unit
class TestQueries:
    async def test_only_owner_tasks_in_date_order(self, db: DBClient):
        await add_task(db, title="Later", day="2026-03-05")
        await add_task(db, title="Sooner", day="2026-03-04", start_time="08:00")
        await add_task(db, title="Bob's", day="2026-03-04", user_id=OTHER_USER_ID)

        tasks = await task_service.list_user_tasks(db=db, user_id=USER_ID)

        assert [t.title for t in tasks] == ["Sooner", "Later"]

    async def test_range_is_inclusive(self, db: DBClient):
        for day in ("2026-03-01", "2026-03-02", "2026-03-03", "2026-03-04"):
            await add_task(db, title=day, day=day)

        tasks = await task_service.list_user_tasks_in_range(
            db=db, user_id=USER_ID, start_date="2026-03-02", end_date="2026-03-03"
        )

        assert [t.title for t in tasks] == ["2026-03-02", "2026-03-03"]

    async def test_soft_deleted_tasks_are_hidden(self, db: DBClient):
        task = await add_task(db, title="Gone", day="2026-03-04")

        await task_service.delete_owned_task(db=db, user_id=USER_ID, task_id=task.id)

        assert await task_service.get_task(db=db, task_id=task.id) is None
        assert await task_service.list_user_tasks(db=db, user_id=USER_ID) == []


@pytest.mark.unit
class TestUpdateTask:
    async def test_partial_update_keeps_other_fields(self, db: DBClient):
        task = await add_task(db, title="Gym", day="2026-03-04", start_time="07:00")

        updated = await task_service.update_task(
            db=db, task_id=task.id, update=TaskUpdate(description="Leg day")
        )

        assert updated.title == "Gym"
        assert updated.description == "Leg day"
        assert (updated.start_time, updated.end_time) == ("07:00", "08:00")

    async def test_moving_start_moves_end(self, db: DBClient):
        task = await add_task(db, title="Dentist", day="2026-03-04", start_time="17:00")

        updated = await task_service.update_task(db=db, task_id=task.id, update=TaskUpdate(start_time="18:00"))

        assert (updated.start_time, updated.end_time) == ("18:00", "19:00")

    async def test_subtasks_list_replaces_existing(self, db: DBClient):
        created = await task_service.create_task(
            db=db,
            user_id=USER_ID,
            task=TaskCreate(title="Trip", date="2026-03-04", subtasks=[SubtaskCreate(title="Old")]),
        )

        updated = await task_service.update_task(
            db=db,
            task_id=created.id,
            update=TaskUpdate(subtasks=[SubtaskCreate(title="Pack"), SubtaskCreate(title="Book")]),
        )

        assert sorted(s.title for s in updated.subtasks) == ["Book", "Pack"]

    async def test_other_users_task_is_forbidden(self, db: DBClient):
        task = await add_task(db, title="Private", day="2026-03-04", user_id=OTHER_USER_ID)

        with pytest.raises(ForbiddenError):
            await task_service.update_owned_task(
                db=db, user_id=USER_ID, task_id=task.id, update=TaskUpdate(title="Mine now")
            )

    async def test_missing_task(self, db: DBClient):
        with pytest.raises(NotFoundError):
            await task_service.update_task(db=db, task_id="missing", update=TaskUpdate(title="x"))


@pytest.mark.unit
class TestSubtasks:
    async def test_completing_all_subtasks_completes_parent(self, db: DBClient, alice):
        created = await task_service.create_task(
            db=db,
            user_id=USER_ID,
            task=TaskCreate(title="Move", date="2026-03-04", subtasks=[SubtaskCreate(title="Pack")]),
        )
        subtask = created.subtasks[0]

        await task_service.update_owned_subtask(
            db=db, user_id=USER_ID, subtask_id=subtask.id, update=SubtaskUpdate(is_completed=True)
        )

        parent = await task_service.get_task(db=db, task_id=created.id)
        assert parent is not None
        assert parent.is_completed is True

    async def test_subtask_of_other_user_is_forbidden(self, db: DBClient):
        created = await task_service.create_task(
            db=db,
            user_id=OTHER_USER_ID,
            task=TaskCreate(title="Bob's", date="2026-03-04", subtasks=[SubtaskCreate(title="Secret")]),
        )

        with pytest.raises(ForbiddenError):
            await task_service.get_owned_subtask(db=db, subtask_id=created.subtasks[0].id, user_id=USER_ID)


@pytest.mark.unit
class TestSyncTasks:
    async def test_mixed_batch_reports_each_item(self, db: DBClient):
        existing = await add_task(db, title="Existing", day="2026-03-04")
        doomed = await add_task(db, title="Doomed", day="2026-03-04")

        result = await task_service.sync_tasks(
            db=db,
            user_id=USER_ID,
            items=[
                SyncTaskItem(title="Fresh", date="2026-03-05"),
                SyncTaskItem(id=existing.id, title="Renamed"),
                SyncTaskItem(id=doomed.id, is_deleted=True),
                SyncTaskItem(description="no title"),
            ],
        )

        assert [t.title for t in result.created] == ["Fresh"]
        assert [t.title for t in result.updated] == ["Renamed"]
        assert result.deleted == [{"id": doomed.id}]
        assert len(result.errors) == 1
        assert "title is required" in result.errors[0]["error"]
