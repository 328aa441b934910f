"""Unit tests for chat sessions, messages and recent queries."""

import pytest

from grounded.core.config import constants
from grounded.core.db_client import DBClient
from grounded.core.errors import ForbiddenError, NotFoundError
from grounded.services import chat_service
from tests.mocks import OTHER_USER_ID, USER_ID


@pytest.mark.unit
class TestSessions:
    async def test_new_session_is_the_only_active_one(self, db: DBClient):
        first = await chat_service.create_session(db=db, user_id=USER_ID)
        second = await chat_service.create_session(db=db, user_id=USER_ID, title="Planning")

        sessions = {s.id: s for s in await chat_service.list_sessions(db=db, user_id=USER_ID)}
        active = await chat_service.get_active_session(db=db, user_id=USER_ID)

        assert first.title == constants.DEFAULT_SESSION_TITLE
        assert sessions[first.id].is_active is False
        assert sessions[second.id].is_active is True
        assert active is not None and active.id == second.id

    async def test_activating_session_deactivates_others(self, db: DBClient):
        first = await chat_service.create_session(db=db, user_id=USER_ID)
        await chat_service.create_session(db=db, user_id=USER_ID)

        await chat_service.update_session(db=db, session_id=first.id, is_active=True)

        active = await chat_service.get_active_session(db=db, user_id=USER_ID)
        assert active is not None and active.id == first.id

    async def test_users_have_independent_active_sessions(self, db: DBClient):
        mine = await chat_service.create_session(db=db, user_id=USER_ID)
        await chat_service.create_session(db=db, user_id=OTHER_USER_ID)

        active = await chat_service.get_active_session(db=db, user_id=USER_ID)

        assert active is not None and active.id == mine.id

    async def test_get_or_create_active_session_reuses(self, db: DBClient):
        created = await chat_service.get_or_create_active_session(db=db, user_id=USER_ID)
        again = await chat_service.get_or_create_active_session(db=db, user_id=USER_ID)

        assert created.id == again.id

    async def test_ownership(self, db: DBClient):
        session = await chat_service.create_session(db=db, user_id=OTHER_USER_ID)

        with pytest.raises(ForbiddenError):
            await chat_service.get_owned_session(db=db, session_id=session.id, user_id=USER_ID)
        with pytest.raises(NotFoundError):
            await chat_service.get_owned_session(db=db, session_id="missing", user_id=USER_ID)

    async def test_delete_cascades_messages(self, db: DBClient):
        session = await chat_service.create_session(db=db, user_id=USER_ID)
        message = await chat_service.add_message(db=db, session_id=session.id, text="hi", is_user=True)

        await chat_service.delete_session(db=db, session_id=session.id)

        assert await chat_service.get_message(db=db, message_id=message.id) is None


@pytest.mark.unit
class TestMessages:
    async def test_messages_in_insertion_order(self, db: DBClient):
        session = await chat_service.create_session(db=db, user_id=USER_ID)
        for index in range(5):
            await chat_service.add_message(db=db, session_id=session.id, text=f"m{index}", is_user=index % 2 == 0)

        all_messages = await chat_service.list_messages(db=db, session_id=session.id)
        latest = await chat_service.list_messages(db=db, session_id=session.id, limit=2)

        assert [m.text for m in all_messages] == ["m0", "m1", "m2", "m3", "m4"]
        assert [m.text for m in latest] == ["m3", "m4"]

    async def test_tasks_round_trip_as_json(self, db: DBClient):
        session = await chat_service.create_session(db=db, user_id=USER_ID)

        message = await chat_service.add_message(
            db=db, session_id=session.id, text="Found 1", is_user=False, tasks=[{"id": "t1", "title": "Gym"}]
        )

        assert message.tasks == [{"id": "t1", "title": "Gym"}]
        assert message.confirmation is None

    async def test_title_comes_from_first_message(self, db: DBClient):
        session = await chat_service.create_session(db=db, user_id=USER_ID)

        await chat_service.update_title_from_message(
            db=db, session_id=session.id, message="Schedule a dentist appointment tomorrow at 5pm"
        )
        await chat_service.update_title_from_message(db=db, session_id=session.id, message="Second message")

        updated = await chat_service.get_session(db=db, session_id=session.id)
        assert updated is not None
        assert updated.title == "Schedule a dentist appointment..."


@pytest.mark.unit
class TestRecentChats:
    async def test_capped_and_newest_first(self, db: DBClient):
        for index in range(constants.RECENT_CHATS_LIMIT + 3):
            await chat_service.add_recent_chat(db=db, user_id=USER_ID, query=f"query {index}")

        recent = await chat_service.get_recent_chats(db=db, user_id=USER_ID)
        rows = await db.list_records(collection="recent_chats")

        assert len(rows) == constants.RECENT_CHATS_LIMIT
        assert recent[0] == f"query {constants.RECENT_CHATS_LIMIT + 2}"
        assert "query 0" not in recent

    async def test_repeated_query_moves_to_front(self, db: DBClient):
        await chat_service.add_recent_chat(db=db, user_id=USER_ID, query='what about "quotes" && things?')
        await chat_service.add_recent_chat(db=db, user_id=USER_ID, query="second")
        await chat_service.add_recent_chat(db=db, user_id=USER_ID, query='what about "quotes" && things?')

        recent = await chat_service.get_recent_chats(db=db, user_id=USER_ID)

        assert recent == ['what about "quotes" && things?', "second"]

    async def test_history_bundles_sessions_and_recent(self, db: DBClient):
        await chat_service.create_session(db=db, user_id=USER_ID)
        await chat_service.add_recent_chat(db=db, user_id=USER_ID, query="hello")

        history = await chat_service.get_chat_history(db=db, user_id=USER_ID)

        assert len(history.sessions) == 1
        assert history.model_dump(by_alias=True)["recentChats"] == ["hello"]
