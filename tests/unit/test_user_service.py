"""Unit tests for user profile sync."""

from datetime import date

import pytest

from grounded.core.db_client import DBClient
from grounded.services import user_service


@pytest.mark.unit
class TestUserService:
    async def test_upsert_is_idempotent(self, db: DBClient):
        first = await user_service.upsert_user(
            db=db, firebase_uid="uid-1", email="one@example.com", display_name="One"
        )
        second = await user_service.upsert_user(
            db=db, firebase_uid="uid-1", email="one@example.com", display_name="Still One"
        )

        rows = await db.list_records(collection="users")
        assert len(rows) == 1
        assert second.id == first.id
        assert second.display_name == "Still One"

    async def test_upsert_keeps_streak(self, db: DBClient):
        user = await user_service.upsert_user(db=db, firebase_uid="uid-1", email=None, display_name=None)
        await user_service.update_streak(
            db=db, user=user, current_streak=2, longest_streak=5, last_streak_date=date(2026, 3, 4)
        )

        refreshed = await user_service.upsert_user(
            db=db, firebase_uid="uid-1", email="new@example.com", display_name="New"
        )

        assert (refreshed.current_streak, refreshed.longest_streak) == (2, 5)
        assert refreshed.last_streak_date == "2026-03-04"

    async def test_unknown_uid(self, db: DBClient):
        assert await user_service.get_user_by_uid(db=db, firebase_uid="nobody") is None
