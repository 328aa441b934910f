"""User service for profile sync and streak state."""

import logging
from datetime import UTC, date, datetime

from grounded.core.db_client import DBClient, sanitize_param
from grounded.core.logging import log_with_user_context, span
from grounded.domain.user import User


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def upsert_user(
    *,
    db: DBClient,
    firebase_uid: str,
    email: str | None,
    display_name: str | None,
) -> User:
    """Create the user on first sight, refresh profile fields afterwards.

    Keyed on the firebase uid, so repeated calls never fail and never create a
    second row. Streak counters are left untouched on update.

    Args:
        db: Database client
        firebase_uid: External identity provider uid
        email: Email from the verified token
        display_name: Display name (callers fall back to the email)

    Returns:
        The stored user

    Raises:
        DatabaseError: If database operation fails
    """
    with span("user_service.upsert_user"):
        now = _now()
        record = await db.upsert_record(
            collection="users",
            data={
                "firebase_uid": firebase_uid,
                "email": email,
                "display_name": display_name,
                "created_at": now,
                "updated_at": now,
            },
            conflict_columns=["firebase_uid"],
        )
        logger.info("user_synced", extra={"user_id": firebase_uid, "email": email})
        return User(**record)


async def get_user_by_uid(*, db: DBClient, firebase_uid: str) -> User | None:
    """Get a user by firebase uid, or None if they never registered."""
    with span("user_service.get_user_by_uid"):
        record = await db.get_first_record(
            collection="users",
            filter_query=f'firebase_uid = "{sanitize_param(firebase_uid)}"',
        )
        return User(**record) if record else None


async def update_streak(
    *,
    db: DBClient,
    user: User,
    current_streak: int,
    longest_streak: int,
    last_streak_date: date | None,
) -> User:
    """Persist new streak counters for a user."""
    with span("user_service.update_streak"):
        record = await db.update_record(
            collection="users",
            record_id=user.id,
            data={
                "current_streak": current_streak,
                "longest_streak": longest_streak,
                "last_streak_date": last_streak_date.isoformat() if last_streak_date else None,
                "updated_at": _now(),
            },
        )
        log_with_user_context(
            logger,
            "info",
            "streak_updated",
            user_id=user.firebase_uid,
            current_streak=current_streak,
            longest_streak=longest_streak,
            last_streak_date=record["last_streak_date"],
        )
        return User(**record)
