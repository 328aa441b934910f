"""Streak recalculation: consecutive calendar days with every task completed.

Completion can be toggled in both directions, so a day that falls out of the
counted run triggers a backward walk instead of a simple decrement.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta

from grounded.core.config import constants
from grounded.core.db_client import DBClient, sanitize_param
from grounded.core.logging import span
from grounded.core.time_parser import parse_date
from grounded.domain.user import User
from grounded.services import user_service


logger = logging.getLogger(__name__)


async def _completion_by_day(
    *, db: DBClient, user_id: str, start: date, end: date
) -> dict[date, list[bool]]:
    """Map each day in [start, end] that has live tasks to its completion flags."""
    records = await db.list_records(
        collection="tasks",
        filter_query=(
            f'user_id = "{sanitize_param(user_id)}" && is_deleted = "false" '
            f'&& date >= "{start.isoformat()}" && date <= "{end.isoformat()}"'
        ),
    )
    days: dict[date, list[bool]] = defaultdict(list)
    for record in records:
        day = parse_date(record["date"])
        if day is not None:
            days[day].append(bool(record["is_completed"]))
    return days


def _is_fully_completed(flags: list[bool]) -> bool:
    return bool(flags) and all(flags)


async def _count_completed_days_before(*, db: DBClient, user_id: str, day: date) -> int:
    """Count consecutive fully-completed days ending the day before ``day``."""
    end = day - timedelta(days=1)
    start = day - timedelta(days=constants.STREAK_LOOKBACK_MAX_DAYS)
    days = await _completion_by_day(db=db, user_id=user_id, start=start, end=end)

    count = 0
    cursor = end
    while cursor >= start and _is_fully_completed(days.get(cursor, [])):
        count += 1
        cursor -= timedelta(days=1)
    return count


async def recalculate_streak(*, db: DBClient, user_id: str, day: date) -> User | None:
    """Recompute a user's streak after task completion changed on ``day``.

    Rules:
        1. A day without tasks is neither a pass nor a break: no-op.
        2. Every task complete: no-op if the day is already the last counted
           date, otherwise extend the streak when the previous day was the last
           counted date, or restart it at 1.
        3. Some task incomplete and the day lies inside the counted run: walk
           back from the previous day counting fully-completed days. That count
           becomes the current streak, the previous day becomes the last counted
           date (or None when the count is zero).

    Args:
        db: Database client
        user_id: Firebase uid of the task owner
        day: Date whose completion state changed

    Returns:
        The user after recalculation, or None if nothing changed or the user
        has no profile row yet

    Raises:
        DatabaseError: If database operation fails
    """
    with span("streak_service.recalculate_streak", user_id=user_id, day=day.isoformat()):
        tasks = await _completion_by_day(db=db, user_id=user_id, start=day, end=day)
        flags = tasks.get(day, [])
        if not flags:
            logger.debug("streak_noop_empty_day", extra={"user_id": user_id, "day": day.isoformat()})
            return None

        user = await user_service.get_user_by_uid(db=db, firebase_uid=user_id)
        if user is None:
            logger.warning("streak_user_missing", extra={"user_id": user_id})
            return None

        last = parse_date(user.last_streak_date)

        if _is_fully_completed(flags):
            if last == day:
                return user

            current = user.current_streak + 1 if last == day - timedelta(days=1) else 1
            return await user_service.update_streak(
                db=db,
                user=user,
                current_streak=current,
                longest_streak=max(user.longest_streak, current),
                last_streak_date=day,
            )

        if last is None or not (last - timedelta(days=user.current_streak) < day <= last):
            return None

        current = await _count_completed_days_before(db=db, user_id=user_id, day=day)
        return await user_service.update_streak(
            db=db,
            user=user,
            current_streak=current,
            longest_streak=max(user.longest_streak, current),
            last_streak_date=day - timedelta(days=1) if current else None,
        )


async def recalculate_streak_safely(*, db: DBClient, user_id: str, day: str | date) -> None:
    """Best-effort wrapper used after task mutations; failures are logged, not raised."""
    parsed = parse_date(day)
    if parsed is None:
        logger.warning("streak_skipped_bad_date", extra={"user_id": user_id, "day": str(day)})
        return
    try:
        await recalculate_streak(db=db, user_id=user_id, day=parsed)
    except Exception:
        logger.exception("streak_recalculation_failed", extra={"user_id": user_id, "day": parsed.isoformat()})
