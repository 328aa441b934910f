"""Lenient date and time-of-day parsing for task windows.

Clients and the language model hand us dates and times in many shapes
("2026-03-04T17:00:00Z", "2026-03-04", "17:00:00", "5pm"). Everything is
normalized to a canonical ``YYYY-MM-DD`` date and ``HH:MM`` time before it
reaches the tasks table.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from dateutil import parser as dateutil_parser

from grounded.core.config import constants


_LATEST_END = time(23, 59)

# Date parts filled in when parsing a bare time-of-day
_TIME_ONLY_DEFAULT = datetime(2000, 1, 1)


@dataclass(frozen=True)
class TaskWindow:
    """Canonical date plus a forward time interval."""

    date: str
    start_time: str
    end_time: str


def _is_iso_like(text: str) -> bool:
    return len(text) >= 10 and text[:4].isdigit() and text[4] == "-"


def _isoparse(text: str) -> datetime | None:
    try:
        return dateutil_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None


def parse_date(value: str | date | None) -> date | None:
    """Extract a calendar date from a date, datetime or ISO string.

    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = value.strip()
    if not text or not _is_iso_like(text):
        return None
    parsed = _isoparse(text)
    return parsed.date() if parsed else None


def parse_time(value: str | time | None) -> time | None:
    """Extract a time-of-day from a bare time, a 12-hour time or an ISO datetime.

    Seconds are dropped. Returns None for empty or unparseable input, and for
    a date with no time part.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    text = value.strip()
    if not text:
        return None

    if _is_iso_like(text):
        if len(text) == 10:
            return None
        parsed = _isoparse(text)
    else:
        # a lone number is an hour, not a day of the month
        if text.isdigit() and len(text) <= 2:
            text = f"{text}:00"
        text = text.replace("a.m.", "am").replace("p.m.", "pm")
        try:
            parsed = dateutil_parser.parse(text, default=_TIME_ONLY_DEFAULT)
        except (ValueError, OverflowError):
            parsed = None

    if parsed is None:
        return None
    return parsed.time().replace(second=0, microsecond=0)


def format_date(value: date) -> str:
    return value.isoformat()


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def _shift(value: time, minutes: int) -> time:
    """Add minutes to a time-of-day, clamping into the same day."""
    anchor = datetime.combine(date.min + timedelta(days=1), value)
    shifted = anchor + timedelta(minutes=minutes)
    if shifted.date() > anchor.date():
        return _LATEST_END
    if shifted.date() < anchor.date():
        return time(0, 0)
    return shifted.time()


def resolve_task_window(
    *,
    date_value: str | date | None,
    start: str | time | None,
    end: str | time | None,
    today: date,
) -> TaskWindow:
    """Resolve partial scheduling input into a complete, forward task window.

    Rules:
        - The date falls back to the date embedded in ``start`` or ``end``
          (ISO datetimes), then to ``today``.
        - No start and no end: the default start time with the default duration.
        - Only a start: end is one default duration later.
        - Only an end: start is one default duration earlier.
        - End at or before start: end is pushed one default duration past start.
        - The window never crosses midnight; a start of 23:59 moves back so that
          ``start_time < end_time`` always holds.

    Args:
        date_value: Task date in any supported shape
        start: Start time in any supported shape
        end: End time in any supported shape
        today: Date to use when none can be derived

    Returns:
        TaskWindow with canonical strings
    """
    duration = constants.DEFAULT_DURATION_MINUTES

    resolved_date = parse_date(date_value)
    if resolved_date is None:
        for candidate in (start, end):
            if isinstance(candidate, str) and ("T" in candidate or len(candidate.strip()) > 10):
                resolved_date = parse_date(candidate)
                if resolved_date:
                    break
    if resolved_date is None:
        resolved_date = today

    start_time = parse_time(start)
    end_time = parse_time(end)

    if start_time is None and end_time is None:
        start_time = parse_time(constants.DEFAULT_START_TIME)
    if start_time is None:
        start_time = _shift(end_time, -duration)  # type: ignore[arg-type]
    if end_time is None or end_time <= start_time:
        end_time = _shift(start_time, duration)

    if end_time <= start_time:
        # start sits at the very end of the day
        start_time = _shift(_LATEST_END, -duration)
        end_time = _LATEST_END

    return TaskWindow(
        date=format_date(resolved_date),
        start_time=format_time(start_time),
        end_time=format_time(end_time),
    )
