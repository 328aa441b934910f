"""Unit tests for task window normalisation."""

from datetime import date, time

import pytest

from grounded.core.time_parser import parse_date, parse_time, resolve_task_window


TODAY = date(2026, 3, 4)


@pytest.mark.unit
class TestParseTime:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("17:00", time(17, 0)),
            ("17:00:30", time(17, 0)),
            ("9", time(9, 0)),
            ("5pm", time(17, 0)),
            ("12am", time(0, 0)),
            ("7:30 a.m.", time(7, 30)),
            ("2026-03-04T17:15:00Z", time(17, 15)),
            ("2026-03-04 08:45", time(8, 45)),
            ("17:00:00Z", time(17, 0)),
        ],
    )
    def test_accepted_shapes(self, raw, expected):
        assert parse_time(raw) == expected

    @pytest.mark.parametrize("raw", ["", "25:00", "13pm", "noon", "2026-03-04"])
    def test_rejected_shapes(self, raw):
        assert parse_time(raw) is None


@pytest.mark.unit
class TestParseDate:
    def test_iso_datetime_string(self):
        assert parse_date("2026-03-04T17:00:00Z") == TODAY

    def test_offset_with_fraction(self):
        assert parse_date("2026-03-04T17:00:00.123+0530") == TODAY

    def test_plain_date(self):
        assert parse_date(" 2026-03-04 ") == TODAY

    def test_garbage(self):
        assert parse_date("next tuesday") is None


@pytest.mark.unit
class TestResolveTaskWindow:
    def test_defaults_when_nothing_given(self):
        window = resolve_task_window(date_value=None, start=None, end=None, today=TODAY)

        assert (window.date, window.start_time, window.end_time) == ("2026-03-04", "09:00", "10:00")

    def test_start_only_gets_default_duration(self):
        window = resolve_task_window(date_value="2026-03-05", start="17:00", end=None, today=TODAY)

        assert (window.date, window.start_time, window.end_time) == ("2026-03-05", "17:00", "18:00")

    def test_end_only_moves_start_back(self):
        window = resolve_task_window(date_value=None, start=None, end="08:30", today=TODAY)

        assert (window.start_time, window.end_time) == ("07:30", "08:30")

    def test_end_before_start_is_pushed_forward(self):
        window = resolve_task_window(date_value=None, start="15:00", end="14:00", today=TODAY)

        assert (window.start_time, window.end_time) == ("15:00", "16:00")

    def test_date_taken_from_iso_start(self):
        window = resolve_task_window(date_value=None, start="2026-03-10T17:00:00", end=None, today=TODAY)

        assert (window.date, window.start_time, window.end_time) == ("2026-03-10", "17:00", "18:00")

    def test_late_start_clamps_to_end_of_day(self):
        window = resolve_task_window(date_value=None, start="23:30", end=None, today=TODAY)

        assert (window.start_time, window.end_time) == ("23:30", "23:59")

    def test_start_at_last_minute_moves_back(self):
        window = resolve_task_window(date_value=None, start="23:59", end=None, today=TODAY)

        assert (window.start_time, window.end_time) == ("22:59", "23:59")

    @pytest.mark.parametrize(
        ("start", "end"),
        [(None, None), ("00:00", None), (None, "00:00"), ("23:59", "23:59"), ("12:00", "12:00"), ("5pm", "9am")],
    )
    def test_start_always_before_end(self, start, end):
        window = resolve_task_window(date_value=None, start=start, end=end, today=TODAY)

        assert window.start_time < window.end_time
