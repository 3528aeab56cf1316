from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dermclinics.etl import open_now

WEEK = [
    "Monday: 9:00 AM – 5:00 PM",
    "Tuesday: 9:00\u202fAM - 5:00\u202fPM",
    "Wednesday: 9:00 AM — 12:00 PM",
    "Thursday: Closed",
    "Friday: by appointment",
    "Saturday: 12:00 AM – 6:00 AM",
]

CHICAGO = ZoneInfo("America/Chicago")


def at(day, hour, minute, tz=CHICAGO):
    # 2024-01-15 is a Monday
    return datetime(2024, 1, 15 + day, hour, minute, tzinfo=tz)


def test_open_now_boundary_is_close_exclusive():
    assert open_now.is_open_now(WEEK, "TX", now=at(0, 16, 59)) is True
    assert open_now.is_open_now(WEEK, "TX", now=at(0, 17, 0)) is False
    assert open_now.is_open_now(WEEK, "TX", now=at(0, 9, 0)) is True
    assert open_now.is_open_now(WEEK, "TX", now=at(0, 8, 59)) is False


def test_dash_variants_and_narrow_spaces():
    assert open_now.is_open_now(WEEK, "TX", now=at(1, 10, 0)) is True
    assert open_now.is_open_now(WEEK, "TX", now=at(2, 11, 59)) is True
    assert open_now.is_open_now(WEEK, "TX", now=at(2, 12, 0)) is False


def test_closed_day_is_not_open():
    assert open_now.is_open_now(WEEK, "TX", now=at(3, 12, 0)) is False


def test_unparseable_hours_fail_closed_with_warning(caplog):
    with caplog.at_level("WARNING"):
        result = open_now.is_open_now(WEEK, "TX", now=at(4, 12, 0))
    assert result is False
    assert "Could not parse hours" in " ".join(caplog.messages)


def test_midnight_is_minute_zero():
    assert open_now.is_open_now(WEEK, "TX", now=at(5, 0, 0)) is True
    assert open_now.is_open_now(WEEK, "TX", now=at(5, 6, 0)) is False


def test_missing_weekday_line_is_closed():
    assert open_now.is_open_now(WEEK, "TX", now=at(6, 10, 0)) is False
    assert open_now.is_open_now([], "TX", now=at(0, 10, 0)) is False


def test_uses_state_timezone():
    # 15:30 UTC on a Monday is 10:30 in New York but 7:30 in Los Angeles.
    now = datetime(2024, 1, 15, 15, 30, tzinfo=timezone.utc)
    assert open_now.is_open_now(WEEK, "NY", now=now) is True
    assert open_now.is_open_now(WEEK, "CA", now=now) is False


def test_unknown_state_defaults_to_eastern():
    assert open_now.timezone_for_state("ZZ") == "America/New_York"
    assert open_now.timezone_for_state(None) == "America/New_York"
    assert open_now.timezone_for_state("hi") == "Pacific/Honolulu"


def test_naive_now_is_read_as_utc():
    assert open_now.is_open_now(WEEK, "NY", now=datetime(2024, 1, 15, 15, 30)) is True


@pytest.mark.parametrize(
    "line, expected",
    [
        ("Monday: 12:00 PM – 12:30 PM", (720, 750)),
        ("Monday: 12:15 AM – 1:00 AM", (15, 60)),
        ("Monday: 7:30 am - 11:45 pm", (450, 1425)),
        ("Monday: Open 24 hours", None),
    ],
)
def test_parse_hours_line(line, expected):
    assert open_now.parse_hours_line(line) == expected


def test_refresh_open_now_updates_record():
    record = {
        "place_id": "p1",
        "state_code": "TX",
        "open_now": False,
        "opening_hours": {"open_now": False, "weekday_text": WEEK},
    }

    refreshed = open_now.refresh_open_now(record, now=at(0, 10, 0))

    assert refreshed["open_now"] is True
    assert refreshed["opening_hours"]["open_now"] is True
    assert record["open_now"] is False


def test_refresh_open_now_without_hours():
    refreshed = open_now.refresh_open_now({"place_id": "p1", "open_now": True, "opening_hours": None})
    assert refreshed["open_now"] is False
    assert refreshed["opening_hours"] is None
