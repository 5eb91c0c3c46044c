"""Tests for time utilities."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from reengage.utils.time_utils import (
    from_utc,
    is_in_quiet_hours,
    local_now,
    local_today,
    to_utc,
    whole_days_between,
)


def test_to_utc():
    """Test timezone conversion to UTC."""
    # Create a datetime in EDT (March is DST)
    dt = datetime(2026, 3, 15, 14, 30, tzinfo=ZoneInfo("America/New_York"))
    utc_dt = to_utc(dt, "America/New_York")

    assert utc_dt.tzinfo == ZoneInfo("UTC")
    # EDT is UTC-4, so 14:30 EDT = 18:30 UTC
    assert utc_dt.hour == 18


def test_from_utc():
    """Test timezone conversion from UTC."""
    dt = datetime(2026, 3, 15, 19, 30, tzinfo=ZoneInfo("UTC"))
    edt_dt = from_utc(dt, "America/New_York")

    assert edt_dt.tzinfo == ZoneInfo("America/New_York")
    assert edt_dt.hour == 15  # 19:30 UTC = 15:30 EDT


def test_local_now_same_instant_different_families():
    """The same instant resolves to different wall-clock hours."""
    now = datetime(2026, 1, 15, 13, 0, tzinfo=ZoneInfo("UTC"))

    assert local_now("UTC", now).hour == 13
    # PST is UTC-8 in January
    assert local_now("America/Los_Angeles", now).hour == 5


def test_local_now_defaults_to_utc():
    now = datetime(2026, 1, 15, 13, 0, tzinfo=ZoneInfo("UTC"))

    assert local_now(None, now).hour == 13


def test_local_now_unknown_timezone_fails_closed():
    """Unknown timezones resolve to None instead of raising."""
    now = datetime(2026, 1, 15, 13, 0, tzinfo=ZoneInfo("UTC"))

    assert local_now("Mars/Olympus_Mons", now) is None
    assert local_now("", now).hour == 13  # Blank falls back to UTC
    assert local_today("Not a zone", now) is None


def test_local_today_crosses_midnight():
    """Late UTC evening is already tomorrow in Tokyo."""
    now = datetime(2026, 1, 15, 20, 0, tzinfo=ZoneInfo("UTC"))

    assert local_today("Asia/Tokyo", now).isoformat() == "2026-01-16"
    assert local_today("UTC", now).isoformat() == "2026-01-15"


def test_is_in_quiet_hours_daytime_window():
    """Test a same-day quiet window."""
    tz = ZoneInfo("UTC")

    assert is_in_quiet_hours(datetime(2026, 1, 15, 14, 0, tzinfo=tz), "13:00", "15:00")
    assert is_in_quiet_hours(datetime(2026, 1, 15, 13, 0, tzinfo=tz), "13:00", "15:00")
    # End is exclusive
    assert not is_in_quiet_hours(datetime(2026, 1, 15, 15, 0, tzinfo=tz), "13:00", "15:00")
    assert not is_in_quiet_hours(datetime(2026, 1, 15, 12, 59, tzinfo=tz), "13:00", "15:00")


def test_is_in_quiet_hours_overnight():
    """Test overnight quiet hours (23:00-07:00)."""
    tz = ZoneInfo("America/New_York")

    assert is_in_quiet_hours(datetime(2026, 3, 15, 23, 30, tzinfo=tz), "23:00", "07:00")
    assert is_in_quiet_hours(datetime(2026, 3, 16, 6, 59, tzinfo=tz), "23:00", "07:00")
    assert not is_in_quiet_hours(datetime(2026, 3, 15, 10, 0, tzinfo=tz), "23:00", "07:00")


def test_is_in_quiet_hours_rejects_bad_format():
    tz = ZoneInfo("UTC")

    with pytest.raises(ValueError):
        is_in_quiet_hours(datetime(2026, 1, 15, 14, 0, tzinfo=tz), "late", "07:00")


def test_whole_days_between_rounds_down():
    tz = ZoneInfo("UTC")
    now = datetime(2026, 1, 15, 12, 0, tzinfo=tz)

    assert whole_days_between(datetime(2026, 1, 5, 12, 0, tzinfo=tz), now) == 10
    assert whole_days_between(datetime(2026, 1, 5, 12, 1, tzinfo=tz), now) == 9
    assert whole_days_between(datetime(2026, 1, 15, 11, 0, tzinfo=tz), now) == 0
