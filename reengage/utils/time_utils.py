"""Time and timezone utilities."""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from reengage.utils.constants import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(UTC)


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a timezone-aware datetime to UTC."""
    if dt.tzinfo is None:
        # Assume it's in the given timezone
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(UTC)


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(ZoneInfo(tz))


def local_now(tz: str | None, now: datetime | None = None) -> datetime | None:
    """Resolve the local wall-clock time for an IANA timezone.

    Args:
        tz: IANA timezone name; None means UTC
        now: Current instant (UTC), defaults to now

    Returns:
        The local datetime, or None when the timezone can't be resolved.
        Callers treat None as "not yet due".
    """
    if now is None:
        now = utc_now()

    try:
        return from_utc(now, tz or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Unknown timezone {tz!r}: {e}")
        return None


def local_today(tz: str | None, now: datetime | None = None) -> date | None:
    """Local calendar date for an IANA timezone, or None if unresolvable."""
    local_dt = local_now(tz, now)
    return local_dt.date() if local_dt else None


def is_in_quiet_hours(local_dt: datetime, quiet_start: str, quiet_end: str) -> bool:
    """Check if a local datetime falls within quiet hours.

    The window includes its start and excludes its end.

    Args:
        local_dt: The datetime to check, already in the user's timezone
        quiet_start: Start time in HH:MM format (24-hour)
        quiet_end: End time in HH:MM format (24-hour)

    Returns:
        True if the datetime is within quiet hours

    Raises:
        ValueError: If either bound is not a valid HH:MM string
    """
    local_time = local_dt.time().replace(tzinfo=None)

    start = time.fromisoformat(quiet_start)
    end = time.fromisoformat(quiet_end)

    # Handle overnight quiet hours (e.g., 23:00 to 07:00)
    if start <= end:
        return start <= local_time < end
    else:
        return local_time >= start or local_time < end


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed between two instants, rounded down."""
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=UTC)
    if later.tzinfo is None:
        later = later.replace(tzinfo=UTC)
    return (later - earlier) // timedelta(days=1)
