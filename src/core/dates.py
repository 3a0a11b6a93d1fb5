"""Interval and calendar-date helpers: pure functions, no I/O.

All calendar arithmetic happens in the single configured zone
(``settings.TIMEZONE``). Naive datetimes are read as wall time in that zone.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from src.core.errors import ValidationError


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Check if [a_start, a_end) intersects [b_start, b_end).

    Touching endpoints (a_end == b_start) are not an overlap. Aware values
    are compared as UTC instants, so the repeated fall-back hour is handled.
    """
    a_start, a_end, b_start, b_end = map(to_utc, (a_start, a_end, b_start, b_end))
    return a_start < b_end and b_start < a_end


def to_utc(value: datetime) -> datetime:
    """Aware datetimes as UTC; naive ones are returned unchanged.

    Datetimes sharing one ZoneInfo compare and subtract by wall time, which
    ignores ``fold`` and DST offsets.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def same_calendar_day(d1: date, d2: date) -> bool:
    """Compare year/month/day only, ignoring time of day."""
    return (d1.year, d1.month, d1.day) == (d2.year, d2.month, d2.day)


def clamp_day_of_month(year: int, month: int, day: int) -> int:
    """Return ``day`` capped to the last valid day of the month."""
    return min(day, calendar.monthrange(year, month)[1])


def day_of_week(value: date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def get_zone() -> ZoneInfo:
    """Return the configured calendar zone."""
    from src.config import settings

    return ZoneInfo(settings.TIMEZONE)


def _coerce(value: date | datetime | str) -> date | datetime:
    if isinstance(value, str):
        raw = value.strip()
        try:
            if len(raw) == 10:
                return date.fromisoformat(raw)
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    if isinstance(value, date):
        return value
    raise ValidationError(f"Expected a date or datetime, got {type(value).__name__}")


def to_zone(value: date | datetime | str, tz: ZoneInfo) -> datetime:
    """Return ``value`` as an aware datetime in ``tz``.

    Plain dates become midnight of that day.
    """
    value = _coerce(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    return datetime.combine(value, time.min, tzinfo=tz)


def resolve_window(
    start: date | datetime | str,
    end: date | datetime | str,
    tz: ZoneInfo,
) -> tuple[datetime, datetime]:
    """Normalize a caller-supplied query window.

    A plain date as the end bound covers that whole day.
    """
    window_start = to_zone(start, tz)
    end = _coerce(end)
    if isinstance(end, datetime):
        window_end = to_zone(end, tz)
    else:
        window_end = to_zone(end + timedelta(days=1), tz) - timedelta(microseconds=1)

    if to_utc(window_start) > to_utc(window_end):
        raise ValidationError(
            "Window start must be before window end",
            details=[f"start={window_start.isoformat()}", f"end={window_end.isoformat()}"],
        )
    return window_start, window_end
