"""
Calendar Engine: Occurrence Generator.

Expands one event and its recurrence pattern into the concrete start/end
instances that fall inside a caller-supplied window. Expansion is always
bounded by the window end, so an open-ended series never causes unbounded
work.

No I/O: this module only transforms data. Every call is a pure function of
its inputs and can be repeated with the same result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from src.core.dates import (
    clamp_day_of_month,
    day_of_week,
    get_zone,
    overlaps,
    resolve_window,
    same_calendar_day,
    to_utc,
    to_zone,
)
from src.core.errors import UnsupportedRecurrence
from src.data.models import CalendarEvent, RecurrencePattern, new_object_id

logger = logging.getLogger(__name__)

SUPPORTED_FREQUENCIES = ("daily", "weekly", "monthly", "yearly")


@dataclass(frozen=True)
class Occurrence:
    """One concrete instance of an event."""

    start: datetime
    end: datetime


def _week_start(value: datetime) -> date:
    """Sunday that opens the week containing ``value``."""
    return value.date() - timedelta(days=day_of_week(value))


def _nth_weekday_of_month(month_start: datetime, weekday: int, month_week: int) -> datetime:
    """Resolve "the nth <weekday>" inside the month that ``month_start`` opens.

    month_week 0..4 is the 1st..5th occurrence; -1 is the last one. When the
    requested occurrence does not exist (a 5th Tuesday in a four-Tuesday
    month) the last occurrence of the month is used instead.
    """
    offset = (weekday - day_of_week(month_start)) % 7
    result = month_start + timedelta(days=offset)

    if month_week == -1:
        while (result + timedelta(days=7)).month == month_start.month:
            result += timedelta(days=7)
        return result

    result += timedelta(days=7 * month_week)
    while result.month != month_start.month:
        result -= timedelta(days=7)
    return result


def _weekly_by_day(anchor: datetime, pattern: RecurrencePattern) -> Iterator[datetime]:
    """Walk forward day by day to the next listed weekday.

    Moving into a new Sunday-based week skips ``interval - 1`` whole weeks,
    which gives "every other Tuesday and Thursday" for interval 2.
    """
    days = set(pattern.days_of_week)
    cursor = anchor
    while True:
        for step in range(1, 8):
            candidate = cursor + timedelta(days=step)
            if day_of_week(candidate) in days:
                break
        if pattern.interval > 1 and _week_start(candidate) != _week_start(cursor):
            candidate += timedelta(weeks=pattern.interval - 1)
        cursor = candidate
        yield cursor


def _monthly(anchor: datetime, pattern: RecurrencePattern) -> Iterator[datetime]:
    """Month stepping measured from the anchor so clamped days don't drift.

    The month is advanced first (with year rollover), then the day inside
    that month is chosen.
    """
    weekday = day_of_week(anchor)
    step = 1
    while True:
        target = anchor + relativedelta(months=step * pattern.interval)
        if pattern.month_day is not None:
            day = clamp_day_of_month(target.year, target.month, pattern.month_day)
            yield target.replace(day=day)
        elif pattern.month_week is not None:
            yield _nth_weekday_of_month(target.replace(day=1), weekday, pattern.month_week)
        else:
            # relativedelta already clamps Jan 31 + 1 month to Feb 28/29
            yield target
        step += 1


def _candidates(anchor: datetime, pattern: RecurrencePattern) -> Iterator[datetime]:
    """Yield every candidate start of the series, beginning with the anchor."""
    yield anchor

    if pattern.frequency == "daily":
        cursor = anchor
        while True:
            cursor += timedelta(days=pattern.interval)
            yield cursor
    elif pattern.frequency == "weekly" and pattern.days_of_week:
        yield from _weekly_by_day(anchor, pattern)
    elif pattern.frequency == "weekly":
        cursor = anchor
        while True:
            cursor += timedelta(weeks=pattern.interval)
            yield cursor
    elif pattern.frequency == "monthly":
        yield from _monthly(anchor, pattern)
    else:
        step = 1
        while True:
            # Feb 29 anchors land on Feb 28 in common years
            yield anchor + relativedelta(years=step * pattern.interval)
            step += 1


def _is_excluded(cursor: datetime, exclude_dates: list[date]) -> bool:
    return any(same_calendar_day(cursor, excluded) for excluded in exclude_dates)


def generate_occurrences(
    event: CalendarEvent,
    window_start: date | datetime | str,
    window_end: date | datetime | str,
    tz: ZoneInfo | None = None,
) -> list[Occurrence]:
    """Expand ``event`` into its occurrences inside the window.

    Args:
        event: The base event; ``recurring_pattern`` None means a single event.
        window_start: Start of the query window.
        window_end: End of the query window. A plain date covers that whole day.
        tz: Zone for calendar arithmetic; defaults to the configured zone.

    Returns:
        Occurrences ordered by start, as aware datetimes in ``tz``. A
        recurring occurrence is included when it starts inside the window or
        is still running at the window start.

    Raises:
        ValidationError: Malformed or inverted window.
        UnsupportedRecurrence: The pattern's frequency is not recognized.
    """
    tz = tz or get_zone()
    win_start, win_end = resolve_window(window_start, window_end, tz)
    start = to_zone(event.start_date, tz)
    end = to_zone(event.end_date, tz)

    pattern = event.recurring_pattern
    if pattern is None:
        if overlaps(start, end, win_start, win_end):
            return [Occurrence(start=start, end=end)]
        return []

    if pattern.frequency not in SUPPORTED_FREQUENCIES:
        raise UnsupportedRecurrence(
            f"Unsupported recurrence frequency: {pattern.frequency}"
        )

    # Cursors step in wall time; durations and bounds are real elapsed time
    duration = to_utc(end) - to_utc(start)
    utc_start, utc_end = to_utc(win_start), to_utc(win_end)
    series_end = to_utc(to_zone(pattern.end_date, tz)) if pattern.end_date else None
    limit = pattern.end_after_occurrences

    occurrences: list[Occurrence] = []
    count = 0
    for cursor in _candidates(start, pattern):
        cursor_utc = to_utc(cursor)
        if cursor_utc > utc_end:
            break
        if series_end is not None and cursor_utc > series_end:
            break
        if limit is not None and count >= limit:
            break
        if _is_excluded(cursor, pattern.exclude_dates):
            continue

        # Counted from the first occurrence of the series, not of the window
        count += 1
        occurrence_end = cursor_utc + duration
        if cursor_utc >= utc_start or occurrence_end > utc_start:
            occurrences.append(Occurrence(start=cursor, end=occurrence_end.astimezone(tz)))

    logger.debug(
        "Expanded event %s (%s every %d): %d occurrences in %s..%s",
        event.id, pattern.frequency, pattern.interval, len(occurrences),
        win_start.isoformat(), win_end.isoformat(),
    )
    return occurrences


def expand_instances(
    event: CalendarEvent,
    window_start: date | datetime | str,
    window_end: date | datetime | str,
    tz: ZoneInfo | None = None,
) -> list[dict]:
    """Unroll a series into full event documents, one per occurrence.

    Each instance of a recurring event gets its own id and points back to the
    series through ``originalEventId``. A single event is returned as its
    stored document when it falls inside the window.
    """
    occurrences = generate_occurrences(event, window_start, window_end, tz)
    base = event.to_document()
    if not event.is_recurring:
        return [base] if occurrences else []

    instances: list[dict] = []
    for occ in occurrences:
        instance = dict(base)
        instance["_id"] = new_object_id()
        instance["startDate"] = occ.start.isoformat()
        instance["endDate"] = occ.end.isoformat()
        instance["isRecurringInstance"] = True
        instance["originalEventId"] = event.id
        instances.append(instance)
    return instances
