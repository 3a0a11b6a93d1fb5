"""
Calendar Engine: Resource Availability Checker.

Decides whether shared resources (rooms, equipment, vehicles, personnel)
are free for a proposed time window, taking every occurrence of every
recurring event that books them into account.

Results are a snapshot: they are valid only until the next write to the
event store. Checking and then creating an event is not atomic, so callers
that need a hard guarantee must wrap both steps in a store-level transaction
or unique constraint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.core.dates import get_zone, overlaps, resolve_window
from src.core.errors import ValidationError
from src.core.recurrence import Occurrence, generate_occurrences
from src.data.models import CalendarEvent, is_valid_id

if TYPE_CHECKING:
    from src.ports.event_store_port import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceBooking:
    """One resource held by one occurrence of an event."""

    resource_id: str
    start: datetime
    end: datetime
    source_event_id: str


@dataclass
class ResourceAvailability:
    """Availability of a single resource for the requested window."""

    available: bool = True
    conflicts: list[ResourceBooking] = field(default_factory=list)


def validate_resource_ids(resource_ids: list[str]) -> list[str]:
    """Check id format and collapse duplicates, keeping first-seen order."""
    if not resource_ids:
        raise ValidationError("At least one resource required")

    invalid = [rid for rid in resource_ids if not is_valid_id(rid)]
    if invalid:
        raise ValidationError(
            "Invalid resource ID format",
            details=[f"invalid resource id: {rid!r}" for rid in invalid],
        )
    return list(dict.fromkeys(rid.lower() for rid in resource_ids))


def project_bookings(
    event: CalendarEvent,
    occurrences: list[Occurrence],
    resource_ids: set[str] | None = None,
) -> list[ResourceBooking]:
    """Fan occurrences out into per-resource bookings.

    Args:
        event: The event whose resources are booked.
        occurrences: Expanded occurrences of that event.
        resource_ids: Restrict to these resources; None keeps all of them.
    """
    booked = [
        rid for rid in dict.fromkeys(event.resource_ids())
        if resource_ids is None or rid in resource_ids
    ]
    return [
        ResourceBooking(
            resource_id=rid,
            start=occ.start,
            end=occ.end,
            source_event_id=event.id,
        )
        for occ in occurrences
        for rid in booked
    ]


def check_availability(
    store: EventStore,
    resource_ids: list[str],
    window_start: date | datetime | str,
    window_end: date | datetime | str,
    exclude_event_id: str | None = None,
    tz: ZoneInfo | None = None,
) -> dict[str, ResourceAvailability]:
    """Check each resource for bookings that overlap the window.

    Args:
        store: Event store used to fetch candidate events.
        resource_ids: Resources to check (at least one).
        window_start: Start of the proposed booking.
        window_end: End of the proposed booking.
        exclude_event_id: Event to ignore (the event being rescheduled).
        tz: Zone for calendar arithmetic; defaults to the configured zone.

    Returns:
        Mapping of resource id to its availability. Resources with no
        overlapping occurrence are available. A booking that merely touches
        the window boundary is not a conflict.

    Raises:
        ValidationError: Empty or malformed resource ids, bad window.
    """
    tz = tz or get_zone()
    ids = validate_resource_ids(resource_ids)
    if exclude_event_id is not None and not is_valid_id(exclude_event_id):
        raise ValidationError("Invalid event ID format")
    win_start, win_end = resolve_window(window_start, window_end, tz)

    try:
        candidates = store.find_events_referencing_resources(ids, win_start, win_end)
    except Exception as exc:
        logger.error(
            "Failed to fetch candidate events for resources %s: %s", ids, exc,
        )
        raise

    wanted = set(ids)
    availability = {rid: ResourceAvailability() for rid in ids}

    for event in candidates:
        if event.status == "cancelled":
            continue
        if exclude_event_id and event.id == exclude_event_id.lower():
            continue

        occurrences = generate_occurrences(event, win_start, win_end, tz)
        for booking in project_bookings(event, occurrences, wanted):
            if overlaps(booking.start, booking.end, win_start, win_end):
                result = availability[booking.resource_id]
                result.available = False
                result.conflicts.append(booking)

    busy = [rid for rid, result in availability.items() if not result.available]
    logger.debug(
        "Availability %s..%s: %d candidate events, busy resources %s",
        win_start.isoformat(), win_end.isoformat(), len(candidates), busy,
    )
    return availability
