"""
Calendar Engine: Event lifecycle operations.

Create, read, update and delete stored events, bulk status transitions, and
the per-event occurrence lookups used by the calendar view. Every function
takes the event store explicitly; nothing here keeps state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from src.core.dates import get_zone, resolve_window, to_utc, to_zone
from src.core.errors import NotFoundError, ValidationError
from src.core.recurrence import Occurrence, expand_instances, generate_occurrences
from src.data.models import EVENT_STATUSES, CalendarEvent, is_valid_id

if TYPE_CHECKING:
    from src.ports.event_store_port import EventStore

logger = logging.getLogger(__name__)

# Never overwritten by a partial update
_IMMUTABLE_KEYS = frozenset({"_id", "id", "createdBy", "created_by", "createdAt", "created_at"})


@dataclass
class StatusUpdateResult:
    """Outcome of a bulk status change; partial success shows in the count."""

    success: bool
    updated_count: int


def _require_id(value: str, label: str = "event") -> str:
    if not is_valid_id(value):
        raise ValidationError(f"Invalid {label} ID format")
    return value.lower()


def _validate_event(payload: dict, action: str) -> CalendarEvent:
    try:
        return CalendarEvent.model_validate(payload)
    except PydanticValidationError as exc:
        details = [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]
        raise ValidationError(f"Error {action} event: {details[0]}", details=details) from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_event(store: EventStore, data: dict, created_by: str) -> CalendarEvent:
    """Validate and store a new event; the id and timestamps are assigned here."""
    created_by = _require_id(created_by, "user")
    now = _now()
    payload = {k: v for k, v in data.items() if k not in _IMMUTABLE_KEYS}
    payload.update(createdBy=created_by, updatedBy=created_by, createdAt=now, updatedAt=now)

    event = _validate_event(payload, "creating")
    store.insert_event(event)
    logger.info("Event created: %s '%s' by %s", event.id, event.title, created_by)
    return event


def get_event_by_id(store: EventStore, event_id: str) -> CalendarEvent:
    """Fetch one event, raising NotFoundError if it does not exist."""
    event_id = _require_id(event_id)
    event = store.get_event(event_id)
    if event is None:
        raise NotFoundError(f"Event with ID {event_id} not found")
    return event


def update_event(
    store: EventStore, event_id: str, changes: dict, updated_by: str,
) -> CalendarEvent:
    """Merge ``changes`` into the stored event and re-validate the result.

    The merge is shallow: a nested value such as ``recurringPattern`` replaces
    the stored one as a whole. Keys may be camelCase or snake_case.
    """
    current = get_event_by_id(store, event_id)
    updated_by = _require_id(updated_by, "user")

    document: dict[str, Any] = current.model_dump(by_alias=True)
    for key, value in changes.items():
        if key in _IMMUTABLE_KEYS:
            continue
        document[to_camel(key) if "_" in key else key] = value
    document.update(updatedBy=updated_by, updatedAt=_now())

    event = _validate_event(document, "updating")
    if not store.replace_event(event):
        raise NotFoundError(f"Event with ID {event.id} not found")
    logger.info("Event updated: %s by %s (%s)", event.id, updated_by, ", ".join(changes))
    return event


def delete_event(store: EventStore, event_id: str) -> dict:
    """Permanently delete an event by id."""
    event_id = _require_id(event_id)
    if not store.delete_event(event_id):
        raise NotFoundError(f"Event with ID {event_id} not found")
    logger.info("Event deleted: %s", event_id)
    return {"success": True, "message": "Event successfully deleted"}


def find_events_by_date_range(
    store: EventStore,
    start: date | datetime | str,
    end: date | datetime | str,
    user_id: str | None = None,
) -> list[CalendarEvent]:
    """Base events whose stored interval touches [start, end], by start.

    With ``user_id``, only events the user created or attends are returned.
    """
    tz = get_zone()
    win_start, win_end = resolve_window(start, end, tz)
    if user_id is not None:
        user_id = _require_id(user_id, "user")

    utc_start, utc_end = to_utc(win_start), to_utc(win_end)
    events = []
    for event in store.find_events(start_after=win_start, end_before=win_end):
        event_start = to_utc(to_zone(event.start_date, tz))
        event_end = to_utc(to_zone(event.end_date, tz))
        if event_end < utc_start or event_start > utc_end:
            continue
        if user_id is not None and not (
            event.created_by == user_id
            or any(a.user_id == user_id for a in event.attendees)
        ):
            continue
        events.append(event)

    events.sort(key=lambda ev: (to_utc(to_zone(ev.start_date, tz)), ev.id))
    return events


def get_event_occurrences(
    store: EventStore,
    event_id: str,
    start: date | datetime | str,
    end: date | datetime | str,
) -> list[Occurrence]:
    """Occurrences of one stored event inside [start, end]."""
    return generate_occurrences(get_event_by_id(store, event_id), start, end)


def get_recurring_event_instances(
    store: EventStore,
    event_id: str,
    start: date | datetime | str,
    end: date | datetime | str,
) -> list[dict]:
    """Full instance documents of one stored series inside [start, end]."""
    return expand_instances(get_event_by_id(store, event_id), start, end)


def update_event_status(
    store: EventStore,
    event_ids: list[str],
    status: str,
    updated_by: str,
) -> StatusUpdateResult:
    """Set ``status`` on many events at once.

    Each event is updated completely or not at all, but the batch is not
    transactional: ids that are malformed are skipped, ids that don't exist
    are simply not counted.
    """
    if not event_ids:
        raise ValidationError("Event IDs array is required")
    if status not in EVENT_STATUSES:
        raise ValidationError(
            "Valid status is required",
            details=[f"status must be one of {', '.join(EVENT_STATUSES)}"],
        )
    updated_by = _require_id(updated_by, "user")

    valid_ids = list(dict.fromkeys(eid.lower() for eid in event_ids if is_valid_id(eid)))
    skipped = [eid for eid in event_ids if not is_valid_id(eid)]
    if not valid_ids:
        raise ValidationError("No valid event IDs provided")
    if skipped:
        logger.warning("Skipping %d malformed event ids in status update: %s", len(skipped), skipped)

    updated = store.update_status(valid_ids, status, updated_by, _now())
    logger.info(
        "Bulk status '%s' by %s: %d of %d events updated",
        status, updated_by, updated, len(valid_ids),
    )
    return StatusUpdateResult(success=True, updated_count=updated)
