"""
Calendar Engine: Event Query Service.

Filters and searches stored events with pagination and sorting. Stateless
and read-only.

Recurring events are matched on the base event's stored start/end, not on
expanded occurrences. Unrolling one series for a calendar view is done with
``src.core.recurrence.generate_occurrences``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from src.core.dates import get_zone, to_utc, to_zone
from src.core.errors import ValidationError
from src.data.models import CalendarEvent, EventStatus, ObjectId, Priority, Visibility

if TYPE_CHECKING:
    from src.ports.event_store_port import EventStore

logger = logging.getLogger(__name__)

# Public sort key -> model attribute
SORT_FIELDS = {
    "startDate": "start_date",
    "endDate": "end_date",
    "title": "title",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "status": "status",
    "priority": "priority",
    "eventType": "event_type",
}

_PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3}


def _parse_bound(value: Any, end_of_day: bool) -> Any:
    """Date-only bounds cover the whole day when used as an upper limit."""
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            value = date.fromisoformat(value.strip())
        except ValueError:
            return value
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_day else time.min)
    return value


class EventFilter(BaseModel):
    """Search criteria, usually decoded from a query string.

    JSON example:
    {
        "startAfter": "2024-03-01",
        "endBefore": "2024-03-31",
        "tags": ["wedding", "outdoor"],
        "searchText": "garden",
        "page": 2,
        "limit": 20,
        "sortBy": "startDate",
        "sortOrder": "desc"
    }
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    start_after: datetime | None = None
    end_before: datetime | None = None
    event_type: str | None = None
    status: EventStatus | None = None
    visibility: Visibility | None = None
    priority: Priority | None = None
    all_day: bool | None = None
    created_by: ObjectId | None = None
    attendee_id: ObjectId | None = None
    tags: list[str] = Field(default_factory=list)
    search_text: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)
    sort_by: str = "startDate"
    sort_order: Literal["asc", "desc"] = "asc"

    @field_validator("start_after", mode="before")
    @classmethod
    def parse_start_after(cls, v: Any) -> Any:
        return _parse_bound(v, end_of_day=False)

    @field_validator("end_before", mode="before")
    @classmethod
    def parse_end_before(cls, v: Any) -> Any:
        return _parse_bound(v, end_of_day=True)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        # ?tags=a,b arrives as one string
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return v

    @field_validator("sort_by")
    @classmethod
    def check_sort_field(cls, v: str) -> str:
        if v not in SORT_FIELDS:
            raise ValueError(
                f"sortBy must be one of {', '.join(SORT_FIELDS)}; got {v!r}"
            )
        return v


@dataclass
class EventPage:
    """One page of search results plus the total for pagination math."""

    items: list[CalendarEvent]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def parse_filter(filters: EventFilter | dict | None) -> EventFilter:
    """Validate raw filter fields, mapping failures to ValidationError."""
    if isinstance(filters, EventFilter):
        return filters
    try:
        return EventFilter.model_validate(filters or {})
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid search filters",
            details=[f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()],
        ) from exc


def _matches(
    event: CalendarEvent,
    f: EventFilter,
    start_after: datetime | None,
    end_before: datetime | None,
) -> bool:
    tz = get_zone()
    if start_after is not None and to_utc(to_zone(event.end_date, tz)) < to_utc(start_after):
        return False
    if end_before is not None and to_utc(to_zone(event.start_date, tz)) > to_utc(end_before):
        return False

    for attr in ("event_type", "status", "visibility", "priority", "all_day"):
        wanted = getattr(f, attr)
        if wanted is not None and getattr(event, attr) != wanted:
            return False

    if f.created_by is not None and event.created_by != f.created_by:
        return False
    if f.attendee_id is not None and f.attendee_id not in {a.user_id for a in event.attendees}:
        return False
    if f.tags and not set(f.tags) & set(event.tags):
        return False

    if f.search_text:
        needle = f.search_text.lower()
        haystacks = (event.title, event.description, event.location)
        if not any(needle in (text or "").lower() for text in haystacks):
            return False
    return True


def _sort_key(attr: str, descending: bool = False):
    """Sort key for ``attr``; events missing the value always come last."""
    tz = get_zone()
    missing_rank = -1 if descending else 1

    def key(event: CalendarEvent) -> tuple:
        value = getattr(event, attr)
        if value is None:
            return (missing_rank, 0)
        if isinstance(value, datetime):
            return (0, to_utc(to_zone(value, tz)))
        if attr == "priority":
            return (0, _PRIORITY_RANK[value])
        return (0, value.lower())

    return key


def search_events(
    store: EventStore,
    filters: EventFilter | dict | None = None,
) -> EventPage:
    """Search stored events.

    Args:
        store: Event store to read from.
        filters: An EventFilter or raw (camelCase or snake_case) fields.

    Returns:
        EventPage with the requested page and the total match count. Ties in
        the sort field are broken by event id, so identical filters yield
        identical pages when nothing was written in between.

    Raises:
        ValidationError: Malformed filters (bad id, page < 1, unknown sort).
    """
    from src.config import settings

    f = parse_filter(filters)
    tz = get_zone()
    start_after = to_zone(f.start_after, tz) if f.start_after else None
    end_before = to_zone(f.end_before, tz) if f.end_before else None
    if start_after and end_before and to_utc(start_after) > to_utc(end_before):
        raise ValidationError("startAfter must not be later than endBefore")

    limit = min(f.limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)

    events = store.find_events(start_after=start_after, end_before=end_before)
    matched = [ev for ev in events if _matches(ev, f, start_after, end_before)]

    matched.sort(key=lambda ev: ev.id)
    descending = f.sort_order == "desc"
    matched.sort(key=_sort_key(SORT_FIELDS[f.sort_by], descending), reverse=descending)

    offset = (f.page - 1) * limit
    page_items = matched[offset:offset + limit]
    logger.debug(
        "Event search matched %d of %d events (page %d, limit %d)",
        len(matched), len(events), f.page, limit,
    )
    return EventPage(items=page_items, total=len(matched), page=f.page, limit=limit)
