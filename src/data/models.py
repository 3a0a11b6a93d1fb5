"""
Calendar Engine: Data Models.

The persisted shape of a calendar event and its embedded recurrence pattern.
Attributes are snake_case in Python; documents are read and written with the
camelCase keys existing stored events use (``startDate``, ``recurringPattern``).
Resources and attendees are referenced by id only; the event owns its
reminders, attachments and checklist.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{24}$")

Frequency = Literal["daily", "weekly", "monthly", "yearly"]
EventStatus = Literal["scheduled", "confirmed", "cancelled", "completed", "draft"]
Visibility = Literal["public", "private", "team"]
Priority = Literal["low", "medium", "high", "urgent"]
AttendeeRole = Literal["organizer", "required", "optional"]
ResponseStatus = Literal["accepted", "tentative", "declined", "needsAction"]
ResourceType = Literal["equipment", "room", "vehicle", "personnel"]
ReminderType = Literal["notification", "email", "sms"]

EVENT_STATUSES: tuple[str, ...] = (
    "scheduled", "confirmed", "cancelled", "completed", "draft",
)


def new_object_id() -> str:
    """Generate a fresh 24-hex-character document id."""
    return uuid.uuid4().hex[:24]


def is_valid_id(value: object) -> bool:
    """True if ``value`` is a well-formed document id (case-insensitive)."""
    return isinstance(value, str) and _OBJECT_ID_RE.match(value.lower()) is not None


def _check_object_id(value: str) -> str:
    if not is_valid_id(value):
        raise ValueError(f"Invalid id format: {value!r}")
    return value.lower()


ObjectId = Annotated[str, AfterValidator(_check_object_id)]
Weekday = Annotated[int, Field(ge=0, le=6)]


class _Document(BaseModel):
    """Base for every persisted shape: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class RecurrencePattern(_Document):
    """How a base event repeats. Embedded in a CalendarEvent, never stored alone.

    JSON example:
    {
        "frequency": "monthly",
        "interval": 1,
        "monthWeek": -1,
        "endAfterOccurrences": 12,
        "excludeDates": ["2024-12-27"]
    }
    """

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    end_after_occurrences: int | None = Field(default=None, ge=1)
    end_date: datetime | None = None
    days_of_week: list[Weekday] = Field(default_factory=list)
    month_day: int | None = Field(default=None, ge=1, le=31)
    month_week: int | None = Field(default=None, ge=-1, le=4)
    exclude_dates: list[date] = Field(default_factory=list)

    @field_validator("days_of_week")
    @classmethod
    def dedupe_days(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    @field_validator("exclude_dates", mode="before")
    @classmethod
    def reduce_to_calendar_days(cls, v: Any) -> Any:
        """Stored exclusions may be full instants; only their local day matters."""
        if not isinstance(v, list):
            return v
        from src.core.dates import get_zone, to_zone

        tz = get_zone()
        days: list[Any] = []
        for item in v:
            if isinstance(item, datetime) or (isinstance(item, str) and "T" in item):
                days.append(to_zone(item, tz).date())
            else:
                days.append(item)
        return days

    @model_validator(mode="after")
    def check_monthly_refinement(self) -> RecurrencePattern:
        if self.month_day is not None and self.month_week is not None:
            raise ValueError("monthDay and monthWeek are mutually exclusive")
        return self


class Attendee(_Document):
    user_id: ObjectId
    role: AttendeeRole = "required"
    response_status: ResponseStatus = "needsAction"


class ResourceRef(_Document):
    """A bookable resource referenced by id (room, equipment, vehicle, person)."""

    resource_id: ObjectId
    resource_type: ResourceType
    quantity: int = Field(default=1, ge=1)


class Reminder(_Document):
    reminder_type: ReminderType = "notification"
    minutes_before: int = Field(default=0, ge=0)
    sent: bool = False


class Attachment(_Document):
    name: str = Field(min_length=1)
    file_url: str = Field(min_length=1)
    file_type: str = ""
    upload_date: datetime | None = None


class ChecklistItem(_Document):
    text: str = Field(min_length=1)
    checked: bool = False


class Budget(_Document):
    allocated: float = Field(default=0, ge=0)
    spent: float = Field(default=0, ge=0)
    currency: str = "EUR"


class CalendarEvent(_Document):
    """One schedulable unit, optionally repeating via ``recurring_pattern``."""

    id: ObjectId = Field(default_factory=new_object_id, alias="_id")
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    start_date: datetime
    end_date: datetime
    all_day: bool = False
    location: str = ""
    event_type: str = Field(min_length=1)
    color: str = "#3498db"
    tags: list[str] = Field(default_factory=list)
    related_event_ids: list[ObjectId] = Field(default_factory=list)
    recurring_pattern: RecurrencePattern | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    resources: list[ResourceRef] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    checklist: list[ChecklistItem] = Field(default_factory=list)
    visibility: Visibility = "team"
    priority: Priority = "medium"
    status: EventStatus = "scheduled"
    budget: Budget | None = None
    created_by: ObjectId
    updated_by: ObjectId | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        return [tag.strip() for tag in v if tag.strip()]

    @model_validator(mode="after")
    def check_date_order(self) -> CalendarEvent:
        from src.core.dates import get_zone, to_utc, to_zone

        tz = get_zone()
        if to_utc(to_zone(self.end_date, tz)) < to_utc(to_zone(self.start_date, tz)):
            raise ValueError("End date must be equal to or after start date")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurring_pattern is not None

    def resource_ids(self) -> list[str]:
        """Ids of the resources this event books, in declaration order."""
        return [r.resource_id for r in self.resources]

    def to_document(self) -> dict:
        """Serialize to the stored JSON document shape."""
        return self.model_dump(by_alias=True, mode="json")
