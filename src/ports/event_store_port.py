"""Event store port: abstract interface for stored calendar events.

Core modules depend on this protocol, never on a specific storage technology.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import CalendarEvent


class EventStoreError(Exception):
    """Raised when any event store operation fails."""


class EventStore(Protocol):
    """Abstract event store used by core modules."""

    def find_events_referencing_resources(
        self,
        resource_ids: list[str],
        window_start: datetime,
        window_end: datetime,
    ) -> list[CalendarEvent]: ...

    def find_events(
        self,
        start_after: datetime | None = None,
        end_before: datetime | None = None,
    ) -> list[CalendarEvent]: ...

    def get_event(self, event_id: str) -> CalendarEvent | None: ...

    def insert_event(self, event: CalendarEvent) -> CalendarEvent: ...

    def replace_event(self, event: CalendarEvent) -> bool: ...

    def delete_event(self, event_id: str) -> bool: ...

    def update_status(
        self,
        event_ids: list[str],
        status: str,
        updated_by: str,
        updated_at: datetime,
    ) -> int: ...
