"""
Calendar Engine: Event Database.

SQLite-backed reference implementation of the EventStore port. Each event is
kept as its JSON document next to a few indexed columns (UTC timestamps,
status, recurrence bounds) and a side table of booked resources, so the
availability checker can fetch candidates without scanning every document.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from src.core.dates import get_zone, to_zone
from src.data.models import CalendarEvent
from src.ports.event_store_port import EventStoreError

logger = logging.getLogger(__name__)


def _utc_key(value: datetime) -> str:
    """Fixed-width UTC timestamp that sorts lexicographically."""
    return to_zone(value, get_zone()).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _series_end(event: CalendarEvent) -> str | None:
    """Latest instant any occurrence of the series can still be running."""
    pattern = event.recurring_pattern
    if pattern is None or pattern.end_date is None:
        return None
    duration = to_zone(event.end_date, get_zone()) - to_zone(event.start_date, get_zone())
    return _utc_key(to_zone(pattern.end_date, get_zone()) + duration)


class EventDB:
    """SQLite-backed storage for calendar events."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success and maps sqlite errors."""
        conn = self._connect()
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Event store operation failed on %s: %s", self._db_path, exc)
            raise EventStoreError(str(exc)) from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create the events tables if they don't exist."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id            TEXT    PRIMARY KEY,
                    document      TEXT    NOT NULL,
                    start_date    TEXT    NOT NULL,
                    end_date      TEXT    NOT NULL,
                    is_recurring  INTEGER NOT NULL DEFAULT 0,
                    series_end    TEXT,
                    status        TEXT    NOT NULL DEFAULT 'scheduled'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS event_resources (
                    event_id     TEXT NOT NULL,
                    resource_id  TEXT NOT NULL,
                    PRIMARY KEY (event_id, resource_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_dates ON events (start_date, end_date)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_event_resources_resource "
                "ON event_resources (resource_id)"
            )
        logger.debug("Events tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> CalendarEvent:
        return CalendarEvent.model_validate(json.loads(row["document"]))

    @staticmethod
    def _columns(event: CalendarEvent) -> tuple:
        return (
            json.dumps(event.to_document()),
            _utc_key(event.start_date),
            _utc_key(event.end_date),
            int(event.is_recurring),
            _series_end(event),
            event.status,
        )

    @staticmethod
    def _write_resources(conn: sqlite3.Connection, event: CalendarEvent) -> None:
        conn.execute("DELETE FROM event_resources WHERE event_id = ?", (event.id,))
        conn.executemany(
            "INSERT INTO event_resources (event_id, resource_id) VALUES (?, ?)",
            [(event.id, rid) for rid in dict.fromkeys(event.resource_ids())],
        )

    def insert_event(self, event: CalendarEvent) -> CalendarEvent:
        """Insert a new event. Raises EventStoreError on a duplicate id."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO events
                    (id, document, start_date, end_date, is_recurring, series_end, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (event.id, *self._columns(event)),
            )
            self._write_resources(conn, event)
        logger.debug("Event stored: %s", event.id)
        return event

    def replace_event(self, event: CalendarEvent) -> bool:
        """Overwrite a stored event. Returns False if the id is unknown."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE events
                SET document = ?, start_date = ?, end_date = ?,
                    is_recurring = ?, series_end = ?, status = ?
                WHERE id = ?
                """,
                (*self._columns(event), event.id),
            )
            if cursor.rowcount == 0:
                return False
            self._write_resources(conn, event)
        return True

    def get_event(self, event_id: str) -> CalendarEvent | None:
        """Fetch a single event by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT document FROM events WHERE id = ?", (event_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def delete_event(self, event_id: str) -> bool:
        """Permanently delete an event and its resource rows."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
            conn.execute("DELETE FROM event_resources WHERE event_id = ?", (event_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug("Event %s removed from store", event_id)
        return deleted

    def find_events(
        self,
        start_after: datetime | None = None,
        end_before: datetime | None = None,
    ) -> list[CalendarEvent]:
        """Events whose stored interval touches [start_after, end_before]."""
        conditions: list[str] = []
        params: list = []
        if start_after is not None:
            conditions.append("end_date >= ?")
            params.append(_utc_key(start_after))
        if end_before is not None:
            conditions.append("start_date <= ?")
            params.append(_utc_key(end_before))

        query = "SELECT document FROM events"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY start_date, id"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def find_events_referencing_resources(
        self,
        resource_ids: list[str],
        window_start: datetime,
        window_end: datetime,
    ) -> list[CalendarEvent]:
        """Non-cancelled events booking any of the resources near the window.

        Single events must overlap the window; a series qualifies when it
        started before the window ends and has not finished before it starts.
        """
        if not resource_ids:
            return []
        placeholders = ", ".join("?" for _ in resource_ids)
        ws, we = _utc_key(window_start), _utc_key(window_end)
        query = f"""
            SELECT DISTINCT e.id, e.document, e.start_date
            FROM events e
            JOIN event_resources r ON r.event_id = e.id
            WHERE r.resource_id IN ({placeholders})
              AND e.status != 'cancelled'
              AND (
                    (e.is_recurring = 0 AND e.start_date < ? AND e.end_date > ?)
                 OR (e.is_recurring = 1 AND e.start_date <= ?
                     AND (e.series_end IS NULL OR e.series_end > ?))
              )
            ORDER BY e.start_date, e.id
        """
        with self._transaction() as conn:
            rows = conn.execute(query, [*resource_ids, we, ws, we, ws]).fetchall()
        return [self._row_to_event(r) for r in rows]

    def update_status(
        self,
        event_ids: list[str],
        status: str,
        updated_by: str,
        updated_at: datetime,
    ) -> int:
        """Set status on each existing event. Returns how many were modified."""
        modified = 0
        with self._transaction() as conn:
            for event_id in event_ids:
                row = conn.execute(
                    "SELECT document FROM events WHERE id = ?", (event_id,)
                ).fetchone()
                if row is None:
                    continue
                document = json.loads(row["document"])
                document.update(
                    status=status,
                    updatedBy=updated_by,
                    updatedAt=updated_at.isoformat(),
                )
                conn.execute(
                    "UPDATE events SET document = ?, status = ? WHERE id = ?",
                    (json.dumps(document), status, event_id),
                )
                modified += 1
        return modified
