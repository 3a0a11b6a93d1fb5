"""Tests for src.data.db: EventDB (SQLite storage)."""

import json
import sqlite3

import pytest

from src.data.db import EventDB
from src.data.models import RecurrencePattern, ResourceRef
from src.ports.event_store_port import EventStoreError
from tests.conftest import R1, R2, local


def _room(resource_id):
    return ResourceRef(resource_id=resource_id, resource_type="room")


class TestEventDBStorage:
    def test_insert_and_get_roundtrip(self, event_db, make_event):
        event = make_event(
            tags=["vip"],
            resources=[_room(R1)],
            recurring_pattern=RecurrencePattern(frequency="weekly", days_of_week=[1, 3]),
        )
        event_db.insert_event(event)
        fetched = event_db.get_event(event.id)
        assert fetched == event

    def test_document_uses_stored_field_names(self, event_db, make_event, tmp_db_path):
        event = make_event(recurring_pattern=RecurrencePattern(frequency="daily", interval=2))
        event_db.insert_event(event)
        with sqlite3.connect(tmp_db_path) as conn:
            (raw,) = conn.execute("SELECT document FROM events").fetchone()
        document = json.loads(raw)
        assert document["_id"] == event.id
        assert "startDate" in document
        assert document["recurringPattern"]["interval"] == 2
        assert "excludeDates" in document["recurringPattern"]

    def test_get_missing_returns_none(self, event_db):
        assert event_db.get_event("ffffffffffffffffffffffff") is None

    def test_duplicate_insert_raises(self, event_db, make_event):
        event = make_event()
        event_db.insert_event(event)
        with pytest.raises(EventStoreError):
            event_db.insert_event(event)

    def test_replace_rewrites_resources(self, event_db, make_event):
        event = make_event(resources=[_room(R1)])
        event_db.insert_event(event)
        moved = event.model_copy(update={"resources": [_room(R2)]})
        assert event_db.replace_event(moved) is True

        window = (local(2024, 1, 1, 10), local(2024, 1, 1, 11))
        assert event_db.find_events_referencing_resources([R1], *window) == []
        assert [e.id for e in event_db.find_events_referencing_resources([R2], *window)] == [event.id]

    def test_replace_unknown_returns_false(self, event_db, make_event):
        assert event_db.replace_event(make_event()) is False

    def test_delete(self, event_db, make_event):
        event = make_event(resources=[_room(R1)])
        event_db.insert_event(event)
        assert event_db.delete_event(event.id) is True
        assert event_db.delete_event(event.id) is False
        window = (local(2024, 1, 1, 10), local(2024, 1, 1, 11))
        assert event_db.find_events_referencing_resources([R1], *window) == []

    def test_survives_reopen(self, tmp_db_path, make_event):
        event = make_event()
        EventDB(db_path=tmp_db_path).insert_event(event)
        assert EventDB(db_path=tmp_db_path).get_event(event.id) == event


class TestEventDBFindEvents:
    def test_range_filter(self, event_db, make_event):
        inside = make_event(start_date=local(2024, 3, 5, 9), end_date=local(2024, 3, 5, 10))
        spanning = make_event(start_date=local(2024, 2, 25, 9), end_date=local(2024, 3, 2, 10))
        outside = make_event(start_date=local(2024, 4, 5, 9), end_date=local(2024, 4, 5, 10))
        for ev in (outside, inside, spanning):
            event_db.insert_event(ev)

        found = event_db.find_events(start_after=local(2024, 3, 1), end_before=local(2024, 3, 31))
        assert [e.id for e in found] == [spanning.id, inside.id]

    def test_no_bounds_returns_all(self, event_db, make_event):
        for _ in range(3):
            event_db.insert_event(make_event())
        assert len(event_db.find_events()) == 3


class TestEventDBResourceCandidates:
    def test_overlapping_single_event(self, event_db, make_event):
        event = make_event(resources=[_room(R1)])
        event_db.insert_event(event)
        found = event_db.find_events_referencing_resources(
            [R1], local(2024, 1, 1, 10, 30), local(2024, 1, 1, 12),
        )
        assert [e.id for e in found] == [event.id]

    def test_touching_single_event_excluded(self, event_db, make_event):
        event_db.insert_event(make_event(resources=[_room(R1)]))
        found = event_db.find_events_referencing_resources(
            [R1], local(2024, 1, 1, 11), local(2024, 1, 1, 12),
        )
        assert found == []

    def test_other_resource_excluded(self, event_db, make_event):
        event_db.insert_event(make_event(resources=[_room(R2)]))
        found = event_db.find_events_referencing_resources(
            [R1], local(2024, 1, 1, 10), local(2024, 1, 1, 11),
        )
        assert found == []

    def test_open_series_started_earlier_included(self, event_db, make_event):
        series = make_event(
            resources=[_room(R1)],
            recurring_pattern=RecurrencePattern(frequency="weekly"),
        )
        event_db.insert_event(series)
        found = event_db.find_events_referencing_resources(
            [R1], local(2025, 6, 2, 10), local(2025, 6, 2, 11),
        )
        assert [e.id for e in found] == [series.id]

    def test_finished_series_excluded(self, event_db, make_event):
        series = make_event(
            resources=[_room(R1)],
            recurring_pattern=RecurrencePattern(frequency="weekly", end_date=local(2024, 2, 1)),
        )
        event_db.insert_event(series)
        found = event_db.find_events_referencing_resources(
            [R1], local(2024, 6, 3, 10), local(2024, 6, 3, 11),
        )
        assert found == []

    def test_cancelled_excluded(self, event_db, make_event):
        event_db.insert_event(make_event(resources=[_room(R1)], status="cancelled"))
        found = event_db.find_events_referencing_resources(
            [R1], local(2024, 1, 1, 10), local(2024, 1, 1, 11),
        )
        assert found == []

    def test_event_listed_once_for_several_resources(self, event_db, make_event):
        event = make_event(resources=[_room(R1), _room(R2)])
        event_db.insert_event(event)
        found = event_db.find_events_referencing_resources(
            [R1, R2], local(2024, 1, 1, 10), local(2024, 1, 1, 11),
        )
        assert len(found) == 1

    def test_empty_resource_list(self, event_db):
        assert event_db.find_events_referencing_resources(
            [], local(2024, 1, 1, 10), local(2024, 1, 1, 11),
        ) == []


class TestEventDBUpdateStatus:
    def test_updates_document_and_column(self, event_db, make_event):
        event = make_event(resources=[_room(R1)])
        event_db.insert_event(event)
        count = event_db.update_status(
            [event.id], "cancelled", "bbbbbbbbbbbbbbbbbbbbbbbb", local(2024, 1, 2, 9),
        )
        assert count == 1
        assert event_db.get_event(event.id).status == "cancelled"
        assert event_db.find_events_referencing_resources(
            [R1], local(2024, 1, 1, 10), local(2024, 1, 1, 11),
        ) == []

    def test_unknown_ids_not_counted(self, event_db):
        assert event_db.update_status(
            ["ffffffffffffffffffffffff"], "confirmed", "bbbbbbbbbbbbbbbbbbbbbbbb", local(2024, 1, 2),
        ) == 0
