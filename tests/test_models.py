"""Tests for src.data.models: CalendarEvent and RecurrencePattern."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from src.data.models import (
    CalendarEvent,
    RecurrencePattern,
    is_valid_id,
    new_object_id,
)
from tests.conftest import USER_ID


def _document(**overrides):
    doc = {
        "_id": "65a1f0c2e4b0a1b2c3d4e5f6",
        "title": "Board dinner",
        "startDate": "2024-03-01T19:00:00",
        "endDate": "2024-03-01T22:00:00",
        "eventType": "dinner",
        "createdBy": USER_ID,
    }
    doc.update(overrides)
    return doc


def test_event_from_stored_document():
    event = CalendarEvent.model_validate(_document(allDay=False, tags=["vip"]))
    assert event.id == "65a1f0c2e4b0a1b2c3d4e5f6"
    assert event.start_date == datetime(2024, 3, 1, 19)
    assert event.event_type == "dinner"
    assert event.tags == ["vip"]


def test_event_defaults():
    event = CalendarEvent.model_validate(_document())
    assert event.status == "scheduled"
    assert event.visibility == "team"
    assert event.priority == "medium"
    assert event.recurring_pattern is None
    assert event.is_recurring is False
    assert event.resources == []


def test_event_generates_id_when_missing():
    doc = _document()
    del doc["_id"]
    event = CalendarEvent.model_validate(doc)
    assert is_valid_id(event.id)


def test_ids_are_lowercased():
    event = CalendarEvent.model_validate(_document(_id="65A1F0C2E4B0A1B2C3D4E5F6"))
    assert event.id == "65a1f0c2e4b0a1b2c3d4e5f6"


def test_malformed_creator_rejected():
    with pytest.raises(ValidationError):
        CalendarEvent.model_validate(_document(createdBy="admin"))


def test_title_stripped_and_bounded():
    assert CalendarEvent.model_validate(_document(title="  Dinner  ")).title == "Dinner"
    with pytest.raises(ValidationError):
        CalendarEvent.model_validate(_document(title="   "))
    with pytest.raises(ValidationError):
        CalendarEvent.model_validate(_document(title="x" * 201))


def test_end_before_start_rejected():
    with pytest.raises(ValidationError, match="End date must be equal to or after start date"):
        CalendarEvent.model_validate(_document(endDate="2024-03-01T18:00:00"))


def test_zero_length_event_allowed():
    event = CalendarEvent.model_validate(_document(endDate="2024-03-01T19:00:00"))
    assert event.start_date == event.end_date


def test_empty_tags_dropped():
    event = CalendarEvent.model_validate(_document(tags=["vip", " ", " late "]))
    assert event.tags == ["vip", "late"]


def test_to_document_uses_camel_case():
    event = CalendarEvent.model_validate(
        _document(recurringPattern={"frequency": "weekly", "daysOfWeek": [3, 1]})
    )
    doc = event.to_document()
    assert doc["_id"] == event.id
    assert doc["startDate"] == "2024-03-01T19:00:00"
    assert doc["recurringPattern"]["daysOfWeek"] == [1, 3]
    assert "start_date" not in doc
    assert CalendarEvent.model_validate(doc) == event


def test_snake_case_names_accepted():
    event = CalendarEvent(
        title="Setup",
        start_date=datetime(2024, 3, 1, 9),
        end_date=datetime(2024, 3, 1, 10),
        event_type="setup",
        created_by=USER_ID,
    )
    assert event.created_by == USER_ID


def test_resource_ids_in_declaration_order():
    event = CalendarEvent.model_validate(_document(resources=[
        {"resourceId": "000000000000000000000002", "resourceType": "room"},
        {"resourceId": "000000000000000000000001", "resourceType": "vehicle"},
    ]))
    assert event.resource_ids() == ["000000000000000000000002", "000000000000000000000001"]


def test_unknown_keys_ignored():
    event = CalendarEvent.model_validate(_document(__v=0, legacyField="x"))
    assert "legacyField" not in event.to_document()


def test_new_object_id_format():
    first, second = new_object_id(), new_object_id()
    assert is_valid_id(first)
    assert first != second


@pytest.mark.parametrize("value", ["", "123", "z" * 24, None, 42])
def test_is_valid_id_rejects(value):
    assert is_valid_id(value) is False


def test_pattern_defaults():
    pattern = RecurrencePattern(frequency="daily")
    assert pattern.interval == 1
    assert pattern.end_after_occurrences is None
    assert pattern.days_of_week == []
    assert pattern.exclude_dates == []


def test_pattern_unknown_frequency_rejected():
    with pytest.raises(ValidationError):
        RecurrencePattern(frequency="hourly")


@pytest.mark.parametrize("field, value", [
    ("interval", 0),
    ("endAfterOccurrences", 0),
    ("monthDay", 32),
    ("monthWeek", 5),
    ("monthWeek", -2),
])
def test_pattern_out_of_range(field, value):
    with pytest.raises(ValidationError):
        RecurrencePattern.model_validate({"frequency": "monthly", field: value})


def test_pattern_month_week_zero_is_kept():
    assert RecurrencePattern(frequency="monthly", month_week=0).month_week == 0


def test_pattern_month_day_and_week_exclusive():
    with pytest.raises(ValidationError, match="mutually exclusive"):
        RecurrencePattern(frequency="monthly", month_day=5, month_week=1)


def test_pattern_days_of_week_deduped_and_bounded():
    assert RecurrencePattern(frequency="weekly", days_of_week=[3, 1, 3]).days_of_week == [1, 3]
    with pytest.raises(ValidationError):
        RecurrencePattern(frequency="weekly", days_of_week=[7])


def test_pattern_exclude_dates_reduced_to_local_day():
    pattern = RecurrencePattern.model_validate({
        "frequency": "daily",
        "excludeDates": [
            "2024-03-04",
            "2024-03-05T23:30:00Z",  # 00:30 on the 6th in Madrid
            datetime(2024, 3, 7, 12, tzinfo=timezone.utc),
        ],
    })
    assert pattern.exclude_dates == [date(2024, 3, 4), date(2024, 3, 6), date(2024, 3, 7)]
