# tests/integration/test_series_service.py

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from konfi_events.application.series_service import SeriesService
from konfi_events.config import settings
from konfi_events.domain.drafts import EventDraft, TimeslotDraft
from konfi_events.domain.exceptions import InvalidRequestError, PermissionDeniedError
from konfi_events.infrastructure.db.models import Event
from konfi_events.infrastructure.repositories.event_repository import EventRepository

BERLIN = ZoneInfo("Europe/Berlin")


def _template(**overrides):
    fields = {
        "name": "Konfi-Treff",
        "event_date": datetime(2025, 1, 6, 18, 0, tzinfo=BERLIN),
        "event_end_time": datetime(2025, 1, 6, 20, 0, tzinfo=BERLIN),
        "max_participants": 0,
        "points": 1,
        "registration_opens_at": datetime(2025, 1, 1, 9, 0, tzinfo=BERLIN),
        "registration_closes_at": datetime(2025, 1, 5, 23, 0, tzinfo=BERLIN),
        "category_ids": ("treff",),
    }
    fields.update(overrides)
    return EventDraft(**fields)


def test_weekly_series_is_anchored_on_the_first_event(db_session, admin):
    outcome = SeriesService(db_session).create_series(admin, _template(), 4, "week")

    events = [db_session.get(Event, event_id) for event_id in outcome.event_ids]
    assert outcome.series_id == events[0].id
    assert all(event.series_id == events[0].id for event in events)
    assert all(event.is_series for event in events)
    assert [event.name for event in events] == [
        "Konfi-Treff #1",
        "Konfi-Treff #2",
        "Konfi-Treff #3",
        "Konfi-Treff #4",
    ]
    assert [event.event_date.astimezone(BERLIN).day for event in events] == [6, 13, 20, 27]
    assert outcome.message == "4 events created successfully"


def test_occurrences_shift_times_and_registration_window(db_session, admin):
    outcome = SeriesService(db_session).create_series(admin, _template(), 3, "week")

    second = db_session.get(Event, outcome.event_ids[1])
    assert second.event_end_time == datetime(2025, 1, 13, 20, 0, tzinfo=BERLIN)
    assert second.registration_opens_at == datetime(2025, 1, 8, 9, 0, tzinfo=BERLIN)
    assert second.registration_closes_at == datetime(2025, 1, 12, 23, 0, tzinfo=BERLIN)
    assert EventRepository(db_session).category_ids(second.id) == ["treff"]


def test_timeslots_are_copied_to_every_occurrence(db_session, admin):
    template = _template(
        has_timeslots=True,
        timeslots=(
            TimeslotDraft(
                datetime(2025, 1, 6, 18, 0, tzinfo=BERLIN),
                datetime(2025, 1, 6, 19, 0, tzinfo=BERLIN),
                5,
            ),
        ),
    )

    outcome = SeriesService(db_session).create_series(admin, template, 2, "biweek")

    repository = EventRepository(db_session)
    slots = [repository.list_timeslots(event_id) for event_id in outcome.event_ids]
    assert [len(event_slots) for event_slots in slots] == [1, 1]
    assert slots[1][0].start_time == datetime(2025, 1, 20, 17, 0, tzinfo=timezone.utc)
    assert slots[1][0].max_participants == 5
    assert slots[0][0].id != slots[1][0].id


def test_monthly_series_clamps_short_months(db_session, admin):
    template = _template(
        event_date=datetime(2025, 1, 31, 18, 0, tzinfo=BERLIN),
        event_end_time=None,
        registration_opens_at=None,
        registration_closes_at=None,
    )

    outcome = SeriesService(db_session).create_series(admin, template, 3, "month")

    dates = [db_session.get(Event, event_id).event_date.astimezone(BERLIN) for event_id in outcome.event_ids]
    assert [(value.month, value.day) for value in dates] == [(1, 31), (2, 28), (3, 31)]
    assert all(value.hour == 18 for value in dates)


@pytest.mark.parametrize("count", [0, 1, settings.series_max_count + 1])
def test_series_count_bounds(db_session, admin, count):
    with pytest.raises(InvalidRequestError):
        SeriesService(db_session).create_series(admin, _template(), count, "week")


def test_unknown_interval_is_rejected(db_session, admin):
    with pytest.raises(InvalidRequestError, match="Unknown series interval"):
        SeriesService(db_session).create_series(admin, _template(), 3, "fortnight")


def test_konfis_cannot_create_series(db_session, konfi):
    with pytest.raises(PermissionDeniedError):
        SeriesService(db_session).create_series(konfi("k1"), _template(), 3, "week")
