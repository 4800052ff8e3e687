# tests/integration/test_concurrent_booking.py

import threading
from datetime import datetime, timedelta, timezone

from konfi_events.application.booking_service import BookingService
from konfi_events.application.context import AuthContext
from konfi_events.domain.drafts import TimeslotDraft
from konfi_events.domain.exceptions import KonfiEventsError, RegistrationNotOpenError
from konfi_events.domain.state_machine import BookingStatus
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository


def _race(session_factory, clock, event_id, user_ids, timeslot_id=None):
    """Book the same event from one thread per user, all released at once."""
    barrier = threading.Barrier(len(user_ids))
    results = {}
    lock = threading.Lock()

    def worker(user_id):
        session = session_factory()
        try:
            barrier.wait()
            auth = AuthContext(user_id=user_id, user_type="konfi", organization_id="org-1")
            try:
                outcome = BookingService(session, clock=clock).book(auth, event_id, timeslot_id)
                result = outcome.status
            except KonfiEventsError as exc:
                result = exc
        finally:
            session.close()
        with lock:
            results[user_id] = result

    threads = [threading.Thread(target=worker, args=(user_id,)) for user_id in user_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def _counts(session_factory, event_id, timeslot_id=None):
    session = session_factory()
    try:
        return BookingRepository(session).scope_counts(event_id, timeslot_id)
    finally:
        session.close()


def test_last_seat_goes_to_exactly_one_booker(session_factory, clock, make_event):
    event_id = make_event(max_participants=1, waitlist_enabled=False)
    user_ids = [f"k{index}" for index in range(8)]

    results = _race(session_factory, clock, event_id, user_ids)

    confirmed = [user for user, result in results.items() if result is BookingStatus.CONFIRMED]
    rejected = [result for result in results.values() if isinstance(result, RegistrationNotOpenError)]
    assert len(confirmed) == 1
    assert len(rejected) == 7
    assert _counts(session_factory, event_id) == (1, 0)


def _timeslot_ids(session_factory, event_id):
    session = session_factory()
    try:
        return [slot.id for slot in EventRepository(session).list_timeslots(event_id)]
    finally:
        session.close()


def test_last_timeslot_seat_goes_to_exactly_one_booker(session_factory, clock, make_event):
    start = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    event_id = make_event(
        max_participants=0,
        has_timeslots=True,
        waitlist_enabled=False,
        timeslots=(
            TimeslotDraft(start, start + timedelta(hours=1), 1),
            TimeslotDraft(start + timedelta(hours=1), start + timedelta(hours=2), 5),
        ),
    )
    contested, other = _timeslot_ids(session_factory, event_id)
    user_ids = [f"k{index}" for index in range(8)]

    results = _race(session_factory, clock, event_id, user_ids, contested)

    statuses = list(results.values())
    assert statuses.count(BookingStatus.CONFIRMED) == 1
    assert sum(isinstance(result, RegistrationNotOpenError) for result in statuses) == 7
    assert _counts(session_factory, event_id, contested) == (1, 0)
    assert _counts(session_factory, event_id, other) == (0, 0)


def test_capacity_and_waitlist_bounds_hold_under_contention(session_factory, clock, make_event):
    event_id = make_event(max_participants=3, max_waitlist_size=2)
    user_ids = [f"k{index}" for index in range(10)]

    results = _race(session_factory, clock, event_id, user_ids)

    statuses = list(results.values())
    assert statuses.count(BookingStatus.CONFIRMED) == 3
    assert statuses.count(BookingStatus.PENDING) == 2
    assert sum(isinstance(result, RegistrationNotOpenError) for result in statuses) == 5
    assert _counts(session_factory, event_id) == (3, 2)
