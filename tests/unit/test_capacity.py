# tests/unit/test_capacity.py

from types import SimpleNamespace

import pytest

from konfi_events.domain.capacity import (
    CapacityScope,
    available_spots,
    decide_booking_status,
    has_room,
    scope_capacity,
    total_capacity,
)
from konfi_events.domain.exceptions import CapacityExceededError, WaitlistFullError
from konfi_events.domain.state_machine import BookingStatus


def _event(max_participants, has_timeslots=False):
    return SimpleNamespace(max_participants=max_participants, has_timeslots=has_timeslots)


def _slot(max_participants):
    return SimpleNamespace(max_participants=max_participants)


# ---------------------
# TOTAL CAPACITY
# ---------------------

def test_timeslot_capacities_are_summed():
    event = _event(max_participants=99, has_timeslots=True)

    assert total_capacity(event, [_slot(5), _slot(7)]) == 12


def test_one_unlimited_timeslot_makes_the_event_unlimited():
    event = _event(max_participants=0, has_timeslots=True)
    slots = [_slot(0), _slot(1)]

    capacity = total_capacity(event, slots)

    assert capacity == 0
    assert has_room(capacity, 3)
    assert available_spots(capacity, 3) is None
    assert scope_capacity(event, slots, slots[1]) == 1


def test_event_capacity_is_fallback_without_timeslots():
    assert total_capacity(_event(10, has_timeslots=True), []) == 10
    assert total_capacity(_event(10, has_timeslots=False), [_slot(3)]) == 10


def test_timeslot_scopes_its_own_capacity():
    event = _event(max_participants=0, has_timeslots=True)
    slots = [_slot(5), _slot(7)]

    assert scope_capacity(event, slots, slots[1]) == 7
    assert scope_capacity(event, slots) == 12


# ---------------------
# SEATS
# ---------------------

def test_zero_capacity_means_unlimited():
    assert has_room(0, 10_000)
    assert available_spots(0, 10_000) is None


def test_available_spots_never_negative():
    assert available_spots(3, 1) == 2
    assert available_spots(3, 5) == 0
    assert not has_room(3, 3)


# ---------------------
# BOOKING DECISION
# ---------------------

def test_confirmed_while_seats_remain():
    scope = CapacityScope(capacity=2, confirmed=1, pending=0)

    assert decide_booking_status(scope, waitlist_enabled=True, max_waitlist_size=5) is BookingStatus.CONFIRMED


def test_pending_when_full_and_waitlist_has_room():
    scope = CapacityScope(capacity=2, confirmed=2, pending=4)

    assert decide_booking_status(scope, waitlist_enabled=True, max_waitlist_size=5) is BookingStatus.PENDING


def test_waitlist_full():
    scope = CapacityScope(capacity=2, confirmed=2, pending=5)

    with pytest.raises(WaitlistFullError, match="waitlist also full"):
        decide_booking_status(scope, waitlist_enabled=True, max_waitlist_size=5)


def test_full_without_waitlist():
    scope = CapacityScope(capacity=2, confirmed=2, pending=0)

    with pytest.raises(CapacityExceededError) as exc_info:
        decide_booking_status(scope, waitlist_enabled=False, max_waitlist_size=5)

    assert not isinstance(exc_info.value, WaitlistFullError)


def test_unlimited_scope_always_confirms():
    scope = CapacityScope(capacity=0, confirmed=500, pending=0)

    assert scope.unlimited
    assert decide_booking_status(scope, waitlist_enabled=False, max_waitlist_size=0) is BookingStatus.CONFIRMED
