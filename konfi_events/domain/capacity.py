"""
Seat arithmetic for events and timeslots.

A capacity of 0 means "unlimited" and bypasses every check. This overloads
zero as both "no seats" and "no cap"; existing data relies on it.
"""

from dataclasses import dataclass
from typing import Iterable, Protocol

from konfi_events.domain.exceptions import CapacityExceededError, WaitlistFullError
from konfi_events.domain.state_machine import BookingStatus

UNLIMITED = 0


class _Capacitated(Protocol):
    max_participants: int


class _EventLike(_Capacitated, Protocol):
    has_timeslots: bool


@dataclass(frozen=True)
class CapacityScope:
    """Counts for one booking scope: a single timeslot, or the whole event."""

    capacity: int
    confirmed: int
    pending: int
    timeslot_id: str | None = None

    @property
    def unlimited(self) -> bool:
        return is_unlimited(self.capacity)

    @property
    def has_room(self) -> bool:
        return has_room(self.capacity, self.confirmed)

    @property
    def available_spots(self) -> int | None:
        return available_spots(self.capacity, self.confirmed)


def total_capacity(event: _EventLike, timeslots: Iterable[_Capacitated]) -> int:
    slots = list(timeslots)
    if event.has_timeslots and slots:
        # One unlimited slot makes the whole event unlimited.
        if any(is_unlimited(slot.max_participants) for slot in slots):
            return UNLIMITED
        return sum(slot.max_participants for slot in slots)
    return event.max_participants


def scope_capacity(
    event: _EventLike,
    timeslots: Iterable[_Capacitated],
    timeslot: _Capacitated | None = None,
) -> int:
    if timeslot is not None:
        return timeslot.max_participants
    return total_capacity(event, timeslots)


def is_unlimited(capacity: int) -> bool:
    return capacity == UNLIMITED


def has_room(capacity: int, confirmed: int) -> bool:
    return is_unlimited(capacity) or confirmed < capacity


def available_spots(capacity: int, confirmed: int) -> int | None:
    if is_unlimited(capacity):
        return None
    return max(capacity - confirmed, 0)


def waitlist_has_room(waitlist_enabled: bool, pending: int, max_waitlist_size: int) -> bool:
    return waitlist_enabled and pending < max_waitlist_size


def decide_booking_status(
    scope: CapacityScope,
    waitlist_enabled: bool,
    max_waitlist_size: int,
) -> BookingStatus:
    """
    Confirmed while seats remain, pending while the waitlist has room.
    Raises CapacityExceededError / WaitlistFullError otherwise.
    """
    if scope.has_room:
        return BookingStatus.CONFIRMED
    if not waitlist_enabled:
        raise CapacityExceededError("Event is full and waitlist is disabled")
    if scope.pending >= max_waitlist_size:
        raise WaitlistFullError("Event is full, waitlist also full")
    return BookingStatus.PENDING
