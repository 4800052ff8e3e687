from datetime import datetime
from enum import Enum
from typing import NamedTuple

from konfi_events.domain.capacity import has_room, waitlist_has_room
from konfi_events.domain.exceptions import RegistrationNotOpenError


class RegistrationStatus(str, Enum):
    CANCELLED = "cancelled"
    UPCOMING = "upcoming"
    CLOSED = "closed"
    OPEN = "open"


class RegistrationWindow(NamedTuple):
    status: RegistrationStatus
    reason: str | None = None


def evaluate_registration_window(
    now: datetime,
    opens_at: datetime | None,
    closes_at: datetime | None,
    confirmed_count: int,
    total_capacity: int,
    waitlist_enabled: bool,
    pending_count: int,
    max_waitlist_size: int,
    cancelled: bool = False,
) -> RegistrationWindow:
    """
    Status plus the RegistrationNotOpenError reason explaining it.

    Evaluated in order: cancelled, not yet open, past closing time, and
    finally full (finite capacity reached and no waitlist room). A missing
    opening or closing time never blocks. Depends on ``now``; never store it.
    """
    if cancelled:
        return RegistrationWindow(RegistrationStatus.CANCELLED, RegistrationNotOpenError.REASON_CANCELLED)
    if opens_at is not None and now < opens_at:
        return RegistrationWindow(RegistrationStatus.UPCOMING, RegistrationNotOpenError.REASON_NOT_YET_OPEN)
    if closes_at is not None and now > closes_at:
        return RegistrationWindow(RegistrationStatus.CLOSED, RegistrationNotOpenError.REASON_CLOSED)

    if not has_room(total_capacity, confirmed_count):
        if not waitlist_enabled:
            return RegistrationWindow(RegistrationStatus.CLOSED, RegistrationNotOpenError.REASON_FULL_NO_WAITLIST)
        if not waitlist_has_room(waitlist_enabled, pending_count, max_waitlist_size):
            return RegistrationWindow(RegistrationStatus.CLOSED, RegistrationNotOpenError.REASON_WAITLIST_FULL)

    return RegistrationWindow(RegistrationStatus.OPEN)


def classify_registration_window(
    now: datetime,
    opens_at: datetime | None,
    closes_at: datetime | None,
    confirmed_count: int,
    total_capacity: int,
    waitlist_enabled: bool,
    pending_count: int,
    max_waitlist_size: int,
    cancelled: bool = False,
) -> RegistrationStatus:
    return evaluate_registration_window(
        now=now,
        opens_at=opens_at,
        closes_at=closes_at,
        confirmed_count=confirmed_count,
        total_capacity=total_capacity,
        waitlist_enabled=waitlist_enabled,
        pending_count=pending_count,
        max_waitlist_size=max_waitlist_size,
        cancelled=cancelled,
    ).status
