# konfi_events/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from konfi_events.domain.exceptions import InvalidStatusChangeError


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


class PointType(str, Enum):
    GOTTESDIENST = "gottesdienst"
    GEMEINDE = "gemeinde"


class BookingStateMachine:
    """
    Legal booking status changes.
    A pending booking is a waitlist entry; confirming it takes a seat.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.PENDING,
        },
    }

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStatusChangeError if the change is illegal,
        including a change to the status the booking already has.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStatusChangeError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )
