class KonfiEventsError(Exception):
    """
    Base exception for all domain-level errors
    inside the event registration engine.
    """


class NotFoundError(KonfiEventsError):
    """Event, booking, timeslot or user absent or outside the caller's organization."""


class PermissionDeniedError(KonfiEventsError):
    """Raised when the caller's user type may not perform the operation."""


class InvalidRequestError(KonfiEventsError):
    """Raised when input is structurally valid but semantically unusable."""


class TimeslotRequiredError(InvalidRequestError):
    def __init__(self):
        super().__init__("Timeslot selection required for this event")


class AlreadyBookedError(KonfiEventsError):
    """Raised when a user books an event they already hold a booking for."""


class DuplicateBookingError(KonfiEventsError):
    """Raised on the admin path when the participant is already booked."""


class RegistrationNotOpenError(KonfiEventsError):
    """
    Raised when the registration window rejects a booking.
    ``reason`` is one of the ``REASON_*`` constants.
    """

    REASON_CANCELLED = "cancelled"
    REASON_NOT_YET_OPEN = "not-yet-open"
    REASON_CLOSED = "closed"
    REASON_FULL_NO_WAITLIST = "full-no-waitlist"
    REASON_WAITLIST_FULL = "waitlist-full"

    _MESSAGES = {
        REASON_CANCELLED: "Event has been cancelled",
        REASON_NOT_YET_OPEN: "Registration not yet open",
        REASON_CLOSED: "Registration is closed",
        REASON_FULL_NO_WAITLIST: "Event is full and waitlist is disabled",
        REASON_WAITLIST_FULL: "Event is full, waitlist also full",
    }

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(self._MESSAGES.get(reason, f"Registration not open ({reason})"))


class CapacityExceededError(KonfiEventsError):
    """Raised when no confirmed seat is left and the waitlist is disabled."""


class WaitlistFullError(CapacityExceededError):
    """Raised when no confirmed seat is left and the waitlist is full too."""


class DeletionBlockedError(KonfiEventsError):
    """
    Raised when an event or timeslot still has dependent rows.
    The message names every blocking count.
    """

    def __init__(
        self,
        subject: str,
        confirmed_count: int = 0,
        pending_count: int = 0,
        message_count: int = 0,
    ):
        self.subject = subject
        self.confirmed_count = confirmed_count
        self.pending_count = pending_count
        self.message_count = message_count

        parts = []
        if confirmed_count:
            parts.append(f"{confirmed_count} confirmed bookings")
        if pending_count:
            parts.append(f"{pending_count} waitlisted bookings")
        if message_count:
            parts.append(f"{message_count} chat messages")
        super().__init__(f"{subject} cannot be deleted: {', '.join(parts)}")


class InvalidStatusChangeError(KonfiEventsError):
    """
    Raised when an illegal booking status change is attempted.
    """

    def __init__(self, from_state: str, to_state: str, subject: str = "Participant"):
        self.from_state = from_state
        self.to_state = to_state

        if from_state == to_state:
            message = f"{subject} already {to_state}"
        else:
            message = (
                f"Illegal status change attempted: "
                f"{from_state} -> {to_state}"
            )
        super().__init__(message)


class ConcurrencyConflictError(KonfiEventsError):
    """Lock wait or transaction abort in the database. Safe to retry."""
