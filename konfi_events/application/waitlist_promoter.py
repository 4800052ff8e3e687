import logging
from typing import List

from sqlalchemy.orm import Session

from konfi_events.domain.capacity import CapacityScope, scope_capacity
from konfi_events.domain.effects import (
    Effect,
    LiveUpdate,
    Notification,
    NotificationKind,
    user_scope,
)
from konfi_events.domain.state_machine import BookingStateMachine, BookingStatus
from konfi_events.infrastructure.db.models import Booking, Event, Timeslot
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


class WaitlistPromoter:
    """
    Moves the oldest waitlisted booking of a scope into a free seat.

    A scope is one timeslot, or the whole event for bookings without a
    timeslot. Callers must already hold the event row lock.
    """

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)

    def current_scope(self, event: Event, timeslot: Timeslot | None = None) -> CapacityScope:
        timeslots = [] if timeslot is not None else self.event_repository.list_timeslots(event.id)
        timeslot_id = timeslot.id if timeslot is not None else None
        confirmed, pending = self.booking_repository.scope_counts(event.id, timeslot_id)
        return CapacityScope(
            capacity=scope_capacity(event, timeslots, timeslot),
            confirmed=confirmed,
            pending=pending,
            timeslot_id=timeslot_id,
        )

    def promote_next(self, event: Event, timeslot: Timeslot | None = None) -> Booking | None:
        if not self.current_scope(event, timeslot).has_room:
            return None

        timeslot_id = timeslot.id if timeslot is not None else None
        booking = self.booking_repository.next_pending(event.id, timeslot_id)
        if booking is None:
            return None

        BookingStateMachine.validate_transition(booking.status, BookingStatus.CONFIRMED)
        booking.status = BookingStatus.CONFIRMED
        self.db.flush()

        logger.info(
            "Promoted booking %s of user %s from waitlist for event %s",
            booking.id,
            booking.user_id,
            event.id,
        )
        return booking

    def fill_vacancies(self, event: Event, timeslot: Timeslot | None = None) -> List[Booking]:
        promoted = []
        while True:
            booking = self.promote_next(event, timeslot)
            if booking is None:
                return promoted
            promoted.append(booking)

    def fill_all_scopes(self, event: Event) -> List[Booking]:
        """Fill every scope of the event that still has people waiting."""
        promoted = []
        for timeslot_id in self.booking_repository.pending_scopes(event.id):
            timeslot = None
            if timeslot_id is not None:
                timeslot = self.event_repository.lock_timeslot(timeslot_id, event.id)
            promoted.extend(self.fill_vacancies(event, timeslot))
        return promoted


def promotion_effects(event: Event, booking: Booking) -> List[Effect]:
    payload = {
        "event_id": event.id,
        "event_name": event.name,
        "event_date": event.event_date.isoformat(),
        "booking_id": booking.id,
        "timeslot_id": booking.timeslot_id,
    }
    return [
        Notification(booking.user_id, NotificationKind.WAITLIST_PROMOTED, payload),
        LiveUpdate(
            user_scope("konfi", booking.user_id),
            "events",
            "promoted",
            {"event_id": event.id, "booking_id": booking.id},
        ),
    ]
