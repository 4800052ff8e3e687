import logging
from datetime import datetime
from typing import Callable, List, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from konfi_events.application.context import AuthContext, require_admin, require_konfi
from konfi_events.application.outcomes import (
    BookingOutcome,
    CancellationOutcome,
    StatusChangeOutcome,
    UserBookingView,
)
from konfi_events.application.waitlist_promoter import WaitlistPromoter, promotion_effects
from konfi_events.domain.capacity import CapacityScope, decide_booking_status, scope_capacity
from konfi_events.domain.clock import utc_now
from konfi_events.domain.effects import (
    AdminNotification,
    Effect,
    LiveUpdate,
    Notification,
    NotificationKind,
    event_changed,
    user_scope,
)
from konfi_events.domain.exceptions import (
    AlreadyBookedError,
    DuplicateBookingError,
    InvalidRequestError,
    NotFoundError,
    RegistrationNotOpenError,
    TimeslotRequiredError,
)
from konfi_events.domain.registration_window import (
    RegistrationStatus,
    evaluate_registration_window,
)
from konfi_events.domain.state_machine import BookingStateMachine, BookingStatus
from konfi_events.infrastructure.db.models import Booking, Event, Timeslot
from konfi_events.infrastructure.db.session import unit_of_work
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository
from konfi_events.infrastructure.repositories.points_repository import PointsRepository

logger = logging.getLogger(__name__)

AUTO_STATUS = "auto"

MESSAGE_BOOKED = "Event booked successfully"
MESSAGE_WAITLISTED = "Added to waitlist"


class BookingService:
    """
    Books, cancels and moves participants of one event.

    Every operation locks the event row first and runs as a single unit of
    work, so the capacity read and the booking write cannot interleave with
    another request for the same event.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)
        self.points_repository = PointsRepository(db)
        self.promoter = WaitlistPromoter(db)

    def book(
        self,
        auth: AuthContext,
        event_id: str,
        timeslot_id: str | None = None,
    ) -> BookingOutcome:
        require_konfi(auth)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            timeslot, timeslots = self._resolve_timeslot(event, timeslot_id)

            scope = self._scope(event, timeslots, timeslot)
            window = evaluate_registration_window(
                now=self.clock(),
                opens_at=event.registration_opens_at,
                closes_at=event.registration_closes_at,
                confirmed_count=scope.confirmed,
                total_capacity=scope.capacity,
                waitlist_enabled=event.waitlist_enabled,
                pending_count=scope.pending,
                max_waitlist_size=event.max_waitlist_size,
                cancelled=event.cancelled,
            )
            if window.status is not RegistrationStatus.OPEN:
                raise RegistrationNotOpenError(window.reason)

            if self.booking_repository.get_for_user(event.id, auth.user_id):
                raise AlreadyBookedError("Already booked this event")

            status = decide_booking_status(
                scope,
                event.waitlist_enabled,
                event.max_waitlist_size,
            )
            booking = self._insert(event, auth.user_id, status, timeslot, AlreadyBookedError)

            logger.info(
                "User %s booked event %s as %s",
                auth.user_id,
                event.id,
                status.value,
            )
            outcome = BookingOutcome(
                id=booking.id,
                event_id=event.id,
                user_id=auth.user_id,
                status=status,
                timeslot_id=booking.timeslot_id,
                message=MESSAGE_BOOKED if status is BookingStatus.CONFIRMED else MESSAGE_WAITLISTED,
                effects=self._booking_effects(event, booking),
            )

        return outcome

    def cancel(self, auth: AuthContext, event_id: str) -> CancellationOutcome:
        require_konfi(auth)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            booking = self.booking_repository.get_for_user(
                event.id,
                auth.user_id,
                auth.organization_id,
            )
            if booking is None:
                raise NotFoundError("Booking not found")

            outcome = self._delete_and_promote(event, booking, "Booking canceled successfully")
            outcome.effects[:0] = [
                Notification(
                    auth.user_id,
                    NotificationKind.BOOKING_CANCELLED,
                    {"event_id": event.id, "event_name": event.name},
                ),
                AdminNotification(
                    event.organization_id,
                    NotificationKind.BOOKING_CANCELLED,
                    {
                        "event_id": event.id,
                        "event_name": event.name,
                        "user_id": auth.user_id,
                        "status": outcome.previous_status.value,
                    },
                ),
            ]

        return outcome

    def admin_add_participant(
        self,
        auth: AuthContext,
        event_id: str,
        user_id: str,
        timeslot_id: str | None = None,
        desired_status: str = AUTO_STATUS,
    ) -> BookingOutcome:
        """
        Admin booking on behalf of a konfi.

        The registration time window does not apply here. ``auto`` takes the
        same capacity decision as a konfi booking; an explicit status wins.
        """
        require_admin(auth)
        requested = self._parse_desired_status(desired_status)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            if event.cancelled:
                raise RegistrationNotOpenError(RegistrationNotOpenError.REASON_CANCELLED)

            timeslot, timeslots = self._resolve_timeslot(event, timeslot_id)

            if self.points_repository.get_profile(user_id, auth.organization_id) is None:
                raise NotFoundError("Konfi not found in this organization")

            if self.booking_repository.get_for_user(event.id, user_id):
                raise DuplicateBookingError("Participant already registered for this event")

            if requested is None:
                status = decide_booking_status(
                    self._scope(event, timeslots, timeslot),
                    event.waitlist_enabled,
                    event.max_waitlist_size,
                )
            else:
                status = requested

            booking = self._insert(event, user_id, status, timeslot, DuplicateBookingError)

            logger.info(
                "Admin %s added user %s to event %s as %s",
                auth.user_id,
                user_id,
                event.id,
                status.value,
            )
            outcome = BookingOutcome(
                id=booking.id,
                event_id=event.id,
                user_id=user_id,
                status=status,
                timeslot_id=booking.timeslot_id,
                message=(
                    "Participant added successfully"
                    if status is BookingStatus.CONFIRMED
                    else "Participant added to waitlist"
                ),
                effects=self._booking_effects(event, booking),
            )

        return outcome

    def remove_participant(
        self,
        auth: AuthContext,
        event_id: str,
        booking_id: str,
    ) -> CancellationOutcome:
        require_admin(auth)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            booking = self.booking_repository.get(booking_id, event.id, auth.organization_id)
            if booking is None:
                raise NotFoundError("Booking not found")

            user_id = booking.user_id
            outcome = self._delete_and_promote(event, booking, "Participant removed successfully")
            outcome.effects.insert(
                0,
                Notification(
                    user_id,
                    NotificationKind.BOOKING_CANCELLED,
                    {"event_id": event.id, "event_name": event.name, "removed_by_admin": True},
                ),
            )

        return outcome

    def set_participant_status(
        self,
        auth: AuthContext,
        event_id: str,
        booking_id: str,
        status: BookingStatus | str,
    ) -> StatusChangeOutcome:
        """
        Manual override between confirmed and pending.
        Demoting a participant frees a seat but promotes nobody, and the
        demoted booking stays out of automatic promotion until re-confirmed.
        """
        require_admin(auth)
        target = self._parse_status(status)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            booking = self.booking_repository.get(booking_id, event.id, auth.organization_id)
            if booking is None:
                raise NotFoundError("Participant not found")

            BookingStateMachine.validate_transition(booking.status, target)
            booking.status = target
            booking.waitlist_hold = target is BookingStatus.PENDING
            self.db.flush()

            logger.info(
                "Admin %s set booking %s of event %s to %s",
                auth.user_id,
                booking.id,
                event.id,
                target.value,
            )

            effects: List[Effect] = []
            if target is BookingStatus.CONFIRMED:
                effects.extend(promotion_effects(event, booking))
            effects.extend(event_changed(event.organization_id, "updated", event_id=event.id))

            outcome = StatusChangeOutcome(
                booking_id=booking.id,
                event_id=event.id,
                user_id=booking.user_id,
                status=target,
                message=(
                    "Participant promoted"
                    if target is BookingStatus.CONFIRMED
                    else "Participant moved to waitlist"
                ),
                effects=effects,
            )

        return outcome

    def list_my_bookings(self, auth: AuthContext) -> List[UserBookingView]:
        require_konfi(auth)

        with unit_of_work(self.db):
            rows = self.booking_repository.list_for_user(auth.user_id, auth.organization_id)
            views = [
                UserBookingView(
                    booking_id=booking.id,
                    event_id=event.id,
                    event_name=event.name,
                    event_date=event.event_date,
                    location=event.location,
                    status=booking.status,
                    timeslot_id=booking.timeslot_id,
                    attendance_status=booking.attendance_status,
                )
                for booking, event in rows
            ]

        return views

    # -----------------------------
    # Helpers
    # -----------------------------
    def _resolve_timeslot(
        self,
        event: Event,
        timeslot_id: str | None,
    ) -> Tuple[Timeslot | None, List[Timeslot]]:
        timeslots = self.event_repository.list_timeslots(event.id)

        if timeslot_id is None:
            if event.has_timeslots and timeslots:
                raise TimeslotRequiredError()
            return None, timeslots

        if not event.has_timeslots:
            raise InvalidRequestError("This event has no timeslots")

        timeslot = self.event_repository.lock_timeslot(timeslot_id, event.id)
        return timeslot, timeslots

    def _scope(
        self,
        event: Event,
        timeslots: List[Timeslot],
        timeslot: Timeslot | None,
    ) -> CapacityScope:
        timeslot_id = timeslot.id if timeslot is not None else None
        confirmed, pending = self.booking_repository.scope_counts(event.id, timeslot_id)
        return CapacityScope(
            capacity=scope_capacity(event, timeslots, timeslot),
            confirmed=confirmed,
            pending=pending,
            timeslot_id=timeslot_id,
        )

    def _insert(
        self,
        event: Event,
        user_id: str,
        status: BookingStatus,
        timeslot: Timeslot | None,
        duplicate_error: type,
    ) -> Booking:
        try:
            return self.booking_repository.create(
                event_id=event.id,
                user_id=user_id,
                organization_id=event.organization_id,
                status=status,
                timeslot_id=timeslot.id if timeslot is not None else None,
            )
        except IntegrityError as exc:
            raise duplicate_error("Already booked this event") from exc

    def _delete_and_promote(
        self,
        event: Event,
        booking: Booking,
        message: str,
    ) -> CancellationOutcome:
        previous_status = booking.status
        booking_id = booking.id
        timeslot_id = booking.timeslot_id

        self.booking_repository.delete(booking)
        logger.info("Deleted %s booking %s of event %s", previous_status.value, booking_id, event.id)

        promoted = None
        if previous_status is BookingStatus.CONFIRMED and not event.cancelled:
            timeslot = None
            if timeslot_id is not None:
                timeslot = self.event_repository.lock_timeslot(timeslot_id, event.id)
            promoted = self.promoter.promote_next(event, timeslot)

        effects: List[Effect] = []
        if promoted is not None:
            effects.extend(promotion_effects(event, promoted))
        effects.extend(event_changed(event.organization_id, "updated", event_id=event.id))

        return CancellationOutcome(
            event_id=event.id,
            booking_id=booking_id,
            previous_status=previous_status,
            promoted_booking_id=promoted.id if promoted is not None else None,
            promoted_user_id=promoted.user_id if promoted is not None else None,
            message=message,
            effects=effects,
        )

    def _booking_effects(self, event: Event, booking: Booking) -> List[Effect]:
        kind = (
            NotificationKind.BOOKING_CONFIRMED
            if booking.status is BookingStatus.CONFIRMED
            else NotificationKind.WAITLIST_JOINED
        )
        payload = {
            "event_id": event.id,
            "event_name": event.name,
            "event_date": event.event_date.isoformat(),
            "booking_id": booking.id,
            "status": booking.status.value,
            "timeslot_id": booking.timeslot_id,
        }
        effects: List[Effect] = [
            Notification(booking.user_id, kind, payload),
            LiveUpdate(
                user_scope("konfi", booking.user_id),
                "events",
                "booked",
                {"event_id": event.id, "booking_id": booking.id, "status": booking.status.value},
            ),
        ]
        effects.extend(event_changed(event.organization_id, "updated", event_id=event.id))
        return effects

    @staticmethod
    def _parse_status(status: BookingStatus | str) -> BookingStatus:
        try:
            return BookingStatus(status)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown booking status: {status}") from exc

    @classmethod
    def _parse_desired_status(cls, desired_status: str) -> BookingStatus | None:
        if desired_status == AUTO_STATUS:
            return None
        return cls._parse_status(desired_status)
