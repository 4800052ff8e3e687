import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from konfi_events.application.context import AuthContext, require_admin
from konfi_events.application.outcomes import AttendanceOutcome
from konfi_events.domain.clock import utc_now
from konfi_events.domain.effects import (
    BadgeCheck,
    Notification,
    NotificationKind,
    event_changed,
)
from konfi_events.domain.exceptions import InvalidRequestError, NotFoundError
from konfi_events.domain.state_machine import AttendanceStatus
from konfi_events.infrastructure.db.models import Booking, Event
from konfi_events.infrastructure.db.session import unit_of_work
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository
from konfi_events.infrastructure.repositories.points_repository import PointsRepository

logger = logging.getLogger(__name__)


def attendance_description(event_name: str) -> str:
    return f"Event-Teilnahme: {event_name}"


class AttendanceService:
    """
    Turns attendance marks into event_points ledger rows.

    The ledger row for (konfi, event) decides whether points were granted.
    Profile totals only move together with a ledger insert or delete, so
    toggling present and absent any number of times never drifts.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.event_repository = EventRepository(db)
        self.booking_repository = BookingRepository(db)
        self.points_repository = PointsRepository(db)

    def mark_attendance(
        self,
        auth: AuthContext,
        event_id: str,
        booking_id: str,
        status: AttendanceStatus | str,
    ) -> AttendanceOutcome:
        require_admin(auth)
        try:
            status = AttendanceStatus(status)
        except ValueError as exc:
            raise InvalidRequestError("Invalid attendance status") from exc

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            booking = self.booking_repository.get(booking_id, event.id, auth.organization_id)
            if booking is None:
                raise NotFoundError("Participant not found")

            booking.attendance_status = status

            if status is AttendanceStatus.PRESENT:
                outcome = self._award(auth, event, booking)
            else:
                outcome = self._revoke(event, booking)

            outcome.effects.extend(
                event_changed(event.organization_id, "attendance", event_id=event.id)
            )

        return outcome

    def _award(self, auth: AuthContext, event: Event, booking: Booking) -> AttendanceOutcome:
        outcome = AttendanceOutcome(
            booking_id=booking.id,
            event_id=event.id,
            user_id=booking.user_id,
            attendance_status=AttendanceStatus.PRESENT,
            message="Attendance updated",
        )
        if event.points <= 0:
            return outcome

        entry = self.points_repository.try_award(
            konfi_id=booking.user_id,
            event_id=event.id,
            organization_id=event.organization_id,
            points=event.points,
            point_type=event.point_type,
            description=attendance_description(event.name),
            admin_id=auth.user_id,
            awarded_date=self.clock(),
        )
        if entry is None:
            outcome.message = "Attendance updated (points already awarded)"
            return outcome

        profile = self.points_repository.ensure_profile(booking.user_id, event.organization_id)
        self.points_repository.adjust_total(profile, entry.point_type, entry.points)

        logger.info(
            "Awarded %s %s points to %s for event %s",
            entry.points,
            entry.point_type.value,
            booking.user_id,
            event.id,
        )
        outcome.points_awarded = entry.points
        outcome.point_type = entry.point_type
        outcome.message = (
            f"Attendance updated and {entry.points} {entry.point_type.value} points awarded"
        )
        outcome.effects.extend(
            [
                BadgeCheck(booking.user_id),
                Notification(
                    booking.user_id,
                    NotificationKind.ATTENDANCE_RESULT,
                    {
                        "event_id": event.id,
                        "event_name": event.name,
                        "attendance_status": AttendanceStatus.PRESENT.value,
                        "points": entry.points,
                        "point_type": entry.point_type.value,
                    },
                ),
            ]
        )
        return outcome

    def _revoke(self, event: Event, booking: Booking) -> AttendanceOutcome:
        outcome = AttendanceOutcome(
            booking_id=booking.id,
            event_id=event.id,
            user_id=booking.user_id,
            attendance_status=AttendanceStatus.ABSENT,
            message="Attendance updated (no points to remove)",
        )
        outcome.effects.append(
            Notification(
                booking.user_id,
                NotificationKind.ATTENDANCE_RESULT,
                {
                    "event_id": event.id,
                    "event_name": event.name,
                    "attendance_status": AttendanceStatus.ABSENT.value,
                    "points": 0,
                },
            )
        )

        entry = self.points_repository.get_entry(booking.user_id, event.id)
        if entry is None:
            return outcome

        points = entry.points
        point_type = entry.point_type
        self.points_repository.revoke(entry)

        profile = self.points_repository.lock_profile(booking.user_id, event.organization_id)
        if profile is not None:
            self.points_repository.adjust_total(profile, point_type, -points)

        logger.info(
            "Revoked %s %s points from %s for event %s",
            points,
            point_type.value,
            booking.user_id,
            event.id,
        )
        outcome.points_revoked = points
        outcome.point_type = point_type
        outcome.message = f"Attendance updated and {points} {point_type.value} points removed"
        return outcome
