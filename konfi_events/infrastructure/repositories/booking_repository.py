# konfi_events/infrastructure/repositories/booking_repository.py

from typing import Dict, List, Tuple

from sqlalchemy.orm import Session
from sqlalchemy import case, func, select

from konfi_events.domain.state_machine import BookingStatus
from konfi_events.infrastructure.db.models import Booking, Event, KonfiProfile


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(
        self,
        booking_id: str,
        event_id: str,
        organization_id: str,
    ) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.event_id == event_id)
            .where(Booking.organization_id == organization_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_for_user(
        self,
        event_id: str,
        user_id: str,
        organization_id: str | None = None,
    ) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.event_id == event_id)
            .where(Booking.user_id == user_id)
        )
        if organization_id is not None:
            stmt = stmt.where(Booking.organization_id == organization_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create(
        self,
        event_id: str,
        user_id: str,
        organization_id: str,
        status: BookingStatus,
        timeslot_id: str | None = None,
    ) -> Booking:
        booking = Booking(
            event_id=event_id,
            user_id=user_id,
            organization_id=organization_id,
            timeslot_id=timeslot_id,
            status=status,
        )
        self.db.add(booking)
        self.db.flush()
        return booking

    def delete(self, booking: Booking) -> None:
        self.db.delete(booking)
        self.db.flush()

    # -----------------------------
    # Counts
    # -----------------------------
    def scope_counts(
        self,
        event_id: str,
        timeslot_id: str | None = None,
    ) -> Tuple[int, int]:
        """(confirmed, pending) for one timeslot, or for the whole event."""
        stmt = select(
            func.coalesce(func.sum(case((Booking.status == BookingStatus.CONFIRMED, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Booking.status == BookingStatus.PENDING, 1), else_=0)), 0),
        ).where(Booking.event_id == event_id)
        if timeslot_id is not None:
            stmt = stmt.where(Booking.timeslot_id == timeslot_id)
        confirmed, pending = self.db.execute(stmt).one()
        return int(confirmed), int(pending)

    def counts_by_timeslot(self, event_id: str) -> Dict[str | None, Tuple[int, int]]:
        stmt = (
            select(Booking.timeslot_id, Booking.status, func.count(Booking.id))
            .where(Booking.event_id == event_id)
            .group_by(Booking.timeslot_id, Booking.status)
        )
        counts: Dict[str | None, List[int]] = {}
        for timeslot_id, status, count in self.db.execute(stmt).all():
            bucket = counts.setdefault(timeslot_id, [0, 0])
            bucket[0 if status == BookingStatus.CONFIRMED else 1] += count
        return {key: (value[0], value[1]) for key, value in counts.items()}

    # -----------------------------
    # Waitlist
    # -----------------------------
    def next_pending(
        self,
        event_id: str,
        timeslot_id: str | None = None,
    ) -> Booking | None:
        """
        Oldest waitlisted booking in exactly this scope, row-locked.
        Bookings an admin put on hold are skipped.
        The event-wide scope only holds bookings without a timeslot.
        """
        stmt = (
            select(Booking)
            .where(Booking.event_id == event_id)
            .where(Booking.status == BookingStatus.PENDING)
            .where(Booking.waitlist_hold.is_(False))
        )
        if timeslot_id is None:
            stmt = stmt.where(Booking.timeslot_id.is_(None))
        else:
            stmt = stmt.where(Booking.timeslot_id == timeslot_id)

        stmt = (
            stmt.order_by(Booking.created_at, Booking.id)
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def pending_scopes(self, event_id: str) -> List[str | None]:
        stmt = (
            select(Booking.timeslot_id)
            .where(Booking.event_id == event_id)
            .where(Booking.status == BookingStatus.PENDING)
            .distinct()
        )
        return list(self.db.execute(stmt).scalars().all())

    def events_with_pending(self, organization_id: str) -> List[str]:
        stmt = (
            select(Booking.event_id)
            .where(Booking.organization_id == organization_id)
            .where(Booking.status == BookingStatus.PENDING)
            .distinct()
        )
        return list(self.db.execute(stmt).scalars().all())

    # -----------------------------
    # Listings
    # -----------------------------
    def list_for_event(self, event_id: str) -> List[Tuple[Booking, str | None]]:
        """Bookings with display names, confirmed first, then FIFO."""
        status_rank = case((Booking.status == BookingStatus.CONFIRMED, 0), else_=1)
        stmt = (
            select(Booking, KonfiProfile.display_name)
            .outerjoin(KonfiProfile, KonfiProfile.user_id == Booking.user_id)
            .where(Booking.event_id == event_id)
            .order_by(status_rank, Booking.created_at, Booking.id)
        )
        return [(booking, name) for booking, name in self.db.execute(stmt).all()]

    def user_ids_for_event(self, event_id: str) -> List[str]:
        stmt = (
            select(Booking.user_id)
            .where(Booking.event_id == event_id)
            .order_by(Booking.created_at, Booking.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_user(self, user_id: str, organization_id: str) -> List[Tuple[Booking, Event]]:
        stmt = (
            select(Booking, Event)
            .join(Event, Event.id == Booking.event_id)
            .where(Booking.user_id == user_id)
            .where(Booking.organization_id == organization_id)
            .order_by(Event.event_date, Booking.id)
        )
        return [(booking, event) for booking, event in self.db.execute(stmt).all()]
