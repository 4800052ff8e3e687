import logging
from datetime import datetime
from typing import Callable, List, Sequence

from sqlalchemy.orm import Session

from konfi_events.application.collaborators import ChatDirectory, NullChatDirectory
from konfi_events.application.context import AuthContext, require_admin
from konfi_events.application.outcomes import (
    EventOutcome,
    EventView,
    ParticipantView,
    TimeslotView,
)
from konfi_events.application.waitlist_promoter import WaitlistPromoter, promotion_effects
from konfi_events.config import settings
from konfi_events.domain.capacity import available_spots, total_capacity
from konfi_events.domain.clock import utc_now
from konfi_events.domain.drafts import EventDraft, TimeslotDraft, validate_draft
from konfi_events.domain.effects import Effect, Notification, NotificationKind, event_changed
from konfi_events.domain.exceptions import (
    DeletionBlockedError,
    InvalidStatusChangeError,
    NotFoundError,
)
from konfi_events.domain.registration_window import classify_registration_window
from konfi_events.infrastructure.db.models import Event
from konfi_events.infrastructure.db.session import unit_of_work
from konfi_events.infrastructure.repositories.booking_repository import BookingRepository
from konfi_events.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


def resolve_max_waitlist_size(draft: EventDraft) -> int:
    if draft.max_waitlist_size is None:
        return settings.default_max_waitlist_size
    return draft.max_waitlist_size


class EventService:
    """Organizer-side lifecycle of events and their timeslots."""

    def __init__(
        self,
        db: Session,
        chat: ChatDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.chat = chat or NullChatDirectory()
        self.clock = clock
        self.event_repository = EventRepository(db)
        self.booking_repository = BookingRepository(db)
        self.promoter = WaitlistPromoter(db)

    def create_event(self, auth: AuthContext, draft: EventDraft) -> EventOutcome:
        require_admin(auth)
        validate_draft(draft)

        with unit_of_work(self.db):
            event = self.insert_event(auth, draft)
            logger.info("Admin %s created event %s (%s)", auth.user_id, event.id, event.name)
            outcome = EventOutcome(
                event_id=event.id,
                message="Event created successfully",
                effects=event_changed(event.organization_id, "created", event_id=event.id),
            )

        return outcome

    def insert_event(
        self,
        auth: AuthContext,
        draft: EventDraft,
        is_series: bool = False,
        series_id: str | None = None,
    ) -> Event:
        """Event row, associations and timeslots. Caller owns the transaction."""
        event = self.event_repository.add(
            draft,
            organization_id=auth.organization_id,
            created_by=auth.user_id,
            max_waitlist_size=resolve_max_waitlist_size(draft),
            is_series=is_series,
            series_id=series_id,
        )
        self.event_repository.replace_categories(event.id, draft.category_ids)
        self.event_repository.replace_jahrgaenge(event.id, draft.jahrgang_ids)
        if draft.has_timeslots:
            self.event_repository.add_timeslots(event, draft.timeslots)
        return event

    def update_event(self, auth: AuthContext, event_id: str, draft: EventDraft) -> EventOutcome:
        """
        Rewrite one event in place. Series membership is left alone and a
        series is never re-expanded. Seats freed by larger capacities go to
        the waitlist straight away.
        """
        require_admin(auth)
        validate_draft(draft)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)

            event.name = draft.name
            event.description = draft.description
            event.event_date = draft.event_date
            event.event_end_time = draft.event_end_time
            event.location = draft.location
            event.location_maps_url = draft.location_maps_url
            event.points = draft.points
            event.point_type = draft.point_type
            event.type = draft.type
            event.max_participants = draft.max_participants
            event.registration_opens_at = draft.registration_opens_at
            event.registration_closes_at = draft.registration_closes_at
            event.has_timeslots = draft.has_timeslots
            event.waitlist_enabled = draft.waitlist_enabled
            if draft.max_waitlist_size is not None:
                event.max_waitlist_size = draft.max_waitlist_size

            self.event_repository.replace_categories(event.id, draft.category_ids)
            self.event_repository.replace_jahrgaenge(event.id, draft.jahrgang_ids)
            self._reconcile_timeslots(event, draft.timeslots if draft.has_timeslots else ())
            self.db.flush()

            promoted = self.promoter.fill_all_scopes(event)

            logger.info(
                "Admin %s updated event %s, promoted %s from waitlist",
                auth.user_id,
                event.id,
                len(promoted),
            )
            effects: List[Effect] = []
            for booking in promoted:
                effects.extend(promotion_effects(event, booking))
            effects.extend(event_changed(event.organization_id, "updated", event_id=event.id))

            outcome = EventOutcome(
                event_id=event.id,
                message="Event updated successfully",
                promoted_booking_ids=[booking.id for booking in promoted],
                effects=effects,
            )

        return outcome

    def delete_event(self, auth: AuthContext, event_id: str) -> EventOutcome:
        require_admin(auth)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)

            confirmed, pending = self.booking_repository.scope_counts(event.id)
            messages = self.chat.count_event_messages(event.id)
            if confirmed or pending or messages:
                raise DeletionBlockedError(
                    "Event",
                    confirmed_count=confirmed,
                    pending_count=pending,
                    message_count=messages,
                )

            if event.series_id is not None and event.series_id == event.id:
                self._reanchor_series(event)

            organization_id = event.organization_id
            self.event_repository.delete(event)
            logger.info("Admin %s deleted event %s", auth.user_id, event_id)

            outcome = EventOutcome(
                event_id=event_id,
                message="Event deleted successfully",
                effects=event_changed(organization_id, "deleted", event_id=event_id),
            )

        return outcome

    def cancel_event(
        self,
        auth: AuthContext,
        event_id: str,
        reason: str | None = None,
    ) -> EventOutcome:
        """Soft cancel. Bookings stay; every booked user is told."""
        require_admin(auth)

        with unit_of_work(self.db):
            event = self.event_repository.lock(event_id, auth.organization_id)
            if event.cancelled:
                raise InvalidStatusChangeError("cancelled", "cancelled", subject="Event")

            event.cancelled = True
            event.cancelled_at = self.clock()
            event.cancellation_reason = reason
            self.db.flush()

            payload = {
                "event_id": event.id,
                "event_name": event.name,
                "event_date": event.event_date.isoformat(),
                "reason": reason,
            }
            recipients = self.booking_repository.user_ids_for_event(event.id)
            effects: List[Effect] = [
                Notification(user_id, NotificationKind.EVENT_CANCELLED, payload)
                for user_id in recipients
            ]
            effects.extend(event_changed(event.organization_id, "cancelled", event_id=event.id))

            logger.info(
                "Admin %s cancelled event %s, %s participants notified",
                auth.user_id,
                event.id,
                len(recipients),
            )
            outcome = EventOutcome(
                event_id=event.id,
                message="Event cancelled successfully",
                effects=effects,
            )

        return outcome

    # -----------------------------
    # Reads
    # -----------------------------
    def list_timeslots(self, auth: AuthContext, event_id: str) -> List[TimeslotView]:
        with unit_of_work(self.db):
            event = self.event_repository.get_or_raise(event_id, auth.organization_id)
            views = self._timeslot_views(event.id)

        return views

    def get_event_with_computed_status(
        self,
        auth: AuthContext,
        event_id: str,
        now: datetime | None = None,
    ) -> EventView:
        with unit_of_work(self.db):
            event = self.event_repository.get_or_raise(event_id, auth.organization_id)
            view = self._event_view(event, now or self.clock(), include_participants=True)

        return view

    def list_events(self, auth: AuthContext, now: datetime | None = None) -> List[EventView]:
        now = now or self.clock()

        with unit_of_work(self.db):
            views = [
                self._event_view(event, now, include_participants=False)
                for event in self.event_repository.list_for_organization(auth.organization_id)
            ]

        return views

    # -----------------------------
    # Helpers
    # -----------------------------
    def _reconcile_timeslots(self, event: Event, drafts: Sequence[TimeslotDraft]) -> None:
        existing = {slot.id: slot for slot in self.event_repository.list_timeslots(event.id)}
        kept = set()
        new_drafts = []

        for draft in drafts:
            if draft.id is None:
                new_drafts.append(draft)
                continue
            timeslot = existing.get(draft.id)
            if timeslot is None:
                raise NotFoundError("Timeslot not found")
            timeslot.start_time = draft.start_time
            timeslot.end_time = draft.end_time
            timeslot.max_participants = draft.max_participants
            kept.add(timeslot.id)

        for timeslot_id, timeslot in existing.items():
            if timeslot_id in kept:
                continue
            confirmed, pending = self.booking_repository.scope_counts(event.id, timeslot_id)
            if confirmed or pending:
                raise DeletionBlockedError(
                    "Timeslot",
                    confirmed_count=confirmed,
                    pending_count=pending,
                )
            self.event_repository.delete_timeslot(timeslot)

        if new_drafts:
            self.event_repository.add_timeslots(event, new_drafts)

    def _reanchor_series(self, anchor: Event) -> None:
        remaining = [
            member
            for member in self.event_repository.series_members(anchor.id, anchor.organization_id)
            if member.id != anchor.id
        ]
        if not remaining:
            return

        new_anchor = remaining[0]
        for member in remaining:
            member.series_id = new_anchor.id
        self.db.flush()
        logger.info("Series %s re-anchored on event %s", anchor.id, new_anchor.id)

    def _timeslot_views(self, event_id: str) -> List[TimeslotView]:
        counts = self.booking_repository.counts_by_timeslot(event_id)
        views = []
        for timeslot in self.event_repository.list_timeslots(event_id):
            confirmed, pending = counts.get(timeslot.id, (0, 0))
            views.append(
                TimeslotView(
                    id=timeslot.id,
                    start_time=timeslot.start_time,
                    end_time=timeslot.end_time,
                    max_participants=timeslot.max_participants,
                    confirmed_count=confirmed,
                    pending_count=pending,
                    available_spots=available_spots(timeslot.max_participants, confirmed),
                )
            )
        return views

    def _event_view(self, event: Event, now: datetime, include_participants: bool) -> EventView:
        timeslots = self.event_repository.list_timeslots(event.id)
        capacity = total_capacity(event, timeslots)
        confirmed, pending = self.booking_repository.scope_counts(event.id)

        participants: List[ParticipantView] = []
        if include_participants:
            participants = [
                ParticipantView(
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    display_name=display_name,
                    status=booking.status,
                    attendance_status=booking.attendance_status,
                    timeslot_id=booking.timeslot_id,
                    created_at=booking.created_at,
                )
                for booking, display_name in self.booking_repository.list_for_event(event.id)
            ]

        series_event_ids: List[str] = []
        if event.series_id is not None:
            series_event_ids = [
                member.id
                for member in self.event_repository.series_members(event.series_id, event.organization_id)
            ]

        return EventView(
            id=event.id,
            organization_id=event.organization_id,
            name=event.name,
            description=event.description,
            event_date=event.event_date,
            event_end_time=event.event_end_time,
            location=event.location,
            location_maps_url=event.location_maps_url,
            points=event.points,
            point_type=event.point_type,
            type=event.type,
            max_participants=event.max_participants,
            registration_opens_at=event.registration_opens_at,
            registration_closes_at=event.registration_closes_at,
            has_timeslots=event.has_timeslots,
            waitlist_enabled=event.waitlist_enabled,
            max_waitlist_size=event.max_waitlist_size,
            is_series=event.is_series,
            series_id=event.series_id,
            cancelled=event.cancelled,
            cancelled_at=event.cancelled_at,
            cancellation_reason=event.cancellation_reason,
            total_capacity=capacity,
            confirmed_count=confirmed,
            pending_count=pending,
            available_spots=available_spots(capacity, confirmed),
            registration_status=classify_registration_window(
                now=now,
                opens_at=event.registration_opens_at,
                closes_at=event.registration_closes_at,
                confirmed_count=confirmed,
                total_capacity=capacity,
                waitlist_enabled=event.waitlist_enabled,
                pending_count=pending,
                max_waitlist_size=event.max_waitlist_size,
                cancelled=event.cancelled,
            ),
            category_ids=self.event_repository.category_ids(event.id),
            jahrgang_ids=self.event_repository.jahrgang_ids(event.id),
            timeslots=self._timeslot_views(event.id) if event.has_timeslots else [],
            participants=participants,
            series_event_ids=series_event_ids,
        )
