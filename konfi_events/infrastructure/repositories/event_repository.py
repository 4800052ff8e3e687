# konfi_events/infrastructure/repositories/event_repository.py

from typing import Iterable, List

from sqlalchemy.orm import Session
from sqlalchemy import delete, select

from konfi_events.domain.drafts import EventDraft, TimeslotDraft
from konfi_events.domain.exceptions import NotFoundError
from konfi_events.infrastructure.db.models import (
    Event,
    EventCategory,
    EventJahrgangAssignment,
    Timeslot,
)


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str, organization_id: str) -> Event | None:
        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .where(Event.organization_id == organization_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_raise(self, event_id: str, organization_id: str) -> Event:
        event = self.get(event_id, organization_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def lock(self, event_id: str, organization_id: str) -> Event:
        """
        SELECT ... FOR UPDATE on the event row.
        Serializes capacity checks for one event across processes.
        """
        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .where(Event.organization_id == organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        event = self.db.execute(stmt).scalar_one_or_none()

        if event is None:
            raise NotFoundError("Event not found")

        return event

    def list_for_organization(self, organization_id: str) -> List[Event]:
        stmt = (
            select(Event)
            .where(Event.organization_id == organization_id)
            .order_by(Event.event_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add(
        self,
        draft: EventDraft,
        organization_id: str,
        created_by: str,
        max_waitlist_size: int,
        is_series: bool = False,
        series_id: str | None = None,
    ) -> Event:
        event = Event(
            organization_id=organization_id,
            name=draft.name,
            description=draft.description,
            event_date=draft.event_date,
            event_end_time=draft.event_end_time,
            location=draft.location,
            location_maps_url=draft.location_maps_url,
            points=draft.points,
            point_type=draft.point_type,
            type=draft.type,
            max_participants=draft.max_participants,
            registration_opens_at=draft.registration_opens_at,
            registration_closes_at=draft.registration_closes_at,
            has_timeslots=draft.has_timeslots,
            waitlist_enabled=draft.waitlist_enabled,
            max_waitlist_size=max_waitlist_size,
            is_series=is_series,
            series_id=series_id,
            created_by=created_by,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def delete(self, event: Event) -> None:
        self.db.execute(delete(Timeslot).where(Timeslot.event_id == event.id))
        self.db.execute(delete(EventCategory).where(EventCategory.event_id == event.id))
        self.db.execute(
            delete(EventJahrgangAssignment).where(EventJahrgangAssignment.event_id == event.id)
        )
        self.db.delete(event)
        self.db.flush()

    # -----------------------------
    # Timeslots
    # -----------------------------
    def list_timeslots(self, event_id: str) -> List[Timeslot]:
        stmt = (
            select(Timeslot)
            .where(Timeslot.event_id == event_id)
            .order_by(Timeslot.start_time, Timeslot.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def lock_timeslot(self, timeslot_id: str, event_id: str) -> Timeslot:
        stmt = (
            select(Timeslot)
            .where(Timeslot.id == timeslot_id)
            .where(Timeslot.event_id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        timeslot = self.db.execute(stmt).scalar_one_or_none()

        if timeslot is None:
            raise NotFoundError("Timeslot not found")

        return timeslot

    def add_timeslots(
        self,
        event: Event,
        drafts: Iterable[TimeslotDraft],
    ) -> List[Timeslot]:
        timeslots = [
            Timeslot(
                event_id=event.id,
                organization_id=event.organization_id,
                start_time=draft.start_time,
                end_time=draft.end_time,
                max_participants=draft.max_participants,
            )
            for draft in drafts
        ]
        self.db.add_all(timeslots)
        self.db.flush()
        return timeslots

    def delete_timeslot(self, timeslot: Timeslot) -> None:
        self.db.delete(timeslot)

    # -----------------------------
    # Categories and cohorts
    # -----------------------------
    def category_ids(self, event_id: str) -> List[str]:
        stmt = (
            select(EventCategory.category_id)
            .where(EventCategory.event_id == event_id)
            .order_by(EventCategory.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def jahrgang_ids(self, event_id: str) -> List[str]:
        stmt = (
            select(EventJahrgangAssignment.jahrgang_id)
            .where(EventJahrgangAssignment.event_id == event_id)
            .order_by(EventJahrgangAssignment.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def replace_categories(self, event_id: str, category_ids: Iterable[str]) -> None:
        self.db.execute(delete(EventCategory).where(EventCategory.event_id == event_id))
        for category_id in dict.fromkeys(category_ids):
            self.db.add(EventCategory(event_id=event_id, category_id=category_id))

    def replace_jahrgaenge(self, event_id: str, jahrgang_ids: Iterable[str]) -> None:
        self.db.execute(
            delete(EventJahrgangAssignment).where(EventJahrgangAssignment.event_id == event_id)
        )
        for jahrgang_id in dict.fromkeys(jahrgang_ids):
            self.db.add(EventJahrgangAssignment(event_id=event_id, jahrgang_id=jahrgang_id))

    # -----------------------------
    # Series
    # -----------------------------
    def series_members(self, series_id: str, organization_id: str) -> List[Event]:
        stmt = (
            select(Event)
            .where(Event.series_id == series_id)
            .where(Event.organization_id == organization_id)
            .order_by(Event.event_date, Event.id)
        )
        return list(self.db.execute(stmt).scalars().all())
