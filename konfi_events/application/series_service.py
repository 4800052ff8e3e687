import logging
from dataclasses import replace
from typing import List

from sqlalchemy.orm import Session

from konfi_events.application.context import AuthContext, require_admin
from konfi_events.application.event_service import EventService
from konfi_events.application.outcomes import SeriesOutcome
from konfi_events.config import settings
from konfi_events.domain.clock import local_zone
from konfi_events.domain.drafts import EventDraft, validate_draft
from konfi_events.domain.effects import event_changed
from konfi_events.domain.exceptions import InvalidRequestError
from konfi_events.domain.series import (
    SeriesInterval,
    day_delta,
    generate_series_dates,
    occurrence_name,
    shift_by_days,
)
from konfi_events.infrastructure.db.models import Event
from konfi_events.infrastructure.db.session import unit_of_work

logger = logging.getLogger(__name__)


class SeriesService:
    """
    Expands one template into a series of events.

    The first occurrence is the anchor: its ``series_id`` is its own id and
    every later occurrence points at it.
    """

    def __init__(self, db: Session, event_service: EventService | None = None):
        self.db = db
        self.event_service = event_service or EventService(db)

    def create_series(
        self,
        auth: AuthContext,
        template: EventDraft,
        count: int,
        interval: SeriesInterval | str,
    ) -> SeriesOutcome:
        require_admin(auth)

        try:
            interval = SeriesInterval(interval)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown series interval: {interval}") from exc

        if count < 2:
            raise InvalidRequestError("Series count must be at least 2")
        if count > settings.series_max_count:
            raise InvalidRequestError(
                f"Series count must not exceed {settings.series_max_count}"
            )
        validate_draft(template)

        zone = local_zone()
        start = template.event_date.astimezone(zone)
        dates = generate_series_dates(start, count, interval)

        with unit_of_work(self.db):
            anchor: Event | None = None
            events: List[Event] = []

            for number, occurrence in enumerate(dates, start=1):
                days = day_delta(start, occurrence)
                draft = self._occurrence_draft(template, number, occurrence, days)
                event = self.event_service.insert_event(
                    auth,
                    draft,
                    is_series=True,
                    series_id=anchor.id if anchor is not None else None,
                )
                if anchor is None:
                    anchor = event
                    anchor.series_id = anchor.id
                    self.db.flush()
                events.append(event)

            logger.info(
                "Admin %s created series %s with %s events (%s)",
                auth.user_id,
                anchor.id,
                len(events),
                interval.value,
            )
            outcome = SeriesOutcome(
                series_id=anchor.id,
                event_ids=[event.id for event in events],
                message=f"{len(events)} events created successfully",
                effects=event_changed(anchor.organization_id, "created", series_id=anchor.id),
            )

        return outcome

    @staticmethod
    def _occurrence_draft(template: EventDraft, number: int, occurrence, days: int) -> EventDraft:
        zone = local_zone()
        return replace(
            template,
            name=occurrence_name(template.name, number),
            event_date=occurrence,
            event_end_time=shift_by_days(template.event_end_time, days, zone),
            registration_opens_at=shift_by_days(template.registration_opens_at, days, zone),
            registration_closes_at=shift_by_days(template.registration_closes_at, days, zone),
            timeslots=tuple(
                replace(
                    slot,
                    id=None,
                    start_time=shift_by_days(slot.start_time, days, zone),
                    end_time=shift_by_days(slot.end_time, days, zone),
                )
                for slot in template.timeslots
            ),
        )
