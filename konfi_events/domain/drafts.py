from dataclasses import dataclass, field
from datetime import datetime
from typing import Tuple

from konfi_events.domain.exceptions import InvalidRequestError
from konfi_events.domain.state_machine import PointType


@dataclass(frozen=True)
class TimeslotDraft:
    start_time: datetime
    end_time: datetime
    max_participants: int
    id: str | None = None


@dataclass(frozen=True)
class EventDraft:
    """Organizer input for creating or editing one event."""

    name: str
    event_date: datetime
    max_participants: int
    description: str | None = None
    event_end_time: datetime | None = None
    location: str | None = None
    location_maps_url: str | None = None
    points: int = 0
    point_type: PointType = PointType.GEMEINDE
    type: str = "event"
    registration_opens_at: datetime | None = None
    registration_closes_at: datetime | None = None
    has_timeslots: bool = False
    waitlist_enabled: bool = True
    max_waitlist_size: int | None = None
    category_ids: Tuple[str, ...] = ()
    jahrgang_ids: Tuple[str, ...] = ()
    timeslots: Tuple[TimeslotDraft, ...] = field(default_factory=tuple)


def validate_draft(draft: EventDraft) -> None:
    if not draft.name or not draft.name.strip():
        raise InvalidRequestError("Event name is required")
    if draft.max_participants < 0:
        raise InvalidRequestError("max_participants must not be negative")
    if draft.points < 0:
        raise InvalidRequestError("points must not be negative")
    if draft.max_waitlist_size is not None and draft.max_waitlist_size < 0:
        raise InvalidRequestError("max_waitlist_size must not be negative")
    if draft.event_end_time is not None and draft.event_end_time < draft.event_date:
        raise InvalidRequestError("Event cannot end before it starts")
    if (
        draft.registration_opens_at is not None
        and draft.registration_closes_at is not None
        and draft.registration_closes_at < draft.registration_opens_at
    ):
        raise InvalidRequestError("Registration cannot close before it opens")
    if draft.timeslots and not draft.has_timeslots:
        raise InvalidRequestError("Timeslots given for an event without timeslots")

    for slot in draft.timeslots:
        if slot.end_time <= slot.start_time:
            raise InvalidRequestError("Timeslot must end after it starts")
        if slot.max_participants < 0:
            raise InvalidRequestError("Timeslot max_participants must not be negative")
