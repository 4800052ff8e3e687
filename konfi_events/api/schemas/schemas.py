from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from konfi_events.domain.clock import ensure_aware
from konfi_events.domain.drafts import EventDraft, TimeslotDraft
from konfi_events.domain.state_machine import PointType


# -----------------------------
# Requests
# -----------------------------
class TimeslotInput(BaseModel):
    id: str | None = None
    start_time: datetime
    end_time: datetime
    max_participants: int = Field(default=0, ge=0)

    def to_draft(self) -> TimeslotDraft:
        return TimeslotDraft(
            id=self.id,
            start_time=ensure_aware(self.start_time),
            end_time=ensure_aware(self.end_time),
            max_participants=self.max_participants,
        )


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    event_date: datetime
    event_end_time: datetime | None = None
    location: str | None = None
    location_maps_url: str | None = None
    points: int = Field(default=0, ge=0)
    point_type: PointType = PointType.GEMEINDE
    type: str = "event"
    max_participants: int = Field(default=0, ge=0)
    registration_opens_at: datetime | None = None
    registration_closes_at: datetime | None = None
    has_timeslots: bool = False
    waitlist_enabled: bool = True
    max_waitlist_size: int | None = Field(default=None, ge=0)
    category_ids: list[str] = Field(default_factory=list)
    jahrgang_ids: list[str] = Field(default_factory=list)
    timeslots: list[TimeslotInput] = Field(default_factory=list)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            name=self.name,
            description=self.description,
            event_date=ensure_aware(self.event_date),
            event_end_time=ensure_aware(self.event_end_time),
            location=self.location,
            location_maps_url=self.location_maps_url,
            points=self.points,
            point_type=self.point_type,
            type=self.type,
            max_participants=self.max_participants,
            registration_opens_at=ensure_aware(self.registration_opens_at),
            registration_closes_at=ensure_aware(self.registration_closes_at),
            has_timeslots=self.has_timeslots,
            waitlist_enabled=self.waitlist_enabled,
            max_waitlist_size=self.max_waitlist_size,
            category_ids=tuple(self.category_ids),
            jahrgang_ids=tuple(self.jahrgang_ids),
            timeslots=tuple(slot.to_draft() for slot in self.timeslots),
        )


class EventUpdate(EventCreate):
    pass


class SeriesCreate(EventCreate):
    series_count: int = Field(ge=2)
    series_interval: Literal["day", "week", "biweek", "month"] = "week"


class EventCancelRequest(BaseModel):
    reason: str | None = None


class BookingRequest(BaseModel):
    timeslot_id: str | None = None


class ParticipantAddRequest(BaseModel):
    user_id: str
    timeslot_id: str | None = None
    status: Literal["auto", "confirmed", "pending"] = "auto"


class ParticipantStatusRequest(BaseModel):
    status: Literal["confirmed", "pending"]


class AttendanceRequest(BaseModel):
    attendance_status: Literal["present", "absent"]


# -----------------------------
# Responses
# -----------------------------
class BookingResponse(BaseModel):
    id: str
    status: str
    timeslot_id: str | None = None
    message: str


class CancellationResponse(BaseModel):
    message: str
    promoted_booking_id: str | None = None


class StatusChangeResponse(BaseModel):
    id: str
    status: str
    message: str


class AttendanceResponse(BaseModel):
    id: str
    attendance_status: str
    points_awarded: int
    points_removed: int
    point_type: str | None = None
    message: str


class EventMutationResponse(BaseModel):
    id: str
    message: str
    promoted_booking_ids: list[str] = Field(default_factory=list)


class SeriesResponse(BaseModel):
    series_id: str
    event_ids: list[str]
    message: str


class TimeslotResponse(BaseModel):
    id: str
    start_time: datetime
    end_time: datetime
    max_participants: int
    registered_count: int
    pending_count: int
    available_spots: int | None


class ParticipantResponse(BaseModel):
    id: str
    user_id: str
    participant_name: str | None
    status: str
    attendance_status: str | None
    timeslot_id: str | None
    created_at: datetime


class EventResponse(BaseModel):
    id: str
    name: str
    description: str | None
    event_date: datetime
    event_end_time: datetime | None
    location: str | None
    location_maps_url: str | None
    points: int
    point_type: str
    type: str
    max_participants: int
    registration_opens_at: datetime | None
    registration_closes_at: datetime | None
    has_timeslots: bool
    waitlist_enabled: bool
    max_waitlist_size: int
    is_series: bool
    series_id: str | None
    cancelled: bool
    cancelled_at: datetime | None
    cancellation_reason: str | None
    total_capacity: int
    registered_count: int
    pending_count: int
    available_spots: int | None
    registration_status: str
    category_ids: list[str]
    jahrgang_ids: list[str]
    timeslots: list[TimeslotResponse]
    participants: list[ParticipantResponse]
    series_event_ids: list[str]


class UserBookingResponse(BaseModel):
    id: str
    event_id: str
    event_name: str
    event_date: datetime
    location: str | None
    status: str
    timeslot_id: str | None
    attendance_status: str | None


class ReconciliationResponse(BaseModel):
    organization_id: str
    promoted_booking_ids: list[str]
    corrected_totals: dict[str, dict[str, int]]
