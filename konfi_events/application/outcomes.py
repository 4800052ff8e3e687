"""
Plain results returned by the application services.

They are built while the unit of work is still open and carry the
side effects to perform once it has committed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from konfi_events.domain.effects import Effect
from konfi_events.domain.registration_window import RegistrationStatus
from konfi_events.domain.state_machine import AttendanceStatus, BookingStatus, PointType


@dataclass
class BookingOutcome:
    id: str
    event_id: str
    user_id: str
    status: BookingStatus
    timeslot_id: str | None
    message: str
    effects: List[Effect] = field(default_factory=list)


@dataclass
class CancellationOutcome:
    event_id: str
    booking_id: str
    previous_status: BookingStatus
    promoted_booking_id: str | None = None
    promoted_user_id: str | None = None
    message: str = ""
    effects: List[Effect] = field(default_factory=list)


@dataclass
class StatusChangeOutcome:
    booking_id: str
    event_id: str
    user_id: str
    status: BookingStatus
    message: str
    effects: List[Effect] = field(default_factory=list)


@dataclass
class AttendanceOutcome:
    booking_id: str
    event_id: str
    user_id: str
    attendance_status: AttendanceStatus
    points_awarded: int = 0
    points_revoked: int = 0
    point_type: PointType | None = None
    message: str = ""
    effects: List[Effect] = field(default_factory=list)


@dataclass
class TimeslotView:
    id: str
    start_time: datetime
    end_time: datetime
    max_participants: int
    confirmed_count: int
    pending_count: int
    available_spots: int | None


@dataclass
class ParticipantView:
    booking_id: str
    user_id: str
    display_name: str | None
    status: BookingStatus
    attendance_status: AttendanceStatus | None
    timeslot_id: str | None
    created_at: datetime


@dataclass
class EventView:
    id: str
    organization_id: str
    name: str
    description: str | None
    event_date: datetime
    event_end_time: datetime | None
    location: str | None
    location_maps_url: str | None
    points: int
    point_type: PointType
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
    confirmed_count: int
    pending_count: int
    available_spots: int | None
    registration_status: RegistrationStatus
    category_ids: List[str] = field(default_factory=list)
    jahrgang_ids: List[str] = field(default_factory=list)
    timeslots: List[TimeslotView] = field(default_factory=list)
    participants: List[ParticipantView] = field(default_factory=list)
    series_event_ids: List[str] = field(default_factory=list)


@dataclass
class EventOutcome:
    event_id: str
    message: str
    promoted_booking_ids: List[str] = field(default_factory=list)
    effects: List[Effect] = field(default_factory=list)


@dataclass
class SeriesOutcome:
    series_id: str
    event_ids: List[str]
    message: str
    effects: List[Effect] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    organization_id: str
    promoted_booking_ids: List[str] = field(default_factory=list)
    corrected_totals: Dict[str, Dict[str, int]] = field(default_factory=dict)
    effects: List[Effect] = field(default_factory=list)


@dataclass
class UserBookingView:
    booking_id: str
    event_id: str
    event_name: str
    event_date: datetime
    location: str | None
    status: BookingStatus
    timeslot_id: str | None
    attendance_status: AttendanceStatus | None
