# konfi_events/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from uuid import uuid4

from konfi_events.domain.clock import utc_now
from konfi_events.domain.state_machine import AttendanceStatus, BookingStatus, PointType
from konfi_events.infrastructure.db.session import Base
from konfi_events.infrastructure.db.types import UTCDateTime


def _new_id() -> str:
    return str(uuid4())


def _enum(enum_cls, name: str) -> Enum:
    # Store the lowercase values ("confirmed"), not the member names.
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


# Shared by events and event_points; one Postgres enum type.
point_type_enum = _enum(PointType, "point_type")


class Event(Base):
    """
    Aggregate root for registration. Its row is the lock every
    capacity-dependent read-then-write takes first.
    """

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    event_end_time: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location_maps_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    point_type: Mapped[PointType] = mapped_column(
        point_type_enum,
        nullable=False,
        default=PointType.GEMEINDE,
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="event")
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    registration_opens_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    registration_closes_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    has_timeslots: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    waitlist_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_waitlist_size: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    is_series: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    series_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=True,
        index=True,
    )
    cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        CheckConstraint("max_participants >= 0", name="ck_event_max_participants_nonnegative"),
        CheckConstraint("points >= 0", name="ck_event_points_nonnegative"),
        CheckConstraint("max_waitlist_size >= 0", name="ck_event_waitlist_size_nonnegative"),
    )


class EventCategory(Base):
    __tablename__ = "event_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False)
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "category_id", name="uq_event_category"),
    )


class EventJahrgangAssignment(Base):
    __tablename__ = "event_jahrgang_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False)
    jahrgang_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "jahrgang_id", name="uq_event_jahrgang"),
    )


class Timeslot(Base):
    __tablename__ = "event_timeslots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("max_participants >= 0", name="ck_timeslot_max_participants_nonnegative"),
    )


class Booking(Base):
    """
    One registration of a user for an event. ``pending`` rows are the
    waitlist; ``created_at`` is its FIFO key.
    """

    __tablename__ = "event_bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timeslot_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("event_timeslots.id"),
        nullable=True,
    )
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
    )
    attendance_status: Mapped[AttendanceStatus | None] = mapped_column(
        _enum(AttendanceStatus, "attendance_status"),
        nullable=True,
    )
    # Set when an admin moves a participant back to the waitlist; held rows
    # are never auto-promoted.
    waitlist_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_booking_event_user"),
        Index("ix_booking_scope_status", "event_id", "timeslot_id", "status", "created_at"),
    )


class EventPoints(Base):
    """
    Points ledger. A row means "points for this event were granted";
    konfi_profiles totals are a cache of the sum of these rows.
    """

    __tablename__ = "event_points"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    konfi_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Kept after the event is deleted; earned points stay earned.
    event_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("events.id", ondelete="SET NULL"),
        nullable=True,
    )
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    point_type: Mapped[PointType] = mapped_column(point_type_enum, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    awarded_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    admin_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("konfi_id", "event_id", name="uq_event_points_konfi_event"),
        CheckConstraint("points > 0", name="ck_event_points_positive"),
    )


class KonfiProfile(Base):
    __tablename__ = "konfi_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    jahrgang_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gottesdienst_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gemeinde_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("gottesdienst_points >= 0", name="ck_profile_gottesdienst_nonnegative"),
        CheckConstraint("gemeinde_points >= 0", name="ck_profile_gemeinde_nonnegative"),
    )

    def total_for(self, point_type: PointType) -> int:
        if point_type is PointType.GOTTESDIENST:
            return self.gottesdienst_points
        return self.gemeinde_points

    def set_total(self, point_type: PointType, value: int) -> None:
        if point_type is PointType.GOTTESDIENST:
            self.gottesdienst_points = value
        else:
            self.gemeinde_points = value
