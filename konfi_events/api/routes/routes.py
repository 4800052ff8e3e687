import logging

from fastapi import APIRouter, Depends, HTTPException, status

from konfi_events.api.dependencies import (
    get_attendance_service,
    get_auth_context,
    get_booking_service,
    get_dispatcher,
    get_event_service,
    get_reconciliation_service,
    get_series_service,
)
from konfi_events.api.schemas.schemas import (
    AttendanceRequest,
    AttendanceResponse,
    BookingRequest,
    BookingResponse,
    CancellationResponse,
    EventCancelRequest,
    EventCreate,
    EventMutationResponse,
    EventResponse,
    EventUpdate,
    ParticipantAddRequest,
    ParticipantResponse,
    ParticipantStatusRequest,
    ReconciliationResponse,
    SeriesCreate,
    SeriesResponse,
    StatusChangeResponse,
    TimeslotResponse,
    UserBookingResponse,
)
from konfi_events.application.attendance_service import AttendanceService
from konfi_events.application.booking_service import BookingService
from konfi_events.application.context import AuthContext, require_admin
from konfi_events.application.effect_dispatcher import EffectDispatcher
from konfi_events.application.event_service import EventService
from konfi_events.application.outcomes import EventView, TimeslotView
from konfi_events.application.reconciliation_service import ReconciliationService
from konfi_events.application.series_service import SeriesService
from konfi_events.domain.exceptions import (
    AlreadyBookedError,
    CapacityExceededError,
    ConcurrencyConflictError,
    DeletionBlockedError,
    DuplicateBookingError,
    InvalidRequestError,
    InvalidStatusChangeError,
    KonfiEventsError,
    NotFoundError,
    PermissionDeniedError,
    RegistrationNotOpenError,
)


router = APIRouter()
logger = logging.getLogger(__name__)


_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (RegistrationNotOpenError, status.HTTP_400_BAD_REQUEST),
    (AlreadyBookedError, status.HTTP_409_CONFLICT),
    (DuplicateBookingError, status.HTTP_409_CONFLICT),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (DeletionBlockedError, status.HTTP_409_CONFLICT),
    (InvalidStatusChangeError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _to_http(exc: KonfiEventsError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
                logger.warning("Retryable conflict: %s", exc)
            return HTTPException(status_code=status_code, detail=str(exc))
    logger.error("Unmapped domain error %s: %s", type(exc).__name__, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


def _timeslot_response(view: TimeslotView) -> TimeslotResponse:
    return TimeslotResponse(
        id=view.id,
        start_time=view.start_time,
        end_time=view.end_time,
        max_participants=view.max_participants,
        registered_count=view.confirmed_count,
        pending_count=view.pending_count,
        available_spots=view.available_spots,
    )


def _event_response(view: EventView) -> EventResponse:
    return EventResponse(
        id=view.id,
        name=view.name,
        description=view.description,
        event_date=view.event_date,
        event_end_time=view.event_end_time,
        location=view.location,
        location_maps_url=view.location_maps_url,
        points=view.points,
        point_type=view.point_type.value,
        type=view.type,
        max_participants=view.max_participants,
        registration_opens_at=view.registration_opens_at,
        registration_closes_at=view.registration_closes_at,
        has_timeslots=view.has_timeslots,
        waitlist_enabled=view.waitlist_enabled,
        max_waitlist_size=view.max_waitlist_size,
        is_series=view.is_series,
        series_id=view.series_id,
        cancelled=view.cancelled,
        cancelled_at=view.cancelled_at,
        cancellation_reason=view.cancellation_reason,
        total_capacity=view.total_capacity,
        registered_count=view.confirmed_count,
        pending_count=view.pending_count,
        available_spots=view.available_spots,
        registration_status=view.registration_status.value,
        category_ids=view.category_ids,
        jahrgang_ids=view.jahrgang_ids,
        timeslots=[_timeslot_response(slot) for slot in view.timeslots],
        participants=[
            ParticipantResponse(
                id=participant.booking_id,
                user_id=participant.user_id,
                participant_name=participant.display_name,
                status=participant.status.value,
                attendance_status=(
                    participant.attendance_status.value
                    if participant.attendance_status is not None
                    else None
                ),
                timeslot_id=participant.timeslot_id,
                created_at=participant.created_at,
            )
            for participant in view.participants
        ],
        series_event_ids=view.series_event_ids,
    )


@router.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------
# Events
# -----------------------------
@router.get("/events", response_model=list[EventResponse])
def list_events(
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
):
    try:
        views = service.list_events(auth)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc
    return [_event_response(view) for view in views]


@router.post("/events", response_model=EventMutationResponse)
def create_event(
    request: EventCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.create_event(auth, request.to_draft())
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return EventMutationResponse(id=outcome.event_id, message=outcome.message)


@router.post("/events/series", response_model=SeriesResponse)
def create_series(
    request: SeriesCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: SeriesService = Depends(get_series_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.create_series(
            auth,
            request.to_draft(),
            count=request.series_count,
            interval=request.series_interval,
        )
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return SeriesResponse(
        series_id=outcome.series_id,
        event_ids=outcome.event_ids,
        message=outcome.message,
    )


@router.get("/events/user/bookings", response_model=list[UserBookingResponse])
def list_my_bookings(
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
):
    try:
        views = service.list_my_bookings(auth)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    return [
        UserBookingResponse(
            id=view.booking_id,
            event_id=view.event_id,
            event_name=view.event_name,
            event_date=view.event_date,
            location=view.location,
            status=view.status.value,
            timeslot_id=view.timeslot_id,
            attendance_status=(
                view.attendance_status.value if view.attendance_status is not None else None
            ),
        )
        for view in views
    ]


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(
    event_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
):
    try:
        view = service.get_event_with_computed_status(auth, event_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc
    return _event_response(view)


@router.put("/events/{event_id}", response_model=EventMutationResponse)
def update_event(
    event_id: str,
    request: EventUpdate,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.update_event(auth, event_id, request.to_draft())
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return EventMutationResponse(
        id=outcome.event_id,
        message=outcome.message,
        promoted_booking_ids=outcome.promoted_booking_ids,
    )


@router.delete("/events/{event_id}", response_model=EventMutationResponse)
def delete_event(
    event_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.delete_event(auth, event_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return EventMutationResponse(id=outcome.event_id, message=outcome.message)


@router.post("/events/{event_id}/cancel", response_model=EventMutationResponse)
def cancel_event(
    event_id: str,
    request: EventCancelRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.cancel_event(auth, event_id, reason=request.reason)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return EventMutationResponse(id=outcome.event_id, message=outcome.message)


@router.get("/events/{event_id}/timeslots", response_model=list[TimeslotResponse])
def list_timeslots(
    event_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: EventService = Depends(get_event_service),
):
    try:
        views = service.list_timeslots(auth, event_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc
    return [_timeslot_response(view) for view in views]


# -----------------------------
# Bookings
# -----------------------------
@router.post("/events/{event_id}/book", response_model=BookingResponse)
def book_event(
    event_id: str,
    request: BookingRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.book(auth, event_id, timeslot_id=request.timeslot_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return BookingResponse(
        id=outcome.id,
        status=outcome.status.value,
        timeslot_id=outcome.timeslot_id,
        message=outcome.message,
    )


@router.delete("/events/{event_id}/book", response_model=CancellationResponse)
def cancel_booking(
    event_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.cancel(auth, event_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return CancellationResponse(
        message=outcome.message,
        promoted_booking_id=outcome.promoted_booking_id,
    )


@router.post("/events/{event_id}/participants", response_model=BookingResponse)
def add_participant(
    event_id: str,
    request: ParticipantAddRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.admin_add_participant(
            auth,
            event_id,
            user_id=request.user_id,
            timeslot_id=request.timeslot_id,
            desired_status=request.status,
        )
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return BookingResponse(
        id=outcome.id,
        status=outcome.status.value,
        timeslot_id=outcome.timeslot_id,
        message=outcome.message,
    )


@router.delete("/events/{event_id}/bookings/{booking_id}", response_model=CancellationResponse)
def remove_participant(
    event_id: str,
    booking_id: str,
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.remove_participant(auth, event_id, booking_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return CancellationResponse(
        message=outcome.message,
        promoted_booking_id=outcome.promoted_booking_id,
    )


@router.put(
    "/events/{event_id}/participants/{booking_id}/status",
    response_model=StatusChangeResponse,
)
def set_participant_status(
    event_id: str,
    booking_id: str,
    request: ParticipantStatusRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.set_participant_status(auth, event_id, booking_id, request.status)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return StatusChangeResponse(
        id=outcome.booking_id,
        status=outcome.status.value,
        message=outcome.message,
    )


@router.put(
    "/events/{event_id}/participants/{booking_id}/attendance",
    response_model=AttendanceResponse,
)
def mark_attendance(
    event_id: str,
    booking_id: str,
    request: AttendanceRequest,
    auth: AuthContext = Depends(get_auth_context),
    service: AttendanceService = Depends(get_attendance_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        outcome = service.mark_attendance(auth, event_id, booking_id, request.attendance_status)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(outcome.effects)
    return AttendanceResponse(
        id=outcome.booking_id,
        attendance_status=outcome.attendance_status.value,
        points_awarded=outcome.points_awarded,
        points_removed=outcome.points_revoked,
        point_type=outcome.point_type.value if outcome.point_type is not None else None,
        message=outcome.message,
    )


# -----------------------------
# Maintenance
# -----------------------------
@router.post("/admin/reconcile", response_model=ReconciliationResponse)
def reconcile(
    auth: AuthContext = Depends(get_auth_context),
    service: ReconciliationService = Depends(get_reconciliation_service),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
):
    try:
        require_admin(auth)
        report = service.run(auth.organization_id)
    except KonfiEventsError as exc:
        raise _to_http(exc) from exc

    dispatcher.dispatch(report.effects)
    return ReconciliationResponse(
        organization_id=report.organization_id,
        promoted_booking_ids=report.promoted_booking_ids,
        corrected_totals=report.corrected_totals,
    )
