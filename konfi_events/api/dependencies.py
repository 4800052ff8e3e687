from datetime import datetime
from typing import Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from konfi_events.application.attendance_service import AttendanceService
from konfi_events.application.booking_service import BookingService
from konfi_events.application.collaborators import Collaborators
from konfi_events.application.context import AuthContext
from konfi_events.application.effect_dispatcher import EffectDispatcher
from konfi_events.application.event_service import EventService
from konfi_events.application.reconciliation_service import ReconciliationService
from konfi_events.application.series_service import SeriesService
from konfi_events.domain.clock import utc_now
from konfi_events.infrastructure.db.session import SessionLocal


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_auth_context(
    x_user_id: str | None = Header(default=None),
    x_user_type: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
    x_role: str | None = Header(default=None),
) -> AuthContext:
    # Identity headers are set by the gateway after authentication.
    if not x_user_id or not x_user_type or not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return AuthContext(
        user_id=x_user_id,
        user_type=x_user_type,
        organization_id=x_organization_id,
        role=x_role,
    )


def get_collaborators(request: Request) -> Collaborators:
    collaborators = getattr(request.app.state, "collaborators", None)
    if collaborators is None:
        collaborators = Collaborators()
        request.app.state.collaborators = collaborators
    return collaborators


def get_dispatcher(collaborators: Collaborators = Depends(get_collaborators)) -> EffectDispatcher:
    return EffectDispatcher(collaborators)


def get_clock() -> Callable[[], datetime]:
    return utc_now


# -----------------------------
# Services
# -----------------------------
def get_booking_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, clock=clock)


def get_event_service(
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> EventService:
    return EventService(db, chat=collaborators.chat, clock=clock)


def get_series_service(
    db: Session = Depends(get_db),
    event_service: EventService = Depends(get_event_service),
) -> SeriesService:
    return SeriesService(db, event_service=event_service)


def get_attendance_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AttendanceService:
    return AttendanceService(db, clock=clock)


def get_reconciliation_service(db: Session = Depends(get_db)) -> ReconciliationService:
    return ReconciliationService(db)
