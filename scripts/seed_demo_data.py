from datetime import datetime, timedelta

from sqlalchemy import select

from konfi_events.application.context import AuthContext
from konfi_events.application.event_service import EventService
from konfi_events.application.series_service import SeriesService
from konfi_events.domain.clock import local_zone
from konfi_events.domain.drafts import EventDraft, TimeslotDraft
from konfi_events.domain.series import SeriesInterval
from konfi_events.domain.state_machine import PointType
from konfi_events.infrastructure.db.models import Base, Event, KonfiProfile
from konfi_events.infrastructure.db.session import SessionLocal, engine

ORGANIZATION_ID = "demo-gemeinde"
ADMIN = AuthContext(user_id="admin-1", user_type="admin", organization_id=ORGANIZATION_ID)


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    now_local = datetime.now(local_zone())
    target = now_local + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_konfis(db) -> None:
    konfis = [
        ("konfi-1", "Lena Becker"),
        ("konfi-2", "Jonas Wagner"),
        ("konfi-3", "Mia Schulz"),
        ("konfi-4", "Paul Hoffmann"),
    ]
    for user_id, display_name in konfis:
        existing = db.get(KonfiProfile, user_id)
        if existing:
            existing.display_name = display_name
            continue
        db.add(
            KonfiProfile(
                user_id=user_id,
                organization_id=ORGANIZATION_ID,
                display_name=display_name,
                gottesdienst_points=0,
                gemeinde_points=0,
            )
        )
    db.commit()


def _exists(db, name: str) -> bool:
    stmt = (
        select(Event.id)
        .where(Event.organization_id == ORGANIZATION_ID)
        .where(Event.name == name)
    )
    return db.execute(stmt).first() is not None


def seed_events(db) -> None:
    events = EventService(db)

    if not _exists(db, "Jugendgottesdienst"):
        events.create_event(
            ADMIN,
            EventDraft(
                name="Jugendgottesdienst",
                event_date=_dt(days_from_now=7, hour=18, minute=0),
                max_participants=3,
                location="Johanneskirche",
                points=2,
                point_type=PointType.GOTTESDIENST,
                registration_opens_at=_dt(days_from_now=-1, hour=8, minute=0),
                registration_closes_at=_dt(days_from_now=6, hour=20, minute=0),
                max_waitlist_size=2,
            ),
        )

    if not _exists(db, "Gemeindefest Aufbau"):
        start = _dt(days_from_now=14, hour=9, minute=0)
        events.create_event(
            ADMIN,
            EventDraft(
                name="Gemeindefest Aufbau",
                event_date=start,
                max_participants=0,
                location="Gemeindehaus",
                points=3,
                has_timeslots=True,
                timeslots=(
                    TimeslotDraft(start, start + timedelta(hours=2), 4),
                    TimeslotDraft(start + timedelta(hours=2), start + timedelta(hours=4), 4),
                ),
            ),
        )

    if not _exists(db, "Konfi-Treff #1"):
        SeriesService(db, event_service=events).create_series(
            ADMIN,
            EventDraft(
                name="Konfi-Treff",
                event_date=_dt(days_from_now=3, hour=17, minute=0),
                max_participants=20,
                location="Jugendraum",
                points=1,
            ),
            count=6,
            interval=SeriesInterval.WEEK,
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_konfis(db)
        seed_events(db)
        print("Seed complete: 4 konfis, Jugendgottesdienst, Gemeindefest timeslots, weekly Konfi-Treff series.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
