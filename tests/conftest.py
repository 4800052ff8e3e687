# tests/conftest.py

import os

# Must be set before konfi_events.config is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENT_TIMEZONE"] = "Europe/Berlin"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from konfi_events.api.dependencies import get_clock, get_db
from konfi_events.application.collaborators import BadgeCheckResult, Collaborators
from konfi_events.application.context import AuthContext
from konfi_events.application.event_service import EventService
from konfi_events.domain.drafts import EventDraft
from konfi_events.infrastructure.db.models import Base, Booking, KonfiProfile
from konfi_events.infrastructure.db.session import build_engine, build_session_factory
from konfi_events.main import app

ORG = "org-1"
OTHER_ORG = "org-2"


# ---------------------
# Database
# ---------------------

@pytest.fixture
def engine(tmp_path):
    # File-backed so that several connections (threads) share one database.
    engine = build_engine(
        f"sqlite:///{tmp_path / 'konfi_events.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


# ---------------------
# Clock
# ---------------------

class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


# ---------------------
# Collaborators
# ---------------------

class RecordingNotifier:
    def __init__(self):
        self.notifications = []
        self.admin_notifications = []

    def notify(self, user_id, kind, payload):
        self.notifications.append((user_id, kind, payload))

    def notify_admins(self, organization_id, kind, payload):
        self.admin_notifications.append((organization_id, kind, payload))

    def kinds_for(self, user_id):
        return [kind for recipient, kind, _ in self.notifications if recipient == user_id]


class RecordingBroadcaster:
    def __init__(self):
        self.updates = []

    def broadcast(self, scope, topic, action, data):
        self.updates.append((scope, topic, action, data))


class RecordingBadgeEngine:
    def __init__(self):
        self.checked = []

    def check_and_award_badges(self, konfi_id):
        self.checked.append(konfi_id)
        return BadgeCheckResult(konfi_id=konfi_id)


class StubChatDirectory:
    def __init__(self):
        self.counts = {}

    def count_event_messages(self, event_id):
        return self.counts.get(event_id, 0)


@pytest.fixture
def collaborators():
    return Collaborators(
        badges=RecordingBadgeEngine(),
        notifier=RecordingNotifier(),
        broadcaster=RecordingBroadcaster(),
        chat=StubChatDirectory(),
    )


# ---------------------
# Callers and seed data
# ---------------------

@pytest.fixture
def admin():
    return AuthContext(user_id="admin-1", user_type="admin", organization_id=ORG)


@pytest.fixture
def konfi():
    def _konfi(user_id: str, organization_id: str = ORG) -> AuthContext:
        return AuthContext(user_id=user_id, user_type="konfi", organization_id=organization_id)
    return _konfi


@pytest.fixture
def make_event(db_session, admin):
    def _make_event(**overrides) -> str:
        fields = {
            "name": "Konfi-Treff",
            "event_date": datetime(2025, 3, 10, 17, 0, tzinfo=timezone.utc),
            "max_participants": 2,
        }
        fields.update(overrides)
        return EventService(db_session).create_event(admin, EventDraft(**fields)).event_id
    return _make_event


@pytest.fixture
def add_profile(db_session):
    def _add_profile(user_id: str, organization_id: str = ORG, display_name: str | None = None) -> KonfiProfile:
        profile = KonfiProfile(
            user_id=user_id,
            organization_id=organization_id,
            display_name=display_name or user_id,
            gottesdienst_points=0,
            gemeinde_points=0,
        )
        db_session.add(profile)
        db_session.commit()
        return profile
    return _add_profile


@pytest.fixture
def add_booking(db_session):
    """Insert a booking directly, with an explicit FIFO timestamp."""
    def _add_booking(event_id, user_id, status, created_at, timeslot_id=None, organization_id=ORG) -> str:
        booking = Booking(
            event_id=event_id,
            user_id=user_id,
            organization_id=organization_id,
            timeslot_id=timeslot_id,
            status=status,
            created_at=created_at,
        )
        db_session.add(booking)
        db_session.commit()
        return booking.id
    return _add_booking


# ---------------------
# HTTP
# ---------------------

@pytest.fixture
def client(session_factory, collaborators, clock):

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.state.collaborators = collaborators

    yield TestClient(app)

    app.dependency_overrides.clear()
