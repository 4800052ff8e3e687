"""
Side effects requested by a unit of work.

Services collect these while the transaction is open and hand them back with
their outcome; the dispatcher performs them only after commit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union


class NotificationKind(str, Enum):
    BOOKING_CONFIRMED = "booking-confirmed"
    WAITLIST_JOINED = "waitlist-joined"
    WAITLIST_PROMOTED = "waitlist-promoted"
    BOOKING_CANCELLED = "booking-cancelled"
    ATTENDANCE_RESULT = "attendance-result"
    EVENT_CANCELLED = "event-cancelled"


@dataclass(frozen=True)
class Notification:
    user_id: str
    kind: NotificationKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AdminNotification:
    organization_id: str
    kind: NotificationKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LiveUpdate:
    scope: str
    topic: str
    action: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BadgeCheck:
    konfi_id: str


Effect = Union[Notification, AdminNotification, LiveUpdate, BadgeCheck]


def org_admins_scope(organization_id: str) -> str:
    return f"org:{organization_id}:admins"


def org_konfis_scope(organization_id: str) -> str:
    return f"org:{organization_id}:konfis"


def user_scope(user_type: str, user_id: str) -> str:
    return f"user:{user_type}:{user_id}"


def event_changed(organization_id: str, action: str, **data: Any) -> list:
    """Refresh the events view for admins and konfis of one organization."""
    return [
        LiveUpdate(org_admins_scope(organization_id), "events", action, dict(data)),
        LiveUpdate(org_konfis_scope(organization_id), "events", action, dict(data)),
    ]
