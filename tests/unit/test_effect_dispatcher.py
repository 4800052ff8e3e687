# tests/unit/test_effect_dispatcher.py

from konfi_events.application.collaborators import Collaborators
from konfi_events.application.effect_dispatcher import EffectDispatcher
from konfi_events.domain.effects import (
    AdminNotification,
    BadgeCheck,
    LiveUpdate,
    Notification,
    NotificationKind,
    event_changed,
)


class ExplodingNotifier:
    def notify(self, user_id, kind, payload):
        raise RuntimeError("push gateway down")

    def notify_admins(self, organization_id, kind, payload):
        raise RuntimeError("push gateway down")


def test_effects_reach_their_collaborators(collaborators):
    dispatcher = EffectDispatcher(collaborators)

    report = dispatcher.dispatch(
        [
            Notification("konfi-1", NotificationKind.BOOKING_CONFIRMED, {"event_id": "e1"}),
            AdminNotification("org-1", NotificationKind.BOOKING_CANCELLED, {"event_id": "e1"}),
            LiveUpdate("user:konfi:konfi-1", "events", "booked", {"event_id": "e1"}),
            BadgeCheck("konfi-1"),
        ]
    )

    assert report.delivered == 4
    assert report.failed == 0
    assert collaborators.notifier.notifications == [
        ("konfi-1", "booking-confirmed", {"event_id": "e1"}),
    ]
    assert collaborators.notifier.admin_notifications[0][1] == "booking-cancelled"
    assert collaborators.broadcaster.updates[0][2] == "booked"
    assert collaborators.badges.checked == ["konfi-1"]


def test_failing_collaborator_is_logged_and_skipped(collaborators, caplog):
    collaborators.notifier = ExplodingNotifier()
    dispatcher = EffectDispatcher(collaborators)

    report = dispatcher.dispatch(
        [
            Notification("konfi-1", NotificationKind.WAITLIST_PROMOTED, {}),
            BadgeCheck("konfi-1"),
        ]
    )

    assert report.failed == 1
    assert report.delivered == 1
    assert collaborators.badges.checked == ["konfi-1"]
    assert "Side effect failed" in caplog.text


def test_event_changed_targets_admins_and_konfis():
    updates = event_changed("org-1", "updated", event_id="e1")

    assert [update.scope for update in updates] == ["org:org-1:admins", "org:org-1:konfis"]
    assert all(update.data == {"event_id": "e1"} for update in updates)


def test_default_collaborators_only_log():
    report = EffectDispatcher(Collaborators()).dispatch([BadgeCheck("konfi-1")])

    assert report.delivered == 1
