# tests/integration/test_booking_flow.py

from konfi_events.domain.effects import NotificationKind

ADMIN = {"X-User-Id": "admin-1", "X-User-Type": "admin", "X-Organization-Id": "org-1"}


def _konfi(user_id):
    return {"X-User-Id": user_id, "X-User-Type": "konfi", "X-Organization-Id": "org-1"}


def _create_event(client, **overrides):
    payload = {
        "name": "Gemeindefest",
        "event_date": "2025-03-10T18:00:00+01:00",
        "max_participants": 1,
        "points": 2,
        "point_type": "gemeinde",
    }
    payload.update(overrides)
    response = client.post("/events", json=payload, headers=ADMIN)
    assert response.status_code == 200
    return response.json()["id"]


def test_booking_flow(client, collaborators):
    event_id = _create_event(client)

    first = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k1"))
    assert first.status_code == 200
    assert first.json()["status"] == "confirmed"
    assert first.json()["message"] == "Event booked successfully"

    second = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k2"))
    assert second.status_code == 200
    assert second.json()["status"] == "pending"
    assert second.json()["message"] == "Added to waitlist"

    cancel = client.delete(f"/events/{event_id}/book", headers=_konfi("k1"))
    assert cancel.status_code == 200
    assert cancel.json() == {
        "message": "Booking canceled successfully",
        "promoted_booking_id": second.json()["id"],
    }

    notifier = collaborators.notifier
    assert notifier.kinds_for("k2") == [
        NotificationKind.WAITLIST_JOINED,
        NotificationKind.WAITLIST_PROMOTED,
    ]
    assert notifier.admin_notifications[0][1] == NotificationKind.BOOKING_CANCELLED

    attendance = client.put(
        f"/events/{event_id}/participants/{second.json()['id']}/attendance",
        json={"attendance_status": "present"},
        headers=ADMIN,
    )
    assert attendance.status_code == 200
    assert attendance.json()["points_awarded"] == 2
    assert attendance.json()["message"] == "Attendance updated and 2 gemeinde points awarded"
    assert collaborators.badges.checked == ["k2"]

    detail = client.get(f"/events/{event_id}", headers=ADMIN)
    assert detail.status_code == 200
    body = detail.json()
    assert body["registered_count"] == 1
    assert body["available_spots"] == 0
    assert [participant["user_id"] for participant in body["participants"]] == ["k2"]
    assert body["participants"][0]["attendance_status"] == "present"

    mine = client.get("/events/user/bookings", headers=_konfi("k2"))
    assert mine.status_code == 200
    assert [booking["event_id"] for booking in mine.json()] == [event_id]


def test_missing_identity_headers_are_rejected(client):
    response = client.get("/events")

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


def test_domain_errors_map_to_status_codes(client):
    event_id = _create_event(client, max_participants=2, waitlist_enabled=False)

    assert client.post(f"/events/{event_id}/book", json={}, headers=ADMIN).status_code == 403
    assert client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k1")).status_code == 200

    duplicate = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k1"))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Already booked this event"

    assert client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k2")).status_code == 200
    full = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k3"))
    assert full.status_code == 400
    assert full.json()["detail"] == "Event is full and waitlist is disabled"

    blocked = client.delete(f"/events/{event_id}", headers=ADMIN)
    assert blocked.status_code == 409
    assert blocked.json()["detail"] == "Event cannot be deleted: 2 confirmed bookings"

    assert client.get("/events/missing", headers=ADMIN).status_code == 404
    assert client.delete("/events/missing/book", headers=_konfi("k1")).status_code == 404


def test_events_are_invisible_to_other_organizations(client):
    event_id = _create_event(client)
    outsider = {"X-User-Id": "k9", "X-User-Type": "konfi", "X-Organization-Id": "org-2"}

    assert client.get(f"/events/{event_id}", headers=outsider).status_code == 404
    assert client.post(f"/events/{event_id}/book", json={}, headers=outsider).status_code == 404


def test_cancelled_event_rejects_bookings(client, collaborators):
    event_id = _create_event(client)
    client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k1"))

    cancel = client.post(f"/events/{event_id}/cancel", json={"reason": "Unwetter"}, headers=ADMIN)
    assert cancel.status_code == 200
    assert NotificationKind.EVENT_CANCELLED in collaborators.notifier.kinds_for("k1")

    again = client.post(f"/events/{event_id}/cancel", json={}, headers=ADMIN)
    assert again.status_code == 409

    booking = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k2"))
    assert booking.status_code == 400
    assert booking.json()["detail"] == "Event has been cancelled"

    detail = client.get(f"/events/{event_id}", headers=ADMIN).json()
    assert detail["cancelled"] is True
    assert detail["registration_status"] == "cancelled"


def test_timeslot_booking_over_http(client):
    event_id = _create_event(
        client,
        max_participants=0,
        has_timeslots=True,
        timeslots=[
            {"start_time": "2025-03-10T18:00:00", "end_time": "2025-03-10T19:00:00", "max_participants": 1},
            {"start_time": "2025-03-10T19:00:00", "end_time": "2025-03-10T20:00:00", "max_participants": 1},
        ],
    )
    slots = client.get(f"/events/{event_id}/timeslots", headers=ADMIN).json()
    # Naive times are local Berlin time.
    assert slots[0]["start_time"].startswith("2025-03-10T17:00:00")

    without_slot = client.post(f"/events/{event_id}/book", json={}, headers=_konfi("k1"))
    assert without_slot.status_code == 400

    booked = client.post(
        f"/events/{event_id}/book", json={"timeslot_id": slots[1]["id"]}, headers=_konfi("k1")
    )
    assert booked.status_code == 200
    assert booked.json()["timeslot_id"] == slots[1]["id"]

    slots = client.get(f"/events/{event_id}/timeslots", headers=ADMIN).json()
    assert [slot["registered_count"] for slot in slots] == [0, 1]
    assert [slot["available_spots"] for slot in slots] == [1, 0]


def test_series_over_http(client):
    response = client.post(
        "/events/series",
        json={
            "name": "Konfi-Treff",
            "event_date": "2025-01-06T18:00:00+01:00",
            "series_count": 3,
            "series_interval": "week",
        },
        headers=ADMIN,
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body["event_ids"]) == 3
    assert body["series_id"] == body["event_ids"][0]

    events = client.get("/events", headers=ADMIN).json()
    assert [event["name"] for event in events] == ["Konfi-Treff #1", "Konfi-Treff #2", "Konfi-Treff #3"]
    assert all(event["series_id"] == body["series_id"] for event in events)


def test_series_count_is_validated(client):
    response = client.post(
        "/events/series",
        json={"name": "Einmalig", "event_date": "2025-01-06T18:00:00+01:00", "series_count": 1},
        headers=ADMIN,
    )

    assert response.status_code == 422


def test_admin_manages_participants(client, add_profile):
    add_profile("k1")
    event_id = _create_event(client)

    unknown = client.post(f"/events/{event_id}/participants", json={"user_id": "ghost"}, headers=ADMIN)
    assert unknown.status_code == 404

    added = client.post(
        f"/events/{event_id}/participants",
        json={"user_id": "k1", "status": "pending"},
        headers=ADMIN,
    )
    assert added.status_code == 200
    assert added.json()["status"] == "pending"

    promoted = client.put(
        f"/events/{event_id}/participants/{added.json()['id']}/status",
        json={"status": "confirmed"},
        headers=ADMIN,
    )
    assert promoted.status_code == 200
    assert promoted.json()["status"] == "confirmed"

    repeated = client.put(
        f"/events/{event_id}/participants/{added.json()['id']}/status",
        json={"status": "confirmed"},
        headers=ADMIN,
    )
    assert repeated.status_code == 409

    removed = client.delete(f"/events/{event_id}/bookings/{added.json()['id']}", headers=ADMIN)
    assert removed.status_code == 200
    assert removed.json()["message"] == "Participant removed successfully"


def test_reconcile_endpoint_is_admin_only(client):
    assert client.post("/admin/reconcile", headers=_konfi("k1")).status_code == 403

    response = client.post("/admin/reconcile", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["organization_id"] == "org-1"
