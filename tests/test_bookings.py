from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from confbook.models import ActivityLog, RoleEnum

ADMIN_PAYLOAD = {
    "email": "admin@example.com",
    "password": "Passw0rd!",
    "role": RoleEnum.ADMIN.value,
}

USER_PAYLOAD = {
    "email": "user1@example.com",
    "password": "Passw0rd!",
}


def auth_header(users_client, email: str, password: str) -> dict[str, str]:
    response = users_client.post(
        "/auth/login",
        data={"username": email, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def setup(users_client, rooms_client):
    users_client.post("/auth/register", json=ADMIN_PAYLOAD)
    admin_headers = auth_header(users_client, "admin@example.com", "Passw0rd!")
    users_client.post("/auth/register", json=USER_PAYLOAD)
    user_headers = auth_header(users_client, "user1@example.com", "Passw0rd!")

    room_resp = rooms_client.post(
        "/admin/rooms",
        json={"name": "Focus Room", "location": "Floor 2", "capacity": 4, "amenities": ["tv"]},
        headers=admin_headers,
    )
    return admin_headers, user_headers, room_resp.json()["id"]


def tomorrow_at(hour: int, minute: int = 0) -> datetime:
    base = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    return base.replace(hour=hour, minute=minute)


def book(bookings_client, headers, room_id, start: datetime, end: datetime, purpose: str = "Team sync"):
    return bookings_client.post(
        "/bookings",
        json={
            "room_id": room_id,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "purpose": purpose,
        },
        headers=headers,
    )


def test_overlapping_request_conflicts(users_client, rooms_client, bookings_client, notifier):
    _, user_headers, room_id = setup(users_client, rooms_client)

    first = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10))
    assert first.status_code == 201
    assert first.json()["status"] == "pending"

    second = book(bookings_client, user_headers, room_id, tomorrow_at(9, 30), tomorrow_at(10, 30))
    assert second.status_code == 409
    assert second.json()["detail"] == "Room already booked for that slot"

    # touching intervals do not overlap
    adjacent = book(bookings_client, user_headers, room_id, tomorrow_at(10), tomorrow_at(11))
    assert adjacent.status_code == 201

    assert notifier.kinds() == ["created", "created"]


def test_approved_booking_can_be_rescheduled(users_client, rooms_client, bookings_client, notifier):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    approved = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "approved"}, headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["approved_by"] is not None
    assert approved.json()["approved_at"] is not None

    moved = bookings_client.patch(
        f"/bookings/{booking_id}",
        json={"start_time": tomorrow_at(14).isoformat(), "end_time": tomorrow_at(15).isoformat()},
        headers=user_headers,
    )
    assert moved.status_code == 200
    assert moved.json()["status"] == "approved"
    assert moved.json()["start_time"].startswith(tomorrow_at(14).strftime("%Y-%m-%dT%H:%M"))
    assert notifier.kinds() == ["created", "status_changed", "rescheduled"]


def test_rejected_booking_cannot_be_approved(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    rejected = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "rejected"}, headers=admin_headers
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    approve = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "approved"}, headers=admin_headers
    )
    assert approve.status_code == 409
    assert approve.json()["detail"] == "Cannot move booking from rejected to approved"


def test_cancelled_booking_cannot_be_rescheduled(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]
    bookings_client.patch(f"/bookings/{booking_id}/status", json={"status": "approved"}, headers=admin_headers)

    cancelled = bookings_client.patch(
        f"/bookings/{booking_id}/status",
        json={"status": "cancelled", "cancellation_reason": "meeting moved"},
        headers=user_headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancellation_reason"] == "meeting moved"

    retry = bookings_client.patch(
        f"/bookings/{booking_id}",
        json={"start_time": tomorrow_at(14).isoformat(), "end_time": tomorrow_at(15).isoformat()},
        headers=user_headers,
    )
    assert retry.status_code == 409
    assert retry.json()["detail"] == "Cancelled bookings cannot be rescheduled"

    # the slot is free again
    rebook = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10))
    assert rebook.status_code == 201


def test_regular_user_cannot_approve(users_client, rooms_client, bookings_client):
    _, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    response = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "approved"}, headers=user_headers
    )
    assert response.status_code == 403


def test_unknown_status_is_a_validation_error(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    response = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "pending"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Status must be one of: approved, cancelled, rejected"


def test_create_validation(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)

    past = datetime.utcnow() - timedelta(hours=2)
    response = book(bookings_client, user_headers, room_id, past, past + timedelta(hours=1))
    assert response.status_code == 400
    assert "Start time cannot be in the past" in response.json()["errors"]

    backwards = book(bookings_client, user_headers, room_id, tomorrow_at(10), tomorrow_at(9))
    assert backwards.status_code == 400
    assert "End time must be after start time" in backwards.json()["errors"]

    no_purpose = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10), purpose="  ")
    assert no_purpose.status_code == 400
    assert no_purpose.json()["errors"] == ["Booking purpose is required"]

    missing_room = book(bookings_client, user_headers, 999, tomorrow_at(9), tomorrow_at(10))
    assert missing_room.status_code == 404


def test_inactive_room_is_not_bookable(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    rooms_client.put(f"/admin/rooms/{room_id}", json={"is_active": False}, headers=admin_headers)

    response = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10))
    assert response.status_code == 400
    assert response.json()["detail"] == "Room is not accepting bookings"


def test_availability_endpoint(users_client, rooms_client, bookings_client):
    _, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    busy = bookings_client.get(
        "/bookings/availability",
        params={
            "room_id": room_id,
            "start_time": tomorrow_at(9, 30).isoformat(),
            "end_time": tomorrow_at(11).isoformat(),
        },
        headers=user_headers,
    )
    assert busy.status_code == 200
    assert busy.json()["available"] is False
    assert busy.json()["conflicting_booking_ids"] == [booking_id]

    own_slot = bookings_client.get(
        "/bookings/availability",
        params={
            "room_id": room_id,
            "start_time": tomorrow_at(9, 30).isoformat(),
            "end_time": tomorrow_at(11).isoformat(),
            "exclude_booking_id": booking_id,
        },
        headers=user_headers,
    )
    assert own_slot.json()["available"] is True

    backwards = bookings_client.get(
        "/bookings/availability",
        params={"room_id": room_id, "start_time": tomorrow_at(11).isoformat(), "end_time": tomorrow_at(9).isoformat()},
        headers=user_headers,
    )
    assert backwards.status_code == 400


def test_reschedule_into_own_slot_is_not_a_conflict(users_client, rooms_client, bookings_client):
    _, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    response = bookings_client.patch(
        f"/bookings/{booking_id}",
        json={"start_time": tomorrow_at(9, 30).isoformat(), "end_time": tomorrow_at(10, 30).isoformat()},
        headers=user_headers,
    )
    assert response.status_code == 200


def test_owner_scoping(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    users_client.post("/auth/register", json={"email": "other@example.com", "password": "Passw0rd!"})
    other_headers = auth_header(users_client, "other@example.com", "Passw0rd!")
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    assert bookings_client.get(f"/bookings/{booking_id}", headers=user_headers).status_code == 200
    assert bookings_client.get(f"/bookings/{booking_id}", headers=admin_headers).status_code == 200
    assert bookings_client.get(f"/bookings/{booking_id}", headers=other_headers).status_code == 403

    cancel = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=other_headers
    )
    assert cancel.status_code == 403
    move = bookings_client.patch(
        f"/bookings/{booking_id}", json={"purpose": "Hijack"}, headers=other_headers
    )
    assert move.status_code == 403
    assert bookings_client.delete(f"/bookings/{booking_id}", headers=other_headers).status_code == 403

    mine = bookings_client.get("/bookings/my", headers=user_headers).json()
    assert [item["id"] for item in mine] == [booking_id]
    assert bookings_client.get("/bookings/my", headers=other_headers).json() == []


def test_delete_booking(users_client, rooms_client, bookings_client, db_session):
    _, user_headers, room_id = setup(users_client, rooms_client)
    booking_id = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]

    response = bookings_client.delete(f"/bookings/{booking_id}", headers=user_headers)
    assert response.status_code == 204
    assert bookings_client.get(f"/bookings/{booking_id}", headers=user_headers).status_code == 404

    types = [log.type for log in db_session.query(ActivityLog).all()]
    assert "booking_create" in types
    assert "booking_delete" in types


def test_admin_listing_filters(users_client, rooms_client, bookings_client):
    admin_headers, user_headers, room_id = setup(users_client, rooms_client)
    first = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10)).json()["id"]
    book(bookings_client, user_headers, room_id, tomorrow_at(11), tomorrow_at(12))
    bookings_client.patch(f"/bookings/{first}/status", json={"status": "approved"}, headers=admin_headers)

    everything = bookings_client.get("/admin/bookings", headers=admin_headers)
    assert everything.status_code == 200
    assert len(everything.json()) == 2

    approved = bookings_client.get("/admin/bookings", params={"status": "approved"}, headers=admin_headers)
    assert [item["id"] for item in approved.json()] == [first]

    assert bookings_client.get("/admin/bookings", headers=user_headers).status_code == 403


def test_notifier_failure_does_not_fail_the_request(users_client, rooms_client, bookings_client, notifier):
    _, user_headers, room_id = setup(users_client, rooms_client)

    def explode(booking):
        raise ConnectionError("smtp down")

    notifier.notify_created = explode
    response = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10))
    assert response.status_code == 201


def test_store_failure_is_a_server_error(users_client, rooms_client, bookings_client, notifier, monkeypatch):
    _, user_headers, room_id = setup(users_client, rooms_client)

    def broken_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(Session, "commit", broken_commit)
    response = book(bookings_client, user_headers, room_id, tomorrow_at(9), tomorrow_at(10))
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json()["detail"] == "Booking store unavailable"
    assert notifier.kinds() == []
    assert bookings_client.get("/bookings/my", headers=user_headers).json() == []
