import uuid
from datetime import time, timedelta
from decimal import Decimal

import pytest

from cleanouts.core.exceptions import ConflictError, InvalidStateTransitionError, PermissionDeniedError
from cleanouts.models.booking import Booking
from cleanouts.models.notification import Notification
from cleanouts.schemas.booking import BookingCreate, BookingUpdate
from cleanouts.services.bookings import BookingService, can_transition

from conftest import TODAY, TOMORROW, booking_payload, customer_info, make_booking, make_token


def _create(client, service_id, headers, **kwargs):
    return client.post("/api/v1/bookings", json=booking_payload(service_id, **kwargs), headers=headers)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_booking(client, db, service, auth_headers, user_id):
    resp = _create(client, service.id, auth_headers)
    assert resp.status_code == 201
    body = resp.json()

    assert body["booking_number"].startswith("CLN-")
    assert body["status"] == "pending"
    assert body["payment_status"] == "pending"
    assert body["end_time"] == "12:00:00"
    assert Decimal(body["total_price"]) == Decimal("130.00")
    assert body["service"]["name"] == service.name
    assert body["customer_info"]["email"] == "jane@example.com"

    notes = db.query(Notification).filter(Notification.user_id == user_id).all()
    assert [n.title for n in notes] == ["Booking Created Successfully"]


def test_overlapping_booking_is_rejected(client, service, auth_headers):
    assert _create(client, service.id, auth_headers).status_code == 201

    resp = _create(client, service.id, auth_headers, start_time="11:00")
    assert resp.status_code == 409
    assert resp.json()["success"] is False
    assert resp.json()["code"] == "SLOT_CONFLICT"
    assert resp.json()["error"] == "Time slot is already booked"


def test_back_to_back_booking_is_accepted(client, service, auth_headers):
    assert _create(client, service.id, auth_headers).status_code == 201
    assert _create(client, service.id, auth_headers, start_time="12:00").status_code == 201
    assert _create(client, service.id, auth_headers, start_time="08:00").status_code == 201


def test_other_service_same_time_is_accepted(client, service, other_service, auth_headers):
    assert _create(client, service.id, auth_headers).status_code == 201
    assert _create(client, other_service.id, auth_headers).status_code == 201


@pytest.mark.parametrize(
    "kwargs",
    [
        {"booking_date": TODAY - timedelta(days=1)},
        {"booking_date": TODAY + timedelta(days=91)},
        {"start_time": "07:00"},
        {"start_time": "16:00", "duration": 3},
    ],
)
def test_schedule_rules(client, service, auth_headers, kwargs):
    resp = _create(client, service.id, auth_headers, **kwargs)
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_booking_ending_at_close_is_accepted(client, service, auth_headers):
    assert _create(client, service.id, auth_headers, start_time="16:00", duration=2).status_code == 201


def test_start_time_already_passed_today(client, clock, service, auth_headers):
    clock.now = clock.now.replace(hour=11)
    resp = _create(client, service.id, auth_headers, booking_date=TODAY, start_time="10:00")
    assert resp.status_code == 400
    assert _create(client, service.id, auth_headers, booking_date=TODAY, start_time="13:00").status_code == 201


def test_schema_errors_are_422(client, service, auth_headers):
    resp = _create(client, service.id, auth_headers, start_time="25:00")
    assert resp.status_code == 422

    payload = booking_payload(service.id)
    payload["customer_info"] = customer_info(phone="call me")
    assert client.post("/api/v1/bookings", json=payload, headers=auth_headers).status_code == 422


def test_inactive_service_cannot_be_booked(client, db, service, auth_headers):
    service.is_active = False
    db.commit()
    resp = _create(client, service.id, auth_headers)
    assert resp.status_code == 404


def test_requires_authentication(client, service):
    resp = client.post("/api/v1/bookings", json=booking_payload(service.id))
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_service_layer_rejects_overlap(db, cache, clock, service, customer):
    make_booking(db, service, customer, TOMORROW, time(9, 0), 3)
    data = BookingCreate(**booking_payload(service.id, start_time="11:00"))
    with pytest.raises(ConflictError):
        BookingService(db, cache, now=clock).create(data, customer)
    assert db.query(Booking).count() == 1


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


def test_users_only_see_their_own_bookings(client, db, service, auth_headers, admin_headers, admin):
    mine = _create(client, service.id, auth_headers).json()
    theirs = make_booking(db, service, admin, TOMORROW, time(14, 0), 1)

    listed = client.get("/api/v1/bookings", headers=auth_headers).json()
    assert [b["id"] for b in listed["data"]] == [mine["id"]]
    assert listed["total"] == 1

    assert client.get(f"/api/v1/bookings/{theirs.id}", headers=auth_headers).status_code == 404
    assert client.get(f"/api/v1/bookings/{mine['id']}", headers=auth_headers).status_code == 200

    everything = client.get("/api/v1/bookings", headers=admin_headers).json()
    assert everything["total"] == 2


def test_list_filters(client, db, service, other_service, customer, auth_headers):
    make_booking(db, service, customer, TOMORROW, time(8, 0), 1)
    make_booking(db, other_service, customer, TOMORROW + timedelta(days=2), time(8, 0), 1, status="confirmed")

    by_status = client.get("/api/v1/bookings", params={"status": "confirmed"}, headers=auth_headers).json()
    assert by_status["total"] == 1

    by_service = client.get(
        "/api/v1/bookings", params={"service_id": str(service.id)}, headers=auth_headers
    ).json()
    assert by_service["total"] == 1

    by_range = client.get(
        "/api/v1/bookings",
        params={"date_from": (TOMORROW + timedelta(days=1)).isoformat(), "limit": 1},
        headers=auth_headers,
    ).json()
    assert by_range["total"] == 1
    assert by_range["total_pages"] == 1


def test_admin_booking_list_includes_user(client, db, service, customer, admin_headers, auth_headers):
    make_booking(db, service, customer)
    resp = client.get("/api/v1/admin/bookings", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"][0]["user"]["email"] == "user@example.com"
    assert client.get("/api/v1/admin/bookings", headers=auth_headers).status_code == 403


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def test_owner_reschedules_pending_booking(client, service, auth_headers):
    booking = _create(client, service.id, auth_headers).json()

    resp = client.put(
        f"/api/v1/bookings/{booking['id']}",
        json={"start_time": "13:00", "duration": 3},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["start_time"] == "13:00:00"
    assert body["end_time"] == "16:00:00"
    assert Decimal(body["total_price"]) == Decimal("170.00")


def test_reschedule_ignores_own_interval_but_not_others(client, service, auth_headers):
    first = _create(client, service.id, auth_headers).json()
    _create(client, service.id, auth_headers, start_time="13:00")

    shifted = client.put(f"/api/v1/bookings/{first['id']}", json={"start_time": "11:00"}, headers=auth_headers)
    assert shifted.status_code == 200

    clash = client.put(f"/api/v1/bookings/{first['id']}", json={"duration": 3}, headers=auth_headers)
    assert clash.status_code == 409


def test_owner_cannot_change_status(client, service, auth_headers):
    booking = _create(client, service.id, auth_headers).json()
    resp = client.put(f"/api/v1/bookings/{booking['id']}", json={"status": "confirmed"}, headers=auth_headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


def test_admin_walks_the_state_machine(client, db, service, auth_headers, admin_headers, user_id):
    booking = _create(client, service.id, auth_headers).json()
    url = f"/api/v1/bookings/{booking['id']}"

    assert client.put(url, json={"status": "completed"}, headers=admin_headers).status_code == 400
    for status in ("confirmed", "in_progress", "completed"):
        resp = client.put(url, json={"status": status}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == status

    resp = client.put(url, json={"notes": "late edit"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_STATE_TRANSITION"

    messages = [
        n.message
        for n in db.query(Notification).filter(
            Notification.user_id == user_id, Notification.title == "Booking Updated"
        )
    ]
    assert any("has been confirmed" in m for m in messages)
    assert any("has been completed" in m for m in messages)


def test_owner_cannot_edit_confirmed_booking(db, cache, clock, service, customer, admin):
    booking = make_booking(db, service, customer, status="confirmed")
    service_ = BookingService(db, cache, now=clock)
    with pytest.raises(InvalidStateTransitionError):
        service_.update(booking.id, BookingUpdate(notes="please bring gloves"), customer)


def test_owner_status_update_is_permission_error(db, cache, clock, service, customer):
    booking = make_booking(db, service, customer)
    with pytest.raises(PermissionDeniedError):
        BookingService(db, cache, now=clock).update(booking.id, BookingUpdate(payment_status="paid"), customer)


def test_in_progress_booking_cannot_be_rescheduled(db, cache, clock, service, customer, admin):
    booking = make_booking(db, service, customer, status="in_progress")
    with pytest.raises(InvalidStateTransitionError):
        BookingService(db, cache, now=clock).update(booking.id, BookingUpdate(start_time="14:00"), admin)


def test_transition_table():
    assert can_transition("pending", "confirmed")
    assert can_transition("confirmed", "cancelled")
    assert not can_transition("pending", "in_progress")
    assert not can_transition("in_progress", "cancelled")
    assert not can_transition("completed", "pending")
    assert not can_transition("cancelled", "pending")


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


def test_cancel_twice_is_an_error_and_notifies_once(client, db, service, auth_headers, user_id):
    booking = _create(client, service.id, auth_headers).json()
    url = f"/api/v1/bookings/{booking['id']}"

    first = client.delete(url, headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert first.json()["cancelled_at"] is not None

    second = client.delete(url, headers=auth_headers)
    assert second.status_code == 400
    assert second.json()["code"] == "ALREADY_CANCELLED"

    cancellations = db.query(Notification).filter(
        Notification.user_id == user_id, Notification.title == "Booking Cancelled"
    ).count()
    assert cancellations == 1
    assert db.query(Booking).count() == 1


def test_cancelled_slot_can_be_rebooked(client, service, auth_headers):
    booking = _create(client, service.id, auth_headers).json()
    client.delete(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert _create(client, service.id, auth_headers).status_code == 201


def test_completed_and_in_progress_bookings_cannot_be_cancelled(db, cache, clock, service, customer):
    service_ = BookingService(db, cache, now=clock)
    completed = make_booking(db, service, customer, status="completed")
    working = make_booking(db, service, customer, TOMORROW + timedelta(days=1), status="in_progress")

    with pytest.raises(InvalidStateTransitionError, match="completed"):
        service_.cancel(completed.id, customer)
    with pytest.raises(InvalidStateTransitionError):
        service_.cancel(working.id, customer)


def test_cannot_cancel_someone_elses_booking(client, db, service, admin):
    booking = make_booking(db, service, admin)
    stranger = {"Authorization": f"Bearer {make_token(uuid.uuid4(), email='x@example.com')}"}
    assert client.delete(f"/api/v1/bookings/{booking.id}", headers=stranger).status_code == 404
