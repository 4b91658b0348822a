import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest

from cleanouts.core.exceptions import ValidationError
from cleanouts.models.booking import Booking
from cleanouts.models.notification import Notification
from cleanouts.models.payment import Payment
from cleanouts.services.payments import StripeGateway, to_minor_units

from conftest import make_booking


def _intent(client, booking_id, headers):
    return client.post("/api/v1/payments/create-intent", json={"bookingId": str(booking_id)}, headers=headers)


def _event(event_type, obj, event_id="evt_1"):
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


def _send(client, payload, signature="valid"):
    return client.post(
        "/api/v1/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


@pytest.fixture
def booking(db, service, customer):
    return make_booking(db, service, customer)


# ---------------------------------------------------------------------------
# Intent creation
# ---------------------------------------------------------------------------


def test_create_intent_stores_id_and_marks_processing(client, db, booking, auth_headers, gateway):
    resp = _intent(client, booking.id, auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["amount"] == 13000
    assert body["currency"] == "usd"
    assert body["clientSecret"].startswith(body["paymentIntentId"])

    db.refresh(booking)
    assert booking.payment_intent_id == body["paymentIntentId"]
    assert booking.payment_status == "processing"
    assert gateway.created[0][3]["bookingId"] == str(booking.id)


def test_repeat_calls_reuse_the_same_intent(client, booking, auth_headers, gateway):
    first = _intent(client, booking.id, auth_headers).json()
    second = _intent(client, booking.id, auth_headers).json()
    assert first["paymentIntentId"] == second["paymentIntentId"]
    assert len(gateway.created) == 1


def test_succeeded_intent_is_already_paid(client, booking, auth_headers, gateway):
    intent_id = _intent(client, booking.id, auth_headers).json()["paymentIntentId"]
    gateway.set_status(intent_id, "succeeded")

    resp = _intent(client, booking.id, auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "ALREADY_PAID"


def test_canceled_intent_is_replaced(client, booking, auth_headers, gateway):
    first = _intent(client, booking.id, auth_headers).json()["paymentIntentId"]
    gateway.set_status(first, "canceled")
    second = _intent(client, booking.id, auth_headers).json()["paymentIntentId"]
    assert second != first


def test_unretrievable_intent_falls_through_to_new_one(client, booking, auth_headers, gateway):
    first = _intent(client, booking.id, auth_headers).json()["paymentIntentId"]
    gateway.fail_retrieve = True
    second = _intent(client, booking.id, auth_headers).json()["paymentIntentId"]
    assert second != first


def test_paid_or_cancelled_bookings_are_rejected(client, db, booking, auth_headers):
    booking.payment_status = "paid"
    db.commit()
    assert _intent(client, booking.id, auth_headers).json()["code"] == "ALREADY_PAID"

    booking.payment_status = "pending"
    booking.status = "cancelled"
    db.commit()
    assert _intent(client, booking.id, auth_headers).status_code == 400


def test_amount_below_minimum(client, db, booking, auth_headers):
    booking.total_price = Decimal("0.49")
    db.commit()
    resp = _intent(client, booking.id, auth_headers)
    assert resp.status_code == 400
    assert "minimum $0.50" in resp.json()["error"]


def test_cannot_pay_for_someone_elses_booking(client, db, service, admin, auth_headers):
    theirs = make_booking(db, service, admin)
    assert _intent(client, theirs.id, auth_headers).status_code == 404


def test_minor_units_round_half_up():
    assert to_minor_units(Decimal("130.00")) == 13000
    assert to_minor_units(Decimal("10.005")) == 1001


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


def test_bad_signature_is_400(client):
    resp = _send(client, _event("payment_intent.succeeded", {"id": "pi_x"}), signature="forged")
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_SIGNATURE"


def test_succeeded_marks_paid_and_confirms_once(client, db, booking, customer):
    obj = {
        "id": "pi_abc",
        "amount": 13000,
        "amount_received": 13000,
        "currency": "usd",
        "metadata": {"bookingId": str(booking.id)},
    }
    for _ in range(2):
        resp = _send(client, _event("payment_intent.succeeded", obj))
        assert resp.status_code == 200
        assert resp.json()["received"] is True

    db.refresh(booking)
    assert booking.payment_status == "paid"
    assert booking.status == "confirmed"
    assert booking.payment_intent_id == "pi_abc"

    payments = db.query(Payment).all()
    assert len(payments) == 1
    assert payments[0].amount == 13000
    assert payments[0].status == "paid"

    paid_notes = db.query(Notification).filter(
        Notification.user_id == customer.id, Notification.title == "Payment Successful"
    ).count()
    assert paid_notes == 1


def test_failure_never_overrides_paid(client, db, booking):
    booking.payment_status = "paid"
    booking.payment_intent_id = "pi_abc"
    db.commit()

    _send(client, _event("payment_intent.payment_failed", {"id": "pi_abc", "metadata": {}}))
    db.refresh(booking)
    assert booking.payment_status == "paid"


def test_failure_is_recorded_and_notified_once(client, db, booking, customer):
    booking.payment_intent_id = "pi_fail"
    booking.payment_status = "processing"
    db.commit()

    obj = {"id": "pi_fail", "amount": 13000, "currency": "usd", "metadata": {}}
    _send(client, _event("payment_intent.payment_failed", obj))
    _send(client, _event("payment_intent.payment_failed", obj))

    db.refresh(booking)
    assert booking.payment_status == "failed"
    assert db.query(Notification).filter(Notification.title == "Payment Failed").count() == 1


def test_canceled_intent_resets_payment_status(client, db, booking):
    booking.payment_intent_id = "pi_cxl"
    booking.payment_status = "processing"
    db.commit()

    _send(client, _event("payment_intent.canceled", {"id": "pi_cxl", "metadata": {}}))
    db.refresh(booking)
    assert booking.payment_status == "pending"


def test_charge_refunded(client, db, booking):
    booking.payment_intent_id = "pi_ref"
    booking.payment_status = "paid"
    db.add(Payment(booking_id=booking.id, stripe_payment_intent_id="pi_ref", amount=13000, status="paid"))
    db.commit()

    charge = {"id": "ch_1", "payment_intent": "pi_ref", "amount": 13000, "currency": "usd", "metadata": {}}
    resp = _send(client, _event("charge.refunded", charge))
    assert resp.status_code == 200

    db.refresh(booking)
    assert booking.payment_status == "refunded"
    assert db.query(Payment).one().status == "refunded"


def test_unknown_booking_and_event_types_are_acknowledged(client, db):
    resp = _send(client, _event("payment_intent.succeeded", {"id": "pi_nobody", "metadata": {}}))
    assert resp.status_code == 200

    resp = _send(client, _event("customer.created", {"id": "cus_1"}))
    assert resp.status_code == 200
    assert resp.json()["handled"] is False
    assert db.query(Booking).count() == 0


# ---------------------------------------------------------------------------
# Stripe signature verification
# ---------------------------------------------------------------------------


def _stripe_signature(payload, secret, timestamp=None):
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_stripe_gateway_verifies_signature():
    gateway = StripeGateway("sk_test", "whsec_unit")
    payload = _event("payment_intent.succeeded", {"id": "pi_1"})

    event = gateway.construct_event(payload.encode(), _stripe_signature(payload, "whsec_unit"))
    assert event["type"] == "payment_intent.succeeded"
    assert event["data"]["object"]["id"] == "pi_1"

    with pytest.raises(ValidationError):
        gateway.construct_event(payload.encode(), _stripe_signature(payload, "whsec_other"))
    with pytest.raises(ValidationError):
        gateway.construct_event(payload.encode(), None)
