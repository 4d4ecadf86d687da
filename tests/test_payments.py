"""Tests for paying bookings: partial payments, limits and the card gateway."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from kasadya import payments
from kasadya.extensions import db
from kasadya.models import Booking, Notification, Payment


def _pay(client, headers, booking_id, **payload):
    return client.post(f"/bookings/{booking_id}/payments", json=payload, headers=headers)


def test_partial_then_full_payment(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking(status="confirmed", amount_cents=500000)
    headers = auth_headers(customer)

    first = _pay(client, headers, booking.booking_id, amount_cents=200000, method="gcash")
    assert first.status_code == 201
    data = first.get_json()
    assert data["booking"]["payment_status"] == "partial"
    assert data["booking"]["balance_cents"] == 300000
    assert data["payment"]["reference"].startswith("payment-")

    second = _pay(client, headers, booking.booking_id, method="maya")
    assert second.status_code == 201
    data = second.get_json()
    assert data["payment"]["amount_cents"] == 300000
    assert data["booking"]["payment_status"] == "paid"
    assert data["booking"]["amount_paid_cents"] == 500000
    assert data["booking"]["payment_id"] == data["payment"]["reference"]

    history = client.get(f"/bookings/{booking.booking_id}/payments", headers=headers).get_json()
    assert [p["amount_cents"] for p in history["payments"]] == [200000, 300000]
    assert history["balance_cents"] == 0


def test_payment_on_pending_booking_allowed(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="cash")

    assert response.status_code == 201
    assert response.get_json()["booking"]["status"] == "pending"


def test_payment_notifies_both_parties(client, customer, vendor, make_booking, auth_headers) -> None:
    booking = make_booking()

    _pay(client, auth_headers(customer), booking.booking_id, amount_cents=100000, method="bank")

    rows = Notification.query.filter_by(booking_id=booking.booking_id, notification_type="payment").all()
    titles = {n.user_id: n.title for n in rows}
    assert titles == {customer.user_id: "Payment successful", vendor.user_id: "Payment received"}
    assert any("₱1,000.00" in n.message for n in rows)


def test_paid_booking_rejects_more_payments_409(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking()
    headers = auth_headers(customer)
    _pay(client, headers, booking.booking_id, method="gcash")

    response = _pay(client, headers, booking.booking_id, amount_cents=100, method="gcash")

    assert response.status_code == 409
    assert response.get_json()["error"] == "already_paid"


def test_overpayment_400(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking(amount_cents=500000)

    response = _pay(client, auth_headers(customer), booking.booking_id, amount_cents=500001, method="gcash")

    assert response.status_code == 400
    assert response.get_json()["error"] == "overpayment"
    assert Payment.query.count() == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"amount_cents": 0, "method": "gcash"},
        {"amount_cents": "lots", "method": "gcash"},
        {"amount_cents": 100},
        {"amount_cents": 100, "method": "bitcoin"},
    ],
)
def test_invalid_payment_payload_400(client, customer, make_booking, auth_headers, payload) -> None:
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, **payload)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_cancelled_booking_cannot_be_paid(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking(status="cancelled")

    response = _pay(client, auth_headers(customer), booking.booking_id, method="gcash")

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_transition"


def test_only_booking_customer_may_pay(client, make_booking, make_user, auth_headers) -> None:
    booking = make_booking()
    other_customer = make_user("customer")

    response = _pay(client, auth_headers(other_customer), booking.booking_id, method="gcash")

    assert response.status_code == 403


def test_vendor_cannot_pay_403(client, vendor, make_booking, auth_headers) -> None:
    booking = make_booking()

    response = _pay(client, auth_headers(vendor), booking.booking_id, method="gcash")

    assert response.status_code == 403


def test_payments_disabled_503(app, client, customer, make_booking, auth_headers) -> None:
    app.config["ENABLE_PAYMENTS"] = False
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="gcash")

    assert response.status_code == 503
    assert response.get_json()["error"] == "payments_unavailable"
    db.session.expire_all()
    assert db.session.get(Booking, booking.booking_id).payment_status == "unpaid"


class FakeStripeError(Exception):
    pass


@pytest.fixture
def mock_stripe(app, monkeypatch):
    app.config["STRIPE_SECRET_KEY"] = "sk_test_dummy"
    fake = MagicMock()
    fake.error.StripeError = FakeStripeError
    monkeypatch.setattr(payments, "stripe", fake)
    return fake


def test_card_payment_charges_stripe(client, customer, make_booking, auth_headers, mock_stripe) -> None:
    mock_stripe.PaymentIntent.create.return_value = MagicMock(id="pi_123", status="succeeded")
    booking = make_booking(amount_cents=250000)

    response = _pay(client, auth_headers(customer), booking.booking_id, method="card", payment_token="pm_card_visa")

    assert response.status_code == 201
    assert response.get_json()["payment"]["reference"] == "pi_123"
    kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
    assert kwargs["amount"] == 250000
    assert kwargs["currency"] == "php"
    assert kwargs["payment_method"] == "pm_card_visa"
    assert kwargs["metadata"]["booking_id"] == str(booking.booking_id)
    payment_id = response.get_json()["payment"]["id"]
    assert kwargs["idempotency_key"] == f"kasadya-payment-{payment_id}"


def test_card_payment_requires_token(client, customer, make_booking, auth_headers, mock_stripe) -> None:
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="card")

    assert response.status_code == 400
    mock_stripe.PaymentIntent.create.assert_not_called()


def test_card_gateway_error_502(client, customer, make_booking, auth_headers, mock_stripe) -> None:
    mock_stripe.PaymentIntent.create.side_effect = FakeStripeError("card network down")
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="card", payment_token="pm_x")

    assert response.status_code == 502
    assert response.get_json()["error"] == "payment_error"
    db.session.expire_all()
    assert [p.status for p in Payment.query.all()] == ["failed"]
    assert db.session.get(Booking, booking.booking_id).payment_status == "unpaid"


def test_card_declined_402(client, customer, make_booking, auth_headers, mock_stripe) -> None:
    mock_stripe.PaymentIntent.create.return_value = MagicMock(id="pi_9", status="requires_action")
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="card", payment_token="pm_x")

    assert response.status_code == 402
    assert response.get_json()["error"] == "payment_declined"


def test_card_without_stripe_key_is_simulated(client, customer, make_booking, auth_headers) -> None:
    booking = make_booking()

    response = _pay(client, auth_headers(customer), booking.booking_id, method="card")

    assert response.status_code == 201
    assert response.get_json()["payment"]["reference"].startswith("payment-")


def test_card_charge_is_traceable_when_commit_fails(
    client, customer, make_booking, auth_headers, mock_stripe, monkeypatch, caplog
) -> None:
    mock_stripe.PaymentIntent.create.return_value = MagicMock(id="pi_123", status="succeeded")
    booking = make_booking(amount_cents=250000)
    booking_id = booking.booking_id
    real_commit = db.session.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] > 1:
            raise OperationalError("COMMIT", None, Exception("disk I/O error"))
        real_commit()

    monkeypatch.setattr(db.session, "commit", flaky_commit)

    response = _pay(client, auth_headers(customer), booking_id, method="card", payment_token="pm_card_visa")

    assert response.status_code == 500
    assert response.get_json()["error"] == "database_error"
    assert "pi_123" in caplog.text
    db.session.expire_all()
    payment = Payment.query.one()
    assert payment.status == "pending"
    assert payment.amount_cents == 250000
    assert db.session.get(Booking, booking_id).amount_paid_cents == 0
