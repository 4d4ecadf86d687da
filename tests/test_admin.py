"""Tests for the admin moderation endpoints."""
from __future__ import annotations

import pytest

from kasadya.extensions import db
from kasadya.models import Booking, Notification, Payment, User, VendorService


def test_admin_routes_reject_non_admins(client, customer, vendor, auth_headers) -> None:
    for user in (customer, vendor):
        response = client.get("/admin/users", headers=auth_headers(user))
        assert response.status_code == 403


def test_admin_routes_require_token(client) -> None:
    assert client.get("/admin/stats").status_code == 401


def test_list_users_by_role(client, admin, customer, vendor, auth_headers) -> None:
    response = client.get("/admin/users?role=vendor", headers=auth_headers(admin))

    assert response.status_code == 200
    assert [u["id"] for u in response.get_json()["users"]] == [vendor.user_id]


def test_list_users_bad_role_400(client, admin, auth_headers) -> None:
    response = client.get("/admin/users?role=wizard", headers=auth_headers(admin))

    assert response.status_code == 400


def test_pending_users_excludes_admins_and_reviewed(client, admin, customer, make_user, auth_headers) -> None:
    make_user("vendor", is_verified=True, verification_status="approved")

    response = client.get("/admin/users/pending", headers=auth_headers(admin))

    assert [u["id"] for u in response.get_json()["users"]] == [customer.user_id]


def test_approve_user_notifies_and_clears_admin_alert(client, admin, auth_headers) -> None:
    registered = client.post(
        "/auth/register",
        json={"name": "New Vendor", "email": "new.vendor@example.com", "password": "pw12345!", "role": "vendor"},
    ).get_json()["user"]

    response = client.put(
        f"/admin/users/{registered['id']}/verify", json={"action": "approve"}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["is_verified"] is True
    assert user["verification_status"] == "approved"

    assert Notification.query.filter_by(user_id=registered["id"], title="Account verified").count() == 1
    db.session.expire_all()
    admin_alert = Notification.query.filter_by(user_id=admin.user_id, title="New user pending verification").one()
    assert admin_alert.is_read is True


def test_reject_user(client, admin, customer, auth_headers) -> None:
    response = client.put(
        f"/admin/users/{customer.user_id}/verify", json={"action": "reject"}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.get_json()["user"]["verification_status"] == "rejected"
    assert response.get_json()["user"]["is_verified"] is False


def test_verify_invalid_action_400(client, admin, customer, auth_headers) -> None:
    response = client.put(
        f"/admin/users/{customer.user_id}/verify", json={"action": "maybe"}, headers=auth_headers(admin)
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_action"


def test_verify_unknown_user_404(client, admin, auth_headers) -> None:
    response = client.put("/admin/users/999/verify", json={"action": "approve"}, headers=auth_headers(admin))

    assert response.status_code == 404


def test_deactivate_user_blocks_their_token(client, admin, customer, auth_headers) -> None:
    customer_headers = auth_headers(customer)

    response = client.put(
        f"/admin/users/{customer.user_id}/status", json={"is_active": False}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.get_json()["user"]["is_active"] is False
    assert client.get("/auth/me", headers=customer_headers).status_code == 401


def test_admin_cannot_deactivate_self(client, admin, auth_headers) -> None:
    response = client.put(
        f"/admin/users/{admin.user_id}/status", json={"is_active": False}, headers=auth_headers(admin)
    )

    assert response.status_code == 400


def test_status_requires_boolean(client, admin, customer, auth_headers) -> None:
    response = client.put(
        f"/admin/users/{customer.user_id}/status", json={"is_active": "no"}, headers=auth_headers(admin)
    )

    assert response.status_code == 400


@pytest.mark.parametrize("action, expected", [("approve", "approved"), ("reject", "rejected")])
def test_review_service(client, admin, vendor, auth_headers, action, expected) -> None:
    service = VendorService(vendor_id=vendor.user_id, name="Fog Machine", category="Effects", price_cents=50000)
    db.session.add(service)
    db.session.commit()

    response = client.put(
        f"/admin/services/{service.service_id}/review",
        json={"action": action, "admin_comments": "Looks fine"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.get_json()["service"]
    assert body["approval_status"] == expected
    assert body["admin_comments"] == "Looks fine"
    note = Notification.query.filter_by(user_id=vendor.user_id).one()
    assert note.title == f"Service {action}d"
    assert "Fog Machine" in note.message


def test_review_already_reviewed_service_400(client, admin, approved_service, auth_headers) -> None:
    response = client.put(
        f"/admin/services/{approved_service.service_id}/review",
        json={"action": "reject"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_status"


def test_list_services_by_status(client, admin, vendor, approved_service, auth_headers) -> None:
    db.session.add(VendorService(vendor_id=vendor.user_id, name="Fog Machine", category="Effects", price_cents=50000))
    db.session.commit()

    pending = client.get("/admin/services?status=pending", headers=auth_headers(admin)).get_json()
    everything = client.get("/admin/services", headers=auth_headers(admin)).get_json()

    assert [s["name"] for s in pending["services"]] == ["Fog Machine"]
    assert everything["total"] == 2


def test_admin_lists_all_bookings(client, admin, make_booking, make_user, auth_headers) -> None:
    make_booking()
    make_booking(vendor_user=make_user("vendor"))

    response = client.get("/admin/bookings", headers=auth_headers(admin))

    assert response.get_json()["total"] == 2


def test_admin_deletes_booking_and_payments(client, admin, customer, make_booking, auth_headers) -> None:
    booking = make_booking()
    booking_id = booking.booking_id
    client.post(f"/bookings/{booking_id}/payments", json={"method": "gcash"}, headers=auth_headers(customer))

    response = client.delete(f"/admin/bookings/{booking_id}", headers=auth_headers(admin))

    assert response.status_code == 200
    db.session.expire_all()
    assert db.session.get(Booking, booking_id) is None
    assert Payment.query.count() == 0
    assert Notification.query.filter_by(booking_id=booking_id).count() == 0
    assert Notification.query.filter_by(user_id=customer.user_id, notification_type="payment").count() == 1


def test_stats(client, admin, customer, vendor, make_booking, approved_service, auth_headers) -> None:
    booking = make_booking(status="confirmed")
    make_booking(status="cancelled")
    client.post(
        f"/bookings/{booking.booking_id}/payments",
        json={"method": "gcash", "amount_cents": 120000},
        headers=auth_headers(customer),
    )

    data = client.get("/admin/stats", headers=auth_headers(admin)).get_json()

    assert data["users"] == {"customer": 1, "vendor": 1, "admin": 1}
    assert data["pending_verifications"] == 2
    assert data["bookings"] == {"pending": 0, "confirmed": 1, "cancelled": 1, "completed": 0}
    assert data["pending_services"] == 0
    assert data["revenue_cents"] == 120000


def test_broadcast_to_role(client, admin, customer, vendor, make_user, auth_headers) -> None:
    make_user("customer", is_active=False)

    response = client.post(
        "/admin/notifications",
        json={"title": "Maintenance", "message": "Back at noon", "role": "customer"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    assert response.get_json()["recipients"] == 1
    assert Notification.query.filter_by(title="Maintenance").one().user_id == customer.user_id


def test_broadcast_requires_title_and_message(client, admin, auth_headers) -> None:
    response = client.post("/admin/notifications", json={"title": "Only title"}, headers=auth_headers(admin))

    assert response.status_code == 400
    assert Notification.query.count() == 0


def test_verify_non_string_action_400(client, admin, customer, auth_headers) -> None:
    response = client.put(
        f"/admin/users/{customer.user_id}/verify", json={"action": True}, headers=auth_headers(admin)
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
    db.session.expire_all()
    assert db.session.get(User, customer.user_id).verification_status == "pending"


def test_verification_clears_alert_for_every_admin(client, admin, make_user, auth_headers) -> None:
    other_admin = make_user("admin", name="Otto Admin")
    admin_ids = [admin.user_id, other_admin.user_id]
    registered = client.post(
        "/auth/register",
        json={"name": "Pat", "email": "pat@example.com", "password": "pw12345!", "role": "customer"},
    ).get_json()["user"]
    client.post(
        "/auth/register",
        json={"name": "Quinn", "email": "quinn@example.com", "password": "pw12345!", "role": "customer"},
    )

    response = client.put(
        f"/admin/users/{registered['id']}/verify", json={"action": "reject"}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    db.session.expire_all()
    alerts = Notification.query.filter(
        Notification.user_id.in_(admin_ids), Notification.title == "New user pending verification"
    ).all()
    assert len(alerts) == 4
    for alert in alerts:
        assert alert.is_read is (alert.related_user_id == registered["id"])
