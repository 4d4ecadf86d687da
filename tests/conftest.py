"""pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from datetime import date, time, timedelta
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from werkzeug.security import generate_password_hash

from kasadya import create_app
from kasadya.auth import build_token
from kasadya.config import TestingConfig
from kasadya.extensions import db
from kasadya.models import AuthAccount, Booking, User, VendorService

DEFAULT_PASSWORD = "Secret123!"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(role: str = "customer", *, name: str | None = None, email: str | None = None,
                   password: str = DEFAULT_PASSWORD, **fields) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@example.com",
            role=role,
            **fields,
        )
        db.session.add(user)
        db.session.flush()
        db.session.add(AuthAccount(user_id=user.user_id, password_hash=generate_password_hash(password)))
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {build_token(user)}"}

    return _auth_headers


@pytest.fixture
def customer(make_user):
    return make_user("customer", name="Carla Customer")


@pytest.fixture
def vendor(make_user):
    return make_user("vendor", name="Lights & Sounds Co.", business_type="Sound System")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Ada Admin", is_verified=True, verification_status="approved")


@pytest.fixture
def future_date() -> date:
    return date.today() + timedelta(days=30)


@pytest.fixture
def approved_service(vendor):
    service = VendorService(
        vendor_id=vendor.user_id,
        name="Wedding Sound Package",
        category="Sound System",
        price_cents=1500000,
        approval_status="approved",
    )
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def make_booking(customer, vendor, future_date):
    def _make_booking(*, on: date | None = None, status: str = "pending", amount_cents: int = 500000,
                      customer_user: User | None = None, vendor_user: User | None = None) -> Booking:
        booking = Booking(
            customer_id=(customer_user or customer).user_id,
            vendor_id=(vendor_user or vendor).user_id,
            service="Event Lights",
            date=on or future_date,
            time=time(14, 0),
            amount_cents=amount_cents,
            amount_paid_cents=0,
            status=status,
            payment_status="unpaid",
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    return _make_booking
