"""Booking lifecycle, availability and payment rules.

Functions here mutate the session and leave the commit to the caller.
Rule violations raise :class:`BookingError`, which routes translate into a
JSON error response.
"""
from __future__ import annotations

from datetime import date, datetime, time

from flask import current_app

from . import notifications, payments
from .extensions import db
from .inputs import get_text
from .models import Booking, Payment, User, VendorService

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")

# Allowed forward moves; cancelled and completed are terminal.
TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"cancelled", "completed"}),
    "cancelled": frozenset(),
    "completed": frozenset(),
}

# What each participant may set. Admins may apply any allowed transition.
ROLE_TARGETS: dict[str, frozenset[str]] = {
    "customer": frozenset({"cancelled"}),
    "vendor": frozenset({"confirmed", "cancelled", "completed"}),
}

TIME_FORMATS = ("%H:%M", "%I:%M %p", "%H:%M:%S")


class BookingError(Exception):
    def __init__(self, error: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code


def parse_date(value) -> date:
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError) as exc:
        raise BookingError("invalid_payload", "date must be in YYYY-MM-DD format") from exc


def parse_time(value) -> time:
    text = str(value or "").strip().upper()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise BookingError("invalid_payload", "time must look like 14:30 or 2:30 PM")


def is_date_available(vendor_id: int, booking_date: date, exclude_booking_id: int | None = None) -> bool:
    """True when the vendor holds no non-cancelled booking on ``booking_date``."""
    query = Booking.query.filter(
        Booking.vendor_id == vendor_id,
        Booking.date == booking_date,
        Booking.status != "cancelled",
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.booking_id != exclude_booking_id)
    return query.first() is None


def booked_dates(vendor_id: int) -> list[date]:
    rows = (
        db.session.query(Booking.date)
        .filter(Booking.vendor_id == vendor_id, Booking.status != "cancelled")
        .distinct()
        .order_by(Booking.date)
        .all()
    )
    return [row[0] for row in rows]


def _load_vendor(vendor_id) -> User:
    try:
        vendor = db.session.get(User, int(vendor_id))
    except (TypeError, ValueError) as exc:
        raise BookingError("invalid_payload", "vendor_id must be an integer") from exc
    if vendor is None or vendor.role != "vendor":
        raise BookingError("not_found", "Vendor not found", 404)
    if not vendor.is_active:
        raise BookingError("vendor_unavailable", "This vendor is not accepting bookings", 409)
    return vendor


def _parse_amount(value, field: str = "amount_cents") -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError) as exc:
        raise BookingError("invalid_payload", f"{field} must be an integer") from exc
    return amount


def create_booking(customer: User, payload: dict) -> Booking:
    """Validate a booking request, enforce availability and stage the booking."""
    if payload.get("vendor_id") in (None, ""):
        raise BookingError("invalid_payload", "vendor_id, date, and time are required")
    if not payload.get("date") or not payload.get("time"):
        raise BookingError("invalid_payload", "vendor_id, date, and time are required")

    vendor = _load_vendor(payload["vendor_id"])
    if vendor.user_id == customer.user_id:
        raise BookingError("invalid_payload", "vendors cannot book themselves")

    booking_date = parse_date(payload["date"])
    booking_time = parse_time(payload["time"])
    if booking_date < date.today():
        raise BookingError("invalid_date", "Bookings cannot be made for past dates")

    service_name = get_text(payload, "service")
    service_id = payload.get("service_id")
    amount_cents = payload.get("amount_cents")

    if service_id not in (None, ""):
        listing = db.session.get(VendorService, _parse_amount(service_id, "service_id"))
        if listing is None or listing.vendor_id != vendor.user_id:
            raise BookingError("not_found", "Service not found for this vendor", 404)
        if not listing.is_approved:
            raise BookingError("service_unavailable", "This service is awaiting approval", 409)
        service_id = listing.service_id
        service_name = service_name or listing.name
        if amount_cents is None:
            amount_cents = listing.price_cents
    else:
        service_id = None
        service_name = service_name or vendor.business_type or ""

    if not service_name:
        raise BookingError("invalid_payload", "service or service_id is required")
    if amount_cents is None:
        raise BookingError("invalid_payload", "amount_cents is required when no service_id is given")
    amount_cents = _parse_amount(amount_cents)
    if amount_cents <= 0:
        raise BookingError("invalid_payload", "amount_cents must be greater than 0")

    if not is_date_available(vendor.user_id, booking_date):
        current_app.logger.info(
            "Rejected booking for vendor %s on %s: date already booked", vendor.user_id, booking_date
        )
        raise BookingError(
            "date_unavailable",
            "This date is already booked for this vendor. Please select another date.",
            409,
        )

    booking = Booking(
        customer_id=customer.user_id,
        vendor_id=vendor.user_id,
        service_id=service_id,
        service=service_name,
        date=booking_date,
        time=booking_time,
        notes=get_text(payload, "notes") or None,
        amount_cents=amount_cents,
        amount_paid_cents=0,
        status="pending",
        payment_status="unpaid",
    )
    booking.customer = customer
    booking.vendor = vendor
    db.session.add(booking)
    db.session.flush()

    notifications.booking_created(booking)
    return booking


def can_view(user: User, booking: Booking) -> bool:
    return user.is_admin or user.user_id in (booking.customer_id, booking.vendor_id)


def change_status(actor: User, booking: Booking, new_status: str) -> bool:
    """Apply a status transition. Returns False when nothing changed."""
    if new_status not in BOOKING_STATUSES:
        raise BookingError(
            "invalid_status",
            f"Status must be one of: {', '.join(BOOKING_STATUSES)}",
        )

    if not actor.is_admin:
        if actor.user_id == booking.vendor_id:
            allowed = ROLE_TARGETS["vendor"]
        elif actor.user_id == booking.customer_id:
            allowed = ROLE_TARGETS["customer"]
        else:
            raise BookingError("forbidden", "You are not a participant in this booking", 403)
        if new_status != booking.status and new_status not in allowed:
            raise BookingError("forbidden", f"You cannot mark this booking as {new_status}", 403)

    if new_status == booking.status:
        return False

    if new_status not in TRANSITIONS[booking.status]:
        current_app.logger.warning(
            "Refused booking %s transition %s -> %s", booking.booking_id, booking.status, new_status
        )
        raise BookingError(
            "invalid_transition",
            f"Cannot change a {booking.status} booking to {new_status}",
        )

    current_app.logger.info(
        "Booking %s: %s -> %s by user %s", booking.booking_id, booking.status, new_status, actor.user_id
    )
    booking.status = new_status
    notifications.booking_status_changed(booking)
    return True


def payment_status_for(amount_paid_cents: int, amount_cents: int) -> str:
    if amount_paid_cents <= 0:
        return "unpaid"
    if amount_paid_cents >= amount_cents:
        return "paid"
    return "partial"


def start_payment(payer: User, booking: Booking, payload: dict) -> Payment:
    """Validate a payment request and stage it as a ``pending`` Payment.

    The caller commits the pending row before :func:`settle_payment` charges
    the gateway.
    """
    if booking.customer_id != payer.user_id:
        raise BookingError("forbidden", "Only the customer who made this booking can pay for it", 403)
    if booking.status == "cancelled":
        raise BookingError("invalid_transition", "Cannot pay for a cancelled booking")
    if booking.payment_status == "paid":
        raise BookingError("already_paid", "This booking has already been paid in full", 409)

    method = get_text(payload, "method").lower()
    if not method:
        raise BookingError("invalid_payload", "amount_cents and method are required")

    amount_cents = payload.get("amount_cents")
    amount_cents = booking.balance_cents if amount_cents is None else _parse_amount(amount_cents)
    if amount_cents <= 0:
        raise BookingError("invalid_payload", "amount_cents must be greater than 0")
    if amount_cents > booking.balance_cents:
        raise BookingError(
            "overpayment",
            f"amount_cents exceeds the outstanding balance of {booking.balance_cents}",
        )

    try:
        payments.check_request(method, get_text(payload, "payment_token") or None)
    except payments.PaymentError as exc:
        raise BookingError(exc.error, exc.message, exc.status_code) from exc

    payment = Payment(
        booking_id=booking.booking_id,
        user_id=payer.user_id,
        amount_cents=amount_cents,
        method=method,
        status="pending",
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def settle_payment(payment: Payment, payment_token: str | None = None) -> str:
    """Charge a pending payment and apply it to its booking.

    Returns the gateway reference. A refused charge marks the payment
    ``failed`` and raises :class:`BookingError`; the booking is left as it was.
    """
    booking = payment.booking
    try:
        reference = payments.charge(
            payment.amount_cents,
            payment.method,
            payment_token=payment_token,
            metadata={
                "booking_id": str(booking.booking_id),
                "customer_id": str(payment.user_id),
                "payment_id": str(payment.payment_id),
            },
            idempotency_key=f"kasadya-payment-{payment.payment_id}",
        )
    except payments.PaymentError as exc:
        payment.status = "failed"
        current_app.logger.warning(
            "Payment %s for booking %s failed: %s", payment.payment_id, booking.booking_id, exc.error
        )
        raise BookingError(exc.error, exc.message, exc.status_code) from exc

    payment.reference = reference
    payment.status = "completed"

    booking.amount_paid_cents = (booking.amount_paid_cents or 0) + payment.amount_cents
    booking.payment_status = payment_status_for(booking.amount_paid_cents, booking.amount_cents)
    booking.payment_id = reference
    current_app.logger.info(
        "Booking %s: payment %s of %s via %s, now %s",
        booking.booking_id,
        reference,
        payment.amount_cents,
        payment.method,
        booking.payment_status,
    )

    notifications.payment_recorded(booking, payment.amount_cents, payment.method)
    return reference
