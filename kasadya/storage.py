"""Whole-store snapshots keyed by the marketplace storage keys.

A snapshot is a single JSON document holding every collection in its
camelCase wire shape. Import replaces the store wholesale inside one
transaction; any malformed record rolls the session back and leaves the
previous state untouched.
"""
from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from .booking_service import BookingError, parse_time, payment_status_for
from .extensions import db
from .models import AuthAccount, Booking, Notification, Payment, User, VendorService, utc_now

STORAGE_KEYS = (
    "user",
    "users",
    "bookings",
    "notifications",
    "vendorServices",
    "vendorNotifications",
    "termsAccepted",
    "payments",
)


class StorageError(Exception):
    pass


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _user_record(user: User) -> dict[str, object]:
    return {
        "id": user.user_id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "phone": user.phone,
        "address": user.address,
        "businessType": user.business_type,
        "idType": user.id_type,
        "idNumber": user.id_number,
        "isVerified": bool(user.is_verified),
        "verificationStatus": user.verification_status,
        "isAdmin": user.is_admin,
        "isVendor": user.is_vendor,
        "isActive": bool(user.is_active),
        "createdAt": _iso(user.created_at),
        "lastLogin": _iso(user.auth_account.last_login_at) if user.auth_account else None,
    }


def _booking_record(booking: Booking) -> dict[str, object]:
    return {
        "id": booking.booking_id,
        "vendorId": booking.vendor_id,
        "vendorName": booking.vendor.name if booking.vendor else None,
        "customerId": booking.customer_id,
        "customerName": booking.customer.name if booking.customer else None,
        "serviceId": booking.service_id,
        "service": booking.service,
        "date": _iso(booking.date),
        "time": booking.time.strftime("%H:%M") if booking.time else None,
        "notes": booking.notes,
        "status": booking.status,
        "paymentStatus": booking.payment_status,
        "amountCents": booking.amount_cents,
        "amountPaidCents": booking.amount_paid_cents or 0,
        "paymentId": booking.payment_id,
        "createdAt": _iso(booking.created_at),
    }


def _notification_record(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.notification_id,
        "userId": notification.user_id,
        "bookingId": notification.booking_id,
        "relatedUserId": notification.related_user_id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.notification_type,
        "read": bool(notification.is_read),
        "createdAt": _iso(notification.created_at),
    }


def _service_record(service: VendorService) -> dict[str, object]:
    return {
        "id": service.service_id,
        "vendorId": service.vendor_id,
        "vendorName": service.vendor.name if service.vendor else None,
        "name": service.name,
        "description": service.description,
        "category": service.category,
        "priceCents": service.price_cents,
        "images": list(service.images or []),
        "isApproved": service.is_approved,
        "approvalStatus": service.approval_status,
        "adminComments": service.admin_comments or "",
        "createdAt": _iso(service.created_at),
    }


def _payment_record(payment: Payment) -> dict[str, object]:
    return {
        "id": payment.payment_id,
        "bookingId": payment.booking_id,
        "userId": payment.user_id,
        "amountCents": payment.amount_cents,
        "method": payment.method,
        "reference": payment.reference,
        "status": payment.status,
        "createdAt": _iso(payment.created_at),
    }


def export_snapshot(current_user: User | None = None) -> dict[str, object]:
    users = User.query.order_by(User.user_id).all()
    notifications = Notification.query.order_by(Notification.created_at.desc()).all()
    vendor_ids = {user.user_id for user in users if user.is_vendor}

    return {
        "user": _user_record(current_user) if current_user else None,
        "users": [_user_record(user) for user in users],
        "bookings": [_booking_record(b) for b in Booking.query.order_by(Booking.booking_id).all()],
        "notifications": [_notification_record(n) for n in notifications],
        "vendorServices": [
            _service_record(s) for s in VendorService.query.order_by(VendorService.service_id).all()
        ],
        "vendorNotifications": [
            _notification_record(n) for n in notifications if n.user_id in vendor_ids
        ],
        "termsAccepted": {
            str(user.user_id): _iso(user.terms_accepted_at) for user in users if user.terms_accepted_at
        },
        "payments": [_payment_record(p) for p in Payment.query.order_by(Payment.payment_id).all()],
    }


def _datetime(value):
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _collection(snapshot: dict, key: str, required: bool = True) -> list[dict]:
    if key not in snapshot:
        if required:
            raise StorageError(f"snapshot is missing '{key}'")
        return []
    records = snapshot[key]
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise StorageError(f"'{key}' must be a list of objects")
    return records


def _role(record: dict) -> str:
    return record.get("role") or ("admin" if record.get("isAdmin") else "customer")


def _check_users(records: list[dict]) -> None:
    # An import must leave at least one active admin.
    if not any(_role(r) == "admin" and r.get("isActive", True) for r in records):
        raise StorageError("'users' must include at least one active admin")


def _booking_amounts(record: dict) -> tuple[int, int, str]:
    amount_cents = int(record["amountCents"])
    paid_cents = int(record.get("amountPaidCents") or 0)
    if amount_cents <= 0:
        raise StorageError(f"booking {record['id']}: amountCents must be greater than 0")
    if paid_cents < 0 or paid_cents > amount_cents:
        raise StorageError(f"booking {record['id']}: amountPaidCents must be between 0 and amountCents")
    return amount_cents, paid_cents, payment_status_for(paid_cents, amount_cents)


def _load_users(records: list[dict], terms: dict, credentials: dict[str, tuple]) -> None:
    for record in records:
        email = str(record["email"]).strip().lower()
        user = User(
            user_id=int(record["id"]),
            name=record["name"],
            email=email,
            role=_role(record),
            phone=record.get("phone"),
            address=record.get("address"),
            business_type=record.get("businessType"),
            id_type=record.get("idType"),
            id_number=record.get("idNumber"),
            is_verified=bool(record.get("isVerified", False)),
            verification_status=record.get("verificationStatus")
            or ("approved" if record.get("isVerified") else "pending"),
            is_active=bool(record.get("isActive", True)),
            terms_accepted_at=_datetime(terms.get(str(record["id"]))),
            created_at=_datetime(record.get("createdAt")) or utc_now(),
        )
        db.session.add(user)

        if record.get("password"):
            password_hash = generate_password_hash(record["password"])
            last_login = _datetime(record.get("lastLogin"))
        elif email in credentials:
            password_hash, last_login = credentials[email]
        else:
            continue
        db.session.add(
            AuthAccount(user_id=user.user_id, password_hash=password_hash, last_login_at=last_login)
        )


def import_snapshot(snapshot) -> dict[str, int]:
    """Replace the store with ``snapshot``; returns per-collection counts."""
    if not isinstance(snapshot, dict):
        raise StorageError("snapshot must be a JSON object")

    try:
        users = _collection(snapshot, "users")
        _check_users(users)
        bookings = _collection(snapshot, "bookings")
        services = _collection(snapshot, "vendorServices")
        payment_rows = _collection(snapshot, "payments", required=False)
        merged = {}
        vendor_notifications = _collection(snapshot, "vendorNotifications", required=False)
        for record in vendor_notifications + _collection(snapshot, "notifications"):
            merged[int(record["id"])] = record
        if "termsAccepted" not in snapshot:
            raise StorageError("snapshot is missing 'termsAccepted'")
        terms = snapshot["termsAccepted"] or {}
        if not isinstance(terms, dict):
            raise StorageError("'termsAccepted' must be an object")

        booking_rows = []
        held_dates = set()
        for record in bookings:
            amount_cents, paid_cents, payment_status = _booking_amounts(record)
            booking = Booking(
                booking_id=int(record["id"]),
                customer_id=int(record["customerId"]),
                vendor_id=int(record["vendorId"]),
                service_id=record.get("serviceId"),
                service=record["service"],
                date=date.fromisoformat(record["date"]),
                time=parse_time(record["time"]),
                notes=record.get("notes"),
                status=record.get("status") or "pending",
                payment_status=payment_status,
                amount_cents=amount_cents,
                amount_paid_cents=paid_cents,
                payment_id=record.get("paymentId"),
                created_at=_datetime(record.get("createdAt")) or utc_now(),
            )
            if booking.status != "cancelled":
                if (booking.vendor_id, booking.date) in held_dates:
                    raise StorageError(
                        f"booking {booking.booking_id}: vendor {booking.vendor_id} is already booked on {booking.date}"
                    )
                held_dates.add((booking.vendor_id, booking.date))
            booking_rows.append(booking)

        # Keep existing logins for users that survive the import by email.
        credentials = {
            account.user.email: (account.password_hash, account.last_login_at)
            for account in AuthAccount.query.all()
            if account.user is not None
        }

        Payment.query.delete()
        Notification.query.delete()
        Booking.query.delete()
        VendorService.query.delete()
        AuthAccount.query.delete()
        User.query.delete()
        db.session.flush()
        db.session.expunge_all()

        _load_users(users, terms, credentials)
        db.session.flush()

        for record in services:
            db.session.add(
                VendorService(
                    service_id=int(record["id"]),
                    vendor_id=int(record["vendorId"]),
                    name=record["name"],
                    description=record.get("description"),
                    category=record.get("category"),
                    price_cents=int(record["priceCents"]),
                    images=list(record.get("images") or []),
                    approval_status=record.get("approvalStatus")
                    or ("approved" if record.get("isApproved") else "pending"),
                    admin_comments=record.get("adminComments") or None,
                    created_at=_datetime(record.get("createdAt")) or utc_now(),
                )
            )
        db.session.flush()

        db.session.add_all(booking_rows)
        db.session.flush()

        for record in payment_rows:
            db.session.add(
                Payment(
                    payment_id=int(record["id"]),
                    booking_id=int(record["bookingId"]),
                    user_id=int(record["userId"]),
                    amount_cents=int(record["amountCents"]),
                    method=record["method"],
                    reference=record.get("reference"),
                    status=record.get("status") or "completed",
                    created_at=_datetime(record.get("createdAt")) or utc_now(),
                )
            )

        for notification_id, record in merged.items():
            db.session.add(
                Notification(
                    notification_id=notification_id,
                    user_id=int(record["userId"]),
                    booking_id=record.get("bookingId"),
                    related_user_id=record.get("relatedUserId"),
                    title=record["title"],
                    message=record["message"],
                    notification_type=record.get("type") or "system",
                    is_read=bool(record.get("read", False)),
                    created_at=_datetime(record.get("createdAt")) or utc_now(),
                )
            )

        db.session.commit()
    except (KeyError, TypeError, ValueError, LookupError, BookingError, StorageError, SQLAlchemyError) as exc:
        db.session.rollback()
        current_app.logger.warning("Rejected storage snapshot: %s", exc)
        if isinstance(exc, StorageError):
            raise
        raise StorageError(f"invalid snapshot: {exc}") from exc

    counts = {
        "users": len(users),
        "bookings": len(bookings),
        "notifications": len(merged),
        "vendorServices": len(services),
        "payments": len(payment_rows),
    }
    current_app.logger.info("Imported storage snapshot: %s", counts)
    return counts
