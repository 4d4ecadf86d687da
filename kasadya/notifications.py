"""Notification fan-out helpers.

Helpers add rows to the current session only; callers own the commit so a
notification is persisted together with the change that caused it.
"""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from .extensions import db
from .models import Booking, Notification, User

MARKETPLACE_NAME = "Kasadya Marketplace"


def notify(
    user_id: int,
    title: str,
    message: str,
    notification_type: str = "system",
    booking_id: int | None = None,
    related_user_id: int | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        booking_id=booking_id,
        related_user_id=related_user_id,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.session.add(notification)
    return notification


def notify_many(
    user_ids: Iterable[int],
    title: str,
    message: str,
    notification_type: str = "system",
    booking_id: int | None = None,
    related_user_id: int | None = None,
) -> list[Notification]:
    seen: set[int] = set()
    created = []
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        created.append(notify(user_id, title, message, notification_type, booking_id, related_user_id))
    return created


def notify_admins(title: str, message: str, related_user_id: int | None = None) -> list[Notification]:
    admin_ids = [
        admin.user_id
        for admin in User.query.filter(User.role == "admin", User.is_active.is_(True)).all()
    ]
    return notify_many(admin_ids, title, message, "system", related_user_id=related_user_id)


def mark_admin_alerts_read(related_user_id: int) -> int:
    """Mark every admin's unread alerts about ``related_user_id`` as read."""
    admin_ids = select(User.user_id).where(User.role == "admin")
    return Notification.query.filter(
        Notification.related_user_id == related_user_id,
        Notification.user_id.in_(admin_ids),
        Notification.is_read.is_(False),
    ).update({"is_read": True}, synchronize_session=False)


def _when(booking: Booking) -> str:
    return f"{booking.date.strftime('%B %d, %Y')} at {booking.time.strftime('%I:%M %p')}"


def booking_created(booking: Booking) -> list[Notification]:
    vendor_name = booking.vendor.name if booking.vendor else "the vendor"
    customer_name = booking.customer.name if booking.customer else "A customer"
    return [
        notify(
            booking.customer_id,
            "Booking created",
            f"Your booking request for {booking.service} with {vendor_name} on {_when(booking)} has been sent to the vendor.",
            "booking",
            booking.booking_id,
        ),
        notify(
            booking.vendor_id,
            "New booking request",
            f"{customer_name} requested {booking.service} on {_when(booking)}.",
            "booking",
            booking.booking_id,
        ),
    ]


def booking_status_changed(booking: Booking) -> list[Notification]:
    return notify_many(
        [booking.customer_id, booking.vendor_id],
        "Booking updated",
        f"Booking #{booking.booking_id} for {booking.service} on {_when(booking)} is now {booking.status}.",
        "booking",
        booking.booking_id,
    )


def payment_recorded(booking: Booking, amount_cents: int, method: str) -> list[Notification]:
    amount = f"₱{amount_cents / 100:,.2f}"
    customer_name = booking.customer.name if booking.customer else "The customer"
    return [
        notify(
            booking.customer_id,
            "Payment successful",
            f"Your {method} payment of {amount} for booking #{booking.booking_id} was processed successfully.",
            "payment",
            booking.booking_id,
        ),
        notify(
            booking.vendor_id,
            "Payment received",
            f"{customer_name} paid {amount} for booking #{booking.booking_id} ({booking.payment_status}).",
            "payment",
            booking.booking_id,
        ),
    ]
