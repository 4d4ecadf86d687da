"""Database models for the Kasadya marketplace backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "customer",
            "vendor",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="customer",
    )
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    business_type = db.Column(db.String(100))
    id_type = db.Column(
        db.Enum(
            "national_id",
            "passport",
            "drivers_license",
            name="user_id_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=True,
    )
    id_number = db.Column(db.String(100))
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "rejected",
            name="user_verification_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
    )
    # Users are never deleted; moderation flips this flag instead.
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    terms_accepted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    auth_account = db.relationship(
        "AuthAccount", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    services = db.relationship("VendorService", back_populates="vendor", lazy="dynamic")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_vendor(self) -> bool:
        return self.role == "vendor"

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
        }

    def to_dict(self) -> dict[str, object]:
        data = self.to_dict_basic()
        data.update(
            {
                "address": self.address,
                "business_type": self.business_type,
                "id_type": self.id_type,
                "id_number": self.id_number,
                "is_verified": bool(self.is_verified),
                "verification_status": self.verification_status,
                "is_active": bool(self.is_active),
                "is_admin": self.is_admin,
                "is_vendor": self.is_vendor,
                "terms_accepted": self.terms_accepted_at is not None,
                "terms_accepted_at": _iso(self.terms_accepted_at),
                "last_login_at": _iso(self.auth_account.last_login_at) if self.auth_account else None,
                "created_at": _iso(self.created_at),
            }
        )
        return data


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class VendorService(db.Model):
    """Service listing submitted by a vendor and gated by admin approval."""

    __tablename__ = "vendor_services"

    service_id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    price_cents = db.Column(db.Integer, nullable=False)
    images = db.Column(db.JSON, nullable=True, default=list)
    approval_status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "rejected",
            name="service_approval_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
    )
    admin_comments = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    vendor = db.relationship("User", back_populates="services")

    @property
    def is_approved(self) -> bool:
        return self.approval_status == "approved"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "business_type": self.vendor.business_type if self.vendor else None,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "price": self.price_cents / 100.0,
            "images": list(self.images or []),
            "approval_status": self.approval_status,
            "is_approved": self.is_approved,
            "admin_comments": self.admin_comments,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Booking(db.Model):
    """A customer's reservation of a vendor on a given date."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    service_id = db.Column(
        db.Integer, db.ForeignKey("vendor_services.service_id", ondelete="SET NULL"), nullable=True
    )
    service = db.Column(db.String(150), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    time = db.Column(db.Time, nullable=False)
    notes = db.Column(db.Text)
    amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.Enum(
            "pending",
            "confirmed",
            "cancelled",
            "completed",
            name="booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
    )
    payment_status = db.Column(
        db.Enum(
            "unpaid",
            "partial",
            "paid",
            name="booking_payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="unpaid",
    )
    payment_id = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    customer = db.relationship("User", foreign_keys=[customer_id])
    vendor = db.relationship("User", foreign_keys=[vendor_id])
    vendor_service = db.relationship("VendorService")
    payments = db.relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
    )

    @property
    def balance_cents(self) -> int:
        return max(0, self.amount_cents - (self.amount_paid_cents or 0))

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.booking_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "service_id": self.service_id,
            "service": self.service,
            "date": _iso(self.date),
            "time": self.time.strftime("%H:%M") if self.time else None,
            "notes": self.notes,
            "amount_cents": self.amount_cents,
            "amount": self.amount_cents / 100.0,
            "amount_paid_cents": self.amount_paid_cents or 0,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_id": self.payment_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Payment(db.Model):
    """A single (possibly partial) payment against a booking."""

    __tablename__ = "payments"

    payment_id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.booking_id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(
        db.Enum(
            "gcash",
            "maya",
            "bank",
            "cash",
            "card",
            name="payment_method",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    # Gateway identifier (mock reference or Stripe payment intent id), set once charged
    reference = db.Column(db.String(255), nullable=True, unique=True)
    status = db.Column(db.String(50), nullable=False, default="pending")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    booking = db.relationship("Booking", back_populates="payments")
    user = db.relationship("User")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.payment_id,
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "amount": self.amount_cents / 100.0,
            "method": self.method,
            "reference": self.reference,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.booking_id", ondelete="SET NULL"), nullable=True
    )
    # User the notification is about, e.g. the account awaiting verification
    related_user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True
    )
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(
        db.Enum(
            "booking",
            "payment",
            "system",
            name="notification_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.notification_id,
            "user_id": self.user_id,
            "booking_id": self.booking_id,
            "related_user_id": self.related_user_id,
            "title": self.title,
            "message": self.message,
            "notification_type": self.notification_type,
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
        }
