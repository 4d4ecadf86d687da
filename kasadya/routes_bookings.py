"""Booking and payment routes."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from . import booking_service
from .auth import login_required
from .booking_service import BookingError
from .extensions import db
from .inputs import get_text, json_body
from .models import Booking, Payment

bp_bookings = Blueprint("api_bookings", __name__)


def _booking_error(exc: BookingError):
    return jsonify({"error": exc.error, "message": exc.message}), exc.status_code


def _load_visible_booking(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return None, (jsonify({"error": "not_found", "message": "Booking not found"}), 404)
    if not booking_service.can_view(g.current_user, booking):
        return None, (jsonify({"error": "forbidden", "message": "You cannot access this booking"}), 403)
    return booking, None


@bp_bookings.post("/bookings")
@login_required("customer")
def create_booking() -> tuple[dict[str, object], int]:
    """Create a booking request for a vendor on a date.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            vendor_id:
              type: integer
            service_id:
              type: integer
            service:
              type: string
            date:
              type: string
              format: date
            time:
              type: string
              example: "14:30"
            amount_cents:
              type: integer
            notes:
              type: string
          required:
            - vendor_id
            - date
            - time
    responses:
      201:
        description: Booking created as pending/unpaid
      400:
        description: Invalid payload or past date
      404:
        description: Vendor or service not found
      409:
        description: Date already booked for this vendor
      500:
        description: Database error
    """
    payload = json_body()

    try:
        booking = booking_service.create_booking(g.current_user, payload)
        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create booking", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info(
        "Booking %s created for vendor %s on %s", booking.booking_id, booking.vendor_id, booking.date
    )
    return jsonify({
        "message": "Your booking request has been sent to the vendor.",
        "booking": booking.to_dict(),
    }), 201


@bp_bookings.get("/bookings")
@login_required()
def list_bookings() -> tuple[dict[str, object], int]:
    """List the caller's bookings.

    Customers see bookings they made, vendors see bookings addressed to them,
    admins see everything. ``?date=`` and ``?status=`` narrow the result.
    """
    user = g.current_user
    try:
        query = Booking.query
        if user.role == "customer":
            query = query.filter(Booking.customer_id == user.user_id)
        elif user.role == "vendor":
            query = query.filter(Booking.vendor_id == user.user_id)

        date_arg = (request.args.get("date") or "").strip()
        if date_arg:
            query = query.filter(Booking.date == booking_service.parse_date(date_arg))

        status = (request.args.get("status") or "").strip().lower()
        if status:
            if status not in booking_service.BOOKING_STATUSES:
                return jsonify({"error": "invalid_parameters", "message": "unknown status filter"}), 400
            query = query.filter(Booking.status == status)

        bookings = query.order_by(Booking.date.asc(), Booking.time.asc()).all()
        return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200

    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch bookings", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_bookings.get("/bookings/<int:booking_id>")
@login_required()
def get_booking(booking_id: int) -> tuple[dict[str, object], int]:
    booking, error = _load_visible_booking(booking_id)
    if error:
        return error
    return jsonify({"booking": booking.to_dict()}), 200


@bp_bookings.put("/bookings/<int:booking_id>/status")
@login_required()
def update_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    """Move a booking through its lifecycle.
    ---
    tags:
      - Bookings
    parameters:
      - in: path
        name: booking_id
        required: true
        type: integer
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [pending, confirmed, cancelled, completed]
    responses:
      200:
        description: Booking status updated (or unchanged)
      400:
        description: Invalid status or transition
      403:
        description: Caller may not set this status
      404:
        description: Booking not found
      500:
        description: Database error
    """
    booking, error = _load_visible_booking(booking_id)
    if error:
        return error

    payload = json_body()
    new_status = get_text(payload, "status").lower()
    if not new_status:
        return jsonify({"error": "invalid_input", "message": "status is required"}), 400

    try:
        changed = booking_service.change_status(g.current_user, booking, new_status)
        if changed:
            db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update booking status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"booking": booking.to_dict(), "changed": changed}), 200


@bp_bookings.post("/bookings/<int:booking_id>/payments")
@login_required("customer")
def pay_booking(booking_id: int) -> tuple[dict[str, object], int]:
    """Pay all or part of a booking's outstanding balance.
    ---
    tags:
      - Payments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            amount_cents:
              type: integer
              description: Defaults to the outstanding balance
            method:
              type: string
              enum: [gcash, maya, bank, cash, card]
            payment_token:
              type: string
              description: Stripe payment method id, card payments only
          required:
            - method
    responses:
      201:
        description: Payment recorded
      400:
        description: Invalid amount, method, or cancelled booking
      402:
        description: Card declined by the gateway
      403:
        description: Not the booking's customer
      409:
        description: Booking already paid
      502:
        description: Payment gateway error
      503:
        description: Payments disabled
    """
    booking, error = _load_visible_booking(booking_id)
    if error:
        return error

    payload = json_body()

    try:
        payment = booking_service.start_payment(g.current_user, booking, payload)
        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    payment_id = payment.payment_id
    reference = None
    try:
        reference = booking_service.settle_payment(payment, get_text(payload, "payment_token") or None)
        db.session.commit()
    except BookingError as exc:
        # Keep the failed attempt on record
        try:
            db.session.commit()
        except SQLAlchemyError as commit_exc:
            db.session.rollback()
            current_app.logger.exception("Failed to mark payment %s as failed", payment_id, exc_info=commit_exc)
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Payment %s for booking %s could not be saved (gateway reference %s)",
            payment_id,
            booking_id,
            reference,
            exc_info=exc,
        )
        return jsonify({"error": "database_error"}), 500

    return jsonify({"payment": payment.to_dict(), "booking": booking.to_dict()}), 201


@bp_bookings.get("/bookings/<int:booking_id>/payments")
@login_required()
def list_booking_payments(booking_id: int) -> tuple[dict[str, object], int]:
    booking, error = _load_visible_booking(booking_id)
    if error:
        return error

    payments = (
        Payment.query.filter_by(booking_id=booking.booking_id)
        .order_by(Payment.created_at.asc())
        .all()
    )
    return jsonify({
        "booking_id": booking.booking_id,
        "payment_status": booking.payment_status,
        "amount_paid_cents": booking.amount_paid_cents or 0,
        "balance_cents": booking.balance_cents,
        "payments": [p.to_dict() for p in payments],
    }), 200
