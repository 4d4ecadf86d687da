"""HTTP routes for the Kasadya marketplace backend."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import booking_service, notifications
from .auth import build_token, login_required
from .extensions import db
from .inputs import InvalidInput, get_text, json_body
from .models import AuthAccount, User, VendorService

bp = Blueprint("api", __name__)

REGISTRABLE_ROLES = ("customer", "vendor")
ID_TYPES = ("national_id", "passport", "drivers_license")


def register_routes(app: Flask) -> None:
    from .routes_admin import bp_admin
    from .routes_bookings import bp_bookings
    from .routes_notifications import bp_notifications
    from .routes_services import bp_services

    app.register_blueprint(bp)
    app.register_blueprint(bp_bookings)
    app.register_blueprint(bp_services)
    app.register_blueprint(bp_notifications)
    app.register_blueprint(bp_admin)


@bp.app_errorhandler(InvalidInput)
def handle_invalid_input(exc: InvalidInput) -> tuple[dict[str, str], int]:
    current_app.logger.warning("Rejected request body: %s", exc)
    return jsonify({"error": "invalid_payload", "message": str(exc)}), 400


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- BEGIN: Authentication ---

@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a new customer or vendor.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            email:
              type: string
            password:
              type: string
            role:
              type: string
              enum: [customer, vendor]
            id_type:
              type: string
              enum: [national_id, passport, drivers_license]
            id_number:
              type: string
          required:
            - name
            - email
            - password
    responses:
      201:
        description: User registered, token issued
      400:
        description: Invalid payload
      409:
        description: Email already in use
      500:
        description: Server error
    """
    payload = json_body()

    name = get_text(payload, "name")
    email = get_text(payload, "email").lower()
    password = get_text(payload, "password", strip=False)
    role = (get_text(payload, "role") or "customer").lower()
    id_type = (get_text(payload, "id_type") or "national_id").lower()

    if not name or not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "name, email, and password are required"}),
            400,
        )

    # Admin accounts are provisioned out of band (scripts/set_user_password.py)
    if role not in REGISTRABLE_ROLES:
        return (
            jsonify({"error": "invalid_role", "message": "role must be 'customer' or 'vendor'"}),
            400,
        )

    if id_type not in ID_TYPES:
        return (
            jsonify({"error": "invalid_payload", "message": f"id_type must be one of: {', '.join(ID_TYPES)}"}),
            400,
        )

    if User.query.filter_by(email=email).first():
        return (
            jsonify({"error": "conflict", "message": "Email already exists. Please use a different email or login."}),
            409,
        )

    try:
        new_user = User(
            name=name,
            email=email,
            role=role,
            phone=get_text(payload, "phone") or None,
            address=get_text(payload, "address") or None,
            business_type=get_text(payload, "business_type") or None,
            id_type=id_type,
            id_number=get_text(payload, "id_number") or None,
            is_verified=False,
            verification_status="pending",
        )
        db.session.add(new_user)
        db.session.flush()

        db.session.add(AuthAccount(user_id=new_user.user_id, password_hash=generate_password_hash(password)))

        notifications.notify(
            new_user.user_id,
            f"Welcome to {notifications.MARKETPLACE_NAME}!",
            f"Thank you for registering, {name}! Your ID verification is pending admin approval.",
        )
        notifications.notify_admins(
            "New user pending verification",
            f"{name} ({email}) registered as a {role} and is awaiting ID verification.",
            related_user_id=new_user.user_id,
        )
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered %s user %s", role, new_user.user_id)
    return jsonify({"token": build_token(new_user), "user": new_user.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate by email/password and return an access token."""
    payload = json_body()

    email = get_text(payload, "email").lower()
    password = get_text(payload, "password", strip=False)

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    record = (
        db.session.query(User, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == User.user_id)
        .filter(User.email == email)
        .first()
    )

    if not record:
        return jsonify({"error": "unauthorized", "message": "Invalid email or password. Please try again."}), 401

    user, auth_account = record

    if not check_password_hash(auth_account.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "Invalid email or password. Please try again."}), 401

    if not user.is_active:
        return jsonify({"error": "forbidden", "message": "This account has been deactivated."}), 403

    auth_account.last_login_at = datetime.now(timezone.utc)
    notifications.notify(
        user.user_id,
        "Welcome back!",
        f"You've successfully logged in to {notifications.MARKETPLACE_NAME}.",
    )

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"token": build_token(user), "user": user.to_dict()}), 200


@bp.get("/auth/me")
@login_required()
def current_user_profile() -> tuple[dict[str, object], int]:
    return jsonify({"user": g.current_user.to_dict()}), 200

# --- END: Authentication ---


@bp.get("/users/verify")
def verify_user() -> tuple[dict[str, object], int]:
    """Check if a user exists by email and return basic details."""
    email = (request.args.get("email") or "").strip().lower()

    if not email:
        return jsonify({"error": "invalid_query", "message": "email query parameter is required"}), 400

    user = User.query.filter_by(email=email).first()
    if user is None:
        return jsonify({"error": "not_found", "message": "user not found"}), 404

    return jsonify({"user": user.to_dict_basic()}), 200


@bp.put("/users/<int:user_id>")
@login_required()
def update_user_profile(user_id: int) -> tuple[dict[str, object], int]:
    """Update profile fields; users edit themselves, admins edit anyone."""
    actor = g.current_user
    if actor.user_id != user_id and not actor.is_admin:
        return jsonify({"error": "forbidden", "message": "You can only update your own profile"}), 403

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "not_found", "message": "user not found"}), 404

    payload = json_body()

    if "name" in payload:
        name = get_text(payload, "name")
        if not name:
            return jsonify({"error": "invalid_payload", "message": "name cannot be empty"}), 400
        user.name = name
    for field in ("phone", "address", "business_type"):
        if field in payload:
            setattr(user, field, get_text(payload, field) or None)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update user profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"user": user.to_dict()}), 200


@bp.post("/users/<int:user_id>/terms")
@login_required()
def accept_terms(user_id: int) -> tuple[dict[str, object], int]:
    """Record that the user accepted the marketplace terms."""
    if g.current_user.user_id != user_id:
        return jsonify({"error": "forbidden", "message": "Terms can only be accepted by the user themselves"}), 403

    user = g.current_user
    if user.terms_accepted_at is None:
        user.terms_accepted_at = datetime.now(timezone.utc)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to record terms acceptance", exc_info=exc)
            return jsonify({"error": "database_error"}), 500

    return jsonify({"terms_accepted": True, "terms_accepted_at": user.terms_accepted_at.isoformat()}), 200


# --- BEGIN: Vendors & availability ---

@bp.get("/vendors")
def list_vendors() -> tuple[dict[str, object], int]:
    """List active vendors with how many approved services each offers.
    ---
    tags:
      - Vendors
    parameters:
      - name: business_type
        in: query
        type: string
    responses:
      200:
        description: List of vendors
      500:
        description: Database error
    """
    try:
        business_type = (request.args.get("business_type") or "").strip()

        approved_counts = (
            db.session.query(VendorService.vendor_id, func.count(VendorService.service_id))
            .filter(VendorService.approval_status == "approved")
            .group_by(VendorService.vendor_id)
            .all()
        )
        counts = dict(approved_counts)

        query = User.query.filter(User.role == "vendor", User.is_active.is_(True))
        if business_type:
            query = query.filter(User.business_type.ilike(business_type))

        vendors = []
        for vendor in query.order_by(User.name.asc()).all():
            data = vendor.to_dict_basic()
            data["business_type"] = vendor.business_type
            data["is_verified"] = bool(vendor.is_verified)
            data["approved_services"] = counts.get(vendor.user_id, 0)
            vendors.append(data)

        return jsonify({"vendors": vendors}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch vendors", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


def _vendor_or_404(vendor_id: int):
    vendor = db.session.get(User, vendor_id)
    if vendor is None or vendor.role != "vendor":
        return None, (jsonify({"error": "not_found", "message": "Vendor not found"}), 404)
    return vendor, None


@bp.get("/vendors/<int:vendor_id>/availability")
def check_vendor_availability(vendor_id: int) -> tuple[dict[str, object], int]:
    """Report whether a vendor can still be booked on ``?date=YYYY-MM-DD``."""
    vendor, error = _vendor_or_404(vendor_id)
    if error:
        return error

    try:
        booking_date = booking_service.parse_date(request.args.get("date"))
    except booking_service.BookingError as exc:
        return jsonify({"error": exc.error, "message": exc.message}), exc.status_code

    available = vendor.is_active and booking_service.is_date_available(vendor_id, booking_date)
    return jsonify({
        "vendor_id": vendor_id,
        "date": booking_date.isoformat(),
        "available": bool(available),
    }), 200


@bp.get("/vendors/<int:vendor_id>/booked-dates")
def get_vendor_booked_dates(vendor_id: int) -> tuple[dict[str, object], int]:
    _, error = _vendor_or_404(vendor_id)
    if error:
        return error

    try:
        dates = booking_service.booked_dates(vendor_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch booked dates", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"vendor_id": vendor_id, "booked_dates": [d.isoformat() for d in dates]}), 200

# --- END: Vendors & availability ---
