"""Admin moderation routes: users, services, bookings and store snapshots."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import notifications, storage
from .auth import login_required
from .extensions import db
from .inputs import get_text, json_body
from .models import Booking, Notification, Payment, User, VendorService

bp_admin = Blueprint("api_admin", __name__, url_prefix="/admin")

USER_ROLES = ("customer", "vendor", "admin")


# --- Users ---

@bp_admin.get("/users")
@login_required("admin")
def get_all_users() -> tuple[dict[str, object], int]:
    role = (request.args.get("role") or "").strip().lower()
    if role and role not in USER_ROLES:
        return jsonify({"error": "invalid_parameters", "message": f"role must be one of: {', '.join(USER_ROLES)}"}), 400

    try:
        query = User.query
        if role:
            query = query.filter(User.role == role)
        users = query.order_by(User.created_at.desc()).all()
        return jsonify({"users": [u.to_dict() for u in users], "total": len(users)}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch users", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_admin.get("/users/pending")
@login_required("admin")
def get_pending_verification_users() -> tuple[dict[str, object], int]:
    users = (
        User.query.filter(User.verification_status == "pending", User.role != "admin")
        .order_by(User.created_at.asc())
        .all()
    )
    return jsonify({"users": [u.to_dict() for u in users], "total": len(users)}), 200


@bp_admin.put("/users/<int:user_id>/verify")
@login_required("admin")
def verify_user_identity(user_id: int) -> tuple[dict[str, object], int]:
    """Approve or reject a user's submitted ID.

    Approving sets ``is_verified``; rejecting clears it. Either way the user
    gets a system notification. Admin notifications about this user are
    marked read.
    """
    payload = json_body()
    action = get_text(payload, "action").lower()

    if action not in ("approve", "reject"):
        return jsonify({"error": "invalid_action", "message": "action must be 'approve' or 'reject'"}), 400

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "user_not_found"}), 404

    try:
        if action == "approve":
            user.is_verified = True
            user.verification_status = "approved"
            notifications.notify(
                user.user_id,
                "Account verified",
                "Your ID has been verified. You now have full access to the marketplace.",
            )
        else:
            user.is_verified = False
            user.verification_status = "rejected"
            notifications.notify(
                user.user_id,
                "Verification rejected",
                "Your ID verification was rejected. Please contact support or resubmit your details.",
            )

        notifications.mark_admin_alerts_read(user.user_id)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to verify user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Admin %s %sd user %s", g.current_user.user_id, action, user_id)
    return jsonify({"message": f"User {action}d successfully", "user": user.to_dict()}), 200


@bp_admin.put("/users/<int:user_id>/status")
@login_required("admin")
def set_user_active(user_id: int) -> tuple[dict[str, object], int]:
    """Suspend or reinstate a user. Users are flagged, never deleted."""
    payload = json_body()
    is_active = payload.get("is_active")
    if not isinstance(is_active, bool):
        return jsonify({"error": "invalid_payload", "message": "is_active must be a boolean"}), 400

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "user_not_found"}), 404
    if user.user_id == g.current_user.user_id and not is_active:
        return jsonify({"error": "invalid_payload", "message": "admins cannot deactivate themselves"}), 400

    try:
        user.is_active = is_active
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update user status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"user": user.to_dict()}), 200


# --- Services ---

@bp_admin.get("/services")
@login_required("admin")
def get_all_services() -> tuple[dict[str, object], int]:
    status = (request.args.get("status") or "").strip().lower()
    query = VendorService.query
    if status:
        if status not in ("pending", "approved", "rejected"):
            return jsonify({"error": "invalid_parameters", "message": "unknown status filter"}), 400
        query = query.filter(VendorService.approval_status == status)
    services = query.order_by(VendorService.created_at.asc()).all()
    return jsonify({"services": [s.to_dict() for s in services], "total": len(services)}), 200


@bp_admin.put("/services/<int:service_id>/review")
@login_required("admin")
def review_service(service_id: int) -> tuple[dict[str, object], int]:
    """Approve or reject a pending service listing.
    ---
    tags:
      - Admin
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            action:
              type: string
              enum: [approve, reject]
            admin_comments:
              type: string
    responses:
      200:
        description: Service reviewed, vendor notified
      400:
        description: Invalid action or service not pending
      404:
        description: Service not found
    """
    payload = json_body()
    action = get_text(payload, "action").lower()
    admin_comments = get_text(payload, "admin_comments") or None

    if action not in ("approve", "reject"):
        return jsonify({"error": "invalid_action", "message": "action must be 'approve' or 'reject'"}), 400

    service = db.session.get(VendorService, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    if service.approval_status != "pending":
        return jsonify({
            "error": "invalid_status",
            "message": f"Service is already {service.approval_status}",
        }), 400

    try:
        service.approval_status = "approved" if action == "approve" else "rejected"
        service.admin_comments = admin_comments

        if action == "approve":
            message = f"Your service '{service.name}' has been approved and is now visible in the marketplace."
        else:
            message = f"Your service '{service.name}' was not approved."
            if admin_comments:
                message += f" Comments: {admin_comments}"
        notifications.notify(service.vendor_id, f"Service {action}d", message)

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to review service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Service %s %sd by admin %s", service_id, action, g.current_user.user_id)
    return jsonify({"message": f"Service {action}d successfully", "service": service.to_dict()}), 200


# --- Bookings ---

@bp_admin.get("/bookings")
@login_required("admin")
def get_all_bookings() -> tuple[dict[str, object], int]:
    bookings = Booking.query.order_by(Booking.date.desc()).all()
    return jsonify({"bookings": [b.to_dict() for b in bookings], "total": len(bookings)}), 200


@bp_admin.delete("/bookings/<int:booking_id>")
@login_required("admin")
def delete_booking(booking_id: int) -> tuple[dict[str, object], int]:
    """Delete a booking and its payments. This is the only way bookings disappear."""
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return jsonify({"error": "not_found", "message": "Booking not found"}), 404

    try:
        Notification.query.filter_by(booking_id=booking_id).update(
            {"booking_id": None}, synchronize_session=False
        )
        db.session.delete(booking)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete booking", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Booking %s deleted by admin %s", booking_id, g.current_user.user_id)
    return jsonify({"message": "Booking deleted successfully"}), 200


# --- Platform ---

@bp_admin.get("/stats")
@login_required("admin")
def get_platform_stats() -> tuple[dict[str, object], int]:
    try:
        users_by_role = dict(
            db.session.query(User.role, func.count(User.user_id)).group_by(User.role).all()
        )
        bookings_by_status = dict(
            db.session.query(Booking.status, func.count(Booking.booking_id)).group_by(Booking.status).all()
        )
        revenue_cents = (
            db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
            .filter(Payment.status == "completed")
            .scalar()
        )

        return jsonify({
            "users": {role: users_by_role.get(role, 0) for role in USER_ROLES},
            "pending_verifications": User.query.filter(
                User.verification_status == "pending", User.role != "admin"
            ).count(),
            "bookings": {
                status: bookings_by_status.get(status, 0)
                for status in ("pending", "confirmed", "cancelled", "completed")
            },
            "pending_services": VendorService.query.filter_by(approval_status="pending").count(),
            "revenue_cents": int(revenue_cents or 0),
        }), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute platform stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_admin.post("/notifications")
@login_required("admin")
def broadcast_notification() -> tuple[dict[str, object], int]:
    """Send a system notification to every active user, or to one role."""
    payload = json_body()
    title = get_text(payload, "title")
    message = get_text(payload, "message")
    role = get_text(payload, "role").lower()

    if not title or not message:
        return jsonify({"error": "invalid_payload", "message": "title and message are required"}), 400
    if role and role not in USER_ROLES:
        return jsonify({"error": "invalid_payload", "message": f"role must be one of: {', '.join(USER_ROLES)}"}), 400

    try:
        query = User.query.filter(User.is_active.is_(True))
        if role:
            query = query.filter(User.role == role)
        created = notifications.notify_many([u.user_id for u in query.all()], title, message, "system")
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to broadcast notification", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "notification_sent", "recipients": len(created)}), 201


@bp_admin.get("/storage/export")
@login_required("admin")
def export_storage() -> tuple[dict[str, object], int]:
    return jsonify(storage.export_snapshot(g.current_user)), 200


@bp_admin.post("/storage/import")
@login_required("admin")
def import_storage() -> tuple[dict[str, object], int]:
    """Replace the whole store from a snapshot produced by ``/admin/storage/export``."""
    snapshot = request.get_json(silent=True)
    try:
        counts = storage.import_snapshot(snapshot)
    except storage.StorageError as exc:
        return jsonify({"error": "invalid_snapshot", "message": str(exc)}), 400

    return jsonify({"message": "snapshot_imported", "counts": counts}), 200
