"""Notification inbox routes."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .auth import login_required
from .extensions import db
from .models import Notification, User

bp_notifications = Blueprint("api_notifications", __name__)


def _unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def _check_inbox_owner(user_id: int):
    actor = g.current_user
    if actor.user_id != user_id and not actor.is_admin:
        return jsonify({"error": "forbidden", "message": "You can only access your own notifications"}), 403
    if db.session.get(User, user_id) is None:
        return jsonify({"error": "user_not_found"}), 404
    return None


def _load_own_notification(notification_id: int):
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        return None, (jsonify({"error": "notification_not_found"}), 404)
    actor = g.current_user
    if notification.user_id != actor.user_id and not actor.is_admin:
        return None, (jsonify({"error": "forbidden", "message": "Not your notification"}), 403)
    return notification, None


@bp_notifications.get("/users/<int:user_id>/notifications")
@login_required()
def get_user_notifications(user_id: int) -> tuple[dict[str, object], int]:
    """Get all notifications for a user, newest first.
    ---
    tags:
      - Notifications
    parameters:
      - name: user_id
        in: path
        type: integer
        required: true
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 20
        maximum: 50
      - name: unread_only
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: List of notifications with pagination and unread count
      400:
        description: Invalid parameters
      403:
        description: Not the inbox owner
      404:
        description: User not found
    """
    error = _check_inbox_owner(user_id)
    if error:
        return error

    try:
        page = max(1, int(request.args.get("page", 1)))
        limit = min(50, max(1, int(request.args.get("limit", 20))))
        unread_only = request.args.get("unread_only", "false").lower() == "true"

        query = Notification.query.filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        query = query.order_by(Notification.created_at.desc(), Notification.notification_id.desc())
        paginated = query.paginate(page=page, per_page=limit, error_out=False)

        return jsonify({
            "notifications": [n.to_dict() for n in paginated.items],
            "unread_count": _unread_count(user_id),
            "page": page,
            "per_page": limit,
            "total": paginated.total,
            "pages": paginated.pages,
        }), 200

    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid notification query parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch notifications", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_notifications.get("/users/<int:user_id>/notifications/unread-count")
@login_required()
def get_unread_count(user_id: int) -> tuple[dict[str, object], int]:
    error = _check_inbox_owner(user_id)
    if error:
        return error
    return jsonify({"user_id": user_id, "unread_count": _unread_count(user_id)}), 200


@bp_notifications.put("/notifications/<int:notification_id>/read")
@login_required()
def mark_notification_as_read(notification_id: int) -> tuple[dict[str, object], int]:
    notification, error = _load_own_notification(notification_id)
    if error:
        return error

    try:
        notification.is_read = True
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notification as read", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "message": "notification_marked_as_read",
        "notification": notification.to_dict(),
        "unread_count": _unread_count(notification.user_id),
    }), 200


@bp_notifications.put("/users/<int:user_id>/notifications/read-all")
@login_required()
def mark_all_notifications_as_read(user_id: int) -> tuple[dict[str, object], int]:
    error = _check_inbox_owner(user_id)
    if error:
        return error

    try:
        updated_count = Notification.query.filter_by(user_id=user_id, is_read=False).update({"is_read": True})
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark all notifications as read", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "all_notifications_marked_as_read", "updated_count": updated_count}), 200


@bp_notifications.delete("/notifications/<int:notification_id>")
@login_required()
def delete_notification(notification_id: int) -> tuple[dict[str, object], int]:
    notification, error = _load_own_notification(notification_id)
    if error:
        return error

    try:
        db.session.delete(notification)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete notification", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "notification_deleted"}), 200
