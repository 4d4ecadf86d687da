"""Vendor service listing routes (submission and public browsing)."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from .auth import get_current_user, login_required
from .extensions import db
from .inputs import get_text, json_body
from .models import Booking, User, VendorService

bp_services = Blueprint("api_services", __name__)


def _clean_images(value):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError("images must be a list of URLs")
    return [item.strip() for item in value if item.strip()]


def _parse_price(value) -> int:
    price_cents = int(value)
    if price_cents < 0:
        raise ValueError("price_cents must be >= 0")
    return price_cents


def _can_manage(user: User | None, service: VendorService) -> bool:
    return user is not None and (user.is_admin or user.user_id == service.vendor_id)


@bp_services.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """Browse approved services, optionally by ``category`` or search ``query``."""
    try:
        category = (request.args.get("category") or "").strip()
        search = (request.args.get("query") or "").strip()

        query = VendorService.query.options(joinedload(VendorService.vendor)).filter(
            VendorService.approval_status == "approved"
        )
        if category:
            query = query.filter(VendorService.category.ilike(category))
        if search:
            query = query.filter(
                or_(
                    VendorService.name.ilike(f"%{search}%"),
                    VendorService.description.ilike(f"%{search}%"),
                )
            )

        services = query.order_by(VendorService.created_at.desc()).all()
        return jsonify({"services": [s.to_dict() for s in services]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch services", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_services.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(VendorService, service_id)
    # Unapproved listings are invisible to everyone but their owner and admins
    if service is None or (not service.is_approved and not _can_manage(get_current_user(), service)):
        return jsonify({"error": "not_found", "message": "Service not found"}), 404
    return jsonify({"service": service.to_dict()}), 200


@bp_services.get("/vendors/<int:vendor_id>/services")
def list_vendor_services(vendor_id: int) -> tuple[dict[str, object], int]:
    vendor = db.session.get(User, vendor_id)
    if vendor is None or vendor.role != "vendor":
        return jsonify({"error": "not_found", "message": "Vendor not found"}), 404

    viewer = get_current_user()
    query = VendorService.query.filter(VendorService.vendor_id == vendor_id)
    if viewer is None or not (viewer.is_admin or viewer.user_id == vendor_id):
        query = query.filter(VendorService.approval_status == "approved")

    services = query.order_by(VendorService.created_at.desc()).all()
    return jsonify({"vendor_id": vendor_id, "services": [s.to_dict() for s in services]}), 200


@bp_services.post("/services")
@login_required("vendor")
def create_service() -> tuple[dict[str, object], int]:
    """Submit a new service listing for admin approval.
    ---
    tags:
      - Services
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            name:
              type: string
            description:
              type: string
            category:
              type: string
            price_cents:
              type: integer
            images:
              type: array
              items:
                type: string
          required:
            - name
            - price_cents
            - category
    responses:
      201:
        description: Service submitted and pending approval
      400:
        description: Invalid input
      500:
        description: Database error
    """
    payload = json_body()

    name = get_text(payload, "name")
    category = get_text(payload, "category")
    description = get_text(payload, "description") or None

    if not name or not category or payload.get("price_cents") is None:
        return (
            jsonify({"error": "invalid_payload", "message": "name, category, and price_cents are required"}),
            400,
        )

    try:
        price_cents = _parse_price(payload.get("price_cents"))
        images = _clean_images(payload.get("images"))
    except (ValueError, TypeError) as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    try:
        service = VendorService(
            vendor_id=g.current_user.user_id,
            name=name,
            description=description,
            category=category,
            price_cents=price_cents,
            images=images,
            approval_status="pending",
        )
        db.session.add(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Vendor %s submitted service %s for approval", service.vendor_id, service.service_id)
    return jsonify({
        "message": "Your service has been submitted and is pending admin approval.",
        "service": service.to_dict(),
    }), 201


@bp_services.put("/services/<int:service_id>")
@login_required("vendor")
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    """Edit a listing. Any edit sends it back to the approval queue."""
    service = db.session.get(VendorService, service_id)
    if service is None or service.vendor_id != g.current_user.user_id:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    payload = json_body()

    try:
        if "name" in payload:
            name = get_text(payload, "name")
            if not name:
                raise ValueError("name cannot be empty")
            service.name = name
        if "category" in payload:
            category = get_text(payload, "category")
            if not category:
                raise ValueError("category cannot be empty")
            service.category = category
        if "description" in payload:
            service.description = get_text(payload, "description") or None
        if "price_cents" in payload:
            service.price_cents = _parse_price(payload.get("price_cents"))
        if "images" in payload:
            service.images = _clean_images(payload.get("images"))
    except (ValueError, TypeError) as exc:
        db.session.rollback()
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    service.approval_status = "pending"
    service.admin_comments = None

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Service updated and resubmitted for approval", "service": service.to_dict()}), 200


@bp_services.delete("/services/<int:service_id>")
@login_required("vendor", "admin")
def delete_service(service_id: int) -> tuple[dict[str, str], int]:
    service = db.session.get(VendorService, service_id)
    if service is None or not _can_manage(g.current_user, service):
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    try:
        # Bookings keep their service name but lose the link
        Booking.query.filter_by(service_id=service_id).update({"service_id": None})
        db.session.delete(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Service deleted successfully"}), 200
