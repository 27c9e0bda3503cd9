# Overview: Flask API routes for delivery zones; public matching and admin maintenance.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, ValidationError, error_response
from ..services import zone_service

zones_bp = Blueprint("zones", __name__, url_prefix="/api")


@zones_bp.get("/delivery-zones")
def list_zones():
    return jsonify({"zones": zone_service.list_public_zones()})


@zones_bp.post("/check-delivery-zone")
def check_delivery_zone():
    """
    Classify an address for delivery.

    Request body: pincode and/or lat + lng.
    Response: available, fast_delivery, shop_id, zone_id, zone_name, delivery_fee_cents.
    """
    try:
        data = request.get_json(silent=True) or {}
        pincode = data.get("pincode")
        lat, lng = data.get("lat"), data.get("lng")
        if not pincode and (lat is None or lng is None):
            raise ValidationError("pincode or lat/lng is required", fields={"pincode": "is required"})

        match = zone_service.match(pincode=pincode, lat=lat, lng=lng)
        body = match.to_dict()
        if not match.available:
            body["message"] = "Delivery not available"
        elif match.fast_eligible:
            body["message"] = "Fast delivery available"
        else:
            body["message"] = "Standard delivery available"
        return jsonify(body)
    except ServiceError as e:
        return error_response(e)


@zones_bp.get("/admin/delivery-zones")
@require_auth
@require_capability("MANAGE_DELIVERY_ZONES")
def admin_list_zones():
    """All zones (shop admins: only their shop's), newest first, approved or not."""
    return jsonify({"zones": zone_service.list_admin_zones(g.actor)})


@zones_bp.post("/admin/delivery-zones")
@require_auth
@require_capability("MANAGE_DELIVERY_ZONES")
def admin_create_zone():
    try:
        zone = zone_service.create_zone(request.get_json(silent=True) or {}, g.actor)
        return jsonify({"zone": zone.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@zones_bp.put("/admin/delivery-zones/<int:zone_id>")
@require_auth
@require_capability("MANAGE_DELIVERY_ZONES")
def admin_update_zone(zone_id: int):
    try:
        zone = zone_service.update_zone(zone_id, request.get_json(silent=True) or {}, g.actor)
        return jsonify({"zone": zone.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@zones_bp.put("/admin/delivery-zones/<int:zone_id>/approve")
@require_auth
@require_capability("APPROVE_DELIVERY_ZONES")
def admin_approve_zone(zone_id: int):
    try:
        zone = zone_service.approve_zone(zone_id)
        return jsonify({"zone": zone.to_dict(), "message": "Zone approved"})
    except ServiceError as e:
        return error_response(e)


@zones_bp.delete("/admin/delivery-zones/<int:zone_id>")
@require_auth
@require_capability("MANAGE_DELIVERY_ZONES")
def admin_delete_zone(zone_id: int):
    try:
        zone_service.delete_zone(zone_id, g.actor)
        return jsonify({"message": "Delivery zone deleted"})
    except ServiceError as e:
        return error_response(e)
