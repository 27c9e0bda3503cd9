# Overview: Flask API routes for shops and per-shop inventory.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, ValidationError, error_response
from ..services import shop_service

shops_bp = Blueprint("shops", __name__, url_prefix="/api/shops")


@shops_bp.get("")
def list_shops():
    return jsonify({"shops": shop_service.list_shops()})


@shops_bp.get("/nearest")
def nearest_shop():
    """Closest active shop whose radius covers ?lat=&lng=; 404 when none does."""
    lat = request.args.get("lat", type=float)
    lng = request.args.get("lng", type=float)
    if lat is None or lng is None:
        return error_response(ValidationError(
            "lat and lng are required",
            fields={"lat": "is required", "lng": "is required"},
        ))

    nearest = shop_service.find_nearest_shop(lat, lng)
    if nearest is None:
        return jsonify({"error": "No shop delivers to this location", "kind": "not_found", "details": {}}), 404

    shop, distance = nearest
    return jsonify({"shop": shop.to_dict(), "distance_km": round(distance, 3)})


@shops_bp.get("/<int:shop_id>/inventory")
@require_auth
@require_capability("MANAGE_SHOP_INVENTORY")
def get_inventory(shop_id: int):
    try:
        return jsonify({"items": shop_service.get_inventory(shop_id, g.actor)})
    except ServiceError as e:
        return error_response(e)


@shops_bp.put("/<int:shop_id>/inventory/<int:product_id>")
@require_auth
@require_capability("MANAGE_SHOP_INVENTORY")
def upsert_inventory_item(shop_id: int, product_id: int):
    """
    Create or update a shop's override for one product.

    Request body (any subset): is_enabled, price_override_cents, stock.
    """
    try:
        row = shop_service.upsert_inventory_item(
            shop_id, product_id, request.get_json(silent=True) or {}, g.actor
        )
        return jsonify({"item": row.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update shop inventory")
        return jsonify({"error": "Internal server error"}), 500
