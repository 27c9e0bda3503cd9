# Overview: Flask API routes for customer orders; parses input and returns JSON responses.

# backend/meato/routes/orders.py
"""
Customer-facing order routes.

- POST /api/orders               guest or signed-in checkout
- GET  /api/orders               own orders, newest first
- GET  /api/orders/<id>          one own order
- GET  /api/orders/track/<id>    public tracking projection
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import optional_auth, require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@optional_auth
def create_order_route():
    """
    Create an order.

    Request body:
    - delivery_address: {street, city, pincode, state?, lat?, lng?}
    - address_id: int, a saved address (signed-in users; instead of delivery_address)
    - items: [{product_id, quantity, variant_id?}] (required for guests;
      signed-in users check out their cart when omitted)
    - shop_id: int (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            g.actor,
            data.get("delivery_address"),
            items=data.get("items"),
            shop_id=data.get("shop_id"),
            address_id=data.get("address_id"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_capability("VIEW_OWN_ORDERS")
def list_orders_route():
    result = order_service.list_user_orders(
        g.actor,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_user_order(g.actor, order_id)
        return jsonify({"order": order.to_dict()})
    except ServiceError as e:
        return error_response(e)


@orders_bp.get("/track/<int:order_id>")
def track_order_route(order_id: int):
    """Limited fields only: status, tracker step, items, courier contact."""
    try:
        return jsonify({"order": order_service.track_order(order_id)})
    except ServiceError as e:
        return error_response(e)
