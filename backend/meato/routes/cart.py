# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

# backend/meato/routes/cart.py
"""
Cart routes (signed-in users).

POST /api/cart sets the quantity for a (product, variant) key; it does not
add to what is already there.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import cart_service
from ..validation import parse_optional_id

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
@require_capability("MANAGE_CART")
def get_cart():
    return jsonify(cart_service.summarize(g.actor.user_id))


@cart_bp.post("")
@require_auth
@require_capability("MANAGE_CART")
def set_cart_item():
    """
    Request body:
    - product_id: int (required)
    - quantity: int >= 1 (required) - final quantity for the key
    - variant_id: int (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        cart = cart_service.add_item(
            g.actor.user_id,
            data.get("product_id"),
            data.get("quantity"),
            variant_id=data.get("variant_id"),
        )
        return jsonify(cart)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/<int:product_id>")
@require_auth
@require_capability("MANAGE_CART")
def remove_cart_item(product_id: int):
    """Remove one key; ?variant_id= selects the variant line, absent means the plain product."""
    try:
        variant_id = parse_optional_id(request.args.get("variant_id"), "variant_id")
        return jsonify(cart_service.remove_item(g.actor.user_id, product_id, variant_id))
    except ServiceError as e:
        return error_response(e)


@cart_bp.post("/clear")
@require_auth
@require_capability("MANAGE_CART")
def clear_cart():
    return jsonify(cart_service.clear(g.actor.user_id))
