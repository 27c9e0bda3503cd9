# Overview: Flask API routes for admin order management; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import order_service

admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


@admin_orders_bp.get("")
@require_auth
@require_capability("VIEW_ALL_ORDERS")
def list_orders_route():
    """
    List orders, newest first. Shop admins only see their shop's orders.

    Query params: status, page, per_page.
    """
    try:
        result = order_service.list_admin_orders(
            g.actor,
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return error_response(e)


@admin_orders_bp.put("/<int:order_id>")
@require_auth
@require_capability("UPDATE_ORDER_STATUS")
def update_status_route(order_id: int):
    """
    Manual status override.

    Request body: status and/or payment_status. Any known status may be set
    on a non-terminal order without running the normal transition rules or
    their side effects. Use /cancel to cancel with stock restoration.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.admin_update_status(
            g.actor,
            order_id,
            status=data.get("status"),
            payment_status=data.get("payment_status"),
        )
        return jsonify({"order": order.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.put("/<int:order_id>/assign")
@require_auth
@require_capability("ASSIGN_DELIVERY")
def assign_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.assign(g.actor, order_id, data.get("delivery_person_id"))
        return jsonify({"order": order.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign order")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.put("/<int:order_id>/cancel")
@require_auth
@require_capability("CANCEL_ORDER")
def cancel_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel(g.actor, order_id, reason=data.get("reason"))
        return jsonify({"order": order.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
