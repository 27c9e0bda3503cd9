# Overview: Flask API routes for delivery persons; parses input and returns JSON responses.

# backend/meato/routes/delivery.py
"""
Delivery workflow routes.

Every command is restricted to the delivery person the order is assigned to;
order_service answers 403 for anyone else and 409 for a command the order's
current status does not allow.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import order_service

delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/delivery/orders")


def _run(command, order_id: int, *args, **kwargs):
    try:
        order = command(g.actor, order_id, *args, **kwargs)
        return jsonify({"order": order.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to %s order %s", command.__name__, order_id)
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("")
@require_auth
@require_capability("VIEW_ASSIGNED_ORDERS")
def list_assigned_route():
    return jsonify(order_service.list_delivery_orders(g.actor, status=request.args.get("status")))


@delivery_bp.put("/<int:order_id>/accept")
@require_auth
@require_capability("ACCEPT_DELIVERY")
def accept_route(order_id: int):
    return _run(order_service.accept, order_id)


@delivery_bp.put("/<int:order_id>/reject")
@require_auth
@require_capability("REJECT_DELIVERY")
def reject_route(order_id: int):
    """Request body: reason (optional)."""
    data = request.get_json(silent=True) or {}
    return _run(order_service.reject, order_id, reason=data.get("reason"))


@delivery_bp.put("/<int:order_id>/out-for-delivery")
@require_auth
@require_capability("START_DELIVERY")
def out_for_delivery_route(order_id: int):
    return _run(order_service.mark_out_for_delivery, order_id)


@delivery_bp.put("/<int:order_id>/reached")
@require_auth
@require_capability("CONFIRM_REACHED")
def reached_route(order_id: int):
    return _run(order_service.mark_reached, order_id)


@delivery_bp.put("/<int:order_id>/collect-cash")
@require_auth
@require_capability("COLLECT_CASH")
def collect_cash_route(order_id: int):
    """
    Request body:
    - amount: number (required) - must equal the order total
    - confirm_amount: number (optional) - second entry, must equal amount
    """
    data = request.get_json(silent=True) or {}
    return _run(
        order_service.collect_cash,
        order_id,
        data.get("amount"),
        confirm_amount=data.get("confirm_amount", data.get("amount2")),
    )


@delivery_bp.put("/<int:order_id>/deliver")
@require_auth
@require_capability("COMPLETE_DELIVERY")
def deliver_route(order_id: int):
    return _run(order_service.mark_delivered, order_id)
