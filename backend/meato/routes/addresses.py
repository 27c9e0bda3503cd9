# Overview: Flask API routes for the signed-in user's address book.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import address_service

addresses_bp = Blueprint("addresses", __name__, url_prefix="/api/addresses")


@addresses_bp.get("")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def list_addresses():
    return jsonify({"addresses": address_service.list_addresses(g.actor)})


@addresses_bp.post("")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def create_address():
    """
    Request body:
    - address_line (or street), city, pincode: required
    - label (or type): home | work | other
    - state, lat, lng, name, phone, is_default: optional
    """
    try:
        address = address_service.create_address(g.actor, request.get_json(silent=True) or {})
        return jsonify({"address": address.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.get("/<int:address_id>")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def get_address(address_id: int):
    try:
        return jsonify({"address": address_service.get_address(g.actor, address_id).to_dict()})
    except ServiceError as e:
        return error_response(e)


@addresses_bp.put("/<int:address_id>")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def update_address(address_id: int):
    try:
        address = address_service.update_address(g.actor, address_id, request.get_json(silent=True) or {})
        return jsonify({"address": address.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.put("/<int:address_id>/default")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def set_default_address(address_id: int):
    try:
        return jsonify({"address": address_service.set_default(g.actor, address_id).to_dict()})
    except ServiceError as e:
        return error_response(e)


@addresses_bp.delete("/<int:address_id>")
@require_auth
@require_capability("MANAGE_ADDRESSES")
def delete_address(address_id: int):
    try:
        address_service.delete_address(g.actor, address_id)
        return jsonify({"message": "Deleted"})
    except ServiceError as e:
        return error_response(e)
