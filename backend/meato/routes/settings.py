# Overview: Flask API routes for storefront settings; public reads, admin writes.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import settings_service

settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings")
def get_settings():
    return jsonify(settings_service.get_settings())


@settings_bp.get("/hero")
def get_hero():
    return jsonify(settings_service.get_hero())


@settings_bp.post("/settings")
@require_auth
@require_capability("MANAGE_SETTINGS")
def update_settings():
    """Request body: {"settings": {key: value, ...}}"""
    try:
        data = request.get_json(silent=True) or {}
        settings = settings_service.update_settings(data.get("settings"))
        return jsonify({"settings": settings, "message": "Settings updated successfully"})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/admin/hero")
@require_auth
@require_capability("MANAGE_SETTINGS")
def update_hero():
    """Request body: any of title, subtitle, badge, buttonText, secondaryButtonText, imageUrl, backgroundImageUrl."""
    try:
        hero = settings_service.update_hero(request.get_json(silent=True) or {})
        return jsonify({"data": hero, "message": "Hero section updated successfully"})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update hero section")
        return jsonify({"error": "Internal server error"}), 500
