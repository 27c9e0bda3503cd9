# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/meato/routes/auth.py
"""
Authentication API routes

- POST /api/register      customer self-registration (returns a session token)
- POST /api/login         e-mail or phone + password
- POST /api/logout        revokes the presented token
- GET  /api/user          the signed-in account
- POST /api/admin/staff   admins create delivery persons / shop admins
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..permissions import ROLE_CAPABILITIES
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


def _session_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "permissions": sorted(ROLE_CAPABILITIES.get(user.role_enum, ())),
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
    }


@auth_bp.post("/register")
def register_route():
    """Create a customer account and sign it in."""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            phone=data.get("phone"),
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify(_session_payload(user, session, token)), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("email") or data.get("phone") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({
                "error": "email/phone and password required",
                "kind": "validation_error",
                "details": {"fields": {"email": "is required", "password": "is required"}},
            }), 400

        user = auth_service.authenticate_credentials(identifier, password)
        if not user:
            return jsonify({"error": "Invalid credentials", "kind": "unauthorized", "details": {}}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify(_session_payload(user, session, token)), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token (logout). Expects Authorization: Bearer <token>."""
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required", "kind": "unauthorized", "details": {}}), 401

        token = auth_header.split(" ", 1)[1]
        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token", "kind": "unauthorized", "details": {}}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/user")
@require_auth
def current_user_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(ROLE_CAPABILITIES.get(g.actor.role, ())),
    })


@auth_bp.post("/admin/staff")
@require_auth
def create_staff_route():
    """
    Create a staff account.

    Request body: name, email, password, phone?, role (delivery_person |
    shop_admin | admin), shop_id?. Which roles a caller may grant is decided
    by auth_service.STAFF_ROLES_GRANTABLE.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_staff_user(g.actor, data)
        return jsonify({"user": user.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create staff user")
        return jsonify({"error": "Internal server error"}), 500
