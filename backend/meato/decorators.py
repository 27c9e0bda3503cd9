# Overview: Request and capability decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .permissions import authorize
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _establish_context(context) -> None:
    g.current_user = context.user
    g.actor = context.actor
    g.session_context = context


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor: The Actor (user id, role, shop) commands run as
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing, or the token is unknown, expired,
    revoked, or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required", "kind": "unauthorized", "details": {}}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "kind": "unauthorized", "details": {}}), 401

        _establish_context(context)
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Attach the actor when a valid token is present; otherwise continue as a guest.

    g.actor is None for guests.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        g.actor = None
        token = _bearer_token()
        if token is not None:
            context = session_service.validate_session(token)
            if context:
                _establish_context(context)
        return f(*args, **kwargs)

    return decorated_function


def require_capability(action: str):
    """
    Require the actor's role to grant ``action`` (see permissions.ROLE_CAPABILITIES).

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "kind": "unauthorized", "details": {}}), 401

            if not authorize(actor, action):
                return jsonify({
                    "error": "Permission denied",
                    "kind": "forbidden",
                    "details": {"required_permission": action},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
