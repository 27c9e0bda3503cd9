# Overview: Service error taxonomy shared by services and routes.

"""
Errors raised by the service layer.

Every error carries a machine-readable ``kind``, the HTTP status the routes
answer with, and optional structured ``details``. Services raise these before
mutating anything; routes translate them with ``error_response``.
"""

from flask import jsonify


class ServiceError(Exception):
    """Base class for expected, user-visible failures."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class Unauthorized(ServiceError):
    """Missing or invalid credential."""
    kind = "unauthorized"
    status_code = 401


class Forbidden(ServiceError):
    """Valid credential, wrong role or wrong assignee."""
    kind = "forbidden"
    status_code = 403


class NotFound(ServiceError):
    kind = "not_found"
    status_code = 404


class ValidationError(ServiceError):
    """Malformed or missing input. ``details["fields"]`` maps field -> message."""
    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str, fields: dict | None = None):
        super().__init__(message, details={"fields": fields or {}})
        self.fields = fields or {}


class OutOfStock(ServiceError):
    kind = "out_of_stock"
    status_code = 409

    def __init__(self, product_id: int, product_name: str | None, requested: int, available: int):
        label = product_name or f"Product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id


class Conflict(ServiceError):
    """Illegal state transition or competing claim."""
    kind = "conflict"
    status_code = 409


def error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code
