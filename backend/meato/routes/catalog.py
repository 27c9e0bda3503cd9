# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/meato/routes/catalog.py
"""
Product and category routes.

Reads are public. Writes require MANAGE_CATALOG; shop admins are limited to
products of their own shop (enforced in catalog_service).
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import ServiceError, error_response
from ..services import catalog_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/products")
def list_products():
    """
    List approved products.

    Query params:
    - category_id: int (optional)
    - shop_id: int (optional) - apply that shop's overrides, hide disabled items
    - page / per_page: int (optional) - paginate (per_page max 100)
    """
    try:
        result = catalog_service.list_products(
            category_id=request.args.get("category_id", type=int),
            shop_id=request.args.get("shop_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except ServiceError as e:
        return error_response(e)


@catalog_bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": product.to_dict()})
    except ServiceError as e:
        return error_response(e)


@catalog_bp.post("/products")
@require_auth
@require_capability("MANAGE_CATALOG")
def create_product():
    try:
        product = catalog_service.create_product(payload=request.get_json(silent=True), actor=g.actor)
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/products/<int:product_id>")
@require_auth
@require_capability("MANAGE_CATALOG")
def update_product(product_id: int):
    try:
        product = catalog_service.update_product(
            product_id=product_id,
            payload=request.get_json(silent=True),
            actor=g.actor,
        )
        return jsonify({"product": product.to_dict()})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories")
def list_categories():
    return jsonify({"categories": catalog_service.list_categories()})


@catalog_bp.post("/categories")
@require_auth
@require_capability("MANAGE_CATALOG")
def create_category():
    try:
        category = catalog_service.create_category(request.get_json(silent=True))
        return jsonify({"category": category.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
