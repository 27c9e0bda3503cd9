# backend/meato/services/catalog_service.py
"""
Catalog Service

Products, variants, categories, price resolution and the stock counters the
order service reserves against.

STOCK SOURCE:
- An order fulfilled by a shop that carries an enabled ShopProduct row draws
  from that row's stock.
- Everything else draws from Product.stock (the master counter).
- Variants change the price, never the stock source.

Stock only moves through reserve_stock/release_stock, which issue single
conditional UPDATE statements (see concurrency.guarded_decrement).
"""
from __future__ import annotations

import re

from ..errors import Forbidden, NotFound, OutOfStock, ServiceError, ValidationError
from ..extensions import db
from ..models import Category, Product, ProductVariant, Shop, ShopProduct
from ..permissions import Actor, Role
from ..validation import (
    ModelValidationPolicy,
    enforce_price_rules,
    enforce_stock_rules,
    parse_int,
    validate_payload,
)
from .concurrency import guarded_decrement, guarded_increment, run_with_retry

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id", "name", "description", "mrp_cents", "price_cents",
        "stock", "image", "gst_percentage", "is_approved",
    },
    required_on_create={"name", "price_cents"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"variant_name", "price_cents", "discount_price_cents"},
    required_on_create={"variant_name", "price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "is_active"},
    required_on_create={"name"},
)


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "category"


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(include_inactive: bool = False) -> list[dict]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return [c.to_dict() for c in query.order_by(Category.name.asc(), Category.id.asc()).all()]


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    slug = patch.get("slug") or _slugify(patch["name"])
    if db.session.query(Category).filter_by(slug=slug).first():
        raise ValidationError("Category slug already exists", fields={"slug": "already exists"})

    category = Category(name=patch["name"], slug=slug, is_active=patch.get("is_active", True))
    db.session.add(category)
    db.session.commit()
    return category


# =============================================================================
# PRODUCTS
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def get_variant(product: Product, variant_id: int | None) -> ProductVariant | None:
    """Return the variant when it belongs to the product; NotFound otherwise."""
    if variant_id is None:
        return None
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None or variant.product_id != product.id:
        raise NotFound(
            "Variant not found",
            details={"product_id": product.id, "variant_id": variant_id},
        )
    return variant


def get_shop_product(product_id: int, shop_id: int | None) -> ShopProduct | None:
    if shop_id is None:
        return None
    return db.session.query(ShopProduct).filter_by(
        franchise_id=shop_id, product_id=product_id
    ).first()


def resolve_unit_price(
    product: Product,
    variant: ProductVariant | None = None,
    shop_product: ShopProduct | None = None,
) -> int:
    """
    Unit price in cents.

    Precedence: shop price override > variant discount price > variant price
    > product price.
    """
    if shop_product is not None and shop_product.is_enabled and shop_product.price_override_cents is not None:
        return shop_product.price_override_cents
    if variant is not None:
        if variant.discount_price_cents is not None:
            return variant.discount_price_cents
        return variant.price_cents
    return product.price_cents


def _product_view(product: Product, shop_product: ShopProduct | None) -> dict:
    data = product.to_dict()
    if shop_product is not None:
        data["shop_product"] = shop_product.to_dict()
        data["effective_price_cents"] = resolve_unit_price(product, None, shop_product)
        data["available_stock"] = shop_product.stock if shop_product.is_enabled else 0
    else:
        data["effective_price_cents"] = product.price_cents
        data["available_stock"] = product.stock
    return data


def list_products(
    category_id: int | None = None,
    shop_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Approved products, optionally filtered by category.

    With shop_id, products the shop has disabled are hidden and the shop's
    price override and stock are reported alongside the master values.
    """
    base_query = db.session.query(Product).filter(Product.is_approved.is_(True))
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)

    overrides: dict[int, ShopProduct] = {}
    if shop_id is not None:
        if db.session.get(Shop, shop_id) is None:
            raise NotFound("Shop not found")
        rows = db.session.query(ShopProduct).filter_by(franchise_id=shop_id).all()
        overrides = {row.product_id: row for row in rows}
        disabled = [pid for pid, row in overrides.items() if not row.is_enabled]
        if disabled:
            base_query = base_query.filter(Product.id.notin_(disabled))

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [_product_view(p, overrides.get(p.id)) for p in products],
            "count": len(products),
        }

    per_page = max(1, min(per_page or 20, 100))
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [_product_view(p, overrides.get(p.id)) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _validated_variants(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("variants must be a list", fields={"variants": "must be a list"})
    variants = []
    for entry in raw:
        patch = validate_payload(model=ProductVariant, payload=entry, policy=VARIANT_POLICY, partial=False)
        enforce_price_rules(patch)
        variants.append(patch)
    return variants


def _check_category(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError("Unknown category", fields={"category_id": "does not exist"})


def create_product(*, payload: dict, actor: Actor) -> Product:
    """
    Create a product with optional variants.

    Shop admins submit products for their own shop; those start unapproved
    and cannot approve themselves.
    """
    payload = dict(payload or {})
    variants = _validated_variants(payload.pop("variants", None))

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_price_rules(patch)
    enforce_stock_rules(patch)
    _check_category(patch)

    product = Product(**patch)
    if actor.role == Role.SHOP_ADMIN:
        product.franchise_id = actor.shop_id
        product.is_approved = False

    db.session.add(product)
    db.session.flush()

    for variant_patch in variants:
        db.session.add(ProductVariant(product_id=product.id, **variant_patch))

    db.session.commit()
    return product


def update_product(*, product_id: int, payload: dict, actor: Actor) -> Product:
    """
    Patch a product and optionally replace its variants.

    Orders bump Product.version_id when they take stock, so an edit that
    overlaps a checkout loses with StaleDataError; run_with_retry reloads the
    row and applies the patch again.
    """
    payload = dict(payload or {})
    variants = payload.pop("variants", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if actor.role == Role.SHOP_ADMIN:
        patch.pop("is_approved", None)
    enforce_price_rules(patch)
    enforce_stock_rules(patch)
    validated = _validated_variants(variants) if variants is not None else None

    def _op():
        try:
            product = get_product(product_id)
            if actor.role == Role.SHOP_ADMIN:
                if product.franchise_id is None or product.franchise_id != actor.shop_id:
                    raise Forbidden("Shop admins may only edit their own shop's products")
            _check_category(patch)

            for key, value in patch.items():
                setattr(product, key, value)

            if validated is not None:
                # Variants are replaced wholesale
                for existing in list(product.variants):
                    db.session.delete(existing)
                db.session.flush()
                for variant_patch in validated:
                    db.session.add(ProductVariant(product_id=product.id, **variant_patch))

            db.session.commit()
        except ServiceError:
            db.session.rollback()
            raise
        return product

    product = run_with_retry(_op)
    db.session.refresh(product)
    return product


# =============================================================================
# STOCK
# =============================================================================

def stock_row_for(product_id: int, shop_id: int | None) -> ShopProduct | None:
    """
    The ShopProduct row whose stock an order must draw from, or None for master stock.

    A disabled row still counts as the stock source; its availability is zero.
    """
    return get_shop_product(product_id, shop_id)


def available_stock(product_id: int, shop_id: int | None = None) -> int:
    shop_product = stock_row_for(product_id, shop_id)
    if shop_product is not None:
        return shop_product.stock if shop_product.is_enabled else 0
    product = get_product(product_id)
    return product.stock


def reserve_stock(product_id: int, shop_id: int | None, quantity: int) -> int | None:
    """
    Atomically take ``quantity`` units.

    Returns the shop id whose inventory was decremented (None for master
    stock) so the caller can release to the same counter later.

    Raises OutOfStock when the conditional update matches no row.
    """
    quantity = parse_int(quantity, "quantity")
    if quantity < 1:
        raise ValidationError("quantity must be a positive integer", fields={"quantity": "must be >= 1"})

    shop_product = stock_row_for(product_id, shop_id)
    if shop_product is not None:
        ok = guarded_decrement(
            ShopProduct, shop_product.id, "stock", quantity, ShopProduct.is_enabled.is_(True)
        )
        stock_shop_id = shop_product.franchise_id
    else:
        ok = guarded_decrement(Product, product_id, "stock", quantity)
        stock_shop_id = None

    if not ok:
        product = db.session.get(Product, product_id)
        raise OutOfStock(
            product_id=product_id,
            product_name=product.name if product else None,
            requested=quantity,
            available=_current_stock(product_id, stock_shop_id),
        )
    return stock_shop_id


def release_stock(product_id: int, stock_shop_id: int | None, quantity: int) -> None:
    """Return units to the counter reserve_stock took them from."""
    if stock_shop_id is not None:
        shop_product = get_shop_product(product_id, stock_shop_id)
        if shop_product is not None:
            guarded_increment(ShopProduct, shop_product.id, "stock", quantity)
            return
    guarded_increment(Product, product_id, "stock", quantity)


def _current_stock(product_id: int, stock_shop_id: int | None) -> int:
    # Read through the UPDATE just issued; the identity map may hold a stale value
    if stock_shop_id is not None:
        value = db.session.query(ShopProduct.stock).filter_by(
            franchise_id=stock_shop_id, product_id=product_id
        ).scalar()
    else:
        value = db.session.query(Product.stock).filter_by(id=product_id).scalar()
    return value or 0
