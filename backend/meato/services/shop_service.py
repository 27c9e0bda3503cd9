# Overview: Service-layer operations for shops and their inventory overrides.

from __future__ import annotations

import math

from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Product, Shop, ShopProduct
from ..permissions import Actor, Role
from ..validation import (
    ModelValidationPolicy,
    enforce_price_rules,
    enforce_stock_rules,
    validate_payload,
)

EARTH_RADIUS_KM = 6371.0

INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={"is_enabled", "price_override_cents", "stock"},
    required_on_create=set(),
)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def get_shop(shop_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if shop is None:
        raise NotFound("Shop not found", details={"shop_id": shop_id})
    return shop


def list_shops(include_inactive: bool = False) -> list[dict]:
    query = db.session.query(Shop)
    if not include_inactive:
        query = query.filter(Shop.is_active.is_(True))
    return [s.to_dict() for s in query.order_by(Shop.name.asc(), Shop.id.asc()).all()]


def find_nearest_shop(lat: float, lng: float) -> tuple[Shop, float] | None:
    """
    Closest active shop whose delivery radius covers the point.

    Returns (shop, distance_km) or None. Ties go to the lower shop id.
    """
    best = None
    for shop in db.session.query(Shop).filter(Shop.is_active.is_(True)).order_by(Shop.id.asc()):
        distance = haversine_km(lat, lng, shop.lat, shop.lng)
        if distance > shop.delivery_radius_km:
            continue
        if best is None or distance < best[1]:
            best = (shop, distance)
    return best


def _require_shop_access(actor: Actor, shop_id: int) -> None:
    if actor.role == Role.SHOP_ADMIN and actor.shop_id != shop_id:
        raise Forbidden("Shop admins may only manage their own shop")


def get_inventory(shop_id: int, actor: Actor) -> list[dict]:
    get_shop(shop_id)
    _require_shop_access(actor, shop_id)
    rows = (
        db.session.query(ShopProduct)
        .filter_by(franchise_id=shop_id)
        .order_by(ShopProduct.product_id.asc())
        .all()
    )
    return [row.to_dict() for row in rows]


def upsert_inventory_item(shop_id: int, product_id: int, payload: dict, actor: Actor) -> ShopProduct:
    """
    Create or update the (shop, product) inventory override.

    Stock set here is absolute; orders adjust it through catalog_service.
    """
    get_shop(shop_id)
    _require_shop_access(actor, shop_id)
    if db.session.get(Product, product_id) is None:
        raise NotFound("Product not found", details={"product_id": product_id})

    patch = validate_payload(model=ShopProduct, payload=payload, policy=INVENTORY_POLICY, partial=True)
    if not patch:
        raise ValidationError("No inventory fields supplied")
    enforce_price_rules(patch)
    enforce_stock_rules(patch)

    row = db.session.query(ShopProduct).filter_by(franchise_id=shop_id, product_id=product_id).first()
    if row is None:
        row = ShopProduct(franchise_id=shop_id, product_id=product_id, is_enabled=True, stock=0)
        db.session.add(row)

    for key, value in patch.items():
        setattr(row, key, value)

    db.session.commit()
    return row


def create_shop(name: str, address: str, lat: float, lng: float,
                delivery_radius_km: float = 5.0, owner_id: int | None = None) -> Shop:
    name = (name or "").strip()
    address = (address or "").strip()
    fields = {}
    if not name:
        fields["name"] = "is required"
    if not address:
        fields["address"] = "is required"
    if delivery_radius_km is None or delivery_radius_km <= 0:
        fields["delivery_radius_km"] = "must be > 0"
    if fields:
        raise ValidationError("Invalid shop", fields=fields)

    shop = Shop(
        name=name,
        address=address,
        lat=float(lat),
        lng=float(lng),
        delivery_radius_km=float(delivery_radius_km),
        owner_id=owner_id,
        is_active=True,
    )
    db.session.add(shop)
    db.session.commit()
    return shop
