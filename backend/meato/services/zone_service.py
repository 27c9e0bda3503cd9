# Overview: Service-layer operations for delivery zones; matching and admin maintenance.

"""
Delivery Zone Matcher

match() classifies an address as unavailable, standard or fast and names
the shop that serves it. It only reads zone rows.

Matching policy:
1. An exact pincode match on an active, approved zone wins outright.
2. Otherwise, with lat/lng supplied, every active, approved zone that has
   coordinates and a radius matches when the great-circle distance is
   within the radius.
3. Among several matches prefer fast_delivery zones, then the smallest
   radius, then the lowest id.
4. No match => available=False.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict

from flask import current_app

from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import DeliveryZone, Shop
from ..permissions import Actor, Role
from ..validation import ModelValidationPolicy, validate_payload
from .shop_service import haversine_km

ZONE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "pincode", "lat", "lng", "radius_km", "active",
        "fast_delivery", "franchise_id", "is_approved",
    },
    required_on_create={"name", "pincode"},
)


@dataclass(frozen=True)
class ZoneMatch:
    available: bool
    fast_eligible: bool = False
    shop_id: int | None = None
    zone_id: int | None = None
    zone_name: str | None = None
    delivery_fee_cents: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["fast_delivery"] = self.fast_eligible
        return data


def _matchable():
    return db.session.query(DeliveryZone).filter(
        DeliveryZone.active.is_(True),
        DeliveryZone.is_approved.is_(True),
    )


def _preference(zone: DeliveryZone):
    radius = zone.radius_km if zone.radius_km is not None else math.inf
    return (not zone.fast_delivery, radius, zone.id)


def delivery_fee_for(fast_eligible: bool) -> int:
    """Configured delivery fee (cents) for the delivery class."""
    if fast_eligible:
        return current_app.config.get("DELIVERY_FEE_FAST_CENTS", 0)
    return current_app.config.get("DELIVERY_FEE_STANDARD_CENTS", 0)


def _to_match(zone: DeliveryZone | None) -> ZoneMatch:
    if zone is None:
        return ZoneMatch(available=False, delivery_fee_cents=delivery_fee_for(False))
    return ZoneMatch(
        available=True,
        fast_eligible=bool(zone.fast_delivery),
        shop_id=zone.shop_id,
        zone_id=zone.id,
        zone_name=zone.name,
        delivery_fee_cents=delivery_fee_for(bool(zone.fast_delivery)),
    )


def match(pincode=None, lat=None, lng=None) -> ZoneMatch:
    pincode = str(pincode).strip() if pincode is not None else ""

    if pincode:
        by_pincode = _matchable().filter(DeliveryZone.pincode == pincode).all()
        if by_pincode:
            return _to_match(min(by_pincode, key=_preference))

    if lat is None or lng is None:
        return _to_match(None)

    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError("lat/lng must be numbers", fields={"lat": "must be a number", "lng": "must be a number"})

    candidates = _matchable().filter(
        DeliveryZone.lat.isnot(None),
        DeliveryZone.lng.isnot(None),
        DeliveryZone.radius_km.isnot(None),
    ).all()
    in_range = [
        zone for zone in candidates
        if haversine_km(lat, lng, zone.lat, zone.lng) <= zone.radius_km
    ]
    if not in_range:
        return _to_match(None)
    return _to_match(min(in_range, key=_preference))


def match_address(address: dict) -> ZoneMatch:
    return match(address.get("pincode"), address.get("lat"), address.get("lng"))


# =============================================================================
# ADMINISTRATION
# =============================================================================

def get_zone(zone_id: int) -> DeliveryZone:
    zone = db.session.get(DeliveryZone, zone_id)
    if zone is None:
        raise NotFound("Delivery zone not found", details={"zone_id": zone_id})
    return zone


def list_public_zones() -> list[dict]:
    zones = _matchable().order_by(DeliveryZone.name.asc(), DeliveryZone.id.asc()).all()
    return [z.to_dict() for z in zones]


def list_admin_zones(actor: Actor) -> list[dict]:
    query = db.session.query(DeliveryZone)
    if actor.role == Role.SHOP_ADMIN:
        query = query.filter(DeliveryZone.franchise_id == actor.shop_id)
    zones = query.order_by(DeliveryZone.created_at.desc(), DeliveryZone.id.desc()).all()
    return [z.to_dict() for z in zones]


def _normalize(payload: dict) -> dict:
    payload = dict(payload or {})
    if "shop_id" in payload:
        payload.setdefault("franchise_id", payload.pop("shop_id"))
    if "pincode" in payload and payload["pincode"] is not None:
        payload["pincode"] = str(payload["pincode"])
    return payload


def _check_pincode_free(pincode: str, zone_id: int | None = None) -> None:
    query = db.session.query(DeliveryZone).filter(DeliveryZone.pincode == pincode)
    if zone_id is not None:
        query = query.filter(DeliveryZone.id != zone_id)
    if query.first() is not None:
        raise Conflict("Pincode already exists in delivery zones", details={"pincode": pincode})


def _check_shop(shop_id: int | None) -> None:
    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise ValidationError("Unknown shop", fields={"shop_id": "does not exist"})


def _check_radius(patch: dict) -> None:
    radius = patch.get("radius_km")
    if radius is not None and radius <= 0:
        raise ValidationError("radius_km must be > 0", fields={"radius_km": "must be > 0"})


def create_zone(payload: dict, actor: Actor) -> DeliveryZone:
    """
    Create a zone.

    Shop admins create unapproved zones bound to their shop; a super admin
    approves them later. Admin and super admin creations are approved.
    """
    patch = validate_payload(model=DeliveryZone, payload=_normalize(payload), policy=ZONE_POLICY, partial=False)
    _check_radius(patch)
    _check_pincode_free(patch["pincode"])

    if actor.role == Role.SHOP_ADMIN:
        if actor.shop_id is None:
            raise Forbidden("No shop found for this admin")
        patch["franchise_id"] = actor.shop_id
        patch["is_approved"] = False
    else:
        patch["is_approved"] = True
    _check_shop(patch.get("franchise_id"))

    patch.setdefault("radius_km", 5.0)
    zone = DeliveryZone(**patch)
    db.session.add(zone)
    db.session.commit()
    return zone


def _require_zone_owner(zone: DeliveryZone, actor: Actor) -> None:
    if actor.role == Role.SHOP_ADMIN and zone.franchise_id != actor.shop_id:
        raise Forbidden("Unauthorized to modify this zone")


def update_zone(zone_id: int, payload: dict, actor: Actor) -> DeliveryZone:
    zone = get_zone(zone_id)
    _require_zone_owner(zone, actor)

    patch = validate_payload(model=DeliveryZone, payload=_normalize(payload), policy=ZONE_POLICY, partial=True)
    _check_radius(patch)
    if actor.role != Role.SUPER_ADMIN:
        patch.pop("is_approved", None)
    if actor.role == Role.SHOP_ADMIN:
        patch.pop("franchise_id", None)
    if "pincode" in patch and patch["pincode"] != zone.pincode:
        _check_pincode_free(patch["pincode"], zone.id)
    if "franchise_id" in patch:
        _check_shop(patch["franchise_id"])

    for key, value in patch.items():
        setattr(zone, key, value)
    db.session.commit()
    return zone


def approve_zone(zone_id: int) -> DeliveryZone:
    zone = get_zone(zone_id)
    zone.is_approved = True
    db.session.commit()
    return zone


def delete_zone(zone_id: int, actor: Actor) -> None:
    zone = get_zone(zone_id)
    _require_zone_owner(zone, actor)
    db.session.delete(zone)
    db.session.commit()
