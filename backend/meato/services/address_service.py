# Overview: Service-layer operations for the per-user address book.

"""
Address Book

Saved delivery addresses, always scoped to the owning user: another user's
address id is reported as NotFound, never Forbidden, so ids do not leak.

Default handling:
- a user's first address becomes the default
- setting a default clears the flag on every other address of that user
- deleting the default promotes the most recently created remaining address
"""

from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import ADDRESS_LABELS, Address
from ..permissions import Actor, require
from ..validation import ModelValidationPolicy, validate_payload

ADDRESS_POLICY = ModelValidationPolicy(
    writable_fields={
        "label", "address_line", "city", "state", "pincode",
        "lat", "lng", "name", "phone", "is_default",
    },
    required_on_create={"address_line", "city", "pincode"},
)

# Client spellings accepted for stored columns
FIELD_ALIASES = {"street": "address_line", "type": "label"}


def _normalize(payload: dict) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    for alias, column in FIELD_ALIASES.items():
        if alias in payload:
            payload.setdefault(column, payload.pop(alias))
    return payload


def _check_fields(patch: dict) -> None:
    label = patch.get("label")
    if label is not None and label not in ADDRESS_LABELS:
        raise ValidationError("Unknown address label", fields={"label": f"must be one of {list(ADDRESS_LABELS)}"})
    if "lat" in patch and patch["lat"] is not None and not -90 <= patch["lat"] <= 90:
        raise ValidationError("lat out of range", fields={"lat": "must be between -90 and 90"})
    if "lng" in patch and patch["lng"] is not None and not -180 <= patch["lng"] <= 180:
        raise ValidationError("lng out of range", fields={"lng": "must be between -180 and 180"})


def _owned(user_id: int):
    return db.session.query(Address).filter(Address.user_id == user_id)


def _clear_default(user_id: int, keep_id: int | None = None) -> None:
    query = _owned(user_id).filter(Address.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Address.id != keep_id)
    for address in query.all():
        address.is_default = False


def list_addresses(actor: Actor) -> list[dict]:
    """Default first, then newest first."""
    require(actor, "MANAGE_ADDRESSES")
    addresses = (
        _owned(actor.user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )
    return [a.to_dict() for a in addresses]


def get_address(actor: Actor, address_id) -> Address:
    require(actor, "MANAGE_ADDRESSES")
    address = db.session.get(Address, address_id)
    if address is None or address.user_id != actor.user_id:
        raise NotFound("Address not found", details={"address_id": address_id})
    return address


def create_address(actor: Actor, payload: dict) -> Address:
    require(actor, "MANAGE_ADDRESSES")
    patch = validate_payload(model=Address, payload=_normalize(payload), policy=ADDRESS_POLICY, partial=False)
    _check_fields(patch)

    first = _owned(actor.user_id).first() is None
    address = Address(user_id=actor.user_id, **patch)
    if first:
        address.is_default = True
    db.session.add(address)
    db.session.flush()
    if address.is_default:
        _clear_default(actor.user_id, keep_id=address.id)
    db.session.commit()
    return address


def update_address(actor: Actor, address_id: int, payload: dict) -> Address:
    address = get_address(actor, address_id)
    patch = validate_payload(model=Address, payload=_normalize(payload), policy=ADDRESS_POLICY, partial=True)
    _check_fields(patch)

    # Unsetting the only default would leave the book without one
    if patch.get("is_default") is False and address.is_default:
        patch.pop("is_default")

    for key, value in patch.items():
        setattr(address, key, value)
    if address.is_default:
        _clear_default(actor.user_id, keep_id=address.id)
    db.session.commit()
    return address


def set_default(actor: Actor, address_id: int) -> Address:
    address = get_address(actor, address_id)
    address.is_default = True
    _clear_default(actor.user_id, keep_id=address.id)
    db.session.commit()
    return address


def delete_address(actor: Actor, address_id: int) -> None:
    address = get_address(actor, address_id)
    was_default = address.is_default
    db.session.delete(address)
    db.session.flush()

    if was_default:
        successor = (
            _owned(actor.user_id)
            .order_by(Address.created_at.desc(), Address.id.desc())
            .first()
        )
        if successor is not None:
            successor.is_default = True
    db.session.commit()
