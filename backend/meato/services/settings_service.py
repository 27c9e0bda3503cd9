# Overview: Service-layer operations for storefront settings and the hero banner.

"""
Storefront settings are free-form key/value rows. A handful of keys have
defaults that are served until an admin stores a value.
"""

from __future__ import annotations

import re

from ..errors import ValidationError
from ..extensions import db
from ..models import Setting

KEY_RE = re.compile(r"^[a-z][a-z0-9_]{0,63}$")

SETTING_DEFAULTS = {
    "shop_name": "Meato",
}

# Response field -> stored key, with the copy shown before anything is saved
HERO_FIELDS = {
    "title": ("hero_title", "Freshness Delivered to Your Doorstep"),
    "subtitle": (
        "hero_subtitle",
        "Get the finest groceries, farm-fresh vegetables, and premium daily "
        "essentials delivered in minutes.",
    ),
    "badge": ("hero_badge", "100% ORGANIC & FRESH"),
    "buttonText": ("hero_button_text", "Shop Now"),
    "secondaryButtonText": ("hero_secondary_button_text", "View Offers"),
    "imageUrl": ("hero_image", None),
    "backgroundImageUrl": ("hero_bg_image", None),
}


def _stored() -> dict[str, str | None]:
    return {row.key: row.value for row in db.session.query(Setting).all()}


def _upsert(key: str, value) -> None:
    row = db.session.query(Setting).filter_by(key=key).first()
    text = None if value is None else str(value)
    if row is None:
        db.session.add(Setting(key=key, value=text))
    else:
        row.value = text


def get_settings() -> dict:
    data = dict(SETTING_DEFAULTS)
    data.update(_stored())
    return data


def update_settings(values) -> dict:
    """Upsert every key in ``values``; values are stored as text."""
    if not isinstance(values, dict) or not values:
        raise ValidationError("No settings provided", fields={"settings": "must be a non-empty object"})
    bad = sorted(k for k in values if not isinstance(k, str) or not KEY_RE.match(k))
    if bad:
        raise ValidationError("Invalid setting key", fields={k: "must be lower_snake_case" for k in bad})

    for key, value in values.items():
        _upsert(key, value)
    db.session.commit()
    return get_settings()


def get_hero() -> dict:
    stored = _stored()
    return {
        field: stored.get(key) or default
        for field, (key, default) in HERO_FIELDS.items()
    }


def update_hero(payload: dict) -> dict:
    """Store the hero fields present in ``payload``; omitted fields keep their value."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(k for k in payload if k not in HERO_FIELDS)
    if unknown:
        raise ValidationError("Unknown hero field", fields={k: "is unknown" for k in unknown})

    for field, value in payload.items():
        key, _ = HERO_FIELDS[field]
        _upsert(key, value)
    db.session.commit()
    return get_hero()
