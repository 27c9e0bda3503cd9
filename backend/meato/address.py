# Overview: Encode/decode contract for the order delivery_address text column.

"""
Delivery addresses are persisted as JSON text.

Rows written before the JSON contract hold free-form strings. Reads therefore
return a dict when the stored text decodes to a JSON object and the raw string
otherwise; consumers must accept either shape.
"""

from __future__ import annotations

import json
from typing import Any

from .errors import ValidationError


REQUIRED_ADDRESS_FIELDS = ("street", "city", "pincode")

# Accepted spellings for the street line
STREET_ALIASES = ("street", "address_line", "line1")


def normalize_address(raw: Any) -> dict:
    """Validate a structured delivery address and return a cleaned copy."""
    if not isinstance(raw, dict):
        raise ValidationError(
            "delivery_address must be an object",
            fields={"delivery_address": "must be an object"},
        )

    address = {k: v for k, v in raw.items() if v is not None}
    for alias in STREET_ALIASES:
        value = address.get(alias)
        if isinstance(value, str) and value.strip():
            address["street"] = value.strip()
            break

    missing = {}
    for field in REQUIRED_ADDRESS_FIELDS:
        value = address.get(field)
        if value is None or str(value).strip() == "":
            missing[f"delivery_address.{field}"] = "is required"
    if missing:
        raise ValidationError("Invalid delivery address", fields=missing)

    address["city"] = str(address["city"]).strip()
    address["pincode"] = str(address["pincode"]).strip()
    if "state" in address:
        address["state"] = str(address["state"]).strip()

    for coord in ("lat", "lng"):
        if coord in address:
            try:
                address[coord] = float(address[coord])
            except (TypeError, ValueError):
                raise ValidationError(
                    "Invalid delivery address",
                    fields={f"delivery_address.{coord}": "must be a number"},
                )
    return address


def encode_address(address: dict | None) -> str | None:
    if address is None:
        return None
    return json.dumps(address, sort_keys=True)


def decode_address(stored: str | None) -> dict | str | None:
    if stored is None:
        return None
    try:
        value = json.loads(stored)
    except (TypeError, ValueError):
        return stored
    if isinstance(value, dict):
        return value
    return stored
