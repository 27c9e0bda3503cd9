from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Boolean, Float, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Largest quantity accepted for a single cart or order line
MAX_LINE_QUANTITY = 10_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped and "e" not in stripped.lower() and "." not in stripped:
            try:
                return int(stripped)
            except ValueError:
                pass
    raise ValidationError(f"{field} must be an integer", fields={field: "must be an integer"})


def parse_quantity(value: Any, field: str = "quantity") -> int:
    if value is None:
        raise ValidationError(f"{field} is required", fields={field: "is required"})
    quantity = parse_int(value, field)
    if quantity < 1:
        raise ValidationError(f"{field} must be a positive integer", fields={field: "must be >= 1"})
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(
            f"{field} cannot exceed {MAX_LINE_QUANTITY}",
            fields={field: f"must be <= {MAX_LINE_QUANTITY}"},
        )
    return quantity


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    parsed = parse_int(value, field)
    if parsed < 1:
        raise ValidationError(f"{field} must be a positive integer", fields={field: "must be >= 1"})
    return parsed


def parse_amount_cents(value: Any, field: str) -> int:
    """Convert a currency amount (e.g. 300, "300.50") to integer cents, half-up."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", fields={field: "is required"})
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", fields={field: "must be a number"})
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be >= 0", fields={field: "must be >= 0"})
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} is too large", fields={field: "is too large"})
    return cents


def cents_to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    if isinstance(coltype, (Numeric, Float)):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number", fields={col.key: "must be a number"})
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number", fields={col.key: "must be a number"})

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                fields={f: "is required" for f in missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", fields={k: "is not writable"})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", fields={k: "is unknown"})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", fields={k: "cannot be null"})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", fields={k: "cannot be blank"})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(
                    f"{k} exceeds max length {col.type.length}",
                    fields={k: f"exceeds max length {col.type.length}"},
                )

        patch[k] = val

    return patch


def enforce_price_rules(patch: dict) -> None:
    """Range checks for every *_cents field in a patch."""
    for key, value in patch.items():
        if not key.endswith("_cents") or value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0", fields={key: "must be >= 0"})
        if value > MAX_PRICE_CENTS:
            raise ValidationError(
                f"{key} cannot exceed {MAX_PRICE_CENTS}",
                fields={key: f"must be <= {MAX_PRICE_CENTS}"},
            )


def enforce_stock_rules(patch: dict) -> None:
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0", fields={"stock": "must be >= 0"})
