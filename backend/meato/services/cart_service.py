# Overview: Service-layer operations for the per-user cart.

"""
Cart Engine

One cart per user, keyed by (product, variant). add_item has SET semantics:
the caller passes the final quantity for the key and it overwrites whatever
was there. Stock is not checked here; order creation does that.

Upserts lean on the (cart_id, product_id, variant_key) unique constraint: a
concurrent insert of the same key loses with IntegrityError, rolls back and
retries as an update, so a key never has two rows. Lock timeouts go through
run_with_retry like every other write.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Cart, CartItem
from ..validation import cents_to_amount, parse_optional_id, parse_quantity
from . import catalog_service
from .concurrency import run_with_retry


def _find_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id).first()


def _get_or_create_cart(user_id: int) -> Cart:
    cart = _find_cart(user_id)
    if cart is not None:
        return cart
    try:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.commit()
    except IntegrityError:
        # Another request created it first
        db.session.rollback()
        cart = _find_cart(user_id)
    return cart


def _find_item(cart_id: int, product_id: int, variant_id: int | None) -> CartItem | None:
    return db.session.query(CartItem).filter_by(
        cart_id=cart_id,
        product_id=product_id,
        variant_key=CartItem.key_for(variant_id),
    ).first()


def _set_quantity(cart_id: int, product_id: int, variant_id: int | None, quantity: int) -> None:
    item = _find_item(cart_id, product_id, variant_id)
    if item is None:
        db.session.add(CartItem(
            cart_id=cart_id,
            product_id=product_id,
            variant_id=variant_id,
            variant_key=CartItem.key_for(variant_id),
            quantity=quantity,
        ))
    else:
        item.quantity = quantity
    db.session.commit()


def add_item(user_id: int, product_id, quantity, variant_id=None) -> dict:
    """
    Set the quantity for (product, variant) in the user's cart.

    Raises ValidationError for a non-positive or non-integer quantity and
    NotFound for an unknown product or a variant of another product.
    """
    quantity = parse_quantity(quantity)
    product_id = parse_optional_id(product_id, "product_id")
    variant_id = parse_optional_id(variant_id, "variant_id")
    if product_id is None:
        raise ValidationError("product_id is required", fields={"product_id": "is required"})

    product = catalog_service.get_product(product_id)
    catalog_service.get_variant(product, variant_id)

    cart_id = run_with_retry(lambda: _get_or_create_cart(user_id).id)

    def _op():
        try:
            _set_quantity(cart_id, product_id, variant_id, quantity)
        except IntegrityError:
            db.session.rollback()
            _set_quantity(cart_id, product_id, variant_id, quantity)

    run_with_retry(_op)
    return summarize(user_id)


def remove_item(user_id: int, product_id: int, variant_id: int | None = None) -> dict:
    """Remove the exact (product, variant) key. Missing keys are not an error."""
    cart = _find_cart(user_id)
    if cart is not None:
        item = _find_item(cart.id, product_id, variant_id)
        if item is not None:
            db.session.delete(item)
            db.session.commit()
    return summarize(user_id)


def clear(user_id: int) -> dict:
    """Empty the cart. Idempotent."""
    cart = _find_cart(user_id)
    if cart is not None:
        db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session="fetch")
    db.session.commit()
    return summarize(user_id)


def consume_items(user_id: int, item_ids: list[int]) -> int:
    """
    Delete exactly the given cart rows inside the caller's transaction.

    Returns how many rows went away. Order creation compares that with the
    snapshot it priced; a shortfall means another checkout already took them.
    """
    if not item_ids:
        return 0
    cart = _find_cart(user_id)
    if cart is None:
        return 0
    return (
        db.session.query(CartItem)
        .filter(CartItem.cart_id == cart.id, CartItem.id.in_(item_ids))
        .delete(synchronize_session="fetch")
    )


def list_items(user_id: int) -> list[CartItem]:
    cart = _find_cart(user_id)
    if cart is None:
        return []
    return (
        db.session.query(CartItem)
        .filter_by(cart_id=cart.id)
        .order_by(CartItem.id.asc())
        .all()
    )


def summarize(user_id: int) -> dict:
    """Cart contents in insertion order plus the computed subtotal."""
    items = []
    subtotal_cents = 0
    for item in list_items(user_id):
        unit_price = catalog_service.resolve_unit_price(item.product, item.variant)
        subtotal_cents += unit_price * item.quantity
        items.append(item.to_dict(unit_price_cents=unit_price))
    return {
        "items": items,
        "count": len(items),
        "subtotal_cents": subtotal_cents,
        "subtotal": cents_to_amount(subtotal_cents),
    }
