# Overview: Service-layer operations for orders; creation, delivery workflow and read projections.

"""
Order Lifecycle Manager

States:
    pending | processing -> assigned -> accepted -> out_for_delivery -> delivered
    assigned -> rejected
    any non-terminal -> cancelled

"reached" and "cash collected" are flags on an out_for_delivery order, not
statuses; Order.delivery_step derives the tracker position from them.

Every command checks, in order: the actor's capability, that the order
exists, that the actor may touch this particular order (assignee or shop
scope), and that the current status allows the command. Nothing is written
until all checks pass. Each transition runs inside run_with_retry with the
order row locked and version_id guarding against a concurrent writer.

Stock side effects:
- create decrements stock with conditional UPDATEs (catalog_service.reserve_stock)
- cancel and reject put the units back on the counter they came from
- admin_update_status never touches stock
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..address import encode_address, normalize_address
from ..errors import Conflict, Forbidden, NotFound, OutOfStock, ServiceError, ValidationError
from ..extensions import db
from ..models import (
    DeliveryType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductVariant,
    Shop,
    User,
)
from ..permissions import Actor, Role, require
from ..time_utils import utcnow
from ..validation import parse_amount_cents, parse_optional_id, parse_quantity
from . import (
    address_service,
    cart_service,
    catalog_service,
    notification_service,
    shop_service,
    zone_service,
)
from .concurrency import lock_for_update, run_with_retry


@dataclass
class _Line:
    product: Product
    variant: ProductVariant | None
    quantity: int
    unit_price_cents: int
    gst_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity


def _gst_cents(line_subtotal_cents: int, gst_percentage) -> int:
    pct = Decimal(str(gst_percentage or 0))
    return int((Decimal(line_subtotal_cents) * pct / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _log_transition(order: Order, previous: str | None, actor: Actor | None, note: str = "") -> None:
    current_app.logger.info(
        "order %s: %s -> %s by user %s%s",
        order.id,
        previous or "(new)",
        order.status,
        actor.user_id if actor else "guest",
        f" ({note})" if note else "",
    )


# =============================================================================
# CREATION
# =============================================================================

def _parse_items(items) -> list[tuple[int, int | None, int]]:
    """Validate an explicit item list; duplicate (product, variant) keys are summed."""
    if not isinstance(items, list):
        raise ValidationError("items must be a list", fields={"items": "must be a list"})

    merged: "OrderedDict[tuple[int, int | None], int]" = OrderedDict()
    for index, entry in enumerate(items):
        if not isinstance(entry, dict):
            raise ValidationError("Invalid item", fields={f"items[{index}]": "must be an object"})
        product_id = parse_optional_id(entry.get("product_id"), f"items[{index}].product_id")
        if product_id is None:
            raise ValidationError(
                "product_id is required",
                fields={f"items[{index}].product_id": "is required"},
            )
        variant_id = parse_optional_id(entry.get("variant_id"), f"items[{index}].variant_id")
        quantity = parse_quantity(entry.get("quantity"), f"items[{index}].quantity")
        key = (product_id, variant_id)
        merged[key] = merged.get(key, 0) + quantity

    return [(pid, vid, qty) for (pid, vid), qty in merged.items()]


def _resolve_address(actor: Actor | None, delivery_address, address_id) -> dict:
    address_id = parse_optional_id(address_id, "address_id")
    if address_id is None:
        return normalize_address(delivery_address)
    if delivery_address is not None:
        raise ValidationError(
            "Pass either delivery_address or address_id",
            fields={"address_id": "cannot be combined with delivery_address"},
        )
    if actor is None:
        raise ValidationError(
            "Saved addresses require sign-in",
            fields={"address_id": "is not available for guest checkout"},
        )
    saved = address_service.get_address(actor, address_id)
    return normalize_address(saved.to_delivery_address())


def _resolve_shop_id(shop_id, match: zone_service.ZoneMatch, address: dict) -> int | None:
    """Explicit shop > zone's shop > nearest active shop covering the address > none."""
    explicit = parse_optional_id(shop_id, "shop_id")
    if explicit is not None:
        shop = db.session.get(Shop, explicit)
        if shop is None or not shop.is_active:
            raise ValidationError("Unknown or inactive shop", fields={"shop_id": "does not exist"})
        return shop.id

    if match.shop_id is not None:
        return match.shop_id

    if address.get("lat") is not None and address.get("lng") is not None:
        nearest = shop_service.find_nearest_shop(address["lat"], address["lng"])
        if nearest is not None:
            return nearest[0].id

    return None


def _build_lines(raw_lines, shop_id: int | None) -> list[_Line]:
    lines = []
    for product_id, variant_id, quantity in raw_lines:
        product = catalog_service.get_product(product_id)
        variant = catalog_service.get_variant(product, variant_id)
        shop_product = catalog_service.get_shop_product(product.id, shop_id)
        unit_price = catalog_service.resolve_unit_price(product, variant, shop_product)
        lines.append(_Line(
            product=product,
            variant=variant,
            quantity=quantity,
            unit_price_cents=unit_price,
            gst_cents=_gst_cents(unit_price * quantity, product.gst_percentage),
        ))
    return lines


def _check_stock(lines: list[_Line], shop_id: int | None) -> "OrderedDict[int, int]":
    """
    Fail with OutOfStock, naming the first short product, before anything is written.

    Variants of one product share its counter, so quantities are summed per product.
    """
    needed: "OrderedDict[int, int]" = OrderedDict()
    names = {}
    for line in lines:
        needed[line.product.id] = needed.get(line.product.id, 0) + line.quantity
        names[line.product.id] = line.product.name

    for product_id, quantity in needed.items():
        available = catalog_service.available_stock(product_id, shop_id)
        if quantity > available:
            raise OutOfStock(
                product_id=product_id,
                product_name=names[product_id],
                requested=quantity,
                available=available,
            )
    return needed


def create_order(
    actor: Actor | None,
    delivery_address=None,
    items=None,
    shop_id=None,
    address_id=None,
) -> Order:
    """
    Create an order in status pending.

    Guests must pass ``items``. Signed-in users check out their cart unless
    they pass ``items`` explicitly, in which case the cart is left alone.
    The destination is either an inline ``delivery_address`` or the id of
    one of the user's saved addresses, never both.

    Within one transaction: the priced cart rows are deleted (all of them or
    Conflict), stock is decremented per product and the order and its line
    items are inserted. Customer and admin notifications go out after commit.
    """
    if actor is not None:
        require(actor, "PLACE_ORDER")

    address = _resolve_address(actor, delivery_address, address_id)

    cart_item_ids: list[int] = []
    if items is None:
        if actor is None:
            raise ValidationError("items are required for guest checkout", fields={"items": "is required"})
        cart_items = cart_service.list_items(actor.user_id)
        raw_lines = [(item.product_id, item.variant_id, item.quantity) for item in cart_items]
        cart_item_ids = [item.id for item in cart_items]
        if not raw_lines:
            raise ValidationError("Cart is empty", fields={"cart": "is empty"})
    else:
        raw_lines = _parse_items(items)
        if not raw_lines:
            raise ValidationError("items must not be empty", fields={"items": "must not be empty"})

    match = zone_service.match_address(address)
    if not match.available and current_app.config.get("REQUIRE_DELIVERY_ZONE"):
        raise ValidationError(
            "Delivery is not available for this address",
            fields={"delivery_address.pincode": "is outside every delivery zone"},
        )

    resolved_shop_id = _resolve_shop_id(shop_id, match, address)
    lines = _build_lines(raw_lines, resolved_shop_id)
    needed = _check_stock(lines, resolved_shop_id)

    subtotal = sum(line.subtotal_cents for line in lines)
    gst = sum(line.gst_cents for line in lines)
    delivery_fee = match.delivery_fee_cents
    handling_fee = current_app.config.get("HANDLING_FEE_CENTS", 0)

    def _op():
        try:
            if cart_item_ids:
                removed = cart_service.consume_items(actor.user_id, cart_item_ids)
                if removed != len(cart_item_ids):
                    raise Conflict(
                        "Cart changed during checkout",
                        details={"expected_items": len(cart_item_ids), "removed_items": removed},
                    )

            stock_sources = {}
            for product_id, quantity in needed.items():
                stock_sources[product_id] = catalog_service.reserve_stock(
                    product_id, resolved_shop_id, quantity
                )

            order = Order(
                user_id=actor.user_id if actor else None,
                subtotal_cents=subtotal,
                gst_amount_cents=gst,
                delivery_fee_cents=delivery_fee,
                handling_fee_cents=handling_fee,
                total_cents=subtotal + gst + delivery_fee + handling_fee,
                status=OrderStatus.PENDING,
                delivery_type=DeliveryType.FAST if match.fast_eligible else DeliveryType.STANDARD,
                payment_status=PaymentStatus.PENDING,
                delivery_address=encode_address(address),
                franchise_id=resolved_shop_id,
            )
            db.session.add(order)
            db.session.flush()

            for line in lines:
                db.session.add(OrderItem(
                    order_id=order.id,
                    product_id=line.product.id,
                    variant_id=line.variant.id if line.variant else None,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    gst_cents=line.gst_cents,
                    stock_shop_id=stock_sources[line.product.id],
                ))

            db.session.commit()
        except ServiceError:
            db.session.rollback()
            raise
        return order

    order = run_with_retry(_op)
    _log_transition(order, None, actor)

    customer = db.session.get(User, actor.user_id) if actor else None
    notification_service.dispatch(
        notification_service.ORDER_CONFIRMED,
        notification_service.order_confirmation(order, customer, guest_contact=address),
    )
    notification_service.dispatch(
        notification_service.ORDER_NEW_ADMIN_ALERT,
        notification_service.admin_alert(order),
    )
    return order


# =============================================================================
# TRANSITIONS
# =============================================================================

def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def _require_status(order: Order, allowed, command: str) -> None:
    if order.status not in allowed:
        raise Conflict(
            f"Cannot {command} an order that is {order.status}",
            details={"order_id": order.id, "status": order.status, "allowed": sorted(allowed)},
        )


def _require_assignee(order: Order, actor: Actor) -> None:
    if order.delivery_person_id is None or order.delivery_person_id != actor.user_id:
        raise Forbidden("Order is not assigned to you", details={"order_id": order.id})


def _require_shop_scope(order: Order, actor: Actor) -> None:
    if actor.role == Role.SHOP_ADMIN and order.franchise_id != actor.shop_id:
        raise Forbidden("Order belongs to another shop", details={"order_id": order.id})


def _run_transition(actor: Actor, action: str, order_id: int, handler, note: str = "") -> Order:
    """
    Capability check, then lock + handler + commit under retry.

    ``handler(order)`` validates and mutates; it must raise before writing.
    """
    require(actor, action)

    def _op():
        try:
            order = _locked_order(order_id)
            previous = order.status
            handler(order)
            db.session.commit()
        except ServiceError:
            db.session.rollback()
            raise
        return order, previous

    order, previous = run_with_retry(_op)
    _log_transition(order, previous, actor, note)
    return order


def _restore_stock(order: Order) -> None:
    for item in order.items:
        catalog_service.release_stock(item.product_id, item.stock_shop_id, item.quantity)


def assign(actor: Actor, order_id: int, delivery_person_id) -> Order:
    """pending/processing -> assigned. Notifies the delivery person after commit."""
    courier_id = parse_optional_id(delivery_person_id, "delivery_person_id")
    if courier_id is None:
        raise ValidationError("delivery_person_id is required", fields={"delivery_person_id": "is required"})

    def _handler(order: Order) -> None:
        _require_shop_scope(order, actor)
        _require_status(order, OrderStatus.AWAITING_ASSIGNMENT, "assign")

        courier = db.session.get(User, courier_id)
        if courier is None or courier.role != Role.DELIVERY_PERSON.value or not courier.is_active:
            raise ValidationError(
                "Not an active delivery person",
                fields={"delivery_person_id": "must be an active delivery person"},
            )
        if actor.role == Role.SHOP_ADMIN and courier.franchise_id != actor.shop_id:
            raise Forbidden("Delivery person belongs to another shop")

        order.delivery_person_id = courier.id
        order.status = OrderStatus.ASSIGNED

    order = _run_transition(actor, "ASSIGN_DELIVERY", order_id, _handler)

    courier = db.session.get(User, order.delivery_person_id)
    notification_service.dispatch(
        notification_service.ORDER_DELIVERY_ASSIGNED,
        notification_service.delivery_assignment(order, courier),
    )
    return order


def accept(actor: Actor, order_id: int) -> Order:
    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.ASSIGNED}, "accept")
        order.status = OrderStatus.ACCEPTED
        order.accepted_at = utcnow()

    return _run_transition(actor, "ACCEPT_DELIVERY", order_id, _handler)


def reject(actor: Actor, order_id: int, reason: str | None = None) -> Order:
    """
    assigned -> rejected (terminal).

    delivery_person_id is kept for audit; the order's stock goes back.
    """
    reason = (reason or "").strip() or None
    if reason is not None and len(reason) > 255:
        raise ValidationError("reason is too long", fields={"reason": "exceeds max length 255"})

    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.ASSIGNED}, "reject")
        _restore_stock(order)
        order.status = OrderStatus.REJECTED
        order.rejected_at = utcnow()
        order.rejection_reason = reason

    return _run_transition(actor, "REJECT_DELIVERY", order_id, _handler)


def mark_out_for_delivery(actor: Actor, order_id: int) -> Order:
    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.ACCEPTED}, "start delivery of")
        order.status = OrderStatus.OUT_FOR_DELIVERY

    return _run_transition(actor, "START_DELIVERY", order_id, _handler)


def mark_reached(actor: Actor, order_id: int) -> Order:
    """Sets reached_confirmed; repeating it is a no-op."""
    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.OUT_FOR_DELIVERY}, "confirm arrival for")
        if not order.reached_confirmed:
            order.reached_confirmed = True

    return _run_transition(actor, "CONFIRM_REACHED", order_id, _handler, note="reached")


def collect_cash(actor: Actor, order_id: int, amount, confirm_amount=None) -> Order:
    """
    Record cash on delivery.

    ``amount`` and the optional second entry ``confirm_amount`` must agree
    with each other and with the order total. Marks the order paid.
    """
    amount_cents = parse_amount_cents(amount, "amount")
    confirm_cents = amount_cents if confirm_amount is None else parse_amount_cents(confirm_amount, "confirm_amount")
    if confirm_cents != amount_cents:
        raise ValidationError("Amounts do not match", fields={"confirm_amount": "must equal amount"})

    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.OUT_FOR_DELIVERY}, "collect cash for")
        if not order.reached_confirmed:
            raise Conflict("Confirm arrival before collecting cash", details={"order_id": order.id})
        if order.cash_collected:
            raise Conflict("Cash already collected", details={"order_id": order.id})
        if amount_cents != order.total_cents:
            raise ValidationError(
                "Collected amount does not match the order total",
                fields={"amount": f"must equal {order.total_cents / 100:.2f}"},
            )
        order.amount_collected_1_cents = amount_cents
        order.amount_collected_2_cents = confirm_cents
        order.cash_collected = True
        order.payment_status = PaymentStatus.PAID

    return _run_transition(actor, "COLLECT_CASH", order_id, _handler, note="cash collected")


def mark_delivered(actor: Actor, order_id: int) -> Order:
    def _handler(order: Order) -> None:
        _require_assignee(order, actor)
        _require_status(order, {OrderStatus.OUT_FOR_DELIVERY}, "deliver")
        if not (order.cash_collected or order.payment_status == PaymentStatus.PAID):
            raise Conflict("Payment has not been collected", details={"order_id": order.id})
        order.status = OrderStatus.DELIVERED
        order.delivered_at = utcnow()

    return _run_transition(actor, "COMPLETE_DELIVERY", order_id, _handler)


def cancel(actor: Actor, order_id: int, reason: str | None = None) -> Order:
    """Any non-terminal status -> cancelled; stock is restored."""
    reason = (reason or "").strip() or None
    if reason is not None and len(reason) > 255:
        raise ValidationError("reason is too long", fields={"reason": "exceeds max length 255"})

    def _handler(order: Order) -> None:
        _require_shop_scope(order, actor)
        _require_status(order, OrderStatus.CANCELLABLE, "cancel")
        _restore_stock(order)
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason

    return _run_transition(actor, "CANCEL_ORDER", order_id, _handler)


def admin_update_status(actor: Actor, order_id: int, status=None, payment_status=None) -> Order:
    """
    Manual override: set any known status on a non-terminal order.

    This deliberately skips the transition table and performs no side
    effects (no stock movement, no notifications, no timestamps). Use
    cancel() to cancel with stock restoration.
    """
    if status is None and payment_status is None:
        raise ValidationError("status or payment_status is required", fields={"status": "is required"})
    if status is not None and status not in OrderStatus.ALL:
        raise ValidationError("Unknown status", fields={"status": f"must be one of {sorted(OrderStatus.ALL)}"})
    if payment_status is not None and payment_status not in PaymentStatus.ALL:
        raise ValidationError(
            "Unknown payment status",
            fields={"payment_status": f"must be one of {sorted(PaymentStatus.ALL)}"},
        )

    def _handler(order: Order) -> None:
        _require_shop_scope(order, actor)
        _require_status(order, OrderStatus.CANCELLABLE, "update")
        if status is not None:
            order.status = status
        if payment_status is not None:
            order.payment_status = payment_status

    return _run_transition(actor, "UPDATE_ORDER_STATUS", order_id, _handler, note="manual override")


# =============================================================================
# READS
# =============================================================================

def _paginate(query, page: int | None, per_page: int | None) -> dict:
    if page is None:
        orders = query.all()
        return {"items": [o.to_dict() for o in orders], "count": len(orders)}

    per_page = max(1, min(per_page or 20, 100))
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _newest_first(query):
    return query.order_by(Order.created_at.desc(), Order.id.desc())


def list_user_orders(actor: Actor, page: int | None = None, per_page: int | None = None) -> dict:
    require(actor, "VIEW_OWN_ORDERS")
    query = _newest_first(db.session.query(Order).filter(Order.user_id == actor.user_id))
    return _paginate(query, page, per_page)


def get_user_order(actor: Actor, order_id: int) -> Order:
    """Owners see their own orders; admins see orders in their scope."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    if order.user_id == actor.user_id:
        return order
    if actor.is_admin:
        _require_shop_scope(order, actor)
        return order
    raise Forbidden("Not your order", details={"order_id": order_id})


def list_admin_orders(
    actor: Actor,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """All orders; shop admins only see their shop's."""
    require(actor, "VIEW_ALL_ORDERS")
    query = db.session.query(Order)
    if actor.role == Role.SHOP_ADMIN:
        query = query.filter(Order.franchise_id == actor.shop_id)
    if status:
        if status not in OrderStatus.ALL:
            raise ValidationError("Unknown status", fields={"status": f"must be one of {sorted(OrderStatus.ALL)}"})
        query = query.filter(Order.status == status)
    return _paginate(_newest_first(query), page, per_page)


def list_delivery_orders(actor: Actor, status: str | None = None) -> dict:
    require(actor, "VIEW_ASSIGNED_ORDERS")
    query = db.session.query(Order).filter(Order.delivery_person_id == actor.user_id)
    if status:
        query = query.filter(Order.status == status)
    return _paginate(_newest_first(query), None, None)


def track_order(order_id: int) -> dict:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order.to_tracking_dict()
