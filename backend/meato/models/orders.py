from __future__ import annotations

from ..address import decode_address
from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import cents_to_amount


class OrderStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = frozenset({
        PENDING, PROCESSING, ASSIGNED, ACCEPTED, REJECTED,
        OUT_FOR_DELIVERY, DELIVERED, CANCELLED,
    })
    # Both mean "awaiting shop action"
    AWAITING_ASSIGNMENT = frozenset({PENDING, PROCESSING})
    TERMINAL = frozenset({DELIVERED, CANCELLED, REJECTED})
    CANCELLABLE = ALL - TERMINAL


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    ALL = frozenset({PENDING, PAID, FAILED})


class DeliveryType:
    STANDARD = "standard"
    FAST = "fast"


class Order(db.Model):
    """
    One checkout.

    LIFECYCLE: created atomically from a cart (or guest item list) in status
    pending, then mutated only by order_service transitions. Orders are never
    deleted; delivered, cancelled and rejected are terminal.

    total_cents is fixed at creation:
        sum(unit_price_cents * quantity) + gst + delivery fee + handling fee

    CONCURRENCY: version_id is an optimistic lock so two transitions racing on
    the same order cannot both commit.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_franchise_status", "franchise_id", "status"),
        db.Index("ix_orders_delivery_person", "delivery_person_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Null for guest checkout
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    handling_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.PENDING, index=True)
    delivery_type = db.Column(db.String(16), nullable=False, default=DeliveryType.STANDARD)
    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING)

    # JSON text; see address.decode_address for the read contract
    delivery_address = db.Column(db.Text, nullable=True)

    delivery_person_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Fulfilling shop
    franchise_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)

    # Delivery workflow flags
    reached_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    amount_collected_1_cents = db.Column(db.Integer, nullable=True)
    amount_collected_2_cents = db.Column(db.Integer, nullable=True)
    cash_collected = db.Column(db.Boolean, nullable=False, default=False)

    rejection_reason = db.Column(db.String(255), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id])
    delivery_person = db.relationship("User", foreign_keys=[delivery_person_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def shop_id(self) -> int | None:
        return self.franchise_id

    @property
    def address(self) -> dict | str | None:
        return decode_address(self.delivery_address)

    @property
    def delivery_step(self) -> str:
        """Delivery tracker position inferred from status and workflow flags."""
        if self.status == OrderStatus.DELIVERED:
            return "delivered"
        if self.status == OrderStatus.OUT_FOR_DELIVERY:
            if self.cash_collected:
                return "cash_collected"
            if self.reached_confirmed:
                return "reached"
            return "out_for_delivery"
        return "assigned"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "delivery_type": self.delivery_type,
            "payment_status": self.payment_status,
            "delivery_address": self.address,
            "subtotal_cents": self.subtotal_cents,
            "gst_amount_cents": self.gst_amount_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "handling_fee_cents": self.handling_fee_cents,
            "total_cents": self.total_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
            "gst_amount": cents_to_amount(self.gst_amount_cents),
            "delivery_fee": cents_to_amount(self.delivery_fee_cents),
            "handling_fee": cents_to_amount(self.handling_fee_cents),
            "total": cents_to_amount(self.total_cents),
            "delivery_person_id": self.delivery_person_id,
            "shop_id": self.shop_id,
            "reached_confirmed": self.reached_confirmed,
            "cash_collected": self.cash_collected,
            "amount_collected_1": cents_to_amount(self.amount_collected_1_cents),
            "amount_collected_2": cents_to_amount(self.amount_collected_2_cents),
            "rejection_reason": self.rejection_reason,
            "cancellation_reason": self.cancellation_reason,
            "accepted_at": to_utc_z(self.accepted_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "delivery_step": self.delivery_step,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def to_tracking_dict(self) -> dict:
        """Limited projection for unauthenticated tracking by id."""
        courier = self.delivery_person
        return {
            "id": self.id,
            "status": self.status,
            "delivery_step": self.delivery_step,
            "created_at": to_utc_z(self.created_at),
            "total": cents_to_amount(self.total_cents),
            "payment_status": self.payment_status,
            "delivery_type": self.delivery_type,
            "delivery_person": {
                "name": courier.name,
                "phone": courier.phone,
            } if courier else None,
            "items": [
                {
                    "product_name": item.product.name if item.product else None,
                    "image": item.product.image if item.product else None,
                    "quantity": item.quantity,
                }
                for item in self.items
            ],
        }

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} total_cents={self.total_cents}>"


class OrderItem(db.Model):
    """Immutable line item; unit price is snapshotted at order time."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)

    # Shop whose inventory row was decremented; null means master stock
    stock_shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id", cascade="all, delete-orphan"),
    )
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "price": cents_to_amount(self.unit_price_cents),
            "line_total_cents": self.line_total_cents,
            "gst_cents": self.gst_cents,
        }
