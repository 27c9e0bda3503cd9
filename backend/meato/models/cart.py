from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Cart(db.Model):
    """One active cart per user, created lazily on first add."""
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class CartItem(db.Model):
    """
    A (product, variant) line in a cart.

    variant_key mirrors variant_id with 0 standing in for "no variant" so the
    unique constraint also covers variant-less lines (NULLs never collide in
    a unique index).
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", "variant_key", name="uq_cart_items_key"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    variant_key = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cart = db.relationship("Cart", backref=db.backref("items", lazy=True, order_by="CartItem.id"))
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    @staticmethod
    def key_for(variant_id: int | None) -> int:
        return variant_id or 0

    def to_dict(self, unit_price_cents: int | None = None) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "image": self.product.image,
                "price_cents": self.product.price_cents,
            } if self.product else None,
            "variant": self.variant.to_dict() if self.variant else None,
            "created_at": to_utc_z(self.created_at),
        }
        if unit_price_cents is not None:
            data["unit_price_cents"] = unit_price_cents
            data["line_total_cents"] = unit_price_cents * self.quantity
        return data
