from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import cents_to_amount


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Catalog master product.

    ``stock`` is the master counter used when no shop-specific inventory row
    applies. It is only ever decremented through catalog_service.reserve_stock,
    which issues a conditional UPDATE so concurrent orders cannot oversell.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_category", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Crossed-out display price and selling price, in cents
    mrp_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    image = db.Column(db.String(512), nullable=True)
    gst_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_approved = db.Column(db.Boolean, nullable=False, default=True)

    # Shop that submitted the product (null for master catalog entries)
    franchise_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def shop_id(self) -> int | None:
        return self.franchise_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "mrp_cents": self.mrp_cents,
            "price_cents": self.price_cents,
            "price": cents_to_amount(self.price_cents),
            "stock": self.stock,
            "image": self.image,
            "gst_percentage": float(self.gst_percentage or 0),
            "is_approved": self.is_approved,
            "shop_id": self.shop_id,
            "variants": [v.to_dict() for v in self.variants],
            "created_at": to_utc_z(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"


class ProductVariant(db.Model):
    """Priced pack size of a product (e.g. 500g, 1kg). Stock is tracked on the product."""
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    discount_price_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship(
        "Product",
        backref=db.backref("variants", lazy=True, order_by="ProductVariant.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_name": self.variant_name,
            "price_cents": self.price_cents,
            "discount_price_cents": self.discount_price_cents,
        }


class Shop(db.Model):
    """Fulfilment location (a.k.a. franchise)."""
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=False)
    lat = db.Column(db.Float, nullable=False)
    lng = db.Column(db.Float, nullable=False)
    delivery_radius_km = db.Column(db.Float, nullable=False, default=5.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Shop admin who owns the shop
    owner_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "lat": self.lat,
            "lng": self.lng,
            "delivery_radius_km": self.delivery_radius_km,
            "is_active": self.is_active,
            "owner_id": self.owner_id,
        }


class ShopProduct(db.Model):
    """
    Per-shop inventory override.

    One row per (shop, product). price_override_cents null means the master
    price applies. ``stock`` is independent of Product.stock.
    """
    __tablename__ = "shop_products"
    __table_args__ = (
        db.UniqueConstraint("franchise_id", "product_id", name="uq_shop_products_shop_product"),
        db.CheckConstraint("stock >= 0", name="ck_shop_products_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    franchise_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    is_enabled = db.Column(db.Boolean, nullable=False, default=True)
    price_override_cents = db.Column(db.Integer, nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("inventory", lazy=True))
    product = db.relationship("Product")

    @property
    def shop_id(self) -> int:
        return self.franchise_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "is_enabled": self.is_enabled,
            "price_override_cents": self.price_override_cents,
            "stock": self.stock,
        }
