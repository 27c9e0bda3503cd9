from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ADDRESS_LABELS = ("home", "work", "other")


class Address(db.Model):
    """
    A saved delivery address in a user's address book.

    At most one address per user is the default; the service keeps that
    true, the schema does not.
    """
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    label = db.Column(db.String(16), nullable=False, default="home")
    address_line = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=True)
    pincode = db.Column(db.String(16), nullable=False)
    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)

    # Recipient, when it is not the account holder
    name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_delivery_address(self) -> dict:
        """The structure order creation stores on Order.delivery_address."""
        data = {
            "street": self.address_line,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "lat": self.lat,
            "lng": self.lng,
            "name": self.name,
            "phone": self.phone,
        }
        return {k: v for k, v in data.items() if v is not None}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "address_line": self.address_line,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "lat": self.lat,
            "lng": self.lng,
            "name": self.name,
            "phone": self.phone,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        }
