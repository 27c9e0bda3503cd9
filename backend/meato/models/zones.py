from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class DeliveryZone(db.Model):
    """
    Delivery eligibility record.

    Matched by exact pincode, or by great-circle distance when lat/lng and
    radius_km are set. Only zones that are both active and approved are
    considered by the matcher.
    """
    __tablename__ = "delivery_zones"
    __table_args__ = (
        db.Index("ix_delivery_zones_active_approved", "active", "is_approved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    pincode = db.Column(db.String(16), nullable=False, unique=True)
    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)
    radius_km = db.Column(db.Float, nullable=True, default=5.0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    fast_delivery = db.Column(db.Boolean, nullable=False, default=False)

    # Owning shop (null for platform-wide zones)
    franchise_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def shop_id(self) -> int | None:
        return self.franchise_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "pincode": self.pincode,
            "lat": self.lat,
            "lng": self.lng,
            "radius_km": self.radius_km,
            "active": self.active,
            "fast_delivery": self.fast_delivery,
            "shop_id": self.shop_id,
            "is_approved": self.is_approved,
            "created_at": to_utc_z(self.created_at),
        }
