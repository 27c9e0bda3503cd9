"""Delivery zone matching and zone administration."""

import pytest

from meato.errors import Conflict, Forbidden, ValidationError
from meato.models import DeliveryZone
from meato.services import zone_service
from meato.services.session_service import actor_for

# Chennai Central and a point ~2.2 km east of it
CENTRAL = (13.0827, 80.2707)
EAST_2KM = (13.0827, 80.2907)


class TestMatch:

    def test_pincode_match(self, make_zone, shop):
        zone = make_zone("600001", shop=shop)
        match = zone_service.match(pincode="600001")

        assert match.available
        assert not match.fast_eligible
        assert match.zone_id == zone.id
        assert match.shop_id == shop.id

    def test_pincode_wins_over_coordinates(self, make_zone):
        by_pincode = make_zone("600001")
        make_zone("600099", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=10, fast_delivery=True)

        match = zone_service.match(pincode="600001", lat=CENTRAL[0], lng=CENTRAL[1])

        assert match.zone_id == by_pincode.id
        assert not match.fast_eligible

    def test_radius_match(self, make_zone):
        zone = make_zone("600050", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=3)
        match = zone_service.match(pincode="999999", lat=EAST_2KM[0], lng=EAST_2KM[1])
        assert match.available
        assert match.zone_id == zone.id

    def test_outside_radius(self, make_zone):
        make_zone("600050", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=1)
        assert not zone_service.match(lat=EAST_2KM[0], lng=EAST_2KM[1]).available

    def test_fast_zone_is_preferred(self, make_zone):
        make_zone("600050", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=3)
        fast = make_zone("600051", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=8, fast_delivery=True)

        match = zone_service.match(lat=EAST_2KM[0], lng=EAST_2KM[1])

        assert match.zone_id == fast.id
        assert match.fast_eligible
        assert match.to_dict()["fast_delivery"] is True

    def test_smallest_radius_breaks_ties(self, make_zone):
        make_zone("600050", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=8)
        tight = make_zone("600051", lat=CENTRAL[0], lng=CENTRAL[1], radius_km=3)
        assert zone_service.match(lat=EAST_2KM[0], lng=EAST_2KM[1]).zone_id == tight.id

    @pytest.mark.parametrize("flags", [{"active": False}, {"is_approved": False}])
    def test_inactive_or_unapproved_zones_never_match(self, make_zone, flags):
        make_zone("600001", lat=CENTRAL[0], lng=CENTRAL[1], **flags)
        assert not zone_service.match(pincode="600001").available
        assert not zone_service.match(lat=CENTRAL[0], lng=CENTRAL[1]).available

    def test_no_match(self, db_session):
        match = zone_service.match(pincode="123456")
        assert match.available is False
        assert match.zone_id is None
        assert match.shop_id is None

    def test_invalid_coordinates(self, make_zone):
        make_zone("600050", lat=CENTRAL[0], lng=CENTRAL[1])
        with pytest.raises(ValidationError):
            zone_service.match(lat="north", lng="east")

    def test_delivery_fee_follows_delivery_class(self, app, make_zone):
        app.config["DELIVERY_FEE_STANDARD_CENTS"] = 2500
        app.config["DELIVERY_FEE_FAST_CENTS"] = 4900
        make_zone("600001")
        make_zone("600002", fast_delivery=True)

        assert zone_service.match(pincode="600001").delivery_fee_cents == 2500
        assert zone_service.match(pincode="600002").delivery_fee_cents == 4900


class TestZoneAdministration:

    def test_shop_admin_zones_start_unapproved(self, shop_admin, shop):
        zone = zone_service.create_zone({"name": "Adyar", "pincode": "600020"}, actor_for(shop_admin))

        assert zone.is_approved is False
        assert zone.franchise_id == shop.id
        assert not zone_service.match(pincode="600020").available

    def test_super_admin_approval_makes_zone_matchable(self, shop_admin, super_admin):
        zone = zone_service.create_zone({"name": "Adyar", "pincode": "600020"}, actor_for(shop_admin))
        zone_service.approve_zone(zone.id)
        assert zone_service.match(pincode="600020").available

    def test_admin_zones_are_approved(self, admin):
        zone = zone_service.create_zone({"name": "T Nagar", "pincode": 600017}, actor_for(admin))
        assert zone.is_approved is True
        assert zone.pincode == "600017"

    def test_duplicate_pincode(self, admin, make_zone):
        make_zone("600017")
        with pytest.raises(Conflict):
            zone_service.create_zone({"name": "Again", "pincode": "600017"}, actor_for(admin))

    def test_required_fields(self, admin):
        with pytest.raises(ValidationError):
            zone_service.create_zone({"pincode": "600017"}, actor_for(admin))

    def test_only_super_admin_changes_approval(self, admin, super_admin, make_zone):
        zone = make_zone("600017", is_approved=False)

        zone_service.update_zone(zone.id, {"is_approved": True}, actor_for(admin))
        assert zone.is_approved is False

        zone_service.update_zone(zone.id, {"is_approved": True}, actor_for(super_admin))
        assert zone.is_approved is True

    def test_shop_admin_cannot_touch_other_shops_zones(self, make_shop, make_zone, shop_admin):
        other_shop = make_shop()
        zone = make_zone("600017", shop=other_shop)

        with pytest.raises(Forbidden):
            zone_service.update_zone(zone.id, {"name": "Mine now"}, actor_for(shop_admin))
        with pytest.raises(Forbidden):
            zone_service.delete_zone(zone.id, actor_for(shop_admin))

    def test_admin_listing_is_shop_scoped(self, shop, shop_admin, admin, make_shop, make_zone):
        make_zone("600001", shop=shop)
        make_zone("600002", shop=make_shop())

        assert [z["pincode"] for z in zone_service.list_admin_zones(actor_for(shop_admin))] == ["600001"]
        assert len(zone_service.list_admin_zones(actor_for(admin))) == 2

    def test_delete(self, db_session, admin, make_zone):
        zone = make_zone("600001")
        zone_service.delete_zone(zone.id, actor_for(admin))
        assert db_session.get(DeliveryZone, zone.id) is None

    def test_public_listing_hides_unapproved(self, make_zone):
        make_zone("600001")
        make_zone("600002", is_approved=False)
        assert [z["pincode"] for z in zone_service.list_public_zones()] == ["600001"]

