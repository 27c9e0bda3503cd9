"""Delivery address validation and the stored-text read contract."""

import json

import pytest

from meato.address import decode_address, encode_address, normalize_address
from meato.errors import ValidationError


class TestNormalizeAddress:

    def test_accepts_minimal_address(self):
        address = normalize_address({"street": " 1 Main St ", "city": "Chennai", "pincode": 600001})
        assert address["street"] == "1 Main St"
        assert address["pincode"] == "600001"

    @pytest.mark.parametrize("alias", ["address_line", "line1"])
    def test_street_aliases(self, alias):
        address = normalize_address({alias: "7 Beach Rd", "city": "Chennai", "pincode": "600002"})
        assert address["street"] == "7 Beach Rd"

    def test_missing_fields_are_reported_together(self):
        with pytest.raises(ValidationError) as exc:
            normalize_address({"street": "1 Main St"})
        assert set(exc.value.fields) == {"delivery_address.city", "delivery_address.pincode"}

    @pytest.mark.parametrize("raw", [None, "1 Main St, Chennai", ["a", "b"]])
    def test_rejects_non_objects(self, raw):
        with pytest.raises(ValidationError):
            normalize_address(raw)

    def test_coordinates_are_coerced(self):
        address = normalize_address({
            "street": "1 Main St", "city": "Chennai", "pincode": "600001",
            "lat": "13.08", "lng": 80.27,
        })
        assert address["lat"] == pytest.approx(13.08)
        assert address["lng"] == pytest.approx(80.27)

    def test_bad_coordinate(self):
        with pytest.raises(ValidationError) as exc:
            normalize_address({"street": "1", "city": "C", "pincode": "1", "lat": "north"})
        assert "delivery_address.lat" in exc.value.fields


class TestStoredAddress:

    def test_json_text_decodes_to_dict(self):
        stored = encode_address({"street": "1 Main St", "city": "Chennai", "pincode": "600001"})
        assert json.loads(stored)["city"] == "Chennai"
        assert decode_address(stored) == {"street": "1 Main St", "city": "Chennai", "pincode": "600001"}

    def test_legacy_free_text_is_returned_verbatim(self):
        assert decode_address("12 Old Street, Chennai") == "12 Old Street, Chennai"

    def test_json_that_is_not_an_object_stays_a_string(self):
        assert decode_address('"quoted"') == '"quoted"'
        assert decode_address("42") == "42"

    def test_none(self):
        assert encode_address(None) is None
        assert decode_address(None) is None
