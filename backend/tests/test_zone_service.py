"""
Delivery zone tests.

Verifies:
- Zones validate their fees and coverage on create and update
- Area-specific zones win over emirate-wide ones; inactive zones never match
- Zones referenced by orders are deactivated instead of deleted
- Checkout refuses addresses no active zone covers
"""

import pytest

from conftest import ADDRESS
from storefront.errors import NotFound, ValidationError
from storefront.models import DeliveryZone, Stock
from storefront.services import zone_service


def _zone(db_session, zone_id):
    return db_session.query(DeliveryZone).filter_by(id=zone_id).populate_existing().one_or_none()


@pytest.fixture
def marina_zone(db_session):
    return zone_service.create_zone({
        "name": "Marina",
        "emirate": "Dubai",
        "areas": ["Dubai Marina", "JBR"],
        "delivery_fee_cents": 1000,
        "minimum_order_cents": 5000,
        "estimated_minutes": 45,
    })


class TestZoneManagement:
    def test_create_applies_defaults(self, db_session):
        zone = zone_service.create_zone({"name": " Ajman ", "emirate": "Ajman"}, performed_by="staff:admin")

        data = _zone(db_session, zone.id).to_dict()
        assert data["name"] == "Ajman"
        assert data["areas"] == []
        assert (data["delivery_fee_cents"], data["minimum_order_cents"], data["estimated_minutes"]) == (0, 0, 60)
        assert data["is_active"] is True
        assert data["express_enabled"] is False

    @pytest.mark.parametrize("payload", [
        {"emirate": "Ajman"},
        {"name": "Ajman"},
        {"name": "Ajman", "emirate": "Ajman", "delivery_fee_cents": -1},
        {"name": "Ajman", "emirate": "Ajman", "delivery_fee_cents": 12.5},
        {"name": "Ajman", "emirate": "Ajman", "estimated_minutes": 0},
        {"name": "Ajman", "emirate": "Ajman", "areas": "Al Nuaimiya"},
        {"name": "Ajman", "emirate": "Ajman", "is_active": "yes"},
    ])
    def test_create_rejects_bad_payload(self, db_session, payload):
        with pytest.raises(ValidationError):
            zone_service.create_zone(payload)
        assert db_session.query(DeliveryZone).count() == 0

    def test_update_is_partial(self, db_session, zone):
        zone_service.update_zone(zone.id, {"delivery_fee_cents": 2000, "areas": ["Deira"]})

        data = _zone(db_session, zone.id).to_dict()
        assert data["delivery_fee_cents"] == 2000
        assert data["areas"] == ["Deira"]
        assert data["express_fee_cents"] == 3000

    def test_rejected_update_changes_nothing(self, db_session, zone):
        with pytest.raises(ValidationError):
            zone_service.update_zone(zone.id, {"delivery_fee_cents": 100, "estimated_minutes": 0})
        assert _zone(db_session, zone.id).delivery_fee_cents == 1500

    def test_unknown_zone(self, db_session):
        with pytest.raises(NotFound):
            zone_service.update_zone("zone_missing", {"name": "x"})
        with pytest.raises(NotFound):
            zone_service.delete_zone("zone_missing")

    def test_delete_unused_zone(self, db_session, zone):
        assert zone_service.delete_zone(zone.id) is True
        assert _zone(db_session, zone.id) is None

    def test_zone_with_orders_is_deactivated(self, db_session, zone, place_order):
        place_order()

        assert zone_service.delete_zone(zone.id) is False
        assert _zone(db_session, zone.id).is_active is False
        assert zone_service.find_zone("Dubai", "Dubai Marina") is None


class TestCoverage:
    def test_area_zone_preferred(self, db_session, zone, marina_zone):
        assert zone_service.find_zone("Dubai", "Dubai Marina").id == marina_zone.id
        assert zone_service.find_zone("Dubai", "jbr").id == marina_zone.id
        assert zone_service.find_zone("Dubai", "Deira").id == zone.id
        assert zone_service.find_zone("Sharjah", "Al Nahda") is None

    def test_area_zone_alone_does_not_cover_other_areas(self, db_session, marina_zone):
        assert zone_service.find_zone("Dubai", "Deira") is None

    def test_inactive_zone_ignored(self, db_session, zone, marina_zone):
        zone_service.update_zone(marina_zone.id, {"is_active": False})
        assert zone_service.find_zone("Dubai", "Dubai Marina").id == zone.id

    def test_check_availability(self, db_session, marina_zone):
        result = zone_service.check_availability("Dubai", "Dubai Marina", 4000)
        assert result["available"] is True
        assert result["zone"]["id"] == marina_zone.id
        assert result["meets_minimum_order"] is False
        assert (result["delivery_fee_cents"], result["estimated_minutes"]) == (1000, 45)

        assert zone_service.check_availability("Dubai", "JBR", 5000)["meets_minimum_order"] is True
        assert zone_service.check_availability("Abu Dhabi") == {
            "available": False,
            "message": "Delivery is not available in your area",
        }

    @pytest.mark.parametrize("emirate,total", [(None, None), ("", None), ("Dubai", -5), ("Dubai", True)])
    def test_check_availability_validates(self, db_session, zone, emirate, total):
        with pytest.raises(ValidationError):
            zone_service.check_availability(emirate, None, total)


class TestCheckout:
    def test_uncovered_address_rejected(self, db_session, place_order, product):
        with pytest.raises(ValidationError):
            place_order(delivery_address={**ADDRESS, "emirate": "Sharjah"})

        stock = db_session.query(Stock).filter_by(product_id=product.id).populate_existing().one()
        assert stock.reserved_quantity == 0

    def test_area_zone_prices_the_order(self, db_session, place_order, marina_zone, product):
        order = place_order(items=[{"product_id": product.id, "quantity": 6}])
        assert order.delivery_zone_id == marina_zone.id
        assert order.delivery_fee_cents == 1000

    def test_area_zone_minimum_enforced(self, db_session, place_order, marina_zone):
        with pytest.raises(ValidationError):
            place_order()
