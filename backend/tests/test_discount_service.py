"""
Discount code tests.

Verifies:
- Percentage codes are capped; no code takes more than the subtotal
- An unusable code rejects the checkout instead of being ignored
- A use is only consumed when the order commits
- Usage limits hold
"""

from datetime import timedelta

import pytest

from storefront.errors import InsufficientStock, NotFound, ValidationError
from storefront.models import DiscountCode, Order, Stock
from storefront.services import discount_service
from storefront.time_utils import to_utc_z, utcnow


def _code(db_session, code_id):
    return db_session.query(DiscountCode).filter_by(id=code_id).populate_existing().one()


def _make(**overrides):
    data = {"code": "save10", "type": "percentage", "value": 10}
    data.update(overrides)
    return discount_service.create_code(data, performed_by="staff:admin")


class TestCheckoutDiscount:
    def test_percentage_capped(self, db_session, place_order):
        code = _make(maximum_discount_cents=150)

        order = place_order(discount_code=" Save10 ")

        assert order.subtotal_cents == 2000
        assert order.discount_cents == 150
        assert order.discount_code == "SAVE10"
        assert order.total_cents == (
            order.subtotal_cents - order.discount_cents + order.delivery_fee_cents + order.vat_amount_cents
        )
        assert _code(db_session, code.id).usage_count == 1

    def test_fixed_never_exceeds_subtotal(self, db_session, place_order):
        _make(code="BIGSPENDER", type="fixed", value=5000)
        order = place_order(discount_code="bigspender")
        assert order.discount_cents == order.subtotal_cents == 2000

    def test_vat_on_discounted_amount(self, db_session, place_order):
        _make(code="FLAT", type="fixed", value=1000)
        order = place_order(discount_code="FLAT")
        assert order.vat_amount_cents == 50

    @pytest.mark.parametrize("overrides,used", [
        ({"code": "OTHER"}, "SAVE10"),
        ({"minimum_order_cents": 2001}, "SAVE10"),
        ({"valid_to": to_utc_z(utcnow() - timedelta(days=1))}, "SAVE10"),
        ({"valid_from": to_utc_z(utcnow() + timedelta(days=1))}, "SAVE10"),
    ])
    def test_unusable_code_rejects_checkout(self, db_session, place_order, product, overrides, used):
        _make(**overrides)

        with pytest.raises(ValidationError):
            place_order(discount_code=used)

        assert db_session.query(Order).count() == 0
        stock = db_session.query(Stock).filter_by(product_id=product.id).populate_existing().one()
        assert stock.reserved_quantity == 0

    def test_deactivated_code_rejected(self, db_session, place_order):
        code = _make()
        discount_service.deactivate_code(code.id)
        with pytest.raises(ValidationError):
            place_order(discount_code="SAVE10")

    def test_usage_limit(self, db_session, place_order):
        code = _make(usage_limit=1)

        place_order(discount_code="SAVE10")
        with pytest.raises(ValidationError):
            place_order(discount_code="SAVE10")
        assert _code(db_session, code.id).usage_count == 1

    def test_failed_checkout_keeps_the_use(self, db_session, place_order, product):
        code = _make(usage_limit=1)

        with pytest.raises(InsufficientStock):
            place_order(items=[{"product_id": product.id, "quantity": 50}], discount_code="SAVE10")

        assert _code(db_session, code.id).usage_count == 0
        place_order(discount_code="SAVE10")


class TestCodeManagement:
    @pytest.mark.parametrize("payload", [
        {"code": "", "type": "fixed", "value": 100},
        {"code": "X", "type": "bogo", "value": 100},
        {"code": "X", "type": "fixed", "value": 0},
        {"code": "X", "type": "percentage", "value": 101},
        {"code": "X", "type": "fixed", "value": 100, "usage_limit": -1},
        {"code": "X", "type": "fixed", "value": 100, "valid_from": "2026-02-01", "valid_to": "2026-01-01"},
    ])
    def test_create_rejects_bad_payload(self, db_session, payload):
        with pytest.raises(ValidationError):
            discount_service.create_code(payload)
        assert discount_service.list_codes() == []

    def test_codes_unique_ignoring_case(self, db_session):
        _make()
        with pytest.raises(ValidationError):
            _make(code="SAVE10")
        assert [c.code for c in discount_service.list_codes()] == ["SAVE10"]

    def test_quote_consumes_nothing(self, db_session):
        code = _make()

        quote = discount_service.quote("save10", 3333)

        assert quote["discount_cents"] == 333
        assert _code(db_session, code.id).usage_count == 0

    def test_deactivate(self, db_session):
        code = _make()
        discount_service.deactivate_code(code.id)
        assert discount_service.list_codes(active_only=True) == []
        with pytest.raises(NotFound):
            discount_service.deactivate_code("disc_missing")
