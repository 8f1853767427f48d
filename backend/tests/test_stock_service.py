"""
Stock ledger tests.

Verifies:
- Reservations never push reserved above on-hand
- release/commit are idempotent per order and product
- Every change leaves a movement with before/after quantities
- Crossing the low-stock threshold notifies the admin inbox once
"""

import pytest

from storefront.errors import InsufficientStock, NotFound, ValidationError
from storefront.models import Notification, Stock, StockMovement
from storefront.services import stock_service


def _stock(db_session, product):
    return db_session.query(Stock).filter_by(product_id=product.id).populate_existing().one()


def _movements(db_session, product, movement_type=None):
    query = db_session.query(StockMovement).filter_by(product_id=product.id)
    if movement_type:
        query = query.filter_by(type=movement_type)
    return query.all()


class TestReserve:
    def test_reserve_holds_quantity(self, db_session, product):
        stock_service.reserve(product.id, 3, "ord_a", "staff:test")

        stock = _stock(db_session, product)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (10, 3, 7)

        [movement] = _movements(db_session, product, "reserved")
        assert movement.quantity == 3
        assert movement.previous_reserved == 0
        assert movement.new_reserved == 3
        assert movement.reference_id == "ord_a"

    def test_reserve_beyond_available_rejected(self, db_session, product):
        stock_service.reserve(product.id, 8, "ord_a")

        with pytest.raises(InsufficientStock) as exc:
            stock_service.reserve(product.id, 3, "ord_b")

        assert exc.value.details["items"] == [
            {"product_id": product.id, "requested": 3, "available": 2}
        ]
        stock = _stock(db_session, product)
        assert stock.reserved_quantity == 8
        assert len(_movements(db_session, product, "reserved")) == 1

    def test_reserve_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.reserve("prod_missing", 1, "ord_a")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_reserve_requires_positive_integer(self, db_session, product, quantity):
        with pytest.raises(ValidationError):
            stock_service.reserve(product.id, quantity, "ord_a")

    def test_reserve_for_order_collects_every_shortfall(self, db_session, product, product_b):
        with pytest.raises(InsufficientStock) as exc:
            stock_service._reserve_for_order(
                [(product.id, 11), (product_b.id, 1), (product_b.id, 4)], "ord_a"
            )
        db_session.rollback()

        short = {item["product_id"]: item for item in exc.value.details["items"]}
        assert set(short) == {product.id, product_b.id}
        assert short[product_b.id]["requested"] == 5
        assert _stock(db_session, product).reserved_quantity == 0
        assert _stock(db_session, product_b).reserved_quantity == 0


class TestReleaseAndCommit:
    def test_release_is_idempotent(self, db_session, product):
        stock_service.reserve(product.id, 4, "ord_a")

        stock_service.release(product.id, 4, "ord_a")
        assert stock_service.release(product.id, 4, "ord_a") is None

        stock = _stock(db_session, product)
        assert (stock.reserved_quantity, stock.available_quantity) == (0, 10)
        assert len(_movements(db_session, product, "released")) == 1

    def test_release_only_frees_what_the_order_holds(self, db_session, product):
        stock_service.reserve(product.id, 2, "ord_a")
        stock_service.reserve(product.id, 5, "ord_b")

        stock_service.release(product.id, 9, "ord_a")

        stock = _stock(db_session, product)
        assert stock.reserved_quantity == 5
        [released] = _movements(db_session, product, "released")
        assert released.quantity == 2

    def test_release_without_reservation_is_noop(self, db_session, product):
        assert stock_service.release(product.id, 2, "ord_never") is None
        assert _movements(db_session, product, "released") == []

    def test_commit_consumes_reservation(self, db_session, product):
        stock_service.reserve(product.id, 2, "ord_a")

        stock_service.commit(product.id, 2, "ord_a")
        assert stock_service.commit(product.id, 2, "ord_a") is None

        stock = _stock(db_session, product)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (8, 0, 8)
        [out] = _movements(db_session, product, "out")
        assert (out.previous_quantity, out.new_quantity) == (10, 8)

    def test_release_after_commit_is_noop(self, db_session, product):
        stock_service.reserve(product.id, 2, "ord_a")
        stock_service.commit(product.id, 2, "ord_a")

        assert stock_service.release(product.id, 2, "ord_a") is None
        assert _stock(db_session, product).quantity == 8


class TestLowStock:
    def _admin_alerts(self, db_session):
        return db_session.query(Notification).filter_by(staff_user_id="admin", type="stock").all()

    def test_crossing_threshold_notifies_admin_once(self, db_session, product):
        stock_service.reserve(product.id, 7, "ord_a")
        assert self._admin_alerts(db_session) == []

        stock_service.reserve(product.id, 1, "ord_b")
        alerts = self._admin_alerts(db_session)
        assert len(alerts) == 1
        assert "2 kg available" in alerts[0].message

        stock_service.reserve(product.id, 1, "ord_c")
        assert len(self._admin_alerts(db_session)) == 1

    def test_alert_urgency(self, db_session, product, product_b):
        stock_service.reserve(product_b.id, 3, "ord_a")
        stock_service.reserve(product.id, 9, "ord_b")

        alerts = stock_service.low_stock_alerts()

        assert [a["urgency"] for a in alerts] == ["out_of_stock", "critical"]
        assert alerts[0]["product_id"] == product_b.id


class TestBackOffice:
    def test_restock_records_in_movement(self, db_session, product):
        stock_service.restock(product.id, 5, performed_by="staff:x", reason="Supplier", batch_number="B-7")

        stock = _stock(db_session, product)
        assert (stock.quantity, stock.available_quantity) == (15, 15)
        assert stock.last_restocked_at is not None
        [movement] = _movements(db_session, product, "in")
        assert movement.reason == "Supplier (batch B-7)"

    def test_adjust_cannot_go_below_reserved(self, db_session, product):
        stock_service.reserve(product.id, 6, "ord_a")

        with pytest.raises(ValidationError):
            stock_service.adjust(product.id, 5, reason="Count")

        stock_service.adjust(product.id, 6, reason="Count", performed_by="staff:x")
        stock = _stock(db_session, product)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (6, 6, 0)
        [movement] = _movements(db_session, product, "adjustment")
        assert movement.quantity == -4

    def test_update_thresholds(self, db_session, product):
        stock = stock_service.update_thresholds(product.id, low_stock_threshold=9, reorder_quantity=40)
        assert (stock.low_stock_threshold, stock.reorder_point, stock.reorder_quantity) == (9, 10, 40)

    def test_list_movements_filters(self, db_session, product, product_b):
        stock_service.reserve(product.id, 1, "ord_a")
        stock_service.reserve(product_b.id, 1, "ord_a")
        stock_service.release(product.id, 1, "ord_a")

        assert len(stock_service.list_movements(reference_id="ord_a")) == 3
        assert len(stock_service.list_movements(product_id=product.id, movement_type="released")) == 1
        with pytest.raises(ValidationError):
            stock_service.list_movements(movement_type="teleported")

    def test_write_off_takes_only_unreserved_units(self, db_session, product):
        stock_service.reserve(product.id, 3, "ord_a")

        with pytest.raises(InsufficientStock):
            stock_service.write_off(product.id, 8, reason="Spoiled")
        with pytest.raises(ValidationError):
            stock_service.write_off(product.id, 1, reason="")

        stock_service.write_off(product.id, 5, reason="Spoiled", performed_by="staff:x")
        stock = _stock(db_session, product)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (5, 3, 2)
        [movement] = _movements(db_session, product, "out")
        assert (movement.quantity, movement.reference_type, movement.reason) == (5, "manual", "Spoiled")
        assert len(db_session.query(Notification).filter_by(staff_user_id="admin", type="stock").all()) == 1


class TestBulkUpdate:
    def test_each_item_applies_or_fails_on_its_own(self, db_session, product, product_b):
        results = stock_service.bulk_update([
            {"product_id": product.id, "quantity": 5, "type": "in", "reason": "Delivery"},
            {"product_id": product_b.id, "quantity": 4, "type": "out", "reason": "Damaged"},
            {"product_id": product.id, "quantity": 12, "type": "adjustment", "reason": "Count"},
            {"product_id": "prod_missing", "quantity": 1, "type": "in", "reason": "Delivery"},
        ], performed_by="staff:x")

        assert [r["success"] for r in results] == [True, False, True, False]
        assert results[1]["error"] == "Insufficient stock"
        assert results[3]["error"] == "Product not found"
        assert results[2]["stock"]["quantity"] == 12
        assert _stock(db_session, product).quantity == 12
        assert _stock(db_session, product_b).quantity == 3
        assert _movements(db_session, product_b, "out") == []

    @pytest.mark.parametrize("updates", [
        None,
        [],
        [{"product_id": "p", "quantity": 1, "type": "teleport", "reason": "x"}],
        [{"product_id": "p", "quantity": 1, "type": "in"}],
        [{"product_id": "p", "quantity": -1, "type": "in", "reason": "x"}],
    ])
    def test_malformed_payload_rejected_before_any_change(self, db_session, product, updates):
        if updates:
            updates = [{"product_id": product.id, "quantity": 1, "type": "in", "reason": "ok"}] + updates
        with pytest.raises(ValidationError):
            stock_service.bulk_update(updates)
        assert _stock(db_session, product).quantity == 10
