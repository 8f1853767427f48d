"""
Order lifecycle tests.

Verifies:
- Checkout snapshots prices, computes VAT and reserves stock atomically
- Only adjacent transitions are accepted; rejected ones change nothing
- Cancellation releases stock, delivery commits it
- Customers may only cancel their own orders; drivers cannot transition
- Exactly one customer notification per transition
"""

import pytest

from conftest import ADDRESS, actor_for, make_product
from storefront.errors import InsufficientStock, InvalidTransition, NotFound, Unauthorized, ValidationError
from storefront.models import Notification, Order, Stock
from storefront.services import order_service


def _stock(db_session, product):
    return db_session.query(Stock).filter_by(product_id=product.id).populate_existing().one()


def _customer_notifications(db_session, customer):
    return db_session.query(Notification).filter_by(customer_id=customer.id).all()


def _walk(order_id, actor, *statuses):
    order = None
    for status in statuses:
        order = order_service.transition(order_id, status, actor)
    return order


class TestCreateOrder:
    def test_totals_and_reservation(self, db_session, place_order, product, customer):
        order = place_order()

        assert order.order_number == "ORD-000001"
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.subtotal_cents == 2000
        assert order.delivery_fee_cents == 1500
        assert order.vat_amount_cents == 100
        assert order.total_cents == 3600
        assert order.customer_name == "Layla Haddad"
        assert order.delivery_address["building"] == "Marina Tower 1"
        assert [entry["status"] for entry in order.status_history] == ["pending"]

        [item] = order.items
        assert (item.product_name, item.unit_price_cents, item.total_price_cents) == ("Product LAMB-LEG", 1000, 2000)

        stock = _stock(db_session, product)
        assert (stock.reserved_quantity, stock.available_quantity) == (2, 8)

        notifications = _customer_notifications(db_session, customer)
        assert len(notifications) == 1
        assert "ORD-000001" in notifications[0].message
        admin = db_session.query(Notification).filter_by(staff_user_id="admin", type="order_placed").all()
        assert len(admin) == 1

    def test_order_numbers_are_sequential(self, db_session, place_order):
        first = place_order()
        second = place_order()
        assert (first.order_number, second.order_number) == ("ORD-000001", "ORD-000002")

    def test_product_discount_snapshot(self, db_session, place_order, product):
        product.discount_percent = 15
        db_session.commit()

        order = place_order([{"product_id": product.id, "quantity": 1}])

        assert order.items[0].unit_price_cents == 850
        assert order.vat_amount_cents == 43

    def test_express_uses_zone_express_fee(self, db_session, place_order):
        order = place_order(express=True)
        assert order.is_express is True
        assert order.delivery_fee_cents == 3000
        assert order.total_cents == 5100

    def test_express_unavailable(self, db_session, place_order, zone):
        zone.express_enabled = False
        db_session.commit()
        with pytest.raises(ValidationError):
            place_order(express=True)

    def test_below_zone_minimum(self, db_session, place_order, zone):
        zone.minimum_order_cents = 5000
        db_session.commit()
        with pytest.raises(ValidationError) as exc:
            place_order()
        assert exc.value.details["minimum_order_cents"] == 5000

    def test_shortfall_persists_nothing(self, db_session, place_order, product, customer):
        second = make_product(db_session, sku="CHICKEN", quantity=1)

        with pytest.raises(InsufficientStock) as exc:
            place_order([
                {"product_id": product.id, "quantity": 2},
                {"product_id": second.id, "quantity": 3},
            ])

        assert exc.value.details["items"] == [{"product_id": second.id, "requested": 3, "available": 1}]
        assert db_session.query(Order).count() == 0
        assert _stock(db_session, product).reserved_quantity == 0
        assert _customer_notifications(db_session, customer) == []
        assert place_order().order_number == "ORD-000001"

    def test_invalid_payment_method(self, db_session, place_order):
        with pytest.raises(ValidationError):
            place_order(payment_method="barter")

    def test_missing_address(self, db_session, customer, zone, product):
        with pytest.raises(ValidationError):
            order_service.create_order(
                customer.id, [{"product_id": product.id, "quantity": 1}], payment_method="card"
            )

    def test_staff_phone_order_history(self, db_session, customer, zone, product, staff_actor):
        order = order_service.create_order(
            customer.id,
            [{"product_id": product.id, "quantity": 1}],
            payment_method="card",
            delivery_address=dict(ADDRESS),
            actor=staff_actor,
            source="staff",
        )
        assert order.source == "staff"
        assert order.status_history[0]["changed_by"] == staff_actor.label


class TestTransitions:
    def test_happy_path_to_delivered(self, db_session, place_order, product, customer, staff_actor):
        order = place_order()

        order = _walk(
            order.id, staff_actor,
            "confirmed", "processing", "ready_for_pickup", "out_for_delivery", "delivered",
        )

        assert order.status == "delivered"
        assert order.actual_delivery_at is not None
        assert order.payment_status == "captured"
        assert [entry["status"] for entry in order.status_history] == [
            "pending", "confirmed", "processing", "ready_for_pickup", "out_for_delivery", "delivered",
        ]
        stock = _stock(db_session, product)
        assert (stock.quantity, stock.reserved_quantity, stock.available_quantity) == (8, 0, 8)
        # order placed + one per transition
        assert len(_customer_notifications(db_session, customer)) == 6

    def test_skipping_a_step_is_rejected(self, db_session, place_order, staff_actor):
        order = place_order()

        with pytest.raises(InvalidTransition) as exc:
            order_service.transition(order.id, "delivered", staff_actor)

        assert exc.value.details["current_status"] == "pending"
        assert exc.value.details["requested_status"] == "delivered"
        assert exc.value.details["current"]["status"] == "pending"
        reloaded = order_service.get_order(order.id)
        assert reloaded.status == "pending"
        assert len(reloaded.status_history) == 1

    def test_unknown_status(self, db_session, place_order, staff_actor):
        order = place_order()
        with pytest.raises(ValidationError):
            order_service.transition(order.id, "teleported", staff_actor)

    def test_same_non_terminal_status_rejected(self, db_session, place_order, staff_actor):
        order = place_order()
        with pytest.raises(InvalidTransition):
            order_service.transition(order.id, "pending", staff_actor)

    def test_cancel_releases_stock_and_tells_admin(self, db_session, place_order, product, staff_actor):
        order = place_order()
        order_service.transition(order.id, "confirmed", staff_actor)

        order = order_service.cancel_order(order.id, staff_actor, "Customer called")

        assert order.status == "cancelled"
        assert order.status_history[-1]["notes"] == "Customer called"
        stock = _stock(db_session, product)
        assert (stock.reserved_quantity, stock.available_quantity) == (0, 10)
        admin = db_session.query(Notification).filter_by(staff_user_id="admin", type="order_status").all()
        assert len(admin) == 1
        assert "cancelled" in admin[0].message

    def test_repeated_cancel_is_noop(self, db_session, place_order, staff_actor, customer):
        order = place_order()
        order_service.cancel_order(order.id, staff_actor)
        before = len(_customer_notifications(db_session, customer))

        order = order_service.cancel_order(order.id, staff_actor)

        assert order.status == "cancelled"
        assert len(order.status_history) == 2
        assert len(_customer_notifications(db_session, customer)) == before

    def test_cannot_cancel_once_processing(self, db_session, place_order, staff_actor):
        order = place_order()
        _walk(order.id, staff_actor, "confirmed", "processing")
        with pytest.raises(InvalidTransition):
            order_service.cancel_order(order.id, staff_actor)

    def test_refund_after_delivery(self, db_session, place_order, staff_actor):
        order = place_order()
        _walk(order.id, staff_actor, "confirmed", "processing", "ready_for_pickup", "out_for_delivery", "delivered")

        order = order_service.transition(order.id, "refunded", staff_actor)

        assert order.status == "refunded"
        assert order.payment_status == "refunded"

    def test_refund_of_cancelled_requires_captured_payment(self, db_session, place_order, staff_actor):
        order = place_order(payment_method="card")
        order_service.cancel_order(order.id, staff_actor)

        with pytest.raises(InvalidTransition):
            order_service.transition(order.id, "refunded", staff_actor)

    def test_refund_of_cancelled_captured_order(self, db_session, place_order, staff_actor):
        order = place_order(payment_method="card")
        order_service.update_payment_status(order.id, "captured", staff_actor)
        order_service.cancel_order(order.id, staff_actor)

        order = order_service.transition(order.id, "refunded", staff_actor)
        assert order.payment_status == "refunded"


class TestAuthorization:
    def test_customer_cancels_own_order(self, db_session, place_order, customer_actor):
        order = place_order()
        order = order_service.cancel_order(order.id, customer_actor, "Changed my mind")
        assert order.status == "cancelled"
        assert order.status_history[-1]["changed_by"] == customer_actor.label

    def test_customer_cannot_confirm(self, db_session, place_order, customer_actor):
        order = place_order()
        with pytest.raises(Unauthorized):
            order_service.transition(order.id, "confirmed", customer_actor)

    def test_other_customer_sees_not_found(self, db_session, place_order, other_customer):
        order = place_order()
        intruder = actor_for(other_customer)
        with pytest.raises(NotFound):
            order_service.cancel_order(order.id, intruder)
        with pytest.raises(NotFound):
            order_service.get_order(order.id, intruder)

    def test_driver_cannot_transition(self, db_session, place_order, driver_actor):
        order = place_order()
        with pytest.raises(Unauthorized):
            order_service.transition(order.id, "confirmed", driver_actor)

    def test_missing_order(self, db_session, staff_actor):
        with pytest.raises(NotFound):
            order_service.transition("ord_missing", "confirmed", staff_actor)


class TestPayment:
    def test_payment_flow(self, db_session, place_order, staff_actor):
        order = place_order(payment_method="card")
        order_service.update_payment_status(order.id, "authorized", staff_actor)
        order = order_service.update_payment_status(order.id, "captured", staff_actor)
        assert order.payment_status == "captured"

        with pytest.raises(InvalidTransition):
            order_service.update_payment_status(order.id, "pending", staff_actor)

    def test_repeated_refund_is_noop(self, db_session, place_order, staff_actor):
        order = place_order(payment_method="card")
        order_service.update_payment_status(order.id, "captured", staff_actor)
        order_service.update_payment_status(order.id, "refunded", staff_actor)
        order = order_service.update_payment_status(order.id, "refunded", staff_actor)
        assert order.payment_status == "refunded"

    def test_customer_cannot_change_payment(self, db_session, place_order, customer_actor):
        order = place_order()
        with pytest.raises(Unauthorized):
            order_service.update_payment_status(order.id, "captured", customer_actor)

    def test_gateway_result(self, db_session, place_order, staff_actor):
        order = place_order(payment_method="card")

        order = order_service.record_gateway_result(
            order.id, {"captured": True, "gateway_transaction_id": "txn_1"}, staff_actor
        )
        assert (order.payment_status, order.gateway_transaction_id) == ("captured", "txn_1")

        order = order_service.record_gateway_result(order.id, {"captured": True}, staff_actor)
        assert order.payment_status == "captured"

        with pytest.raises(ValidationError):
            order_service.record_gateway_result(order.id, {"captured": "yes"}, staff_actor)


class TestReads:
    def test_list_and_lookup(self, db_session, place_order, customer, other_customer, staff_actor):
        first = place_order()
        place_order()

        orders, total = order_service.list_orders(customer_id=customer.id, limit=1)
        assert total == 2
        assert len(orders) == 1

        orders, total = order_service.list_orders(customer_id=other_customer.id)
        assert (orders, total) == ([], 0)

        assert order_service.get_order_by_number("ORD-000001", staff_actor).id == first.id
        with pytest.raises(ValidationError):
            order_service.list_orders(status="lost")

    def test_stats(self, db_session, place_order, staff_actor):
        kept = place_order()
        dropped = place_order()
        order_service.cancel_order(dropped.id, staff_actor)

        stats = order_service.order_stats()

        assert stats["total_orders"] == 2
        assert stats["by_status"]["pending"] == 1
        assert stats["by_status"]["cancelled"] == 1
        assert stats["today_orders"] == 1
        assert stats["today_sales_cents"] == kept.total_cents
        assert stats["month_orders"] == 1
        assert stats["average_order_value_cents"] == kept.total_cents
        assert stats["pending_orders"] == 1
