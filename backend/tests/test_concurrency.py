# Overview: Threaded concurrency tests for stock reservation and order numbering.

"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context and session, so the write
lock taken by begin_write() is exercised for real.
"""
import os
import tempfile
import threading
import unittest

from storefront import create_app
from storefront.errors import InsufficientStock
from storefront.extensions import db
from storefront.models import DeliveryZone, DocumentSequence, Order, Product, Stock
from storefront.services import order_service, stock_service
from storefront.services.auth_service import create_customer


ADDRESS = {
    "full_name": "Layla Haddad",
    "mobile": "+971500000009",
    "emirate": "Dubai",
    "area": "Jumeirah",
    "street": "Beach Road",
    "building": "Villa 12",
}


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "BCRYPT_ROUNDS": 4,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            db.session.add(DocumentSequence(document_type="ORDER", next_number=1))
            db.session.add(DeliveryZone(name="Dubai", emirate="Dubai", delivery_fee_cents=1500))
            product = Product(sku="LAMB-CHOPS", name="Lamb Chops", price_cents=4500, unit="kg")
            db.session.add(product)
            db.session.flush()
            db.session.add(Stock(product_id=product.id, quantity=5, reserved_quantity=0, available_quantity=5))
            db.session.commit()
            self.product_id = product.id

            self.customer_id = create_customer(
                "concurrent@example.com", "Password123", first_name="Con", family_name="Current",
            ).id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, worker, args_list):
        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_concurrent_reservations_never_oversell(self):
        results = []
        lock = threading.Lock()

        def worker(order_id):
            with self.app.app_context():
                try:
                    stock_service.reserve(self.product_id, 3, order_id, "staff:test")
                    outcome = "ok"
                except InsufficientStock:
                    outcome = "short"
                except Exception as exc:
                    outcome = exc
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        self._run_threads(worker, [("ord_a",), ("ord_b",)])

        self.assertEqual(sorted(results), ["ok", "short"])
        with self.app.app_context():
            stock = db.session.query(Stock).filter_by(product_id=self.product_id).one()
            self.assertEqual(stock.reserved_quantity, 3)
            self.assertLessEqual(stock.reserved_quantity, stock.quantity)
            self.assertEqual(stock.available_quantity, 2)

    def test_order_numbers_unique_under_concurrency(self):
        created = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    order = order_service.create_order(
                        self.customer_id,
                        [{"product_id": self.product_id, "quantity": 1}],
                        payment_method="cod",
                        delivery_address=dict(ADDRESS),
                    )
                    with lock:
                        created.append(order.order_number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, [() for _ in range(5)])

        self.assertFalse(errors)
        self.assertEqual(len(created), 5)
        self.assertEqual(len(created), len(set(created)))
        with self.app.app_context():
            self.assertEqual(db.session.query(Order).count(), 5)
            stock = db.session.query(Stock).filter_by(product_id=self.product_id).one()
            self.assertEqual(stock.reserved_quantity, 5)


if __name__ == "__main__":
    unittest.main()
