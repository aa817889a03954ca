"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context (and so its own session), the
same way concurrent requests do.
"""
import os
import tempfile
import threading
import unittest

from frozengoods import create_app
from frozengoods.errors import BudgetExceededError, InsufficientStockError
from frozengoods.extensions import db
from frozengoods.services import (
    ledger_service,
    products_service,
    reorder_service,
    reservation_service,
    sales_service,
)

ACTOR = {"actor_id": "user-1", "actor_name": "Maria Santos"}


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()
            self.product_id = self._create_product("Concurrent Tub", 10)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _create_product(self, name, quantity):
        product = products_service.create_product(
            payload={
                "name": name,
                "category": "Ice Cream",
                "price_cents": 100,
                "distributor_price_cents": 60,
                "quantity": quantity,
            },
            **ACTOR,
        )
        return product.id

    def _run_workers(self, calls):
        results = []
        lock = threading.Lock()

        def worker(call):
            with self.app.app_context():
                try:
                    call()
                    with lock:
                        results.append("ok")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _state(self, product_id):
        with self.app.app_context():
            quantity = products_service.get_product(product_id).quantity
            consistent = ledger_service.reconcile_product(product_id)["consistent"]
            db.session.remove()
        return quantity, consistent

    def test_concurrent_sales_cannot_oversell(self):
        def sell():
            sales_service.record_sale(
                product_id=self.product_id, quantity=6, payment_method="Cash", **ACTOR
            )

        results = self._run_workers([sell, sell])

        self.assertEqual(results.count("ok"), 1)
        failures = [r for r in results if r != "ok"]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientStockError)

        quantity, consistent = self._state(self.product_id)
        self.assertEqual(quantity, 4)
        self.assertTrue(consistent)

    def test_concurrent_holds_stop_at_zero(self):
        with self.app.app_context():
            products_service.adjust_inventory(product_id=self.product_id, quantity_delta=-5, **ACTOR)

        def hold():
            reservation_service.hold(product_id=self.product_id, quantity=1, customer_name="Queue", **ACTOR)

        results = self._run_workers([hold] * 8)

        self.assertEqual(results.count("ok"), 5)
        self.assertTrue(all(isinstance(r, InsufficientStockError) for r in results if r != "ok"))

        quantity, consistent = self._state(self.product_id)
        self.assertEqual(quantity, 0)
        self.assertTrue(consistent)

    def test_concurrent_reorder_adds_respect_cap(self):
        with self.app.app_context():
            reorder_service.set_cap(amount_cents=500)

        def add():
            # 3 x 60 = 180 per line; only two lines fit under 500
            reorder_service.add_item(product_id=self.product_id, quantity=3)

        results = self._run_workers([add] * 5)

        self.assertEqual(results.count("ok"), 2)
        self.assertTrue(all(isinstance(r, BudgetExceededError) for r in results if r != "ok"))

        with self.app.app_context():
            draft = reorder_service.get_draft()
            db.session.remove()
        self.assertEqual(draft["total_amount_cents"], 360)
        self.assertLessEqual(draft["total_amount_cents"], draft["max_total_amount_cents"])

    def test_different_products_do_not_block_each_other(self):
        with self.app.app_context():
            other_id = self._create_product("Concurrent Cone", 10)

        calls = []
        for product_id in (self.product_id, other_id):
            for _ in range(3):
                calls.append(
                    lambda pid=product_id: sales_service.record_sale(
                        product_id=pid, quantity=2, payment_method="GCash", **ACTOR
                    )
                )

        results = self._run_workers(calls)

        self.assertEqual(results, ["ok"] * 6)
        for product_id in (self.product_id, other_id):
            quantity, consistent = self._state(product_id)
            self.assertEqual(quantity, 4)
            self.assertTrue(consistent)


if __name__ == "__main__":
    unittest.main()
