# Overview: Concurrency tests for id allocation, stock deduction and returns.

"""
Concurrency tests.

Each test gets its own file-backed SQLite database; every worker thread runs
in its own app context (and therefore its own session and connection).
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from backoffice import create_app
from backoffice.errors import ConflictError, InsufficientStockError, OverReturnError
from backoffice.extensions import db
from backoffice.models import Product
from backoffice.services import order_service, return_service, series_service, stock_ledger


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

            product = Product(sku="CONCUR-1", name="Concurrent Product", price=Decimal("10"), quantity_in_stock=10)
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, target, args_list):
        results = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(args_list))

        def worker(*args):
            with self.app.app_context():
                try:
                    barrier.wait()
                    value = target(*args)
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_series_ids_are_unique(self):
        results, errors = self._run(series_service.next_series_id_committed, [("invoice",)] * 10)

        self.assertFalse(errors)
        self.assertEqual(len(results), 10)
        self.assertEqual(len(set(results)), 10)
        self.assertEqual(sorted(results), [f"INV-{n:06d}" for n in range(1, 11)])

    def test_concurrent_orders_cannot_oversell(self):
        def place(quantity):
            return order_service.create_order([{"product_id": self.product_id, "quantity": quantity}]).id

        results, errors = self._run(place, [(6,), (6,)])

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InsufficientStockError)
        with self.app.app_context():
            self.assertEqual(stock_ledger.get_quantity(self.product_id), 4)

    def test_concurrent_returns_cannot_over_return(self):
        with self.app.app_context():
            order = order_service.create_order(
                [{"product_id": self.product_id, "quantity": 1}],
                payments=[{"method": "cash", "amount": Decimal("10")}],
            )
            order_id = order.id

        def submit():
            return return_service.submit_return(
                order_id,
                [{"product_id": self.product_id, "quantity": 1}],
                [{"method": "cash", "amount": Decimal("10")}],
            ).id

        results, errors = self._run(submit, [(), ()])

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], (OverReturnError, ConflictError))
        with self.app.app_context():
            self.assertEqual(stock_ledger.get_quantity(self.product_id), 10)


if __name__ == "__main__":
    unittest.main()
