import os
import sqlite3
import sys
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, call, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from auth import AuthService
from checkout import CheckoutSequencer, CheckoutState
from database import Database
from errors import (CheckoutFailed, EmptyCart, InsufficientPayment, NotSignedIn,
                    ProductNotFound, StockExceeded)
from models import Cart, Product, Transaction, TransactionItem, User


def make_product(pid, price, stock):
    return Product(id=pid, name=f"Product {pid}", price=Decimal(price), sku=f"SKU{pid}",
                   stock_quantity=stock)


def fake_items(items):
    return [TransactionItem(id=n, transaction_id=it["transaction_id"], product_id=it["product_id"],
                            quantity=it["quantity"], price_at_time=it["price_at_time"])
            for n, it in enumerate(items, start=1)]


class CheckoutSequencerTests(unittest.TestCase):
    """Sequencing and compensation against a mocked backend."""

    def setUp(self):
        self.backend = MagicMock()
        self.backend.create_transaction.side_effect = lambda **kw: Transaction(
            id=7, subtotal=kw["subtotal"], tax=kw["tax"], total=kw["total"],
            created_by=kw["created_by"], customer_email=kw["customer_email"],
            created_at="2026-03-01T10:00:00")
        self.backend.create_transaction_items.side_effect = fake_items
        self.auth = MagicMock()
        self.auth.require_user.return_value = User(id=1, email="cashier@example.com")
        self.seq = CheckoutSequencer(self.backend, self.auth)

        self.a = make_product(1, "10.00", 5)
        self.b = make_product(2, "2.50", 4)
        self.cart = Cart(tax_rate=Decimal("0.08"))
        self.cart.add(self.a, 3)
        self.cart.add(self.b, 1)

    def test_successful_two_line_checkout(self):
        result = self.seq.checkout(self.cart, customer_email="buyer@example.com")

        self.backend.create_transaction.assert_called_once_with(
            subtotal=Decimal("32.50"), tax=Decimal("2.60"), total=Decimal("35.10"),
            created_by=1, customer_email="buyer@example.com")
        self.backend.create_transaction_items.assert_called_once()
        batch = self.backend.create_transaction_items.call_args.args[0]
        self.assertEqual(len(batch), 2)
        self.assertEqual(batch[0], {"transaction_id": 7, "product_id": 1, "quantity": 3,
                                    "price_at_time": Decimal("10.00")})
        self.assertEqual(self.backend.update_product_stock.call_args_list,
                         [call(1, 2), call(2, 3)])
        self.backend.delete_transaction.assert_not_called()

        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.seq.last_attempt.state, CheckoutState.COMMITTED)
        self.assertEqual(result.transaction.id, 7)
        self.assertEqual([i.product_name for i in result.transaction.items],
                         ["Product 1", "Product 2"])
        self.assertIsNone(result.change)

    def test_write_order(self):
        self.seq.checkout(self.cart)
        names = [c[0] for c in self.backend.method_calls]
        self.assertEqual(names, ["create_transaction", "create_transaction_items",
                                 "update_product_stock", "update_product_stock"])

    def test_empty_cart(self):
        with self.assertRaises(EmptyCart):
            self.seq.checkout(Cart())
        self.assertEqual(self.backend.method_calls, [])

    def test_insufficient_cash_issues_no_writes(self):
        with self.assertRaises(InsufficientPayment) as ctx:
            self.seq.checkout(self.cart, cash_amount="30")
        self.assertEqual(ctx.exception.shortfall, Decimal("5.10"))
        self.assertEqual(self.backend.method_calls, [])
        self.assertEqual(len(self.cart), 2)

    def test_shortfall_below_a_cent_reports_cent_owed(self):
        cart = Cart(tax_rate=Decimal("0.08"))
        cart.add(make_product(3, "1.03", 1), 1)
        with self.assertRaises(InsufficientPayment) as ctx:
            self.seq.checkout(cart, cash_amount="1.11")
        self.assertEqual(ctx.exception.shortfall, Decimal("0.0024"))
        self.assertIn("short by 0.01", str(ctx.exception))
        self.assertEqual(self.backend.method_calls, [])

    def test_cash_change(self):
        result = self.seq.checkout(self.cart, cash_amount=Decimal("50"))
        self.assertEqual(result.change, Decimal("14.90"))

    def test_exact_cash_is_enough(self):
        result = self.seq.checkout(self.cart, cash_amount="35.10")
        self.assertEqual(result.change, 0)

    def test_requires_signed_in_user(self):
        self.auth.require_user.side_effect = NotSignedIn()
        with self.assertRaises(NotSignedIn):
            self.seq.checkout(self.cart)
        self.assertEqual(self.backend.method_calls, [])

    def test_failure_creating_transaction(self):
        self.backend.create_transaction.side_effect = RuntimeError("network down")
        with self.assertRaises(CheckoutFailed) as ctx:
            self.seq.checkout(self.cart)
        err = ctx.exception
        self.assertEqual(err.step, "create_transaction")
        self.assertIsNone(err.transaction_id)
        self.assertIsInstance(err.__cause__, RuntimeError)
        self.backend.delete_transaction.assert_not_called()
        self.assertEqual(len(self.cart), 2)

    def test_failure_writing_items_deletes_transaction(self):
        self.backend.create_transaction_items.side_effect = RuntimeError("insert failed")
        with self.assertRaises(CheckoutFailed) as ctx:
            self.seq.checkout(self.cart)
        self.assertEqual(ctx.exception.step, "create_transaction_items")
        self.assertEqual(ctx.exception.transaction_id, 7)
        self.assertEqual(ctx.exception.state, CheckoutState.ROLLED_BACK)
        self.backend.delete_transaction.assert_called_once_with(7)
        self.backend.update_product_stock.assert_not_called()
        self.assertEqual(len(self.cart), 2)

    def test_failure_mid_stock_update_restores_earlier_writes(self):
        self.backend.update_product_stock.side_effect = [None, RuntimeError("timeout"), None]
        with self.assertRaises(CheckoutFailed) as ctx:
            self.seq.checkout(self.cart)
        self.assertEqual(ctx.exception.step, "update_product_stock")
        self.assertEqual(self.backend.method_calls[-3:], [
            call.update_product_stock(1, 5),
            call.delete_transaction_items(7),
            call.delete_transaction(7),
        ])
        self.assertEqual(self.seq.last_attempt.state, CheckoutState.ROLLED_BACK)
        self.assertEqual(len(self.cart), 2)

    def test_failed_compensation_is_reported_and_rest_still_run(self):
        self.backend.update_product_stock.side_effect = RuntimeError("timeout")
        self.backend.delete_transaction_items.side_effect = RuntimeError("gone")
        with self.assertRaises(CheckoutFailed) as ctx:
            self.seq.checkout(self.cart)
        self.assertEqual(ctx.exception.state, CheckoutState.ROLLBACK_FAILED)
        self.backend.delete_transaction.assert_called_once_with(7)

    def test_revalidation_catches_depleted_stock(self):
        self.backend.get_product.side_effect = [make_product(1, "10.00", 2), self.b]
        seq = CheckoutSequencer(self.backend, self.auth, revalidate_stock=True)
        with self.assertRaises(StockExceeded) as ctx:
            seq.checkout(self.cart)
        self.assertEqual(ctx.exception.available, 2)
        self.backend.create_transaction.assert_not_called()

    def test_revalidation_decrements_from_live_stock(self):
        self.backend.get_product.side_effect = [make_product(1, "10.00", 10), make_product(2, "2.50", 4)]
        seq = CheckoutSequencer(self.backend, self.auth, revalidate_stock=True)
        seq.checkout(self.cart)
        self.assertEqual(self.backend.update_product_stock.call_args_list, [call(1, 7), call(2, 3)])

    def test_revalidation_missing_product(self):
        self.backend.get_product.return_value = None
        seq = CheckoutSequencer(self.backend, self.auth, revalidate_stock=True)
        with self.assertRaises(ProductNotFound):
            seq.checkout(self.cart)
        self.backend.create_transaction.assert_not_called()


class CheckoutDatabaseTests(unittest.TestCase):
    """Full checkout against the SQLite backend."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.db = Database(os.path.join(self.tmp_dir, "pos.db"))
        self.auth = AuthService(self.db)
        self.auth.sign_up("cashier@example.com", "secret123")
        self.user = self.auth.sign_in("cashier@example.com", "secret123")
        self.a = self.db.create_product({"name": "Apple", "price": "10.00", "sku": "A1",
                                         "category": "Fruit", "stock_quantity": 5})
        self.b = self.db.create_product({"name": "Bread", "price": "2.50", "sku": "B1",
                                         "category": "Bakery", "stock_quantity": 4})
        self.cart = Cart(tax_rate=Decimal("0.08"))
        self.cart.add(self.a, 3)
        self.cart.add(self.b, 2)
        self.seq = CheckoutSequencer(self.db, self.auth)

    def tearDown(self):
        self.db.close()

    def test_checkout_persists_sale_and_stock(self):
        result = self.seq.checkout(self.cart, cash_amount="40", customer_email="buyer@example.com")

        self.assertEqual(self.db.get_product(self.a.id).stock_quantity, 2)
        self.assertEqual(self.db.get_product(self.b.id).stock_quantity, 2)

        [txn] = self.db.list_transactions()
        self.assertEqual(txn.id, result.transaction.id)
        self.assertEqual(txn.total, Decimal("37.80"))
        self.assertEqual(txn.created_by, self.user.id)
        self.assertEqual(txn.customer_email, "buyer@example.com")
        self.assertEqual([(i.product_name, i.quantity) for i in txn.items],
                         [("Apple", 3), ("Bread", 2)])
        self.assertEqual(result.change, Decimal("2.20"))
        self.assertTrue(self.cart.is_empty)

    def test_price_change_after_sale_keeps_receipt_price(self):
        result = self.seq.checkout(self.cart)
        self.db.update_product(self.a.id, {"price": "99.00"})
        txn = self.db.get_transaction(result.transaction.id)
        self.assertEqual(txn.items[0].price_at_time, Decimal("10.00"))
        self.assertEqual(txn.items[0].product.price, Decimal("99.00"))

    def test_failed_stock_write_leaves_no_trace(self):
        original = self.db.update_product_stock

        def flaky(product_id, new_quantity):
            if product_id == self.b.id:
                raise sqlite3.OperationalError("database is locked")
            return original(product_id, new_quantity)

        with patch.object(self.db, "update_product_stock", side_effect=flaky):
            with self.assertRaises(CheckoutFailed):
                self.seq.checkout(self.cart)

        self.assertEqual(self.db.list_transactions(), [])
        count = self.db.conn.execute("SELECT COUNT(*) FROM transaction_items").fetchone()[0]
        self.assertEqual(count, 0)
        self.assertEqual(self.db.get_product(self.a.id).stock_quantity, 5)
        self.assertEqual(self.db.get_product(self.b.id).stock_quantity, 4)
        self.assertEqual(len(self.cart), 2)


if __name__ == '__main__':
    unittest.main()
