import os
import sys
import tempfile
import unittest
from datetime import date, timedelta
from decimal import Decimal

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from database import Database
from errors import InvalidRecord, ProductNotFound


class DatabaseTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.db = Database(os.path.join(self.tmp_dir, "pos.db"))

    def tearDown(self):
        self.db.close()

    def add(self, name, sku, price="1.00", stock=10, category=""):
        return self.db.create_product({"name": name, "sku": sku, "price": price,
                                       "stock_quantity": stock, "category": category})


class SchemaTests(DatabaseTestCase):
    def test_tables_created(self):
        cur = self.db.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        names = {r[0] for r in cur.fetchall()}
        self.assertTrue({"products", "transactions", "transaction_items", "users"}.issubset(names))


class ProductTests(DatabaseTestCase):
    def test_create_and_fetch(self):
        p = self.add("Milk", "M1", price="1.99", stock=3, category="Dairy")
        self.assertEqual(p.price, Decimal("1.99"))
        self.assertEqual(self.db.get_product(p.id), p)
        self.assertEqual(self.db.get_product_by_sku("M1").id, p.id)
        self.assertIsNone(self.db.get_product_by_sku("nope"))
        self.assertIsNotNone(p.created_at)

    def test_list_sorted_by_name(self):
        self.add("banana", "B")
        self.add("Apple", "A")
        self.add("cherry", "C")
        self.assertEqual([p.name for p in self.db.list_products()], ["Apple", "banana", "cherry"])

    def test_duplicate_sku(self):
        self.add("Milk", "M1")
        with self.assertRaises(InvalidRecord):
            self.add("Other milk", "M1")

    def test_invalid_fields(self):
        for fields in ({"name": "X", "sku": "X", "price": "0"},
                       {"name": "X", "sku": "X", "price": "abc"},
                       {"name": "X", "sku": "X", "price": "1", "stock_quantity": -2},
                       {"name": "X", "price": "1"},
                       {"name": "X", "sku": "X", "price": "1", "colour": "red"}):
            with self.subTest(fields=fields):
                with self.assertRaises(InvalidRecord):
                    self.db.create_product(fields)
        self.assertEqual(self.db.list_products(), [])

    def test_update(self):
        p = self.add("Milk", "M1", price="1.99")
        updated = self.db.update_product(p.id, {"price": "2.49", "category": "Dairy"})
        self.assertEqual(updated.price, Decimal("2.49"))
        self.assertEqual(updated.category, "Dairy")
        self.assertEqual(updated.name, "Milk")

    def test_update_missing(self):
        with self.assertRaises(ProductNotFound):
            self.db.update_product(42, {"name": "Ghost"})

    def test_delete(self):
        p = self.add("Milk", "M1")
        self.assertTrue(self.db.delete_product(p.id))
        self.assertFalse(self.db.delete_product(p.id))
        self.assertIsNone(self.db.get_product(p.id))

    def test_search_and_categories(self):
        self.add("Green Tea", "TEA-1", category="Drinks")
        self.add("Black Tea", "TEA-2", category="Drinks")
        self.add("Teaspoon", "SP-1", category="Kitchen")
        self.assertEqual(self.db.list_categories(), ["Drinks", "Kitchen"])
        self.assertEqual(len(self.db.search_products("tea")), 3)
        self.assertEqual([p.name for p in self.db.search_products("tea", "Drinks")],
                         ["Black Tea", "Green Tea"])
        self.assertEqual([p.sku for p in self.db.search_products("sp-")], ["SP-1"])

    def test_update_stock(self):
        p = self.add("Milk", "M1", stock=5)
        self.db.update_product_stock(p.id, 2)
        self.assertEqual(self.db.get_product(p.id).stock_quantity, 2)
        with self.assertRaises(ProductNotFound):
            self.db.update_product_stock(999, 1)


class TransactionTests(DatabaseTestCase):
    def record_sale(self, product, qty, price=None):
        price = price or product.price
        subtotal = price * qty
        txn = self.db.create_transaction(subtotal=subtotal, tax=Decimal("0"), total=subtotal,
                                         created_by=1)
        self.db.create_transaction_items([{"transaction_id": txn.id, "product_id": product.id,
                                           "quantity": qty, "price_at_time": price}])
        return txn

    def test_items_are_nested_with_products(self):
        p = self.add("Milk", "M1", price="2.00")
        txn = self.record_sale(p, 3)
        [loaded] = self.db.list_transactions()
        self.assertEqual(loaded.id, txn.id)
        self.assertEqual(len(loaded.items), 1)
        self.assertEqual(loaded.items[0].product.sku, "M1")
        self.assertEqual(loaded.items[0].line_total, Decimal("6.00"))

    def test_newest_first(self):
        p = self.add("Milk", "M1")
        first = self.record_sale(p, 1)
        second = self.record_sale(p, 2)
        self.assertEqual([t.id for t in self.db.list_transactions()], [second.id, first.id])

    def test_date_range_is_inclusive(self):
        p = self.add("Milk", "M1")
        self.record_sale(p, 1)
        today = date.today()
        self.assertEqual(len(self.db.list_transactions(today, today)), 1)
        self.assertEqual(len(self.db.list_transactions(today.isoformat())), 1)
        yesterday = today - timedelta(days=1)
        self.assertEqual(self.db.list_transactions(None, yesterday), [])
        with self.assertRaises(ValueError):
            self.db.list_transactions("31/12/2026")

    def test_deleted_product_keeps_history(self):
        p = self.add("Milk", "M1")
        txn = self.record_sale(p, 1)
        self.db.delete_product(p.id)
        item = self.db.get_transaction(txn.id).items[0]
        self.assertIsNone(item.product)
        self.assertEqual(item.product_name, f"Product #{p.id}")

    def test_compensating_deletes(self):
        p = self.add("Milk", "M1")
        txn = self.record_sale(p, 1)
        self.assertEqual(self.db.delete_transaction_items(txn.id), 1)
        self.assertTrue(self.db.delete_transaction(txn.id))
        self.assertIsNone(self.db.get_transaction(txn.id))

    def test_item_batch_is_all_or_nothing(self):
        p = self.add("Milk", "M1")
        txn = self.db.create_transaction(subtotal=1, tax=0, total=1, created_by=1)
        with self.assertRaises(KeyError):
            self.db.create_transaction_items([
                {"transaction_id": txn.id, "product_id": p.id, "quantity": 1, "price_at_time": 1},
                {"transaction_id": txn.id, "product_id": p.id, "quantity": 1},
            ])
        self.assertEqual(self.db.get_transaction(txn.id).items, ())


if __name__ == '__main__':
    unittest.main()
