# database.py
import logging
import sqlite3
from datetime import date, datetime

from errors import InvalidRecord, ProductNotFound
from models import Product, Transaction, TransactionItem, User, to_money

logger = logging.getLogger("cashier.database")

PRODUCT_FIELDS = ("name", "price", "sku", "category", "stock_quantity", "image_url")


def _now() -> str:
    return datetime.now().isoformat(timespec='seconds')


def _as_date(value) -> str:
    """Normalise a date bound to YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def _clean_product_fields(fields: dict, partial: bool = False) -> dict:
    """
    Validate admin form fields against the Product invariants.
    partial: only the keys present are checked (update)
    """
    unknown = set(fields) - set(PRODUCT_FIELDS)
    if unknown:
        raise InvalidRecord(f"Unknown product fields: {', '.join(sorted(unknown))}")
    if not partial:
        missing = [f for f in ("name", "price", "sku") if f not in fields]
        if missing:
            raise InvalidRecord(f"Missing product fields: {', '.join(missing)}")

    clean = {}
    for key, value in fields.items():
        if key in ("name", "sku", "category"):
            value = (value or "").strip()
        elif key == "image_url":
            value = (value or "").strip() or None
        elif key == "price":
            value = to_money(value)
        clean[key] = value

    # Reuse the value-type checks on a merged probe record
    probe = {"id": 0, "name": "x", "price": "1", "sku": "x", "stock_quantity": 0}
    probe.update(clean)
    Product.from_row(probe)

    if "price" in clean:
        clean["price"] = float(clean["price"])
    return clean


class Database:
    """
    SQLite backend for products, transactions and users.
    Exposes the record CRUD the cart checkout and the views rely on.
    """
    def __init__(self, db_name: str = "pos.db"):
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.debug("Opened database %s", db_name)

    def _create_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            price REAL NOT NULL,
            sku TEXT NOT NULL UNIQUE,
            category TEXT NOT NULL DEFAULT '',
            stock_quantity INTEGER NOT NULL DEFAULT 0,
            image_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            subtotal REAL NOT NULL,
            tax REAL NOT NULL,
            total REAL NOT NULL,
            customer_email TEXT,
            created_by INTEGER NOT NULL,
            created_at TEXT NOT NULL
        )
        """)
        # Line items keep the sale price, not a live join on products.price
        cur.execute("""
        CREATE TABLE IF NOT EXISTS transaction_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL,
            price_at_time REAL NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(transaction_id) REFERENCES transactions(id),
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """)
        self.conn.commit()

    def close(self):
        self.conn.close()

    # Product operations
    def list_products(self):
        """All products sorted by name."""
        cur = self.conn.execute("SELECT * FROM products ORDER BY name COLLATE NOCASE, id")
        return [Product.from_row(r) for r in cur.fetchall()]

    def get_product(self, product_id):
        cur = self.conn.execute("SELECT * FROM products WHERE id = ?", (product_id,))
        row = cur.fetchone()
        return Product.from_row(row) if row else None

    def get_product_by_sku(self, sku: str):
        """Fetch a product by its scan/lookup key."""
        cur = self.conn.execute("SELECT * FROM products WHERE sku = ?", (sku,))
        row = cur.fetchone()
        return Product.from_row(row) if row else None

    def search_products(self, keyword: str = "", category: str = None):
        """Search products by name or SKU, optionally within one category."""
        q = "SELECT * FROM products WHERE (name LIKE ? OR sku LIKE ?)"
        kw = f"%{keyword.strip()}%"
        params = [kw, kw]
        if category:
            q += " AND category = ?"
            params.append(category)
        q += " ORDER BY name COLLATE NOCASE, id"
        return [Product.from_row(r) for r in self.conn.execute(q, params).fetchall()]

    def list_categories(self):
        cur = self.conn.execute(
            "SELECT DISTINCT category FROM products WHERE category != '' ORDER BY category")
        return [r["category"] for r in cur.fetchall()]

    def create_product(self, fields: dict) -> Product:
        clean = _clean_product_fields(fields)
        clean.setdefault("category", "")
        clean.setdefault("stock_quantity", 0)
        clean.setdefault("image_url", None)
        ts = _now()
        try:
            cur = self.conn.execute("""
            INSERT INTO products (name, price, sku, category, stock_quantity, image_url,
                                  created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (clean["name"], clean["price"], clean["sku"], clean["category"],
                  clean["stock_quantity"], clean["image_url"], ts, ts))
        except sqlite3.IntegrityError:
            raise InvalidRecord(f"SKU {clean['sku']} already exists") from None
        self.conn.commit()
        logger.info("Created product %s (%s)", clean["sku"], clean["name"])
        return self.get_product(cur.lastrowid)

    def update_product(self, product_id, fields: dict) -> Product:
        clean = _clean_product_fields(fields, partial=True)
        if self.get_product(product_id) is None:
            raise ProductNotFound(product_id)
        clean["updated_at"] = _now()
        assignments = ", ".join(f"{k} = ?" for k in clean)
        try:
            self.conn.execute(f"UPDATE products SET {assignments} WHERE id = ?",
                              (*clean.values(), product_id))
        except sqlite3.IntegrityError:
            raise InvalidRecord(f"SKU {clean.get('sku')} already exists") from None
        self.conn.commit()
        logger.info("Updated product %s", product_id)
        return self.get_product(product_id)

    def delete_product(self, product_id) -> bool:
        cur = self.conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def update_product_stock(self, product_id, new_quantity: int):
        """Set stock to an absolute value. Last write wins."""
        cur = self.conn.execute(
            "UPDATE products SET stock_quantity = ?, updated_at = ? WHERE id = ?",
            (new_quantity, _now(), product_id))
        self.conn.commit()
        if cur.rowcount == 0:
            raise ProductNotFound(product_id)
        logger.debug("Stock of product %s set to %d", product_id, new_quantity)

    # Transaction operations
    def create_transaction(self, subtotal, tax, total, created_by, customer_email=None) -> Transaction:
        cur = self.conn.execute("""
        INSERT INTO transactions (subtotal, tax, total, customer_email, created_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """, (float(subtotal), float(tax), float(total), customer_email or None,
              created_by, _now()))
        self.conn.commit()
        row = self.conn.execute("SELECT * FROM transactions WHERE id = ?",
                                (cur.lastrowid,)).fetchone()
        return Transaction.from_row(row)

    def create_transaction_items(self, items: list):
        """
        Insert all line items of one sale in a single commit.
        items: list of dicts with keys transaction_id, product_id, quantity, price_at_time
        """
        ts = _now()
        created = []
        cur = self.conn.cursor()
        try:
            for it in items:
                cur.execute("""
                INSERT INTO transaction_items (transaction_id, product_id, quantity,
                                               price_at_time, created_at)
                VALUES (?, ?, ?, ?, ?)
                """, (it["transaction_id"], it["product_id"], it["quantity"],
                      float(it["price_at_time"]), ts))
                created.append(TransactionItem(
                    id=cur.lastrowid, transaction_id=it["transaction_id"],
                    product_id=it["product_id"], quantity=it["quantity"],
                    price_at_time=to_money(it["price_at_time"]), created_at=ts))
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()
        return created

    def delete_transaction_items(self, transaction_id) -> int:
        cur = self.conn.execute("DELETE FROM transaction_items WHERE transaction_id = ?",
                                (transaction_id,))
        self.conn.commit()
        return cur.rowcount

    def delete_transaction(self, transaction_id) -> bool:
        cur = self.conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def _load_items(self, transaction_ids):
        """Items per transaction id, each with its product snapshot when it still exists."""
        if not transaction_ids:
            return {}
        marks = ", ".join("?" for _ in transaction_ids)
        cur = self.conn.execute(f"""
        SELECT ti.*, p.id AS p_id, p.name AS p_name, p.price AS p_price, p.sku AS p_sku,
               p.category AS p_category, p.stock_quantity AS p_stock_quantity,
               p.image_url AS p_image_url, p.created_at AS p_created_at,
               p.updated_at AS p_updated_at
        FROM transaction_items ti
        LEFT JOIN products p ON ti.product_id = p.id
        WHERE ti.transaction_id IN ({marks})
        ORDER BY ti.id
        """, list(transaction_ids))
        grouped = {tid: [] for tid in transaction_ids}
        for row in cur.fetchall():
            r = dict(row)
            product = None
            if r["p_id"] is not None:
                product = Product.from_row({k[2:]: v for k, v in r.items() if k.startswith("p_")})
            grouped[r["transaction_id"]].append(TransactionItem.from_row(r, product=product))
        return grouped

    def list_transactions(self, date_from=None, date_to=None):
        """Transactions newest first, bounds are inclusive calendar dates."""
        q = "SELECT * FROM transactions"
        clauses, params = [], []
        if date_from:
            clauses.append("date(created_at) >= ?")
            params.append(_as_date(date_from))
        if date_to:
            clauses.append("date(created_at) <= ?")
            params.append(_as_date(date_to))
        if clauses:
            q += " WHERE " + " AND ".join(clauses)
        q += " ORDER BY created_at DESC, id DESC"
        rows = self.conn.execute(q, params).fetchall()
        items = self._load_items([r["id"] for r in rows])
        return [Transaction.from_row(r, items[r["id"]]) for r in rows]

    def get_transaction(self, transaction_id):
        row = self.conn.execute("SELECT * FROM transactions WHERE id = ?",
                                (transaction_id,)).fetchone()
        if not row:
            return None
        return Transaction.from_row(row, self._load_items([row["id"]])[row["id"]])

    # User operations
    def create_user(self, email: str, password_hash: str) -> User:
        cur = self.conn.execute(
            "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
            (email, password_hash, _now()))
        self.conn.commit()
        return User(id=cur.lastrowid, email=email)

    def get_user_by_email(self, email: str):
        """Raw user row (includes password_hash) or None."""
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None
