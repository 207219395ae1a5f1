# models.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from errors import InvalidQuantity, InvalidRecord, OutOfStock, StockExceeded

logger = logging.getLogger("cashier.models")

DEFAULT_TAX_RATE = Decimal("0.08")


def to_money(value) -> Decimal:
    """Convert a backend or form value to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise InvalidRecord(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidRecord(f"Invalid amount: {value!r}") from None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Product:
    """Read-through copy of a catalog entry held by the backend."""
    id: int
    name: str
    price: Decimal
    sku: str
    category: str = ""
    stock_quantity: int = 0
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "price", to_money(self.price))
        if not self.name or not str(self.name).strip():
            raise InvalidRecord("Product name is required")
        if not self.sku or not str(self.sku).strip():
            raise InvalidRecord("Product SKU is required")
        if not self.price.is_finite() or self.price <= 0:
            raise InvalidRecord(f"Price must be positive, got {self.price}")
        if not _is_int(self.stock_quantity) or self.stock_quantity < 0:
            raise InvalidRecord(
                f"Stock quantity must be a non-negative integer, got {self.stock_quantity!r}")

    @classmethod
    def from_row(cls, row):
        """Build from a backend row (sqlite3.Row or dict)."""
        r = dict(row)
        try:
            return cls(
                id=r["id"],
                name=r["name"],
                price=r["price"],
                sku=r["sku"],
                category=r.get("category") or "",
                stock_quantity=r["stock_quantity"],
                image_url=r.get("image_url") or None,
                created_at=r.get("created_at"),
                updated_at=r.get("updated_at"),
            )
        except KeyError as e:
            raise InvalidRecord(f"Product row is missing {e}") from None


@dataclass
class CartLine:
    """One line in the current cart."""
    product: Product
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


@dataclass(frozen=True)
class TransactionItem:
    """Snapshot of one cart line at sale time."""
    id: int
    transaction_id: int
    product_id: int
    quantity: int
    price_at_time: Decimal
    created_at: Optional[str] = None
    product: Optional[Product] = None

    def __post_init__(self):
        object.__setattr__(self, "price_at_time", to_money(self.price_at_time))
        if not _is_int(self.quantity) or self.quantity < 1:
            raise InvalidRecord(f"Item quantity must be positive, got {self.quantity!r}")
        if self.price_at_time < 0:
            raise InvalidRecord(f"Item price cannot be negative, got {self.price_at_time}")

    @property
    def line_total(self) -> Decimal:
        return self.price_at_time * self.quantity

    @property
    def product_name(self) -> str:
        return self.product.name if self.product else f"Product #{self.product_id}"

    @classmethod
    def from_row(cls, row, product: Optional[Product] = None):
        r = dict(row)
        return cls(
            id=r["id"],
            transaction_id=r["transaction_id"],
            product_id=r["product_id"],
            quantity=r["quantity"],
            price_at_time=r["price_at_time"],
            created_at=r.get("created_at"),
            product=product,
        )


@dataclass(frozen=True)
class Transaction:
    """Immutable record of a completed sale."""
    id: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    created_by: int
    created_at: Optional[str] = None
    customer_email: Optional[str] = None
    items: Tuple[TransactionItem, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in ("subtotal", "tax", "total"):
            value = to_money(getattr(self, name))
            if value < 0:
                raise InvalidRecord(f"Transaction {name} cannot be negative")
            object.__setattr__(self, name, value)
        object.__setattr__(self, "items", tuple(self.items))

    @classmethod
    def from_row(cls, row, items=()):
        r = dict(row)
        return cls(
            id=r["id"],
            subtotal=r["subtotal"],
            tax=r["tax"],
            total=r["total"],
            created_by=r["created_by"],
            created_at=r.get("created_at"),
            customer_email=r.get("customer_email") or None,
            items=tuple(items),
        )


@dataclass(frozen=True)
class User:
    id: int
    email: str


class Cart:
    """
    Holds the lines of the active sale and derives its totals.
    Stock checks use the product snapshot captured when it was added.
    """
    def __init__(self, tax_rate=DEFAULT_TAX_RATE):
        self.tax_rate = to_money(tax_rate)
        self._lines = {}

    def add(self, product: Product, quantity: int = 1) -> CartLine:
        if not _is_int(quantity) or quantity < 1:
            raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")
        if product.stock_quantity <= 0:
            logger.warning("Rejected add of %s: out of stock", product.sku)
            raise OutOfStock(product.name)

        line = self._lines.get(product.id)
        if line is not None:
            new_qty = line.quantity + quantity
            if new_qty > product.stock_quantity:
                logger.warning("Rejected add of %d x %s: %d in cart, %d in stock",
                               quantity, product.sku, line.quantity, product.stock_quantity)
                raise StockExceeded(product.stock_quantity)
            line.quantity = new_qty
            return line

        if quantity > product.stock_quantity:
            logger.warning("Rejected add of %d x %s: %d in stock",
                           quantity, product.sku, product.stock_quantity)
            raise StockExceeded(product.stock_quantity)
        line = CartLine(product, quantity)
        self._lines[product.id] = line
        return line

    def set_quantity(self, product_id, quantity: int):
        if not _is_int(quantity):
            raise InvalidQuantity(f"Quantity must be an integer, got {quantity!r}")
        if quantity < 1:
            self.remove(product_id)
            return
        line = self._lines.get(product_id)
        if line is None:
            return
        if quantity > line.product.stock_quantity:
            logger.warning("Rejected quantity %d for %s: %d in stock",
                           quantity, line.product.sku, line.product.stock_quantity)
            raise StockExceeded(line.product.stock_quantity, requested=quantity)
        line.quantity = quantity

    def remove(self, product_id):
        self._lines.pop(product_id, None)

    def clear(self):
        self._lines.clear()

    def get(self, product_id) -> Optional[CartLine]:
        return self._lines.get(product_id)

    @property
    def items(self):
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    @property
    def tax(self) -> Decimal:
        return self.subtotal * self.tax_rate

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(self.items)
