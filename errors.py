# errors.py
from decimal import ROUND_UP, Decimal

CENT = Decimal("0.01")


class CashierError(Exception):
    """Base class for every error raised by the cashier core."""


class InvalidQuantity(CashierError, ValueError):
    """Quantity is not a positive integer."""


class InvalidRecord(CashierError, ValueError):
    """A backend row or admin form breaks a value-type invariant."""


class OutOfStock(CashierError):
    def __init__(self, product_name: str):
        super().__init__(f"{product_name} is out of stock")
        self.product_name = product_name


class StockExceeded(CashierError):
    """Requested quantity is above the stock ceiling."""
    def __init__(self, available: int, requested: int = None):
        if requested is None:
            msg = f"Only {available} available in stock"
        else:
            msg = f"Cannot set quantity to {requested}. Only {available} available in stock"
        super().__init__(msg)
        self.available = available
        self.requested = requested


class EmptyCart(CashierError):
    def __init__(self):
        super().__init__("Cart is empty")


class InsufficientPayment(CashierError):
    """shortfall is exact; the message rounds it up to the next cent still owed."""
    def __init__(self, shortfall: Decimal):
        owed = Decimal(shortfall).quantize(CENT, rounding=ROUND_UP)
        super().__init__(f"Insufficient cash amount, short by {owed}")
        self.shortfall = shortfall


class CheckoutFailed(CashierError):
    """
    A backend write failed during checkout.
    step: the sequence step that raised
    transaction_id: id of the transaction created before the failure, if any
    state: final CheckoutState of the attempt
    """
    def __init__(self, step: str, transaction_id=None, state=None):
        super().__init__(f"Failed to process transaction at step '{step}'")
        self.step = step
        self.transaction_id = transaction_id
        self.state = state


class ProductNotFound(CashierError):
    def __init__(self, key):
        super().__init__(f"Product not found: {key}")
        self.key = key


class AuthError(CashierError):
    pass


class NotSignedIn(AuthError):
    def __init__(self):
        super().__init__("No user is signed in")


class ConfigError(CashierError, ValueError):
    pass
