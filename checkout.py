# checkout.py
"""
Checkout sequencing: turns the cart into a persisted Transaction.

The backend offers no multi-statement transaction, so the sequence is a
small state machine

    PENDING -> ITEMS_WRITTEN -> STOCK_ADJUSTED -> COMMITTED

in which every acknowledged write records a compensating action. When a
later write fails the recorded actions run newest first and the attempt ends
ROLLED_BACK (or ROLLBACK_FAILED if a compensation raised too).
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Tuple

from errors import (CashierError, CheckoutFailed, EmptyCart, InsufficientPayment,
                    ProductNotFound, StockExceeded)
from models import Cart, Transaction, to_money

logger = logging.getLogger("cashier.checkout")


class CheckoutState(Enum):
    PENDING = "pending"
    ITEMS_WRITTEN = "items_written"
    STOCK_ADJUSTED = "stock_adjusted"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


@dataclass
class CheckoutAttempt:
    """Progress of one checkout and the actions that would undo it."""
    state: CheckoutState = CheckoutState.PENDING
    transaction_id: Optional[int] = None
    compensations: List[Tuple[str, Callable[[], object]]] = field(default_factory=list)

    def record(self, description: str, action: Callable[[], object]):
        self.compensations.append((description, action))

    def rollback(self) -> bool:
        """Run compensations newest first. Returns False if any of them raised."""
        ok = True
        while self.compensations:
            description, action = self.compensations.pop()
            try:
                action()
                logger.info("Rolled back: %s", description)
            except Exception:
                ok = False
                logger.error("Rollback step failed: %s", description, exc_info=True)
        self.state = CheckoutState.ROLLED_BACK if ok else CheckoutState.ROLLBACK_FAILED
        return ok


@dataclass(frozen=True)
class CheckoutResult:
    transaction: Transaction
    change: Optional[Decimal] = None


class CheckoutSequencer:
    """
    Runs the ordered checkout writes against a backend.
    revalidate_stock: re-read each product before writing instead of trusting
    the cart snapshot
    """
    def __init__(self, backend, auth, revalidate_stock: bool = False):
        self.backend = backend
        self.auth = auth
        self.revalidate_stock = revalidate_stock
        self.last_attempt = None

    def checkout(self, cart: Cart, cash_amount=None, customer_email=None) -> CheckoutResult:
        if cart.is_empty:
            raise EmptyCart()
        subtotal, tax, total = cart.subtotal, cart.tax, cart.total

        change = None
        if cash_amount is not None:
            cash = to_money(cash_amount)
            if cash < total:
                logger.warning("Checkout refused: cash %s below total %s", cash, total)
                raise InsufficientPayment(total - cash)
            change = cash - total

        user = self.auth.require_user()
        lines = cart.items
        stock_base = self._stock_levels(lines)

        attempt = CheckoutAttempt()
        self.last_attempt = attempt
        step = "create_transaction"
        try:
            txn = self.backend.create_transaction(
                subtotal=subtotal, tax=tax, total=total,
                created_by=user.id, customer_email=customer_email or None)
            attempt.transaction_id = txn.id
            attempt.record(f"delete transaction {txn.id}",
                           partial(self.backend.delete_transaction, txn.id))
            logger.debug("Transaction %s created", txn.id)

            step = "create_transaction_items"
            items = self.backend.create_transaction_items([{
                "transaction_id": txn.id,
                "product_id": line.product.id,
                "quantity": line.quantity,
                "price_at_time": line.product.price,
            } for line in lines])
            attempt.record(f"delete items of transaction {txn.id}",
                           partial(self.backend.delete_transaction_items, txn.id))
            attempt.state = CheckoutState.ITEMS_WRITTEN

            step = "update_product_stock"
            for line in lines:
                pid = line.product.id
                before = stock_base[pid]
                self.backend.update_product_stock(pid, before - line.quantity)
                attempt.record(f"restore stock of product {pid} to {before}",
                               partial(self.backend.update_product_stock, pid, before))
            attempt.state = CheckoutState.STOCK_ADJUSTED
        except Exception as exc:
            logger.error("Checkout failed at %s: %s", step, exc, exc_info=True)
            attempt.rollback()
            raise CheckoutFailed(step, attempt.transaction_id, attempt.state) from exc

        attempt.state = CheckoutState.COMMITTED
        attempt.compensations.clear()
        snapshots = [replace(item, product=line.product) for item, line in zip(items, lines)]
        txn = replace(txn, items=tuple(snapshots))
        cart.clear()
        logger.info("Transaction %s completed: %d line(s), total %s by user %s",
                    txn.id, len(snapshots), total, user.id)
        return CheckoutResult(transaction=txn, change=change)

    def _stock_levels(self, lines):
        """Stock each decrement starts from: the cart snapshot, or live stock when revalidating."""
        if not self.revalidate_stock:
            return {line.product.id: line.product.stock_quantity for line in lines}

        levels = {}
        for line in lines:
            try:
                live = self.backend.get_product(line.product.id)
            except CashierError:
                raise
            except Exception as exc:
                logger.error("Stock revalidation failed: %s", exc, exc_info=True)
                raise CheckoutFailed("revalidate_stock", state=CheckoutState.PENDING) from exc
            if live is None:
                raise ProductNotFound(line.product.id)
            if live.stock_quantity < line.quantity:
                logger.warning("Stock of %s dropped to %d, cart holds %d",
                               live.sku, live.stock_quantity, line.quantity)
                raise StockExceeded(live.stock_quantity, requested=line.quantity)
            levels[live.id] = live.stock_quantity
        return levels
