# scanner.py
import logging
import unicodedata
from abc import ABC, abstractmethod

from errors import ProductNotFound

logger = logging.getLogger("cashier.scanner")


class BarcodeDecoder(ABC):
    """Turns a scan source (typed text, camera frame, ...) into a SKU."""

    @abstractmethod
    def decode(self, source):
        """Return the decoded SKU, or None when nothing could be read."""


class KeyboardWedgeDecoder(BarcodeDecoder):
    """
    Hardware scanners in keyboard mode type the code followed by Enter.
    The source is that text; control characters and padding are dropped.
    """
    def decode(self, source):
        if source is None:
            return None
        text = "".join(ch for ch in str(source) if unicodedata.category(ch)[0] != "C")
        text = text.strip()
        return text or None


class ProductScanner:
    """Look a scanned SKU up in the catalog and add it to the cart."""

    def __init__(self, backend, cart, decoder: BarcodeDecoder = None):
        self.backend = backend
        self.cart = cart
        self.decoder = decoder or KeyboardWedgeDecoder()

    def lookup(self, source):
        sku = self.decoder.decode(source)
        if not sku:
            raise ProductNotFound(source)
        product = self.backend.get_product_by_sku(sku)
        if product is None:
            logger.warning("Scanned unknown SKU %s", sku)
            raise ProductNotFound(sku)
        return product

    def scan_and_add(self, source, quantity: int = 1):
        """
        Fetch product by scanned SKU and add it to the cart.
        Raises ProductNotFound, OutOfStock or StockExceeded.
        """
        product = self.lookup(source)
        self.cart.add(product, quantity)
        logger.info("Scanned %s, added %d", product.sku, quantity)
        return product
