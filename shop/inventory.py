"""Stock reservation against the product table.

A reservation is a single conditional UPDATE guarded by ``stock >= quantity``.
The database evaluates the guard and the decrement atomically at the row, so
two concurrent reservations can never both observe enough stock.
"""
import logging

from django.db.models import F
from django.utils import timezone

from .errors import InsufficientStockError, InvalidInputError, ProductNotFoundError
from .models import Product

logger = logging.getLogger(__name__)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidInputError(f"Quantity must be a positive integer, got {quantity!r}")
    return quantity


class InventoryLedger:
    """Atomic stock reservations and compensating releases."""

    def reserve(self, product_id, quantity: int) -> int:
        """Decrement stock by ``quantity`` if at least that much is on hand.

        Returns the stock level right after the update. Raises
        ``ProductNotFoundError`` or ``InsufficientStockError`` when the
        guarded update touches no row.
        """
        quantity = _check_quantity(quantity)
        updated = Product.objects.filter(pk=product_id, stock__gte=quantity).update(
            stock=F("stock") - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            available = Product.objects.filter(pk=product_id).values_list("stock", flat=True).first()
            if available is None:
                raise ProductNotFoundError(product_id)
            logger.info(
                "Refused reservation of %s unit(s) of product %s (available %s)",
                quantity, product_id, available,
            )
            raise InsufficientStockError(product_id, quantity, available)

        remaining = Product.objects.values_list("stock", flat=True).get(pk=product_id)
        logger.debug("Reserved %s unit(s) of product %s, %s left", quantity, product_id, remaining)
        return remaining

    def release(self, product_id, quantity: int) -> int:
        """Put ``quantity`` units back, undoing an earlier reservation."""
        quantity = _check_quantity(quantity)
        updated = Product.objects.filter(pk=product_id).update(
            stock=F("stock") + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            raise ProductNotFoundError(product_id)

        remaining = Product.objects.values_list("stock", flat=True).get(pk=product_id)
        logger.debug("Released %s unit(s) of product %s, %s left", quantity, product_id, remaining)
        return remaining
