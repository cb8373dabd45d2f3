"""Checkout: turn a cart into a persisted order.

Order creation is all-or-nothing. Reservations, the discount redemption and
the order rows share one database transaction, so any failure rolls back the
stock already reserved for the same attempt.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction

from .discounts import DiscountEvaluator, normalize_code
from .errors import (
    InsufficientStockError,
    InvalidDiscountError,
    InvalidInputError,
    OrderNotFoundError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from .inventory import InventoryLedger
from .models import Order, OrderItem, OrderStatus, Product
from .signals import order_created, order_status_changed
from .utils import quantize_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int
    selected_options: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def coerce(cls, raw) -> "LineItem":
        if isinstance(raw, LineItem):
            return raw
        if isinstance(raw, Mapping):
            get = raw.get
        else:
            get = lambda key, default=None: getattr(raw, key, default)  # noqa: E731
        try:
            product_id = int(get("product_id"))
        except (TypeError, ValueError):
            raise InvalidInputError(f"Invalid product ID: {get('product_id')!r}") from None
        quantity = get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidInputError(f"Quantity must be a positive integer, got {quantity!r}")
        options = get("selected_options") or {}
        if not isinstance(options, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in options.items()
        ):
            raise InvalidInputError("Selected options must map option names to values.")
        return cls(product_id=product_id, quantity=quantity, selected_options=dict(options))


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    address: str
    city: str
    postal_code: str
    country: str
    phone: str = ""

    REQUIRED = ("full_name", "address", "city", "postal_code", "country")

    @classmethod
    def coerce(cls, raw) -> "ShippingAddress":
        if isinstance(raw, ShippingAddress):
            return raw
        if raw is None:
            raise InvalidInputError("Shipping address is required.")
        if isinstance(raw, Mapping):
            get = raw.get
        else:
            get = lambda key, default=None: getattr(raw, key, default)  # noqa: E731
        values = {name: str(get(name) or "").strip() for name in cls.REQUIRED + ("phone",)}
        missing = [name for name in cls.REQUIRED if not values[name]]
        if missing:
            raise InvalidInputError("Shipping address is missing: " + ", ".join(missing))
        return cls(**values)

    def as_dict(self) -> Dict[str, str]:
        return {
            "full_name": self.full_name,
            "address": self.address,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }


def max_order_items() -> int:
    return getattr(settings, "SHOP_MAX_ORDER_ITEMS", 50)


class OrderAssembler:
    """Validates a cart, reserves stock, prices it and persists the order."""

    def __init__(self, ledger: Optional[InventoryLedger] = None, evaluator: Optional[DiscountEvaluator] = None):
        self.ledger = ledger or InventoryLedger()
        self.evaluator = evaluator or DiscountEvaluator()

    def create_order(
        self,
        user,
        items: Iterable,
        shipping_address,
        payment_method: str = "",
        discount_code: Optional[str] = None,
    ) -> Order:
        lines = self._validate_lines(items)
        address = ShippingAddress.coerce(shipping_address)
        code = normalize_code(discount_code) or None

        with transaction.atomic():
            products = self._load_products(lines)

            # Ascending product id keeps lock order consistent across checkouts.
            for line in sorted(lines, key=lambda ln: ln.product_id):
                try:
                    self.ledger.reserve(line.product_id, line.quantity)
                except InsufficientStockError as exc:
                    raise InsufficientStockError(
                        exc.product_id, exc.requested, exc.available, products[line.product_id].name
                    ) from None

            subtotal = quantize_money(
                sum((products[ln.product_id].price * ln.quantity for ln in lines), ZERO)
            )

            discount_amount = ZERO
            if code:
                result = self.evaluator.evaluate(code, subtotal)
                if not result.success:
                    raise InvalidDiscountError(code, result.message)
                if not self.evaluator.redeem(code):
                    raise InvalidDiscountError(code, f"Discount code {code} has reached its usage limit.")
                discount_amount = result.discount_amount

            order = Order.objects.create(
                user=user,
                status=OrderStatus.PENDING,
                original_amount=subtotal,
                discount_code=code,
                discount_amount=discount_amount,
                total_amount=subtotal - discount_amount,
                shipping_address=address.as_dict(),
                payment_method=(payment_method or "").strip(),
            )
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        product=products[ln.product_id],
                        product_name=products[ln.product_id].name,
                        quantity=ln.quantity,
                        price_at_purchase=products[ln.product_id].price,
                        selected_options=ln.selected_options,
                    )
                    for ln in lines
                ]
            )
            transaction.on_commit(lambda: _announce_created(order))

        return order

    def _validate_lines(self, items) -> List[LineItem]:
        lines = [LineItem.coerce(raw) for raw in (items or [])]
        if not lines:
            raise InvalidInputError("Order must have at least one item.")
        limit = max_order_items()
        if len(lines) > limit:
            raise InvalidInputError(f"Order cannot exceed {limit} items.")
        return lines

    def _load_products(self, lines: List[LineItem]) -> Dict[int, Product]:
        ids = sorted({ln.product_id for ln in lines})
        products = Product.objects.prefetch_related("options__values").in_bulk(ids)
        missing = [pid for pid in ids if pid not in products]
        if missing:
            raise ProductNotFoundError(missing[0])

        for line in lines:
            product = products[line.product_id]
            if not product.is_active:
                raise ProductUnavailableError(product.pk, f"{product.name} is no longer sold")
            if line.selected_options:
                self._check_options(product, line.selected_options)
        return products

    @staticmethod
    def _check_options(product: Product, selected: Dict[str, str]) -> None:
        declared = product.declared_options()
        for name, value in selected.items():
            if name not in declared or value not in declared[name]:
                raise InvalidInputError(f"{product.name} has no option {name}={value}.")
            if not declared[name][value]:
                raise ProductUnavailableError(product.pk, f"{name} {value} is unavailable")


def _announce_created(order: Order) -> None:
    logger.info(
        "Order %s created for user %s: total %s (discount %s)",
        order.pk, order.user_id, order.total_amount, order.discount_amount,
    )
    order_created.send(sender=Order, order=order)


def update_order_status(order_id, status: str) -> Order:
    """Set an order's status. Any status may follow any other."""
    if status not in OrderStatus.values:
        raise InvalidInputError(f"Unknown order status: {status!r}")

    with transaction.atomic():
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise OrderNotFoundError(order_id)
        previous = order.status
        order.status = status
        order.save(update_fields=["status", "updated_at"])

        def announce():
            logger.info("Order %s status changed %s -> %s", order.pk, previous, status)
            order_status_changed.send(sender=Order, order=order, previous_status=previous)

        transaction.on_commit(announce)

    return order


def has_purchased(user, product_id) -> bool:
    return OrderItem.objects.filter(order__user=user, product_id=product_id).exists()


def orders_with_items():
    return Order.objects.select_related("user").prefetch_related("items__product")
