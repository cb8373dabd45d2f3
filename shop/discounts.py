"""Discount code validation and amount computation."""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db.models import F, Q
from django.utils import timezone

from .models import DiscountCode, DiscountType
from .utils import parse_amount, quantize_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class DiscountResult:
    success: bool
    message: str
    code: str
    original_total: Decimal
    discount_amount: Decimal = ZERO
    new_total: Decimal = ZERO


def normalize_code(code) -> str:
    return (code or "").strip().upper()


class DiscountEvaluator:
    """Evaluates discount codes against a cart subtotal.

    ``evaluate`` never writes, so it is safe for checkout previews. Usage is
    counted separately by ``redeem`` once an order is actually placed.
    """

    def evaluate(self, code, cart_subtotal, now=None) -> DiscountResult:
        subtotal = quantize_money(parse_amount(cart_subtotal, "cart subtotal"))
        code = normalize_code(code)
        now = now or timezone.now()

        def failure(message: str) -> DiscountResult:
            return DiscountResult(
                success=False,
                message=message,
                code=code,
                original_total=subtotal,
                discount_amount=ZERO,
                new_total=subtotal,
            )

        discount = DiscountCode.objects.filter(code=code).first() if code else None
        if discount is None or not discount.is_active:
            return failure("Discount code not found.")
        if now < discount.valid_from:
            return failure(f"Discount code {code} is not valid yet.")
        if discount.valid_until is not None and now > discount.valid_until:
            return failure(f"Discount code {code} has expired.")
        if discount.usage_limit is not None and discount.times_used >= discount.usage_limit:
            return failure(f"Discount code {code} has reached its usage limit.")
        if discount.min_order_amount is not None and subtotal < discount.min_order_amount:
            return failure(
                f"Order subtotal must be at least {quantize_money(discount.min_order_amount)} "
                f"to use discount code {code}."
            )

        if discount.discount_type == DiscountType.PERCENTAGE:
            amount = subtotal * discount.value / Decimal(100)
        else:
            amount = discount.value
        amount = min(max(quantize_money(amount), ZERO), subtotal)

        return DiscountResult(
            success=True,
            message=f"Discount code {code} applied.",
            code=code,
            original_total=subtotal,
            discount_amount=amount,
            new_total=subtotal - amount,
        )

    def redeem(self, code) -> bool:
        """Count one use of ``code`` unless its usage limit is already reached."""
        redeemed = (
            DiscountCode.objects.filter(code=normalize_code(code), is_active=True)
            .filter(Q(usage_limit__isnull=True) | Q(times_used__lt=F("usage_limit")))
            .update(times_used=F("times_used") + 1, updated_at=timezone.now())
        )
        if not redeemed:
            logger.info("Discount code %s could not be redeemed", code)
        return bool(redeemed)
