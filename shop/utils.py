"""Money and date helpers shared by the shop services."""
import calendar
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.utils import timezone

from .errors import InvalidInputError

CENT = Decimal("0.01")
# Largest value an order amount column (12 digits, 2 decimal places) can hold.
MAX_AMOUNT = Decimal("9999999999.99")


def quantize_money(amount) -> Decimal:
    try:
        return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidInputError(f"Amount out of range: {amount!r}") from None


def parse_amount(value, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a non-negative Decimal or raise InvalidInputError."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid {field}: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Invalid {field}: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"Invalid {field}: {value!r}")
    if amount > MAX_AMOUNT:
        raise InvalidInputError(f"{field.capitalize()} cannot exceed {MAX_AMOUNT}, got {value!r}")
    return amount


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def start_of_day(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.min))


def end_of_day(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.max))


def local_date(moment: datetime) -> date:
    if timezone.is_aware(moment):
        return timezone.localtime(moment).date()
    return moment.date()
