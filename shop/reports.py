"""Read-only reporting for the admin dashboard.

Sales series are zero-filled: every bucket key between the window's start
and end is generated first by stepping the calendar, then orders are folded
into the matching key. The key set of a report never depends on the data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.utils import timezone

from .errors import InvalidInputError
from .models import Order, OrderItem, OrderStatus, Product
from .orders import orders_with_items
from .utils import add_months, end_of_day, local_date, start_of_day

logger = logging.getLogger(__name__)

DAY = "day"
WEEK = "week"
MONTH = "month"
YEAR = "year"

PERIODS = (WEEK, MONTH, YEAR)

ZERO = Decimal("0.00")


@dataclass
class SalesBucket:
    date: str
    sales: Decimal = ZERO
    order_count: int = 0


@dataclass
class SalesReport:
    period: Optional[str]
    interval: str
    start: datetime
    end: datetime
    buckets: List[SalesBucket] = field(default_factory=list)

    @property
    def total_sales(self) -> Decimal:
        return sum((b.sales for b in self.buckets), ZERO)

    @property
    def total_orders(self) -> int:
        return sum(b.order_count for b in self.buckets)


@dataclass
class TopSeller:
    product: Product
    total_sold: int


# -------------------- Bucket keys --------------------

def day_key(day: date) -> date:
    return day


def week_key(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_key(day: date) -> date:
    return day.replace(day=1)


BUCKET_KEYS: Dict[str, Callable[[date], date]] = {
    DAY: day_key,
    WEEK: week_key,
    MONTH: month_key,
}


def _step(key: date, interval: str) -> date:
    if interval == DAY:
        return key + timedelta(days=1)
    if interval == WEEK:
        return key + timedelta(days=7)
    return add_months(key, 1)


def _format_key(key: date, interval: str) -> str:
    if interval == MONTH:
        return key.strftime("%Y-%m")
    return key.isoformat()


def bucket_keys(first: date, last: date, interval: str) -> List[date]:
    """Every bucket key from ``first`` to ``last`` inclusive, ascending."""
    if interval not in BUCKET_KEYS:
        raise InvalidInputError(f"Unknown interval: {interval!r}")
    key_of = BUCKET_KEYS[interval]
    keys = []
    key = key_of(first)
    end_key = key_of(last)
    while key <= end_key:
        keys.append(key)
        key = _step(key, interval)
    return keys


def build_series(
    orders: Iterable[Tuple[datetime, Decimal]],
    start: datetime,
    end: datetime,
    interval: str,
) -> List[SalesBucket]:
    """Zero-fill the window, then fold ``(created_at, total_amount)`` pairs in."""
    key_of = BUCKET_KEYS.get(interval)
    if key_of is None:
        raise InvalidInputError(f"Unknown interval: {interval!r}")
    keys = bucket_keys(local_date(start), local_date(end), interval)
    buckets = {key: SalesBucket(date=_format_key(key, interval)) for key in keys}

    for created_at, total in orders:
        if created_at < start or created_at > end:
            continue
        bucket = buckets.get(key_of(local_date(created_at)))
        if bucket is None:
            continue
        bucket.sales += total
        bucket.order_count += 1

    return [buckets[key] for key in keys]


# -------------------- Windows --------------------

def resolve_window(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime, str]:
    """Start, end and bucket interval for a named reporting period.

    The window ends at ``now`` and starts at local midnight: 6 days back for
    a week (7 daily buckets), the day after the same date last month for a
    month, and the same date last year for a year. The year is bucketed by
    month, so its first and last keys are partial months.
    """
    now = now or timezone.now()
    today = local_date(now)
    if period == WEEK:
        first, interval = today - timedelta(days=6), DAY
    elif period == MONTH:
        first, interval = add_months(today, -1) + timedelta(days=1), DAY
    elif period == YEAR:
        first, interval = add_months(today, -12), MONTH
    else:
        raise InvalidInputError(f"Unknown period {period!r}; expected one of {', '.join(PERIODS)}")
    return start_of_day(first), now, interval


def _as_bound(value, is_end: bool) -> datetime:
    if isinstance(value, datetime):
        return value if timezone.is_aware(value) else timezone.make_aware(value)
    if isinstance(value, date):
        return end_of_day(value) if is_end else start_of_day(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise InvalidInputError(f"Invalid date: {value!r}") from None
        if len(value) <= 10:
            return _as_bound(parsed.date(), is_end)
        return _as_bound(parsed, is_end)
    raise InvalidInputError(f"Invalid date: {value!r}")


# -------------------- Reports --------------------

def max_report_days() -> int:
    return getattr(settings, "SHOP_REPORT_MAX_DAYS", 731)


def sales_report(period: Optional[str] = WEEK, start=None, end=None, now=None) -> SalesReport:
    """Revenue and order count per bucket over a period or explicit range."""
    if start is not None or end is not None:
        if start is None or end is None:
            raise InvalidInputError("Both start and end are required for a custom range.")
        range_start, range_end = _as_bound(start, False), _as_bound(end, True)
        if range_start > range_end:
            raise InvalidInputError("Start date must not be after end date.")
        span = (local_date(range_end) - local_date(range_start)).days + 1
        if span > max_report_days():
            raise InvalidInputError(f"Custom range cannot exceed {max_report_days()} days.")
        interval = DAY
    else:
        range_start, range_end, interval = resolve_window(period or WEEK, now)

    rows = Order.objects.filter(
        created_at__gte=range_start,
        created_at__lte=range_end,
    ).values_list("created_at", "total_amount")

    report = SalesReport(
        period=period,
        interval=interval,
        start=range_start,
        end=range_end,
        buckets=build_series(rows, range_start, range_end, interval),
    )
    logger.debug(
        "Sales report %s..%s (%s): %s buckets, %s orders",
        range_start, range_end, interval, len(report.buckets), report.total_orders,
    )
    return report


def top_products_max_limit() -> int:
    return getattr(settings, "SHOP_TOP_PRODUCTS_MAX_LIMIT", 50)


def top_products(limit: int = 5, period: str = MONTH, now=None) -> List[TopSeller]:
    """Best sellers by units sold inside the period window.

    Lines whose product has since been deleted are left out of the ranking.
    """
    max_limit = top_products_max_limit()
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= max_limit:
        raise InvalidInputError(f"Limit must be between 1 and {max_limit}, got {limit!r}")
    start, end, _ = resolve_window(period, now)

    ranked = list(
        OrderItem.objects.filter(
            order__created_at__gte=start,
            order__created_at__lte=end,
            product__isnull=False,
        )
        .values("product_id")
        .annotate(total_sold=Sum("quantity"))
        .order_by("-total_sold", "product_id")[:limit]
    )
    products = Product.objects.in_bulk([row["product_id"] for row in ranked])
    return [
        TopSeller(product=products[row["product_id"]], total_sold=row["total_sold"])
        for row in ranked
        if row["product_id"] in products
    ]


def low_stock_threshold() -> int:
    return getattr(settings, "SHOP_LOW_STOCK_THRESHOLD", 5)


def dashboard_stats() -> dict:
    product_counts = Product.objects.filter(is_active=True).aggregate(
        total=Count("id"),
        low_stock=Count("id", filter=Q(stock__lte=low_stock_threshold())),
    )
    order_counts = Order.objects.aggregate(
        total=Count("id"),
        pending=Count("id", filter=Q(status=OrderStatus.PENDING)),
        revenue=Sum(
            "total_amount",
            filter=Q(status__in=[OrderStatus.SHIPPED, OrderStatus.DELIVERED]),
        ),
    )
    return {
        "total_products": product_counts["total"],
        "total_users": get_user_model().objects.filter(is_staff=False).count(),
        "total_orders": order_counts["total"],
        "total_revenue": order_counts["revenue"] or ZERO,
        "low_stock_products": product_counts["low_stock"],
        "pending_orders": order_counts["pending"],
    }


def recent_orders(limit: int = 5) -> List[Order]:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidInputError(f"Limit must be a positive integer, got {limit!r}")
    return list(orders_with_items().order_by("-created_at")[:limit])
