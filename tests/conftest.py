"""Pytest fixtures for storefront tests."""
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from itertools import count

import pytest
from django.contrib.auth import get_user_model
from django.test import RequestFactory
from graphene.test import Client

from shop.models import (
    DiscountCode,
    DiscountType,
    Order,
    OrderItem,
    Product,
    ProductOption,
    ProductOptionValue,
)
from storefront.schema import schema

# Fixed clock for report tests: Monday 2026-10-19, noon UTC.
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=dt_timezone.utc)

ADDRESS = {
    "full_name": "Alice Johnson",
    "address": "12 Market Street",
    "city": "Springfield",
    "postal_code": "12345",
    "country": "US",
}

_names = count(1)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def address():
    return dict(ADDRESS)


@pytest.fixture
def customer(db):
    return get_user_model().objects.create_user(
        username="alice", email="alice@example.com", password="pw", first_name="Alice"
    )


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username="admin", email="admin@example.com", password="pw", is_staff=True
    )


@pytest.fixture
def make_product(db):
    """Create a product; ``options`` maps option name to {value: available}."""

    def _make(price="10.00", stock=10, name=None, is_active=True, options=None):
        product = Product.objects.create(
            name=name or f"Product {next(_names)}",
            price=Decimal(price),
            stock=stock,
            category="Furniture",
            is_active=is_active,
        )
        for option_name, values in (options or {}).items():
            option = ProductOption.objects.create(product=product, name=option_name)
            for value, available in values.items():
                ProductOptionValue.objects.create(option=option, value=value, available=available)
        return product

    return _make


@pytest.fixture
def make_discount(db):
    def _make(code="SAVE10", discount_type=DiscountType.PERCENTAGE, value="10", **kwargs):
        kwargs.setdefault("valid_from", datetime(2020, 1, 1, tzinfo=dt_timezone.utc))
        return DiscountCode.objects.create(
            code=code,
            discount_type=discount_type,
            value=Decimal(value),
            **kwargs,
        )

    return _make


@pytest.fixture
def record_order(customer):
    """Insert an order row directly, bypassing checkout, for reporting tests.

    ``lines`` is a list of ``(product, quantity)`` pairs priced at 1.00.
    """

    def _record(total, created_at, lines=(), status="PENDING", user=None):
        order = Order.objects.create(
            user=user or customer,
            status=status,
            original_amount=Decimal(total),
            total_amount=Decimal(total),
            shipping_address=dict(ADDRESS),
            created_at=created_at,
        )
        for product, quantity in lines:
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                quantity=quantity,
                price_at_purchase=Decimal("1.00"),
            )
        return order

    return _record


@pytest.fixture
def gql():
    """Execute a GraphQL document as ``user`` (anonymous when None)."""
    from django.contrib.auth.models import AnonymousUser

    client = Client(schema)

    def _execute(query, user=None, **variables):
        request = RequestFactory().post("/graphql")
        request.user = user or AnonymousUser()
        return client.execute(query, variable_values=variables or None, context_value=request)

    return _execute
