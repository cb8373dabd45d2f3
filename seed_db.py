"""Seed script to populate the storefront database with sample data."""
from __future__ import annotations

import os
from datetime import timedelta
from decimal import Decimal

import django
from django.db import transaction

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "storefront.settings")
django.setup()

from django.contrib.auth import get_user_model  # noqa: E402
from django.utils import timezone  # noqa: E402

from shop.models import (  # noqa: E402
    DiscountCode,
    DiscountType,
    Order,
    Product,
    ProductOption,
    ProductOptionValue,
)
from shop.orders import OrderAssembler  # noqa: E402


CUSTOMERS = [
    {"username": "alice", "email": "alice@example.com", "first_name": "Alice", "last_name": "Johnson"},
    {"username": "bob", "email": "bob@example.com", "first_name": "Bob", "last_name": "Smith"},
]

PRODUCTS = [
    {"name": "Oak Dining Table", "price": Decimal("499.00"), "stock": 8, "category": "Furniture"},
    {"name": "Arc Floor Lamp", "price": Decimal("129.90"), "stock": 20, "category": "Lighting"},
    {"name": "Linen Cushion", "price": Decimal("24.50"), "stock": 60, "category": "Home Decor",
     "options": {"Color": ["Red", "Sand", "Navy"]}},
    {"name": "Espresso Machine", "price": Decimal("349.00"), "stock": 4, "category": "Appliances"},
]

DISCOUNTS = [
    {"code": "SAVE10", "discount_type": DiscountType.PERCENTAGE, "value": Decimal("10")},
    {"code": "WELCOME20", "discount_type": DiscountType.FIXED, "value": Decimal("20"),
     "min_order_amount": Decimal("100"), "usage_limit": 100},
]

ADDRESS = {
    "full_name": "Alice Johnson",
    "address": "12 Market Street",
    "city": "Springfield",
    "postal_code": "12345",
    "country": "US",
}


def seed():
    with transaction.atomic():
        User = get_user_model()
        customers = []
        for payload in CUSTOMERS:
            user, _ = User.objects.get_or_create(
                username=payload["username"],
                defaults={k: v for k, v in payload.items() if k != "username"},
            )
            customers.append(user)
        User.objects.get_or_create(
            username="admin",
            defaults={"email": "admin@example.com", "is_staff": True},
        )

        products = []
        for payload in PRODUCTS:
            product, created = Product.objects.get_or_create(
                name=payload["name"],
                defaults={
                    "price": payload["price"],
                    "stock": payload["stock"],
                    "category": payload["category"],
                },
            )
            if created:
                for option_name, values in payload.get("options", {}).items():
                    option = ProductOption.objects.create(product=product, name=option_name)
                    for value in values:
                        ProductOptionValue.objects.create(option=option, value=value)
            products.append(product)

        for payload in DISCOUNTS:
            DiscountCode.objects.get_or_create(
                code=payload["code"],
                defaults={k: v for k, v in payload.items() if k != "code"},
            )

        if not Order.objects.exists():
            assembler = OrderAssembler()
            order = assembler.create_order(
                user=customers[0],
                items=[
                    {"product_id": products[1].pk, "quantity": 1},
                    {"product_id": products[2].pk, "quantity": 2, "selected_options": {"Color": "Red"}},
                ],
                shipping_address=ADDRESS,
                payment_method="card",
                discount_code="SAVE10",
            )
            # Backdate so the dashboard has more than one bucket to show.
            Order.objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(days=3))


if __name__ == "__main__":
    seed()
    print("Database seeded with sample storefront data.")
