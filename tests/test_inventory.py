"""Tests for InventoryLedger reservations."""
import threading

import pytest
from django.db import connection

from shop.errors import InsufficientStockError, InvalidInputError, ProductNotFoundError
from shop.inventory import InventoryLedger
from shop.models import Product

pytestmark = pytest.mark.django_db


@pytest.fixture
def ledger():
    return InventoryLedger()


def test_reserve_decrements_and_returns_remaining(ledger, make_product):
    product = make_product(stock=10)

    assert ledger.reserve(product.pk, 4) == 6
    product.refresh_from_db()
    assert product.stock == 6


def test_reserve_exact_stock_leaves_zero(ledger, make_product):
    product = make_product(stock=3)

    assert ledger.reserve(product.pk, 3) == 0


def test_reserve_insufficient_stock_is_rejected_not_clamped(ledger, make_product):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStockError) as excinfo:
        ledger.reserve(product.pk, 5)

    assert excinfo.value.requested == 5
    assert excinfo.value.available == 2
    assert excinfo.value.retryable
    product.refresh_from_db()
    assert product.stock == 2


def test_reserve_unknown_product(ledger, db):
    with pytest.raises(ProductNotFoundError):
        ledger.reserve(999999, 1)


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2", None])
def test_reserve_rejects_non_positive_integer_quantity(ledger, make_product, quantity):
    product = make_product(stock=10)

    with pytest.raises(InvalidInputError):
        ledger.reserve(product.pk, quantity)

    product.refresh_from_db()
    assert product.stock == 10


def test_two_requests_for_three_against_five(ledger, make_product):
    product = make_product(stock=5)
    stale = Product.objects.get(pk=product.pk)

    assert ledger.reserve(product.pk, 3) == 2
    # The in-memory copy still reads 5; the guard is evaluated by the database.
    assert stale.stock == 5
    with pytest.raises(InsufficientStockError):
        ledger.reserve(stale.pk, 3)

    product.refresh_from_db()
    assert product.stock == 2


def test_release_restores_stock(ledger, make_product):
    product = make_product(stock=5)
    ledger.reserve(product.pk, 4)

    assert ledger.release(product.pk, 4) == 5


def test_release_unknown_product(ledger, db):
    with pytest.raises(ProductNotFoundError):
        ledger.release(424242, 1)


@pytest.mark.django_db(transaction=True)
def test_concurrent_reservations_never_oversell(make_product):
    product = make_product(stock=5)
    ledger = InventoryLedger()
    reserved = []
    refused = []
    barrier = threading.Barrier(4)

    def attempt():
        barrier.wait()
        try:
            ledger.reserve(product.pk, 3)
            reserved.append(3)
        except InsufficientStockError:
            refused.append(3)
        finally:
            connection.close()

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    product.refresh_from_db()
    assert len(reserved) == 1
    assert len(refused) == 3
    assert sum(reserved) == 5 - product.stock
    assert product.stock == 2
