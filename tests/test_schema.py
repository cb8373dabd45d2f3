"""End-to-end tests through the GraphQL schema."""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from graphql_relay import to_global_id

from shop.models import Order, OrderStatus, Product

pytestmark = pytest.mark.django_db

CREATE_ORDER = """
mutation Checkout($input: OrderInput!) {
  createOrder(input: $input) {
    order { originalAmount discountAmount totalAmount status items { productName quantity priceAtPurchase } }
    errors
    errorCode
    retryable
  }
}
"""

SHIPPING = {
    "fullName": "Alice Johnson",
    "address": "12 Market Street",
    "city": "Springfield",
    "postalCode": "12345",
    "country": "US",
}


def _checkout_input(*lines, discount_code=None):
    payload = {"items": list(lines), "shippingAddress": SHIPPING, "paymentMethod": "card"}
    if discount_code:
        payload["discountCode"] = discount_code
    return payload


def test_checkout_creates_order(gql, customer, make_product, make_discount):
    product = make_product(price="25.00", stock=4)
    make_discount(code="SAVE10", value="10")

    result = gql(
        CREATE_ORDER,
        user=customer,
        input=_checkout_input({"productId": str(product.pk), "quantity": 4}, discount_code="SAVE10"),
    )

    assert "errors" not in result
    payload = result["data"]["createOrder"]
    assert payload["errors"] == []
    assert payload["errorCode"] is None
    assert payload["order"]["originalAmount"] == "100.00"
    assert payload["order"]["discountAmount"] == "10.00"
    assert payload["order"]["totalAmount"] == "90.00"
    assert payload["order"]["status"] == "PENDING"
    assert payload["order"]["items"] == [
        {"productName": product.name, "quantity": 4, "priceAtPurchase": "25.00"}
    ]


def test_checkout_accepts_relay_ids_and_options(gql, customer, make_product):
    product = make_product(stock=2, options={"Color": {"Red": True}})
    line = {
        "productId": to_global_id("ProductType", product.pk),
        "quantity": 1,
        "selectedOptions": [{"name": "Color", "value": "Red"}],
    }

    payload = gql(CREATE_ORDER, user=customer, input=_checkout_input(line))["data"]["createOrder"]

    assert payload["errors"] == []
    assert Order.objects.get().items.get().selected_options == {"Color": "Red"}


def test_checkout_reports_insufficient_stock(gql, customer, make_product):
    product = make_product(stock=1)

    payload = gql(
        CREATE_ORDER,
        user=customer,
        input=_checkout_input({"productId": str(product.pk), "quantity": 2}),
    )["data"]["createOrder"]

    assert payload["order"] is None
    assert payload["errorCode"] == "INSUFFICIENT_STOCK"
    assert payload["retryable"] is True
    assert "available 1" in payload["errors"][0]


def test_checkout_reports_invalid_discount(gql, customer, make_product):
    product = make_product(stock=3)

    payload = gql(
        CREATE_ORDER,
        user=customer,
        input=_checkout_input({"productId": str(product.pk), "quantity": 1}, discount_code="NOPE"),
    )["data"]["createOrder"]

    assert payload["errorCode"] == "INVALID_DISCOUNT"
    assert payload["retryable"] is False
    assert Product.objects.get(pk=product.pk).stock == 3


def test_checkout_rejects_duplicate_option_names(gql, customer, make_product):
    product = make_product(stock=3, options={"Color": {"Red": True, "Sand": True}})
    line = {
        "productId": str(product.pk),
        "quantity": 1,
        "selectedOptions": [{"name": "Color", "value": "Red"}, {"name": "Color", "value": "Sand"}],
    }

    payload = gql(CREATE_ORDER, user=customer, input=_checkout_input(line))["data"]["createOrder"]

    assert payload["errorCode"] == "VALIDATION_ERROR"


def test_checkout_requires_login(gql, make_product):
    product = make_product(stock=3)

    result = gql(CREATE_ORDER, input=_checkout_input({"productId": str(product.pk), "quantity": 1}))

    assert result["errors"][0]["message"] == "Authentication required."
    assert Order.objects.count() == 0


def test_apply_discount_preview(gql, make_discount):
    make_discount(code="SAVE10", value="10")
    query = """
    query { applyDiscount(code: "save10", cartTotal: "100") {
      success message discountCode originalTotal discountAmountApplied newTotal } }
    """

    result = gql(query)

    assert result["data"]["applyDiscount"] == {
        "success": True,
        "message": "Discount code SAVE10 applied.",
        "discountCode": "SAVE10",
        "originalTotal": "100.00",
        "discountAmountApplied": "10.00",
        "newTotal": "90.00",
    }


def test_apply_discount_rejects_oversized_cart_total(gql, make_discount):
    make_discount(code="SAVE10", value="10")

    result = gql('query { applyDiscount(code: "SAVE10", cartTotal: "1e30") { success } }')

    assert result["errors"][0]["extensions"]["code"] == "VALIDATION_ERROR"


def test_sales_report_requires_staff(gql, customer):
    result = gql("query { salesReport { interval } }", user=customer)

    assert result["errors"][0]["message"] == "Administrator access required."


def test_sales_report_for_staff(gql, staff_user, record_order):
    record_order("42.00", timezone.now() - timedelta(hours=1))
    query = "query { salesReport(period: \"week\") { interval totalSales totalOrders buckets { date sales orderCount } } }"

    report = gql(query, user=staff_user)["data"]["salesReport"]

    assert report["interval"] == "day"
    assert len(report["buckets"]) == 7
    assert Decimal(report["totalSales"]) == Decimal("42.00")
    assert report["totalOrders"] == 1


def test_sales_report_invalid_period(gql, staff_user):
    result = gql("query { salesReport(period: \"decade\") { interval } }", user=staff_user)

    assert result["errors"][0]["extensions"]["code"] == "VALIDATION_ERROR"


def test_top_products_query(gql, staff_user, record_order, make_product):
    product = make_product(name="Lamp")
    record_order("3.00", timezone.now() - timedelta(days=1), lines=[(product, 3)])

    result = gql("query { topProducts(limit: 3) { totalSold product { name } } }", user=staff_user)

    assert result["data"]["topProducts"] == [{"totalSold": 3, "product": {"name": "Lamp"}}]


def test_update_order_status(gql, staff_user, customer, record_order):
    order = record_order("10.00", timezone.now(), status=OrderStatus.DELIVERED)
    mutation = """
    mutation($id: ID!, $status: String!) {
      updateOrderStatus(orderId: $id, status: $status) { order { status } errors errorCode }
    }
    """

    ok = gql(mutation, user=staff_user, id=str(order.pk), status="pending")["data"]["updateOrderStatus"]
    bad = gql(mutation, user=staff_user, id=str(order.pk), status="LOST")["data"]["updateOrderStatus"]
    forbidden = gql(mutation, user=customer, id=str(order.pk), status="SHIPPED")

    assert ok == {"order": {"status": "PENDING"}, "errors": [], "errorCode": None}
    assert bad["errorCode"] == "VALIDATION_ERROR"
    assert forbidden["errors"][0]["message"] == "Administrator access required."
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


def test_all_orders_filter_by_status(gql, staff_user, record_order):
    record_order("10.00", timezone.now(), status=OrderStatus.SHIPPED)
    record_order("20.00", timezone.now(), status=OrderStatus.PENDING)
    query = """
    query { allOrders(filter: {status: "SHIPPED"}) { edges { node { totalAmount status } } } }
    """

    edges = gql(query, user=staff_user)["data"]["allOrders"]["edges"]

    assert edges == [{"node": {"totalAmount": "10.00", "status": "SHIPPED"}}]


def test_my_orders_and_has_purchased(gql, customer, staff_user, record_order, make_product):
    product = make_product()
    record_order("1.00", timezone.now(), lines=[(product, 1)])
    record_order("9.00", timezone.now(), user=staff_user)
    query = "query($pid: ID!) { myOrders { totalAmount } hasPurchased(productId: $pid) }"

    data = gql(query, user=customer, pid=str(product.pk))["data"]

    assert data == {"myOrders": [{"totalAmount": "1.00"}], "hasPurchased": True}


def test_all_products_hides_inactive_from_shoppers(gql, make_product):
    make_product(name="Visible")
    make_product(name="Hidden", is_active=False)

    edges = gql("query { allProducts { edges { node { name } } } }")["data"]["allProducts"]["edges"]

    assert [e["node"]["name"] for e in edges] == ["Visible"]
