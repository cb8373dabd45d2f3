"""GraphQL schema for checkout and the admin dashboard."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import graphene
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from graphene import relay
from graphene_django import DjangoObjectType
from graphql import GraphQLError
from graphql_relay import from_global_id

from .discounts import DiscountEvaluator
from .errors import InvalidInputError, ShopError
from .filters import OrderFilter, ProductFilter
from .inventory import InventoryLedger
from .models import Order, OrderItem, Product, ProductOption, ProductOptionValue
from .orders import LineItem, OrderAssembler, has_purchased, orders_with_items, update_order_status
from . import reports

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Something went wrong while saving your order. Please try again later."


class UserType(DjangoObjectType):
    class Meta:
        model = get_user_model()
        fields = ("id", "email", "first_name", "last_name")


class ProductOptionValueType(DjangoObjectType):
    class Meta:
        model = ProductOptionValue
        fields = ("value", "available")


class ProductOptionType(DjangoObjectType):
    class Meta:
        model = ProductOption
        fields = ("name", "values")


class ProductType(DjangoObjectType):
    class Meta:
        model = Product
        interfaces = (relay.Node,)
        convert_choices_to_enum = False
        fields = (
            "id",
            "name",
            "description",
            "price",
            "stock",
            "category",
            "image_url",
            "is_active",
            "options",
            "created_at",
            "updated_at",
        )

    @classmethod
    def get_queryset(cls, queryset, info):
        if _is_staff(info):
            return queryset
        return queryset.filter(is_active=True)


class OrderItemType(DjangoObjectType):
    line_total = graphene.Decimal()

    class Meta:
        model = OrderItem
        fields = (
            "id",
            "product",
            "product_name",
            "quantity",
            "price_at_purchase",
            "selected_options",
        )

    @staticmethod
    def resolve_line_total(root: OrderItem, info):
        return root.line_total


class OrderType(DjangoObjectType):
    class Meta:
        model = Order
        interfaces = (relay.Node,)
        convert_choices_to_enum = False
        fields = (
            "id",
            "user",
            "status",
            "original_amount",
            "discount_code",
            "discount_amount",
            "total_amount",
            "shipping_address",
            "payment_method",
            "items",
            "created_at",
            "updated_at",
        )

    @classmethod
    def get_queryset(cls, queryset, info):
        user = info.context.user
        if _is_staff(info):
            return queryset
        if user.is_authenticated:
            return queryset.filter(user=user)
        return queryset.none()


class ProductConnection(relay.Connection):
    class Meta:
        node = ProductType


class OrderConnection(relay.Connection):
    class Meta:
        node = OrderType


class SalesBucketType(graphene.ObjectType):
    date = graphene.String(required=True)
    sales = graphene.Decimal(required=True)
    order_count = graphene.Int(required=True)


class SalesReportType(graphene.ObjectType):
    buckets = graphene.List(graphene.NonNull(SalesBucketType), required=True)
    interval = graphene.String(required=True)
    period = graphene.String()
    start_date = graphene.DateTime(required=True)
    end_date = graphene.DateTime(required=True)
    total_sales = graphene.Decimal(required=True)
    total_orders = graphene.Int(required=True)


class TopProductType(graphene.ObjectType):
    product = graphene.Field(ProductType, required=True)
    total_sold = graphene.Int(required=True)


class DashboardStatsType(graphene.ObjectType):
    total_products = graphene.Int()
    total_users = graphene.Int()
    total_orders = graphene.Int()
    total_revenue = graphene.Decimal()
    low_stock_products = graphene.Int()
    pending_orders = graphene.Int()


class DiscountResultType(graphene.ObjectType):
    success = graphene.Boolean(required=True)
    message = graphene.String(required=True)
    discount_code = graphene.String()
    original_total = graphene.Decimal()
    discount_amount_applied = graphene.Decimal()
    new_total = graphene.Decimal()


class SelectedOptionInput(graphene.InputObjectType):
    name = graphene.String(required=True)
    value = graphene.String(required=True)


class OrderItemInput(graphene.InputObjectType):
    product_id = graphene.ID(required=True, name="productId")
    quantity = graphene.Int(required=True)
    selected_options = graphene.List(graphene.NonNull(SelectedOptionInput), name="selectedOptions")


class ShippingAddressInput(graphene.InputObjectType):
    full_name = graphene.String(required=True, name="fullName")
    address = graphene.String(required=True)
    city = graphene.String(required=True)
    postal_code = graphene.String(required=True, name="postalCode")
    country = graphene.String(required=True)
    phone = graphene.String()


class OrderInput(graphene.InputObjectType):
    items = graphene.List(graphene.NonNull(OrderItemInput), required=True)
    shipping_address = graphene.Field(ShippingAddressInput, required=True, name="shippingAddress")
    payment_method = graphene.String(name="paymentMethod")
    discount_code = graphene.String(name="discountCode")


class ProductFilterInput(graphene.InputObjectType):
    name_icontains = graphene.String(name="nameIcontains")
    category = graphene.String()
    price_gte = graphene.Decimal(name="priceGte")
    price_lte = graphene.Decimal(name="priceLte")
    stock_gte = graphene.Int(name="stockGte")
    stock_lte = graphene.Int(name="stockLte")
    search = graphene.String()


class OrderFilterInput(graphene.InputObjectType):
    status = graphene.String()
    created_at_gte = graphene.DateTime(name="createdAtGte")
    created_at_lte = graphene.DateTime(name="createdAtLte")
    total_amount_gte = graphene.Decimal(name="totalAmountGte")
    total_amount_lte = graphene.Decimal(name="totalAmountLte")
    search = graphene.String()


# -------------------- Helpers --------------------

def _is_staff(info) -> bool:
    user = info.context.user
    return bool(user.is_authenticated and user.is_staff)


def _require_user(info):
    user = info.context.user
    if not user.is_authenticated:
        raise GraphQLError("Authentication required.")
    return user


def _require_staff(info):
    user = _require_user(info)
    if not user.is_staff:
        raise GraphQLError("Administrator access required.")
    return user


def _decode_id(raw, type_name: str) -> int:
    """Accept a plain primary key or a relay global ID for ``type_name``."""
    try:
        return int(raw)
    except (TypeError, ValueError):
        pass
    try:
        node_type, node_id = from_global_id(raw)
        if node_type == type_name:
            return int(node_id)
    except (TypeError, ValueError, UnicodeDecodeError):
        pass
    raise InvalidInputError(f"Invalid {type_name} ID: {raw}")


def _line_from_input(payload: OrderItemInput) -> LineItem:
    options: Dict[str, str] = {}
    for option in payload.selected_options or []:
        if option.name in options:
            raise InvalidInputError(f"Option {option.name} selected more than once.")
        options[option.name] = option.value
    return LineItem.coerce(
        {
            "product_id": _decode_id(payload.product_id, "ProductType"),
            "quantity": payload.quantity,
            "selected_options": options,
        }
    )


def _report_error(exc: ShopError) -> GraphQLError:
    return GraphQLError(str(exc), extensions={"code": exc.code})


def _filter_queryset(queryset, filter_input, filter_mapping: Dict[str, str], filterset_cls):
    if not filter_input:
        return filterset_cls(queryset=queryset, data={}).qs
    payload: Dict[str, object] = {}
    for attr, lookup in filter_mapping.items():
        value = getattr(filter_input, attr, None)
        if value is not None:
            payload[lookup] = value
    filterset = filterset_cls(data=payload, queryset=queryset)
    if filterset.is_valid():
        return filterset.qs
    messages: List[str] = []
    for field, errors in filterset.errors.items():
        messages.extend(f"{field}: {error}" for error in errors)
    raise GraphQLError("; ".join(messages) or "Invalid filter arguments.")


def _apply_ordering(queryset, order_by: Optional[Sequence[str]]):
    if not order_by:
        return queryset
    if isinstance(order_by, str):
        order_by = [order_by]
    return queryset.order_by(*order_by)


# -------------------- Mutations --------------------

class CreateOrder(graphene.Mutation):
    class Arguments:
        input = OrderInput(required=True)

    order = graphene.Field(OrderType)
    errors = graphene.List(graphene.String)
    error_code = graphene.String()
    retryable = graphene.Boolean()

    @classmethod
    def mutate(cls, root, info, input: OrderInput):
        user = _require_user(info)
        assembler = OrderAssembler(InventoryLedger(), DiscountEvaluator())
        try:
            lines = [_line_from_input(item) for item in input.items or []]
            order = assembler.create_order(
                user=user,
                items=lines,
                shipping_address=input.shipping_address,
                payment_method=input.payment_method or "",
                discount_code=input.discount_code,
            )
        except ShopError as exc:
            return CreateOrder(order=None, errors=[str(exc)], error_code=exc.code, retryable=exc.retryable)
        except DatabaseError:
            logger.exception("Order creation failed for user %s", user.pk)
            return CreateOrder(order=None, errors=[INTERNAL_ERROR_MESSAGE], error_code="INTERNAL", retryable=False)
        return CreateOrder(order=order, errors=[], error_code=None, retryable=False)


class UpdateOrderStatus(graphene.Mutation):
    class Arguments:
        order_id = graphene.ID(required=True, name="orderId")
        status = graphene.String(required=True)

    order = graphene.Field(OrderType)
    errors = graphene.List(graphene.String)
    error_code = graphene.String()

    @classmethod
    def mutate(cls, root, info, order_id, status):
        _require_staff(info)
        try:
            order = update_order_status(_decode_id(order_id, "OrderType"), status.strip().upper())
        except ShopError as exc:
            return UpdateOrderStatus(order=None, errors=[str(exc)], error_code=exc.code)
        return UpdateOrderStatus(order=order, errors=[], error_code=None)


class Mutation(graphene.ObjectType):
    create_order = CreateOrder.Field()
    update_order_status = UpdateOrderStatus.Field()


# -------------------- Queries --------------------

class Query(graphene.ObjectType):
    product = relay.Node.Field(ProductType)
    order = relay.Node.Field(OrderType)
    all_products = relay.ConnectionField(
        ProductConnection,
        filter=ProductFilterInput(),
        order_by=graphene.Argument(graphene.List(graphene.String), name="orderBy"),
    )
    all_orders = relay.ConnectionField(
        OrderConnection,
        filter=OrderFilterInput(),
        order_by=graphene.Argument(graphene.List(graphene.String), name="orderBy"),
    )
    my_orders = graphene.List(graphene.NonNull(OrderType))
    has_purchased = graphene.Boolean(product_id=graphene.ID(required=True, name="productId"))
    apply_discount = graphene.Field(
        DiscountResultType,
        code=graphene.String(required=True),
        cart_total=graphene.Decimal(required=True, name="cartTotal"),
    )
    sales_report = graphene.Field(
        SalesReportType,
        period=graphene.String(default_value=reports.WEEK),
        start=graphene.Date(),
        end=graphene.Date(),
    )
    top_products = graphene.List(
        graphene.NonNull(TopProductType),
        limit=graphene.Int(default_value=5),
        period=graphene.String(default_value=reports.MONTH),
    )
    dashboard_stats = graphene.Field(DashboardStatsType)
    recent_orders = graphene.List(graphene.NonNull(OrderType), limit=graphene.Int(default_value=5))

    @staticmethod
    def resolve_all_products(root, info, filter=None, order_by=None, **kwargs):
        queryset = ProductType.get_queryset(Product.objects.prefetch_related("options__values"), info)
        mapping = {
            "name_icontains": "name_icontains",
            "category": "category",
            "price_gte": "price_gte",
            "price_lte": "price_lte",
            "stock_gte": "stock_gte",
            "stock_lte": "stock_lte",
            "search": "search",
        }
        queryset = _filter_queryset(queryset, filter, mapping, ProductFilter)
        queryset = _apply_ordering(queryset, order_by)
        return queryset

    @staticmethod
    def resolve_all_orders(root, info, filter=None, order_by=None, **kwargs):
        _require_staff(info)
        queryset = orders_with_items()
        mapping = {
            "status": "status",
            "created_at_gte": "created_at_gte",
            "created_at_lte": "created_at_lte",
            "total_amount_gte": "total_amount_gte",
            "total_amount_lte": "total_amount_lte",
            "search": "search",
        }
        queryset = _filter_queryset(queryset, filter, mapping, OrderFilter)
        queryset = _apply_ordering(queryset, order_by)
        return queryset

    @staticmethod
    def resolve_my_orders(root, info):
        user = _require_user(info)
        return orders_with_items().filter(user=user)

    @staticmethod
    def resolve_has_purchased(root, info, product_id):
        user = _require_user(info)
        try:
            return has_purchased(user, _decode_id(product_id, "ProductType"))
        except ShopError as exc:
            raise _report_error(exc)

    @staticmethod
    def resolve_apply_discount(root, info, code, cart_total):
        try:
            result = DiscountEvaluator().evaluate(code, cart_total)
        except ShopError as exc:
            raise _report_error(exc)
        return DiscountResultType(
            success=result.success,
            message=result.message,
            discount_code=result.code,
            original_total=result.original_total,
            discount_amount_applied=result.discount_amount,
            new_total=result.new_total,
        )

    @staticmethod
    def resolve_sales_report(root, info, period=reports.WEEK, start=None, end=None):
        _require_staff(info)
        try:
            report = reports.sales_report(period=period, start=start, end=end)
        except ShopError as exc:
            raise _report_error(exc)
        return SalesReportType(
            buckets=[
                SalesBucketType(date=b.date, sales=b.sales, order_count=b.order_count)
                for b in report.buckets
            ],
            interval=report.interval,
            period=report.period,
            start_date=report.start,
            end_date=report.end,
            total_sales=report.total_sales,
            total_orders=report.total_orders,
        )

    @staticmethod
    def resolve_top_products(root, info, limit=5, period=reports.MONTH):
        _require_staff(info)
        try:
            ranked = reports.top_products(limit=limit, period=period)
        except ShopError as exc:
            raise _report_error(exc)
        return [TopProductType(product=row.product, total_sold=row.total_sold) for row in ranked]

    @staticmethod
    def resolve_dashboard_stats(root, info):
        _require_staff(info)
        return DashboardStatsType(**reports.dashboard_stats())

    @staticmethod
    def resolve_recent_orders(root, info, limit=5):
        _require_staff(info)
        try:
            return reports.recent_orders(limit)
        except ShopError as exc:
            raise _report_error(exc)
