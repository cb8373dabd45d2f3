"""Exceptions raised by the shop services.

Every error carries a stable ``code`` for API clients and a ``retryable``
flag telling the customer whether changing the cart and resubmitting can
succeed.
"""


class ShopError(Exception):
    """Base exception for all shop errors."""

    code = "INTERNAL"
    retryable = False


class NotFoundError(ShopError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InsufficientStockError(ShopError):
    """Raised when a reservation asks for more units than are in stock."""

    code = "INSUFFICIENT_STOCK"
    retryable = True

    def __init__(self, product_id, requested: int, available: int, product_name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}"
        )


class ProductUnavailableError(ShopError):
    """Raised when a product (or one of its option values) cannot be sold."""

    code = "PRODUCT_UNAVAILABLE"
    retryable = True

    def __init__(self, product_id, reason: str | None = None):
        self.product_id = product_id
        self.reason = reason
        msg = f"Product is not available: {product_id}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InvalidDiscountError(ShopError):
    """Raised when a discount code cannot be applied at checkout."""

    code = "INVALID_DISCOUNT"

    def __init__(self, code: str, message: str):
        self.discount_code = code
        super().__init__(message)


class InvalidInputError(ShopError):
    """Raised for malformed quantities, dates, amounts or addresses."""

    code = "VALIDATION_ERROR"
