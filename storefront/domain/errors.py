# storefront/domain/errors.py
"""
Domain exceptions raised by services and mapped to HTTP statuses by the routers.
"""


class StorefrontError(Exception):
    """Base class for every expected failure of the checkout workflow."""


class NotFoundError(StorefrontError):
    pass


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__("Order not found")


class PaymentNotFoundError(NotFoundError):
    def __init__(self, reference):
        self.reference = reference
        super().__init__("Payment not found")


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__("Product not found")


class CartItemNotFoundError(NotFoundError):
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__("Cart item not found")


class EmptyCartError(StorefrontError):
    def __init__(self):
        super().__init__("Your cart is empty")


class InsufficientStockError(StorefrontError):
    def __init__(self, product_id, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for {product_name} (requested {requested}, available {available})"
        )


class InvalidQuantityError(StorefrontError):
    def __init__(self):
        super().__init__("Quantity must be at least 1")


class InvalidStatusError(StorefrontError):
    def __init__(self, allowed):
        super().__init__(f"Valid status is required: {', '.join(allowed)}")


class InvalidOrderStateError(StorefrontError):
    pass


class InvalidPaymentStateError(StorefrontError):
    pass


class DuplicatePaymentError(StorefrontError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__("Payment already exists for this order")


class PaymentInProgressError(StorefrontError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__("Payment capture already in progress")


class GatewayError(StorefrontError):
    """Any failure talking to the payment provider (network, timeout, provider error)."""


class GatewayDeclinedError(GatewayError):
    """The provider answered and refused the operation (e.g. INSTRUMENT_DECLINED)."""

    def __init__(self, issue: str, message: str | None = None):
        self.issue = issue
        super().__init__(message or f"Provider declined the request: {issue}")


class GatewayNotFoundError(GatewayDeclinedError):
    """The provider has no such order (never created, expired or deleted)."""

    def __init__(self, issue: str = "RESOURCE_NOT_FOUND"):
        super().__init__(issue, f"Provider order not found: {issue}")
