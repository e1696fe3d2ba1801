"""Custom exceptions for the store backend."""


class StoreError(Exception):
    """Base exception for all store errors."""

    pass


class ProductNotFoundError(StoreError):
    """Raised when a referenced product doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class OrderNotFoundError(StoreError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class CartItemNotFoundError(StoreError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("Item not found")


class InvalidIdError(StoreError):
    """Raised when an id is not a valid ObjectId."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid id format: {value}")


class InsufficientStockError(StoreError):
    """Raised when a line asks for more units than the catalog holds."""

    def __init__(self, product_id: str, name: str, requested: int, available: int):
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available
        super().__init__(f"Not enough stock for {name}")


class EmptyOrderError(StoreError):
    def __init__(self, message: str = "No order items"):
        super().__init__(message)


class IncompleteAddressError(StoreError):
    """Raised when a shipping address is missing street, city or postal code."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Please provide complete shipping address")


class InvalidStatusError(StoreError):
    def __init__(self, status: str):
        self.status = status
        super().__init__("Invalid status value")


class InvalidOptionError(StoreError):
    """Raised when a size/color selection is missing or not offered."""

    pass


class InvalidQuantityError(StoreError):
    pass


class PaymentVerificationError(StoreError):
    """Raised when a payment confirmation cannot be accepted."""

    pass


class PaymentGatewayError(StoreError):
    """Raised when the payment gateway rejects or fails a request."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class NotAuthorizedError(StoreError):
    """Raised when the caller may not act on a resource."""

    pass
