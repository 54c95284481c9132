"""
Order service exceptions.

Every error carries a human readable `message` and a `details` dict that the
HTTP layer returns verbatim.
"""

from typing import Dict, Optional


class OrderServiceError(Exception):
    """Base exception for order and stock errors."""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ProductNotFoundError(OrderServiceError):
    """Referenced product does not exist."""
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} not found",
            {"product_id": product_id},
        )


class InsufficientStockError(OrderServiceError):
    """Requested quantity exceeds the product's current stock."""
    def __init__(
        self,
        product_id: int,
        product_name: Optional[str],
        available: int,
        requested: int,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: available {available}, requested {requested}",
            {
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )


class OrderNotFoundError(OrderServiceError):
    """Order id does not exist."""
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})


class PersistenceError(OrderServiceError):
    """The backing store failed; the transaction was rolled back."""
    def __init__(self, message: str, cause: Exception = None, details: Dict = None):
        self.cause = cause
        super().__init__(message, details)


class OrderValidationError(OrderServiceError):
    """Draft order rejected before any mutation."""
    pass


class OrderDecodeError(OrderServiceError):
    """Stored order row does not match the current order schema."""
    def __init__(self, order_id: Optional[int], reason: str):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} could not be decoded: {reason}",
            {"order_id": order_id, "reason": reason},
        )
