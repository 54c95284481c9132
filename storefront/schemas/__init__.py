from storefront.schemas.order import (
    OrderItemCreate,
    OrderItemRead,
    OrderCreate,
    OrderRead,
    OrderStatusUpdate,
    OrderFilter,
    OrderListResponse,
    StatusHistoryRead,
    OrderSummary,
)
from storefront.schemas.product import (
    ProductCreate,
    ProductRead,
    ProductListResponse,
    StockAdjustment,
)

__all__ = [
    "OrderItemCreate",
    "OrderItemRead",
    "OrderCreate",
    "OrderRead",
    "OrderStatusUpdate",
    "OrderFilter",
    "OrderListResponse",
    "StatusHistoryRead",
    "OrderSummary",
    "ProductCreate",
    "ProductRead",
    "ProductListResponse",
    "StockAdjustment",
]
