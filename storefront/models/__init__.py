# Models module - importing registers every table with Base.metadata
from storefront.models.product import Product
from storefront.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    StockAction,
    ORDER_SCHEMA_VERSION,
)
from storefront.models.id_sequence import IdSequence

__all__ = [
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "StockAction",
    "ORDER_SCHEMA_VERSION",
    "IdSequence",
]
