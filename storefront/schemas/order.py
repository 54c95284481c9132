from pydantic import Field, computed_field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from storefront.models.order import OrderStatus, StockAction
from storefront.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


# ==================== ORDER ITEM SCHEMAS ====================

class OrderItemCreate(BaseCreateSchema):
    """
    Order line in a draft.

    Line arithmetic and quantity are checked by validate_order_totals so the
    service reports them as OrderValidationError.
    """
    product_id: int
    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int
    unit_price: Decimal = Field(..., ge=0)
    total_price: Decimal = Field(..., ge=0)


class OrderItemRead(BaseResponseSchema):
    """Order item response schema."""
    product_id: int
    product_name: str
    quantity: int = Field(..., gt=0)
    unit_price: Decimal
    total_price: Decimal


# ==================== ORDER SCHEMAS ====================

class OrderCreate(BaseCreateSchema):
    """
    Order draft.

    `customer_id` / `customer_username` are filled from the caller's identity
    at the HTTP layer. Any `id` or `tracking_number` sent is ignored.
    """
    customer_id: Optional[int] = None
    customer_username: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)
    total_amount: Decimal = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_method: str = ""
    shipping_address: str = ""
    estimated_delivery: Optional[int] = None  # epoch ms
    notes: Optional[str] = None


class OrderRead(BaseResponseSchema):
    """Persisted order. Also the strict decoding target for stored rows."""
    id: int
    customer_id: int
    customer_username: str
    items: List[OrderItemRead] = Field(..., min_length=1)
    total_amount: Decimal
    status: OrderStatus
    payment_method: str
    shipping_address: str
    order_date: int  # epoch ms
    estimated_delivery: Optional[int] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderStatusUpdate(BaseUpdateSchema):
    """Status change request."""
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class OrderFilter(BaseUpdateSchema):
    """Order list filter. All criteria are optional and combined with AND."""
    customer_id: Optional[int] = None
    status: Optional[OrderStatus] = None
    date_from: Optional[int] = None  # epoch ms, inclusive
    date_to: Optional[int] = None  # epoch ms, inclusive
    limit: Optional[int] = Field(None, ge=1, le=500)


class OrderListResponse(BaseResponseSchema):
    """Order list response."""
    items: List[OrderRead]
    total: int


# ==================== STATUS HISTORY SCHEMAS ====================

class StatusHistoryRead(BaseResponseSchema):
    """Order status history response."""
    id: int
    order_id: int
    from_status: Optional[str] = None  # VARCHAR in DB, null on creation
    to_status: str
    stock_action: StockAction
    tracking_number: Optional[str] = None
    changed_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


# ==================== STATS SCHEMAS ====================

class OrderSummary(BaseResponseSchema):
    """Dashboard statistics. Completed means SHIPPED or DELIVERED."""
    total_orders: int
    by_status: Dict[str, int]
    completed_orders: int
    completed_revenue: Decimal
    average_order_value: Decimal
