from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from storefront.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== PRODUCT SCHEMAS ====================

class ProductCreate(BaseCreateSchema):
    """Product creation schema."""
    name: str = Field(..., min_length=1, max_length=255)
    cost: Decimal = Field(..., ge=0)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(default=0, ge=0)
    shelf_location: Optional[str] = Field(None, max_length=50)


class ProductRead(BaseResponseSchema):
    """Product response schema."""
    id: int
    name: str
    cost: Decimal
    price: Decimal
    quantity: int
    shelf_location: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseResponseSchema):
    """Product list response."""
    items: List[ProductRead]
    total: int


# ==================== STOCK SCHEMAS ====================

class StockAdjustment(BaseCreateSchema):
    """
    Manual stock correction.

    Positive delta restocks; negative delta removes units, clamped at zero.
    """
    delta: int
    reason: Optional[str] = Field(None, max_length=255)

    @field_validator('delta')
    @classmethod
    def delta_not_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError('delta must be non-zero')
        return v
