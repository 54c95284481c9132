from typing import Optional

from fastapi import APIRouter, status, Query, Depends

from storefront.api.deps import Context, Stock, require_permissions
from storefront.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductRead,
    StockAdjustment,
)


router = APIRouter(tags=["Products"])


@router.get(
    "",
    response_model=ProductListResponse,
    dependencies=[Depends(require_permissions("products:view"))]
)
async def list_products(
    stock: Stock,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    search: Optional[str] = None,
):
    """List products with their current stock."""
    products, total = await stock.list_products(skip=skip, limit=limit, search=search)
    return ProductListResponse(
        items=[ProductRead.model_validate(p) for p in products],
        total=total,
    )


@router.get(
    "/low-stock",
    response_model=list[ProductRead],
    dependencies=[Depends(require_permissions("products:manage"))]
)
async def list_low_stock_products(
    stock: Stock,
    context: Context,
    threshold: Optional[int] = Query(None, ge=0),
):
    """Products at or below the low stock threshold (defaults from settings)."""
    if threshold is None:
        threshold = context.settings.LOW_STOCK_THRESHOLD
    products = await stock.list_low_stock(threshold)
    return [ProductRead.model_validate(p) for p in products]


@router.get(
    "/{product_id}",
    response_model=ProductRead,
    dependencies=[Depends(require_permissions("products:view"))]
)
async def get_product(product_id: int, stock: Stock):
    return await stock.get_product(product_id)


@router.post(
    "",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("products:manage"))]
)
async def create_product(product_in: ProductCreate, stock: Stock):
    return await stock.create_product(product_in)


@router.post(
    "/{product_id}/stock",
    response_model=ProductRead,
    dependencies=[Depends(require_permissions("products:manage"))]
)
async def adjust_product_stock(
    product_id: int,
    adjustment: StockAdjustment,
    stock: Stock,
):
    """
    Manually correct a product's stock.
    Negative adjustments never take the stock below zero.
    """
    await stock.adjust_stock(product_id, adjustment.delta, reason=adjustment.reason)
    return await stock.get_product(product_id)
