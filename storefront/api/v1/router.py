from fastapi import APIRouter

from storefront.api.v1.endpoints import orders, products


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(orders.router, prefix="/orders")
api_router.include_router(products.router, prefix="/products")
