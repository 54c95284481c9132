from typing import Optional
import json

from fastapi import APIRouter, HTTPException, status, Query, Depends
from fastapi.responses import StreamingResponse

from storefront.api.deps import Context, CurrentUser, Orders, require_permissions
from storefront.core.permissions import ORDERS_VIEW_ALL
from storefront.core.security import AuthUser
from storefront.models.order import OrderStatus
from storefront.schemas.order import (
    OrderCreate,
    OrderFilter,
    OrderListResponse,
    OrderRead,
    OrderStatusUpdate,
    OrderSummary,
    StatusHistoryRead,
)
from storefront.services.order_stream import OrderStream, stream_all, stream_by_customer


router = APIRouter(tags=["Orders"])


def _ensure_can_view(order: OrderRead, user: AuthUser) -> None:
    """Owners see their own orders; everyone else needs orders:view_all."""
    if order.customer_id == user.id or user.permissions.has_permission(ORDERS_VIEW_ALL):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Permission denied. Required: orders:view_all"
    )


def _event_stream(stream: OrderStream) -> StreamingResponse:
    """Server-sent events: one `data:` line with the full order list per snapshot."""
    async def event_source():
        async with stream:
            async for snapshot in stream:
                payload = [order.model_dump(mode="json") for order in snapshot]
                yield f"data: {json.dumps(payload)}\n\n"

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("orders:create"))]
)
async def create_order(
    order_in: OrderCreate,
    orders: Orders,
    current_user: CurrentUser,
):
    """
    Place an order for the current user.
    Stock for every line is reserved; the whole order fails if any line is short.
    """
    draft = order_in.model_copy(update={
        "customer_id": current_user.id,
        "customer_username": current_user.username,
    })
    return await orders.create_order(draft, created_by=current_user.id)


@router.get(
    "",
    response_model=OrderListResponse,
    dependencies=[Depends(require_permissions("orders:view_all"))]
)
async def list_orders(
    orders: Orders,
    customer_id: Optional[int] = None,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    date_from: Optional[int] = Query(None, description="Epoch ms, inclusive"),
    date_to: Optional[int] = Query(None, description="Epoch ms, inclusive"),
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    """List orders, newest first."""
    items = await orders.list_orders(OrderFilter(
        customer_id=customer_id,
        status=order_status,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    ))
    return OrderListResponse(items=items, total=len(items))


@router.get(
    "/mine",
    response_model=OrderListResponse,
    dependencies=[Depends(require_permissions("orders:view_own"))]
)
async def list_my_orders(
    orders: Orders,
    current_user: CurrentUser,
):
    """Current user's orders, newest first."""
    items = await orders.list_orders(OrderFilter(customer_id=current_user.id))
    return OrderListResponse(items=items, total=len(items))


@router.get(
    "/by-status/{order_status}",
    response_model=OrderListResponse,
    dependencies=[Depends(require_permissions("orders:manage"))]
)
async def list_orders_by_status(
    order_status: OrderStatus,
    orders: Orders,
):
    items = await orders.list_by_status(order_status)
    return OrderListResponse(items=items, total=len(items))


@router.get(
    "/recent",
    response_model=OrderListResponse,
    dependencies=[Depends(require_permissions("orders:manage"))]
)
async def list_recent_orders(
    orders: Orders,
    since_days: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    """Latest orders of the last `since_days` days (defaults from settings)."""
    items = await orders.list_recent(since_days=since_days, limit=limit)
    return OrderListResponse(items=items, total=len(items))


@router.get(
    "/stats",
    response_model=OrderSummary,
    dependencies=[Depends(require_permissions("orders:manage"))]
)
async def get_order_stats(orders: Orders):
    """Order counts per status and completed revenue."""
    return await orders.get_order_stats()


@router.get(
    "/stream",
    dependencies=[Depends(require_permissions("orders:view_all"))]
)
async def stream_orders(context: Context):
    """Live list of all orders as server-sent events."""
    return _event_stream(stream_all(context))


@router.get(
    "/mine/stream",
    dependencies=[Depends(require_permissions("orders:view_own"))]
)
async def stream_my_orders(context: Context, current_user: CurrentUser):
    """Live list of the current user's orders as server-sent events."""
    return _event_stream(stream_by_customer(context, current_user.id))


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int,
    orders: Orders,
    current_user: CurrentUser,
):
    order = await orders.get_order(order_id)
    _ensure_can_view(order, current_user)
    return order


@router.get("/{order_id}/history", response_model=list[StatusHistoryRead])
async def get_order_history(
    order_id: int,
    orders: Orders,
    current_user: CurrentUser,
):
    """Status changes of an order, oldest first, starting with its creation."""
    order = await orders.get_order(order_id)
    _ensure_can_view(order, current_user)
    return await orders.list_status_history(order_id)


@router.put(
    "/{order_id}/status",
    response_model=OrderRead,
    dependencies=[Depends(require_permissions("orders:update"))]
)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    orders: Orders,
    current_user: CurrentUser,
):
    """
    Change an order's status.
    Cancelling or returning restores stock; reinstating a reversed order deducts it again.
    """
    return await orders.update_order_status(
        order_id,
        data.status,
        tracking_number=data.tracking_number,
        changed_by=current_user.id,
        notes=data.notes,
    )
