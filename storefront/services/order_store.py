"""
Order Store

Persistence of order records and their status history.

Stored rows are decoded strictly into OrderRead: an unknown status, a
missing field, an empty item list, a total that does not match its lines or
an unknown schema_version is a decode failure, never a silently defaulted
value. Point reads raise OrderDecodeError; list reads skip the row and log it.

Every committed write is published to the in-process OrderChangeFeed after
the commit succeeds.
"""
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from pydantic import ValidationError
from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import OrderDecodeError, OrderNotFoundError, PersistenceError
from storefront.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    StockAction,
    ORDER_SCHEMA_VERSION,
)
from storefront.schemas.order import OrderFilter, OrderRead
from storefront.services.change_feed import OrderChange

if TYPE_CHECKING:
    from storefront.core.context import AppContext


logger = logging.getLogger(__name__)


def decode_order(row: Order) -> OrderRead:
    """
    Decode a stored order row.

    Raises:
        OrderDecodeError: the row does not match the current order schema
    """
    order_id = getattr(row, "id", None)

    if row.schema_version != ORDER_SCHEMA_VERSION:
        raise OrderDecodeError(
            order_id,
            f"unsupported schema_version {row.schema_version} (expected {ORDER_SCHEMA_VERSION})",
        )

    try:
        order = OrderRead.model_validate(row)
    except ValidationError as e:
        raise OrderDecodeError(order_id, str(e)) from e

    line_total = sum((item.total_price for item in order.items), Decimal("0"))
    if line_total != order.total_amount:
        raise OrderDecodeError(
            order_id,
            f"total_amount {order.total_amount} does not equal sum of item totals {line_total}",
        )
    return order


class OrderStore:
    """Order reads and writes on one session."""

    def __init__(self, db: AsyncSession, context: "AppContext"):
        self.db = db
        self.context = context
        self._pending_changes: List[OrderChange] = []

    # ==================== WRITES ====================

    def add(self, order: Order) -> None:
        self.db.add(order)
        self._pending_changes.append(
            OrderChange(order_id=order.id, customer_id=order.customer_id, status=order.status)
        )

    def add_history(
        self,
        order_id: int,
        from_status: Optional[OrderStatus],
        to_status: OrderStatus,
        stock_action: StockAction,
        tracking_number: Optional[str] = None,
        changed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory(
            order_id=order_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            stock_action=stock_action.value,
            tracking_number=tracking_number,
            changed_by=changed_by,
            notes=notes,
        )
        self.db.add(history)
        return history

    async def compare_and_set_status(
        self,
        order_id: int,
        customer_id: int,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        tracking_number: Optional[str] = None,
    ) -> bool:
        """
        Set the status only if it is still expected_status.

        Returns:
            False if another writer changed the status first
        """
        values = {"status": new_status.value}
        if tracking_number is not None:
            values["tracking_number"] = tracking_number

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        self._pending_changes.append(
            OrderChange(order_id=order_id, customer_id=customer_id, status=new_status.value)
        )
        return True

    async def commit(self) -> None:
        """Commit the session, then publish the changes it carried."""
        await self.db.commit()
        changes, self._pending_changes = self._pending_changes, []
        for change in changes:
            self.context.change_feed.publish(change)

    async def rollback(self) -> None:
        self._pending_changes = []
        await self.db.rollback()

    # ==================== READS ====================

    async def get(self, order_id: int) -> Optional[Order]:
        """Raw order row with items, refreshed from the database."""
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_decoded(self, order_id: int) -> OrderRead:
        try:
            row = await self.get(order_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load order {order_id}: {e}")
            raise PersistenceError(f"Failed to load order {order_id}", cause=e)

        if row is None:
            raise OrderNotFoundError(order_id)
        return decode_order(row)

    async def list(self, filters: Optional[OrderFilter] = None) -> List[OrderRead]:
        """Orders matching the filter, newest first. Undecodable rows are skipped."""
        filters = filters or OrderFilter()

        query = select(Order).options(selectinload(Order.items))
        if filters.customer_id is not None:
            query = query.where(Order.customer_id == filters.customer_id)
        if filters.status is not None:
            query = query.where(Order.status == filters.status.value)
        if filters.date_from is not None:
            query = query.where(Order.order_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(Order.order_date <= filters.date_to)

        query = query.order_by(Order.order_date.desc(), Order.id.desc())
        if filters.limit is not None:
            query = query.limit(filters.limit)

        try:
            result = await self.db.execute(query.execution_options(populate_existing=True))
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list orders: {e}")
            raise PersistenceError("Failed to list orders", cause=e)

        orders = []
        for row in rows:
            try:
                orders.append(decode_order(row))
            except OrderDecodeError as e:
                logger.error(f"Skipping undecodable order {row.id}: {e.message}")
        return orders

    async def list_all(self) -> List[OrderRead]:
        return await self.list(OrderFilter())

    async def list_history(self, order_id: int) -> List[OrderStatusHistory]:
        result = await self.db.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.id)
        )
        return list(result.scalars().all())

    async def exists(self, order_id: int) -> bool:
        found = await self.db.scalar(select(Order.id).where(Order.id == order_id))
        return found is not None

    async def status_totals(self) -> List[tuple]:
        """(status, order count, summed total_amount) per stored status."""
        result = await self.db.execute(
            select(
                Order.status,
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_amount), 0),
            ).group_by(Order.status)
        )
        return [tuple(row) for row in result.all()]
