from typing import Dict, List, Optional, TYPE_CHECKING
from datetime import datetime, timezone, timedelta
from decimal import Decimal
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import (
    InsufficientStockError,
    OrderNotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from storefront.models.order import Order, OrderItem, OrderStatus, StockAction
from storefront.schemas.order import (
    OrderCreate,
    OrderFilter,
    OrderRead,
    OrderSummary,
    StatusHistoryRead,
)
from storefront.services.order_id_allocator import OrderIDAllocator
from storefront.services.order_state_machine import (
    COMPLETED_STATUSES,
    get_transition_action,
    stock_action_for_creation,
    stock_action_for_transition,
)
from storefront.services.order_store import OrderStore, decode_order
from storefront.services.order_validation import validate_order_totals
from storefront.services.stock_ledger_service import ProductStockLedger, aggregate_quantities

if TYPE_CHECKING:
    from storefront.core.context import AppContext

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def now_epoch_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class OrderService:
    """
    Order creation and status transitions with stock reconciliation.

    One instance per session. Each public write is one database transaction;
    stock writers of the same product are serialized in-process by the
    context's lock registry.
    """

    def __init__(self, db: AsyncSession, context: "AppContext"):
        self.db = db
        self.context = context
        self.settings = context.settings
        self.notifier = context.notifier
        self.store = OrderStore(db, context)
        self.ledger = ProductStockLedger(db, context.stock_locks)
        self.allocator = OrderIDAllocator(db, context.session_factory)

    # ==================== ORDER CREATION ====================

    async def create_order(
        self,
        draft: OrderCreate,
        created_by: Optional[int] = None,
    ) -> OrderRead:
        """
        Create an order and reserve its stock.

        Stock is checked for every line before anything is written; on any
        failure no stock is touched and no order exists. Orders created
        directly in CANCELLED or RETURNED reserve nothing.

        Raises:
            OrderValidationError: inconsistent draft
            ProductNotFoundError / InsufficientStockError: stock check failed
            PersistenceError: the store failed while checking or writing
        """
        validate_order_totals(draft)

        status = OrderStatus(draft.status)
        stock_action = stock_action_for_creation(status)
        requested = aggregate_quantities(draft.items)
        remaining: Dict[int, int] = {}

        async with self.ledger.hold(requested.keys()):
            try:
                availability = await self.ledger.check_availability(draft.items)
                order_id = await self.allocator.next_id()

                order = Order(
                    id=order_id,
                    customer_id=draft.customer_id,
                    customer_username=draft.customer_username,
                    status=status.value,
                    total_amount=draft.total_amount,
                    payment_method=draft.payment_method,
                    shipping_address=draft.shipping_address,
                    order_date=now_epoch_ms(),
                    estimated_delivery=draft.estimated_delivery,
                    notes=draft.notes,
                    items=[
                        OrderItem(
                            position=position,
                            product_id=item.product_id,
                            product_name=item.product_name,
                            quantity=item.quantity,
                            unit_price=item.unit_price,
                            total_price=item.total_price,
                        )
                        for position, item in enumerate(draft.items)
                    ],
                )
                self.store.add(order)
                self.store.add_history(
                    order_id=order_id,
                    from_status=None,
                    to_status=status,
                    stock_action=stock_action,
                    changed_by=created_by,
                    notes="Order created",
                )
                await self.db.flush()

                if stock_action == StockAction.DEDUCT:
                    for item in draft.items:
                        remaining[item.product_id] = await self.ledger.deduct(
                            item.product_id, item.quantity
                        )

                await self.store.commit()

            except (InsufficientStockError, ProductNotFoundError):
                await self.store.rollback()
                raise
            except SQLAlchemyError as e:
                await self.store.rollback()
                logger.error(f"Database error creating order for customer {draft.customer_id}: {e}")
                raise PersistenceError(f"Failed to create order: {e}", cause=e)

        logger.info(
            f"Created order {order_id} for customer {draft.customer_id} "
            f"({len(draft.items)} line(s), total {draft.total_amount}, status {status.value})"
        )

        created = await self.store.get_decoded(order_id)

        await self._notify("order_created", created)
        await self._notify_low_stock(
            {pid: (availability[pid].product_name, qty) for pid, qty in remaining.items()}
        )
        return created

    # ==================== STATUS TRANSITIONS ====================

    async def update_order_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        tracking_number: Optional[str] = None,
        changed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> OrderRead:
        """
        Move an order to a new status and reconcile stock.

        The status write is a compare-and-set on the status just read; the
        stock adjustment commits in the same transaction. A concurrent status
        change restarts the whole operation from a fresh read.

        Raises:
            OrderNotFoundError: unknown order
            InsufficientStockError: re-fulfilling a reversed order without stock
            ProductNotFoundError: an item's product no longer exists
            PersistenceError: the store failed or retries were exhausted
        """
        new_status = OrderStatus(new_status)
        max_attempts = self.settings.STATUS_UPDATE_MAX_RETRIES + 1

        for attempt in range(1, max_attempts + 1):
            try:
                row = await self.store.get(order_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to load order {order_id}: {e}")
                raise PersistenceError(f"Failed to load order {order_id}", cause=e)
            if row is None:
                raise OrderNotFoundError(order_id)

            current = decode_order(row)
            old_status = current.status
            stock_action = stock_action_for_transition(old_status, new_status)
            remaining: Dict[int, int] = {}
            names = {item.product_id: item.product_name for item in current.items}

            async with self.ledger.hold(names.keys()):
                try:
                    swapped = await self.store.compare_and_set_status(
                        order_id,
                        current.customer_id,
                        old_status,
                        new_status,
                        tracking_number,
                    )
                    if not swapped:
                        await self.store.rollback()
                        logger.warning(
                            f"Order {order_id} status changed concurrently "
                            f"(attempt {attempt}/{max_attempts}), retrying"
                        )
                        continue

                    if stock_action == StockAction.RESTORE:
                        for item in current.items:
                            remaining[item.product_id] = await self.ledger.restore(
                                item.product_id, item.quantity
                            )
                    elif stock_action == StockAction.DEDUCT:
                        for item in current.items:
                            remaining[item.product_id] = await self.ledger.deduct(
                                item.product_id, item.quantity
                            )

                    self.store.add_history(
                        order_id=order_id,
                        from_status=old_status,
                        to_status=new_status,
                        stock_action=stock_action,
                        tracking_number=tracking_number,
                        changed_by=changed_by,
                        notes=notes,
                    )
                    await self.store.commit()

                except (InsufficientStockError, ProductNotFoundError) as e:
                    await self.store.rollback()
                    logger.warning(
                        f"Order {order_id} {old_status.value} -> {new_status.value} rejected: {e.message}"
                    )
                    raise
                except SQLAlchemyError as e:
                    await self.store.rollback()
                    logger.error(f"Database error updating order {order_id} status: {e}")
                    raise PersistenceError(f"Failed to update order status: {e}", cause=e)

            break
        else:
            raise PersistenceError(
                f"Order {order_id} status kept changing concurrently; gave up after {max_attempts} attempts",
                details={"order_id": order_id, "attempts": max_attempts},
            )

        logger.info(
            f"Order {order_id}: {get_transition_action(old_status, new_status)} "
            f"({old_status.value} -> {new_status.value}, stock {stock_action.value})"
        )

        updated = await self.store.get_decoded(order_id)

        await self._notify("order_status_changed", order_id, new_status)
        if stock_action == StockAction.DEDUCT:
            await self._notify_low_stock(
                {pid: (names[pid], qty) for pid, qty in remaining.items()}
            )
        return updated

    # ==================== READS ====================

    async def get_order(self, order_id: int) -> OrderRead:
        return await self.store.get_decoded(order_id)

    async def list_orders(self, filters: Optional[OrderFilter] = None) -> List[OrderRead]:
        return await self.store.list(filters)

    async def list_by_status(self, status: OrderStatus) -> List[OrderRead]:
        return await self.store.list(OrderFilter(status=status))

    async def list_recent(
        self,
        since_days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[OrderRead]:
        """Newest orders placed within the last `since_days` days."""
        since_days = since_days if since_days is not None else self.settings.RECENT_ORDERS_DAYS
        limit = limit if limit is not None else self.settings.RECENT_ORDERS_LIMIT

        since = datetime.now(timezone.utc) - timedelta(days=since_days)
        return await self.store.list(OrderFilter(
            date_from=int(since.timestamp() * 1000),
            limit=limit,
        ))

    async def list_status_history(self, order_id: int) -> List[StatusHistoryRead]:
        if not await self.store.exists(order_id):
            raise OrderNotFoundError(order_id)
        rows = await self.store.list_history(order_id)
        return [StatusHistoryRead.model_validate(row) for row in rows]

    # ==================== STATISTICS ====================

    async def get_order_stats(self) -> OrderSummary:
        """Order counts per status and completed (shipped or delivered) revenue."""
        by_status = {status.value: 0 for status in OrderStatus}
        total_orders = 0
        completed_orders = 0
        completed_revenue = Decimal("0")

        completed = {s.value for s in COMPLETED_STATUSES}

        for status, count, amount in await self.store.status_totals():
            by_status[status] = count
            total_orders += count
            if status in completed:
                completed_orders += count
                completed_revenue += Decimal(str(amount or 0))

        average = (
            (completed_revenue / completed_orders) if completed_orders else Decimal("0")
        )

        return OrderSummary(
            total_orders=total_orders,
            by_status=by_status,
            completed_orders=completed_orders,
            completed_revenue=completed_revenue.quantize(TWO_PLACES),
            average_order_value=average.quantize(TWO_PLACES),
        )

    # ==================== NOTIFICATIONS ====================

    async def _notify(self, event: str, *args) -> None:
        """Deliver one event to the sink. Failures are logged but don't fail the operation."""
        try:
            await getattr(self.notifier, event)(*args)
        except Exception as e:
            logger.warning(f"Notification '{event}' failed: {e}")

    async def _notify_low_stock(self, stock: Dict[int, tuple]) -> None:
        threshold = self.settings.LOW_STOCK_THRESHOLD
        for product_id, (name, quantity) in stock.items():
            if quantity <= threshold:
                await self._notify("low_stock", product_id, name, quantity)
