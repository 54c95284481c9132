"""
Order and Inventory Notification Service

Receives order lifecycle and low stock events from OrderService and the
inventory jobs. The default sink only logs; delivery channels (push, email,
SMS) plug in by implementing NotificationSink.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Protocol

from storefront.models.order import OrderStatus
from storefront.schemas.order import OrderRead


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Types of notifications."""
    # Order related
    ORDER_CREATED = "order_created"
    ORDER_STATUS_CHANGED = "order_status_changed"

    # Inventory alerts (internal notifications)
    LOW_STOCK_ALERT = "low_stock_alert"
    OUT_OF_STOCK_ALERT = "out_of_stock_alert"


MESSAGE_TEMPLATES = {
    NotificationType.ORDER_CREATED: (
        "New order #{order_id} from {customer_username}: "
        "{item_count} item(s), total {amount}"
    ),
    NotificationType.ORDER_STATUS_CHANGED: (
        "Order #{order_id} is now {status}"
    ),
    NotificationType.LOW_STOCK_ALERT: (
        "[LOW STOCK] {product_name} (ID: {product_id}): {current_qty} units left"
    ),
    NotificationType.OUT_OF_STOCK_ALERT: (
        "[OUT OF STOCK] {product_name} (ID: {product_id}): Stock depleted."
    ),
}


class NotificationSink(Protocol):
    """Receiver of order and stock events."""

    async def order_created(self, order: OrderRead) -> None: ...

    async def order_status_changed(self, order_id: int, new_status: OrderStatus) -> None: ...

    async def low_stock(self, product_id: int, name: str, quantity: int) -> None: ...


def render_message(notification_type: NotificationType, template_data: Dict[str, Any]) -> str:
    template = MESSAGE_TEMPLATES.get(notification_type, "")
    try:
        return template.format(**template_data)
    except KeyError as e:
        logger.warning(f"Missing template variable: {e}")
        return template


class LoggingNotificationSink:
    """
    NotificationSink that writes every event to the log.

    Placeholder for a real delivery channel.
    """

    async def order_created(self, order: OrderRead) -> None:
        message = render_message(
            NotificationType.ORDER_CREATED,
            {
                "order_id": order.id,
                "customer_username": order.customer_username,
                "item_count": order.item_count,
                "amount": Decimal(order.total_amount),
            },
        )
        logger.info(f"[NOTIFICATION] {message}")

    async def order_status_changed(self, order_id: int, new_status: OrderStatus) -> None:
        message = render_message(
            NotificationType.ORDER_STATUS_CHANGED,
            {"order_id": order_id, "status": OrderStatus(new_status).value},
        )
        logger.info(f"[NOTIFICATION] {message}")

    async def low_stock(self, product_id: int, name: str, quantity: int) -> None:
        notification_type = (
            NotificationType.OUT_OF_STOCK_ALERT if quantity <= 0
            else NotificationType.LOW_STOCK_ALERT
        )
        message = render_message(
            notification_type,
            {"product_id": product_id, "product_name": name, "current_qty": quantity},
        )
        logger.warning(f"[NOTIFICATION] {message}")
