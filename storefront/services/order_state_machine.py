"""
Order State Machine

Single place that decides the stock side effect of every order status change.
No transition is forbidden: any status may move to any other, and the stock
counters follow whether the order currently holds stock or not.

Stock is held by an order in every status except the reversed ones
(CANCELLED, RETURNED):

    PENDING ──► PROCESSING ──► SHIPPED ──► DELIVERED      (hold stock)
       │             │            │            │
       └─────────────┴─────┬──────┴────────────┘
                           ▼
                 CANCELLED / RETURNED                     (stock restored)
                           │
                           ▼ back to PROCESSING / SHIPPED / DELIVERED
                     stock deducted again
"""

from typing import Dict, FrozenSet, Union

from storefront.models.order import OrderStatus, StockAction


StatusLike = Union[OrderStatus, str]


# =============================================================================
# STATUS GROUPS
# =============================================================================

# Order gave its stock back
REVERSED_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

# Order is being (or has been) fulfilled
FULFILLING_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
})

# Nothing normally follows these, but they are not locked
TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

# Counted by dashboards as completed sales
COMPLETED_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
})


# Human-readable action names for common transitions
TRANSITION_ACTIONS: Dict[tuple, str] = {
    (OrderStatus.PENDING, OrderStatus.PROCESSING): "Start Processing",
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED): "Ship",
    (OrderStatus.PENDING, OrderStatus.SHIPPED): "Ship",
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): "Mark Delivered",
    (OrderStatus.PENDING, OrderStatus.CANCELLED): "Cancel",
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED): "Cancel",
    (OrderStatus.SHIPPED, OrderStatus.CANCELLED): "Cancel",
    (OrderStatus.SHIPPED, OrderStatus.RETURNED): "Return",
    (OrderStatus.DELIVERED, OrderStatus.RETURNED): "Return",
    (OrderStatus.CANCELLED, OrderStatus.PENDING): "Reopen",
    (OrderStatus.CANCELLED, OrderStatus.PROCESSING): "Reinstate",
    (OrderStatus.RETURNED, OrderStatus.PROCESSING): "Reinstate",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_reversed(status: StatusLike) -> bool:
    """Has an order in this status given its stock back?"""
    return OrderStatus(status) in REVERSED_STATUSES


def is_fulfilling(status: StatusLike) -> bool:
    return OrderStatus(status) in FULFILLING_STATUSES


def is_terminal(status: StatusLike) -> bool:
    """Is this a terminal (final) state?"""
    return OrderStatus(status) in TERMINAL_STATUSES


def is_completed(status: StatusLike) -> bool:
    return OrderStatus(status) in COMPLETED_STATUSES


def stock_action_for_creation(status: StatusLike) -> StockAction:
    """Orders created in a reversed status never reserve stock."""
    if is_reversed(status):
        return StockAction.NONE
    return StockAction.DEDUCT


def stock_action_for_transition(old_status: StatusLike, new_status: StatusLike) -> StockAction:
    """
    Stock side effect of moving an order from old_status to new_status.

    - leaving the held statuses for a reversed one restores stock
    - going from a reversed status back to a fulfilling one deducts it again
    - everything else (including PENDING -> PROCESSING, CANCELLED -> RETURNED,
      CANCELLED -> PENDING and no-op updates) touches no stock
    """
    was_reversed = is_reversed(old_status)

    if is_reversed(new_status) and not was_reversed:
        return StockAction.RESTORE
    if is_fulfilling(new_status) and was_reversed:
        return StockAction.DEDUCT
    return StockAction.NONE


def get_transition_action(current_status: StatusLike, new_status: StatusLike) -> str:
    """Get human-readable action name for a transition."""
    current_status = OrderStatus(current_status)
    new_status = OrderStatus(new_status)
    return TRANSITION_ACTIONS.get(
        (current_status, new_status),
        f"{current_status.value} -> {new_status.value}",
    )
