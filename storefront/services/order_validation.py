"""Draft order validation run before anything touches stock."""

from decimal import Decimal
from typing import Iterable

from storefront.core.errors import OrderValidationError
from storefront.schemas.order import OrderCreate, OrderItemCreate


# Money columns are Numeric(12, 2)
CENT = Decimal("0.01")


def is_whole_cents(value: Decimal) -> bool:
    return Decimal(value) == Decimal(value).quantize(CENT)


def compute_totals(items: Iterable[OrderItemCreate]) -> Decimal:
    """
    Sum the line totals of an order.

    Raises:
        OrderValidationError: a line has a non-positive quantity, a price
            with fractions of a cent, or a total_price that is not
            unit_price * quantity
    """
    total = Decimal("0")
    for position, item in enumerate(items):
        if item.quantity <= 0:
            raise OrderValidationError(
                f"Line {position} ({item.product_name}): quantity must be positive",
                {"position": position, "product_id": item.product_id, "quantity": item.quantity},
            )

        for field_name in ("unit_price", "total_price"):
            value = getattr(item, field_name)
            if not is_whole_cents(value):
                raise OrderValidationError(
                    f"Line {position} ({item.product_name}): {field_name} {value} "
                    f"has more than 2 decimal places",
                    {"position": position, "product_id": item.product_id, field_name: str(value)},
                )

        expected = Decimal(item.unit_price) * item.quantity
        if Decimal(item.total_price) != expected:
            raise OrderValidationError(
                f"Line {position} ({item.product_name}): total_price {item.total_price} "
                f"does not equal unit_price x quantity ({expected})",
                {
                    "position": position,
                    "product_id": item.product_id,
                    "total_price": str(item.total_price),
                    "expected": str(expected),
                },
            )
        total += Decimal(item.total_price)
    return total


def validate_order_totals(draft: OrderCreate) -> Decimal:
    """
    Validate a draft order and return its computed total.

    Checks the customer identity, the required free text fields, that there
    is at least one line, every line's arithmetic and that total_amount is
    the sum of the line totals.
    """
    if draft.customer_id is None or not (draft.customer_username or "").strip():
        raise OrderValidationError("Order must have a customer")

    if not draft.items:
        raise OrderValidationError("Order must contain at least one item")

    if not draft.payment_method.strip():
        raise OrderValidationError("Payment method is required")

    if not draft.shipping_address.strip():
        raise OrderValidationError("Shipping address is required")

    if not is_whole_cents(draft.total_amount):
        raise OrderValidationError(
            f"Order total {draft.total_amount} has more than 2 decimal places",
            {"total_amount": str(draft.total_amount)},
        )

    total = compute_totals(draft.items)
    if Decimal(draft.total_amount) != total:
        raise OrderValidationError(
            f"Order total {draft.total_amount} does not equal the sum of item totals ({total})",
            {"total_amount": str(draft.total_amount), "expected": str(total)},
        )
    return total
