from decimal import Decimal

import pytest

from storefront.core.errors import OrderValidationError
from storefront.schemas.order import OrderCreate, OrderItemCreate
from storefront.services.order_validation import compute_totals, validate_order_totals


def line(quantity=2, unit_price="4.50", total_price=None, product_id=1):
    unit = Decimal(unit_price)
    return OrderItemCreate(
        product_id=product_id,
        product_name=f"Product {product_id}",
        quantity=quantity,
        unit_price=unit,
        total_price=Decimal(total_price) if total_price is not None else unit * quantity,
    )


def draft(items, total_amount=None, **overrides):
    fields = dict(
        customer_id=3,
        customer_username="bob",
        items=items,
        total_amount=total_amount if total_amount is not None else sum(
            (i.total_price for i in items), Decimal("0")
        ),
        payment_method="CASH",
        shipping_address="42 Elm Rd",
    )
    fields.update(overrides)
    return OrderCreate(**fields)


class TestComputeTotals:
    def test_sums_line_totals(self):
        assert compute_totals([line(2, "4.50"), line(1, "0.99", product_id=2)]) == Decimal("9.99")

    def test_empty_is_zero(self):
        assert compute_totals([]) == Decimal("0")

    def test_line_total_mismatch(self):
        with pytest.raises(OrderValidationError) as exc_info:
            compute_totals([line(2, "4.50", total_price="9.01")])
        assert exc_info.value.details["position"] == 0

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, quantity):
        with pytest.raises(OrderValidationError):
            compute_totals([line(quantity, "4.50", total_price="0")])

    def test_sub_cent_unit_price(self):
        with pytest.raises(OrderValidationError) as exc_info:
            compute_totals([line(1, "1.00"), line(2, "0.125", product_id=2)])
        assert exc_info.value.details["position"] == 1
        assert exc_info.value.details["unit_price"] == "0.125"

    def test_trailing_zeros_are_whole_cents(self):
        assert compute_totals([line(2, "0.120", total_price="0.24")]) == Decimal("0.24")



class TestValidateOrderTotals:
    def test_valid_draft(self):
        assert validate_order_totals(draft([line(3, "2.00")])) == Decimal("6.00")

    def test_total_mismatch(self):
        with pytest.raises(OrderValidationError):
            validate_order_totals(draft([line(3, "2.00")], total_amount=Decimal("5.99")))

    def test_sub_cent_total_amount(self):
        with pytest.raises(OrderValidationError) as exc_info:
            validate_order_totals(draft([line(3, "2.00")], total_amount=Decimal("6.001")))
        assert exc_info.value.details == {"total_amount": "6.001"}

    def test_no_items(self):
        with pytest.raises(OrderValidationError):
            validate_order_totals(draft([], total_amount=Decimal("0")))

    @pytest.mark.parametrize("field", ["payment_method", "shipping_address"])
    def test_blank_required_text(self, field):
        with pytest.raises(OrderValidationError):
            validate_order_totals(draft([line()], **{field: "   "}))

    def test_missing_customer(self):
        with pytest.raises(OrderValidationError):
            validate_order_totals(draft([line()], customer_id=None))

    def test_client_supplied_id_is_ignored(self):
        order = OrderCreate(**{
            "id": 123,
            "tracking_number": "TRK",
            "customer_id": 3,
            "customer_username": "bob",
            "items": [line()],
            "total_amount": Decimal("9.00"),
            "payment_method": "CASH",
            "shipping_address": "42 Elm Rd",
        })
        assert not hasattr(order, "id")
        assert validate_order_totals(order) == Decimal("9.00")
