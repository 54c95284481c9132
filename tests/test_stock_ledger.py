import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest

from storefront.core.errors import InsufficientStockError, ProductNotFoundError
from storefront.schemas.product import ProductCreate
from storefront.services.stock_ledger_service import (
    ProductLockRegistry,
    ProductStockLedger,
    aggregate_quantities,
)


def req(product_id, quantity):
    return SimpleNamespace(product_id=product_id, quantity=quantity)


@pytest.fixture
def ledger(session, context):
    return ProductStockLedger(session, context.stock_locks)


class TestReads:
    async def test_get_quantity(self, ledger, products):
        assert await ledger.get_quantity(products["Widget"]) == 10

    async def test_get_quantity_unknown(self, ledger, products):
        with pytest.raises(ProductNotFoundError):
            await ledger.get_quantity(12345)

    async def test_get_product(self, ledger, products):
        product = await ledger.get_product(products["Gadget"])
        assert product.name == "Gadget"
        assert product.price == Decimal("12.50")

    async def test_check_availability(self, ledger, products):
        availability = await ledger.check_availability([
            req(products["Widget"], 4),
            req(products["Gadget"], 1),
            req(products["Widget"], 2),
        ])
        widget = availability[products["Widget"]]
        assert widget.requested == 6
        assert widget.available == 10
        assert widget.remaining == 4

    async def test_check_availability_short(self, ledger, products):
        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.check_availability([req(products["Widget"], 1), req(products["LastOne"], 2)])
        assert exc_info.value.product_id == products["LastOne"]

    async def test_check_availability_missing_product(self, ledger, products):
        with pytest.raises(ProductNotFoundError):
            await ledger.check_availability([req(999, 1)])

    async def test_list_low_stock(self, ledger, products):
        low = await ledger.list_low_stock(threshold=5)
        assert [p.name for p in low] == ["LastOne", "Gadget"]


class TestMutations:
    async def test_strict_deduct(self, ledger, session, products):
        assert await ledger.deduct(products["Widget"], 4) == 6
        await session.commit()
        assert await ledger.get_quantity(products["Widget"]) == 6

    async def test_strict_deduct_refuses_to_go_negative(self, ledger, products):
        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.deduct(products["Gadget"], 4)
        assert exc_info.value.available == 3
        assert await ledger.get_quantity(products["Gadget"]) == 3

    async def test_lenient_deduct_clamps_at_zero(self, ledger, products):
        assert await ledger.deduct(products["Gadget"], 10, strict=False) == 0

    async def test_deduct_unknown_product(self, ledger, products):
        with pytest.raises(ProductNotFoundError):
            await ledger.deduct(777, 1)

    async def test_restore(self, ledger, products):
        assert await ledger.restore(products["LastOne"], 4) == 5

    async def test_restore_unknown_product(self, ledger, products):
        with pytest.raises(ProductNotFoundError):
            await ledger.restore(777, 1)

    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_non_positive_quantities_rejected(self, ledger, products, quantity):
        with pytest.raises(ValueError):
            await ledger.deduct(products["Widget"], quantity)
        with pytest.raises(ValueError):
            await ledger.restore(products["Widget"], quantity)


class TestCatalogue:
    async def test_create_product(self, ledger):
        product = await ledger.create_product(ProductCreate(
            name="Sprocket", cost=Decimal("1.00"), price=Decimal("2.50"), quantity=12,
        ))
        assert product.id is not None
        assert await ledger.get_quantity(product.id) == 12

    async def test_list_products(self, ledger, products):
        items, total = await ledger.list_products(search="get")
        assert total == 2
        assert sorted(p.name for p in items) == ["Gadget", "Widget"]

    async def test_adjust_stock(self, ledger, products, stock_of):
        assert await ledger.adjust_stock(products["Widget"], 5, reason="recount") == 15
        assert await ledger.adjust_stock(products["Widget"], -20) == 0
        assert await stock_of(products["Widget"]) == 0

    async def test_adjust_unknown_product(self, ledger):
        with pytest.raises(ProductNotFoundError):
            await ledger.adjust_stock(404, 1)


class TestLockRegistry:
    def test_same_lock_per_product(self):
        registry = ProductLockRegistry()
        assert registry.lock_for(1) is registry.lock_for(1)
        assert registry.lock_for(1) is not registry.lock_for(2)

    async def test_hold_serializes_writers(self):
        registry = ProductLockRegistry()
        events = []

        async def writer(name, product_ids):
            async with registry.hold(product_ids):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(writer("a", [2, 1]), writer("b", [1]))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_hold_releases_on_error(self):
        registry = ProductLockRegistry()
        with pytest.raises(RuntimeError):
            async with registry.hold([5]):
                raise RuntimeError("boom")
        assert not registry.lock_for(5).locked()


def test_aggregate_quantities_keeps_first_seen_order():
    assert list(aggregate_quantities([req(3, 1), req(1, 2), req(3, 4)]).items()) == [(3, 5), (1, 2)]
