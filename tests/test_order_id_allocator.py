import asyncio
import time
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from storefront.models.order import Order, OrderItem
from storefront.services.order_id_allocator import OrderIDAllocator


async def allocate(context):
    async with context.session_factory() as session:
        value = await OrderIDAllocator(session, context.session_factory).next_id()
        await session.commit()
        return value


class TestOrderIDAllocator:
    async def test_starts_at_one_on_empty_store(self, context):
        assert await allocate(context) == 1
        assert await allocate(context) == 2

    async def test_continues_existing_sequence(self, context, session):
        session.add(Order(
            id=500,
            customer_id=1,
            customer_username="legacy",
            status="DELIVERED",
            total_amount=Decimal("1.00"),
            payment_method="CARD",
            shipping_address="Old Town",
            order_date=1_600_000_000_000,
            items=[OrderItem(
                position=0, product_id=1, product_name="Old", quantity=1,
                unit_price=Decimal("1.00"), total_price=Decimal("1.00"),
            )],
        ))
        await session.commit()

        assert await allocate(context) == 501

    async def test_falls_back_to_timestamp_when_scan_fails(self, context, monkeypatch):
        async def broken_scan(self):
            raise OperationalError("SELECT max(id) FROM orders", {}, Exception("disk I/O error"))

        monkeypatch.setattr(OrderIDAllocator, "_scan_max_order_id", broken_scan)
        before = int(time.time() * 1000)

        first = await allocate(context)
        second = await allocate(context)

        assert first > before
        assert second == first + 1

    async def test_rolled_back_allocation_is_reused(self, context):
        async with context.session_factory() as session:
            await OrderIDAllocator(session, context.session_factory).next_id()
            await session.rollback()

        assert await allocate(context) == 1

    async def test_concurrent_allocations_are_unique(self, context):
        values = await asyncio.gather(*(allocate(context) for _ in range(6)))
        assert sorted(values) == [1, 2, 3, 4, 5, 6]
