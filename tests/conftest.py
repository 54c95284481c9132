"""
Pytest configuration and shared fixtures for storefront order tests.

Every test gets its own SQLite file database and application context.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest

from storefront.config import Settings
from storefront.core.context import build_context
from storefront.database import init_db
from storefront.models.order import OrderStatus
from storefront.models.product import Product
from storefront.schemas.order import OrderCreate, OrderItemCreate
from storefront.services.order_service import OrderService
from storefront.services.stock_ledger_service import ProductStockLedger


class RecordingNotificationSink:
    """NotificationSink that keeps every event for assertions."""

    def __init__(self):
        self.created = []
        self.status_changes = []
        self.low_stock_alerts = []

    async def order_created(self, order):
        self.created.append(order)

    async def order_status_changed(self, order_id, new_status):
        self.status_changes.append((order_id, new_status))

    async def low_stock(self, product_id, name, quantity):
        self.low_stock_alerts.append((product_id, name, quantity))


class FailingNotificationSink:
    async def order_created(self, order):
        raise RuntimeError("push service down")

    async def order_status_changed(self, order_id, new_status):
        raise RuntimeError("push service down")

    async def low_stock(self, product_id, name, quantity):
        raise RuntimeError("push service down")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'storefront_test.db'}",
        SECRET_KEY="test-secret-key",
        SCHEDULER_ENABLED=False,
        LOW_STOCK_THRESHOLD=5,
        ORDER_STREAM_BUFFER=8,
    )


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def failing_notifier():
    return FailingNotificationSink()


@pytest.fixture
async def context(settings, notifier):
    ctx = build_context(settings, notifier=notifier)
    await init_db(ctx.engine)
    yield ctx
    await ctx.close()


@pytest.fixture
async def session(context):
    async with context.session_factory() as s:
        yield s


@pytest.fixture
async def products(context) -> Dict[str, int]:
    """
    Seed the catalogue. Returns product name -> id.

    Widget: 10 @ 5.00, Gadget: 3 @ 12.50, LastOne: 1 @ 20.00
    """
    seed = [
        Product(name="Widget", cost=Decimal("3.00"), price=Decimal("5.00"), quantity=10, shelf_location="A1"),
        Product(name="Gadget", cost=Decimal("8.00"), price=Decimal("12.50"), quantity=3, shelf_location="B2"),
        Product(name="LastOne", cost=Decimal("11.00"), price=Decimal("20.00"), quantity=1),
    ]
    async with context.session_factory() as s:
        s.add_all(seed)
        await s.commit()
        return {p.name: p.id for p in seed}


@pytest.fixture
def open_service(context):
    """Open an OrderService on a fresh session, like one request would."""
    @asynccontextmanager
    async def _open():
        async with context.session_factory() as s:
            yield OrderService(s, context)
    return _open


@pytest.fixture
def stock_of(context):
    """Read a product's stock on a fresh session."""
    async def _stock_of(product_id: int) -> int:
        async with context.session_factory() as s:
            return await ProductStockLedger(s, context.stock_locks).get_quantity(product_id)
    return _stock_of


@pytest.fixture
def make_draft(products):
    """
    Build a consistent draft from (product name, quantity) lines.
    Prices come from the seeded catalogue.
    """
    prices = {"Widget": Decimal("5.00"), "Gadget": Decimal("12.50"), "LastOne": Decimal("20.00")}

    def _make_draft(
        lines: List[Tuple[str, int]],
        status: OrderStatus = OrderStatus.PENDING,
        customer_id: int = 7,
        customer_username: str = "alice",
        notes: Optional[str] = None,
    ) -> OrderCreate:
        items = [
            OrderItemCreate(
                product_id=products[name],
                product_name=name,
                quantity=quantity,
                unit_price=prices[name],
                total_price=prices[name] * quantity,
            )
            for name, quantity in lines
        ]
        return OrderCreate(
            customer_id=customer_id,
            customer_username=customer_username,
            items=items,
            total_amount=sum((item.total_price for item in items), Decimal("0")),
            status=status,
            payment_method="CARD",
            shipping_address="1 Main St, Springfield",
            notes=notes,
        )

    return _make_draft
