"""
Product Stock Ledger.

Owns the single-pool stock counter of every product. All mutations are
atomic SQL updates so that the counter never goes negative:

1. deduct(strict)   - UPDATE ... SET quantity = quantity - n WHERE quantity >= n
2. deduct(lenient)  - UPDATE ... SET quantity = max(0, quantity - n)
3. restore          - UPDATE ... SET quantity = quantity + n

Within one process, writers to the same product are additionally serialized
through ProductLockRegistry so that an availability check and the writes that
follow it see the same stock.

The ledger never commits on its own except for the standalone catalogue
operations (create_product, adjust_stock); order writes commit through the
caller's transaction.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, AsyncExitStack
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import (
    InsufficientStockError,
    PersistenceError,
    ProductNotFoundError,
)
from storefront.models.product import Product
from storefront.schemas.product import ProductCreate


logger = logging.getLogger(__name__)


class StockLine(Protocol):
    """Anything carrying a product id and a quantity (draft or stored item)."""
    product_id: int
    quantity: int


@dataclass
class StockAvailability:
    """Availability of one product for a set of requested lines."""
    product_id: int
    product_name: str
    available: int
    requested: int

    @property
    def remaining(self) -> int:
        return self.available - self.requested


class ProductLockRegistry:
    """
    Per-product asyncio locks.

    Locks are created on first use and never removed; a product's lock is a
    few hundred bytes.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock_for(self, product_id: int) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[product_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, product_ids: Iterable[int]) -> AsyncIterator[None]:
        """Acquire the locks of all given products, in ascending id order."""
        async with AsyncExitStack() as stack:
            for product_id in sorted(set(product_ids)):
                await stack.enter_async_context(self.lock_for(product_id))
            yield


def aggregate_quantities(items: Iterable[StockLine]) -> Dict[int, int]:
    """Sum requested quantities per product, preserving first-seen order."""
    requested: Dict[int, int] = {}
    for item in items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
    return requested


class ProductStockLedger:
    """Reads and atomically mutates product stock."""

    def __init__(self, db: AsyncSession, locks: ProductLockRegistry):
        self.db = db
        self.locks = locks

    # ==================== READS ====================

    async def get_product(self, product_id: int) -> Product:
        result = await self.db.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def get_quantity(self, product_id: int) -> int:
        """Current stock count. Raises ProductNotFoundError if absent."""
        quantity = await self.db.scalar(
            select(Product.quantity).where(Product.id == product_id)
        )
        if quantity is None:
            raise ProductNotFoundError(product_id)
        return quantity

    async def check_availability(
        self,
        items: Iterable[StockLine],
    ) -> Dict[int, StockAvailability]:
        """
        Check stock for every line before anything is mutated.

        Lines for the same product are summed. Every product is read in one
        query. Raises ProductNotFoundError or InsufficientStockError for the
        first failing product in line order.

        Returns:
            product_id -> StockAvailability
        """
        requested = aggregate_quantities(items)
        if not requested:
            return {}

        result = await self.db.execute(
            select(Product.id, Product.name, Product.quantity)
            .where(Product.id.in_(list(requested.keys())))
        )
        stock = {row.id: (row.name, row.quantity) for row in result.all()}

        availability: Dict[int, StockAvailability] = {}
        for product_id, quantity in requested.items():
            if product_id not in stock:
                logger.warning(f"Availability check failed: product {product_id} not found")
                raise ProductNotFoundError(product_id)

            name, available = stock[product_id]
            if available < quantity:
                logger.warning(
                    f"Availability check failed for product {product_id} ({name}): "
                    f"available {available}, requested {quantity}"
                )
                raise InsufficientStockError(product_id, name, available, quantity)

            availability[product_id] = StockAvailability(
                product_id=product_id,
                product_name=name,
                available=available,
                requested=quantity,
            )

        return availability

    # ==================== MUTATIONS ====================

    async def deduct(self, product_id: int, quantity: int, strict: bool = True) -> int:
        """
        Remove units from a product's stock.

        Args:
            product_id: Product to deduct from
            quantity: Units to remove (> 0)
            strict: If True, fail with InsufficientStockError when stock is
                short; if False, clamp the result at zero.

        Returns:
            New stock count
        """
        if quantity <= 0:
            raise ValueError(f"Deduct quantity must be positive, got {quantity}")

        if strict:
            stmt = (
                update(Product)
                .where(Product.id == product_id, Product.quantity >= quantity)
                .values(quantity=Product.quantity - quantity)
            )
        else:
            stmt = (
                update(Product)
                .where(Product.id == product_id)
                .values(quantity=case(
                    (Product.quantity >= quantity, Product.quantity - quantity),
                    else_=0,
                ))
            )

        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            # Either the product is gone or the conditional update lost to a concurrent writer
            row = (await self.db.execute(
                select(Product.name, Product.quantity).where(Product.id == product_id)
            )).first()
            if row is None:
                raise ProductNotFoundError(product_id)
            logger.warning(
                f"Deduct rejected for product {product_id}: "
                f"available {row.quantity}, requested {quantity}"
            )
            raise InsufficientStockError(product_id, row.name, row.quantity, quantity)

        new_quantity = await self.get_quantity(product_id)
        logger.info(f"Deducted {quantity} from product {product_id}, now {new_quantity}")
        return new_quantity

    async def restore(self, product_id: int, quantity: int) -> int:
        """Give units back to a product's stock. Returns the new stock count."""
        if quantity <= 0:
            raise ValueError(f"Restore quantity must be positive, got {quantity}")

        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=Product.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ProductNotFoundError(product_id)

        new_quantity = await self.get_quantity(product_id)
        logger.info(f"Restored {quantity} to product {product_id}, now {new_quantity}")
        return new_quantity

    def hold(self, product_ids: Iterable[int]):
        """Serialize in-process stock writers of the given products."""
        return self.locks.hold(product_ids)

    # ==================== CATALOGUE ====================

    async def create_product(self, data: ProductCreate) -> Product:
        product = Product(
            name=data.name,
            cost=data.cost,
            price=data.price,
            quantity=data.quantity,
            shelf_location=data.shelf_location,
        )
        self.db.add(product)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create product '{data.name}': {e}")
            raise PersistenceError(f"Failed to create product: {e}", cause=e)

        await self.db.refresh(product)
        logger.info(f"Created product {product.id} ({product.name}) with {product.quantity} units")
        return product

    async def list_products(
        self,
        skip: int = 0,
        limit: int = 100,
        search: Optional[str] = None,
    ) -> Tuple[List[Product], int]:
        query = select(Product)
        count_query = select(func.count(Product.id))

        if search:
            query = query.where(Product.name.ilike(f"%{search}%"))
            count_query = count_query.where(Product.name.ilike(f"%{search}%"))

        total = await self.db.scalar(count_query) or 0
        result = await self.db.execute(
            query.order_by(Product.name, Product.id)
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    async def list_low_stock(self, threshold: int) -> List[Product]:
        """Products whose stock is at or below the threshold, lowest first."""
        result = await self.db.execute(
            select(Product)
            .where(Product.quantity <= threshold)
            .order_by(Product.quantity, Product.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def adjust_stock(self, product_id: int, delta: int, reason: Optional[str] = None) -> int:
        """
        Manual stock correction. Negative deltas clamp at zero.

        Returns:
            New stock count
        """
        if delta == 0:
            return await self.get_quantity(product_id)

        async with self.hold([product_id]):
            try:
                if delta > 0:
                    new_quantity = await self.restore(product_id, delta)
                else:
                    new_quantity = await self.deduct(product_id, -delta, strict=False)
                await self.db.commit()
            except ProductNotFoundError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Stock adjustment failed for product {product_id}: {e}")
                raise PersistenceError(f"Stock adjustment failed: {e}", cause=e)

        logger.info(
            f"Adjusted stock of product {product_id} by {delta}, now {new_quantity}"
            + (f" ({reason})" if reason else "")
        )
        return new_quantity
