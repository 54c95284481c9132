"""
Order ID Allocator

Allocates unique, ascending order ids from the `orders` row of the
`id_sequences` table. Each allocation is a single atomic increment inside the
caller's transaction, so the database's row lock (PostgreSQL) or writer lock
(SQLite) serializes concurrent allocators until the caller commits.

USAGE:
    allocator = OrderIDAllocator(db, session_factory)
    order_id = await allocator.next_id()

The counter row is created on first use, seeded from the highest existing
order id so that an existing sequence continues. If that scan fails, the seed
is the current epoch time in milliseconds.
"""

import logging
import time
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.models.id_sequence import IdSequence
from storefront.models.order import Order


logger = logging.getLogger(__name__)

ORDER_SEQUENCE = "orders"


def _fallback_seed() -> int:
    return int(time.time() * 1000)


class OrderIDAllocator:
    """Atomic order id generation backed by a counter row."""

    def __init__(
        self,
        db: AsyncSession,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        sequence_name: str = ORDER_SEQUENCE,
    ):
        """
        Args:
            db: Session of the transaction the id is allocated in
            session_factory: Used to run the seeding scan on its own connection,
                so a failing scan cannot abort the caller's transaction
            sequence_name: Counter row name
        """
        self.db = db
        self.session_factory = session_factory
        self.sequence_name = sequence_name

    async def next_id(self) -> int:
        """
        Increment the counter and return the new value.

        Does not commit. The value is only reserved once the caller commits;
        a rolled back allocation is handed out again.
        """
        await self._ensure_sequence()

        await self.db.execute(
            update(IdSequence)
            .where(IdSequence.name == self.sequence_name)
            .values(current_value=IdSequence.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        value = await self.db.scalar(
            select(IdSequence.current_value).where(IdSequence.name == self.sequence_name)
        )
        logger.debug(f"Allocated {self.sequence_name} id {value}")
        return value

    async def _ensure_sequence(self) -> None:
        """Create the counter row if missing. Concurrent creators are ignored."""
        existing = await self.db.scalar(
            select(IdSequence.current_value).where(IdSequence.name == self.sequence_name)
        )
        if existing is not None:
            return

        seed = await self._seed_value()

        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        await self.db.execute(
            insert(IdSequence)
            .values(name=self.sequence_name, current_value=seed)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        logger.info(f"Initialized id sequence '{self.sequence_name}' at {seed}")

    async def _seed_value(self) -> int:
        try:
            max_id = await self._scan_max_order_id()
        except SQLAlchemyError as e:
            seed = _fallback_seed()
            logger.warning(f"Order id scan failed, seeding '{self.sequence_name}' from timestamp {seed}: {e}")
            return seed
        return max_id or 0

    async def _scan_max_order_id(self) -> Optional[int]:
        if self.session_factory is None:
            return await self.db.scalar(select(func.max(Order.id)))

        async with self.session_factory() as scan_session:
            return await scan_session.scalar(select(func.max(Order.id)))
