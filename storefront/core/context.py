"""
Application context.

Everything the order core shares across requests lives here and is passed
explicitly: the engine and session factory, the in-process change feed, the
per-product lock registry and the notification sink. One context is built per
application (or per test) and attached to `app.state.context`.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from storefront.config import Settings
from storefront.database import create_engine, create_session_factory
from storefront.services.change_feed import OrderChangeFeed
from storefront.services.notification_service import LoggingNotificationSink, NotificationSink
from storefront.services.stock_ledger_service import ProductLockRegistry


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    notifier: NotificationSink
    change_feed: OrderChangeFeed = field(default_factory=OrderChangeFeed)
    stock_locks: ProductLockRegistry = field(default_factory=ProductLockRegistry)

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Application context closed")


def build_context(
    settings: Settings,
    notifier: Optional[NotificationSink] = None,
    engine: Optional[AsyncEngine] = None,
) -> AppContext:
    """Create the engine (unless given) and wire the shared services."""
    engine = engine or create_engine(settings)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        notifier=notifier or LoggingNotificationSink(),
    )
