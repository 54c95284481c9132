"""
Inventory Jobs

Background jobs for stock monitoring:
- Low stock sweep (alerts for every product at or below the threshold)
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict

from storefront.services.stock_ledger_service import ProductStockLedger

if TYPE_CHECKING:
    from storefront.core.context import AppContext

logger = logging.getLogger(__name__)


async def check_low_stock(context: "AppContext") -> Dict[str, Any]:
    """
    Emit one low_stock notification per product at or below LOW_STOCK_THRESHOLD.

    Notification failures are logged and the sweep continues.
    """
    threshold = context.settings.LOW_STOCK_THRESHOLD
    logger.info(f"Starting low stock check (threshold {threshold})...")
    start_time = datetime.now(timezone.utc)
    notified_count = 0
    failed_count = 0

    async with context.session_factory() as session:
        ledger = ProductStockLedger(session, context.stock_locks)
        products = await ledger.list_low_stock(threshold)

    for product in products:
        try:
            await context.notifier.low_stock(product.id, product.name, product.quantity)
            notified_count += 1
        except Exception as e:
            failed_count += 1
            logger.warning(f"Low stock notification failed for product {product.id}: {e}")

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Low stock check completed: {len(products)} product(s) low, "
        f"{notified_count} notified, {failed_count} failed in {duration:.2f}s"
    )
    return {
        "low_stock_count": len(products),
        "notified": notified_count,
        "failed": failed_count,
    }
