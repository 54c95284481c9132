"""
APScheduler Configuration

One scheduler per application. Jobs receive the application context
explicitly instead of reaching for globals.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from storefront.jobs.inventory_jobs import check_low_stock

if TYPE_CHECKING:
    from storefront.core.context import AppContext

logger = logging.getLogger(__name__)

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}


async def run_job(job, context: "AppContext"):
    """Run a job, logging instead of propagating failures to the scheduler."""
    try:
        return await job(context)
    except Exception as e:
        logger.error(f"Job '{job.__name__}' failed: {e}")


def create_scheduler(context: "AppContext") -> AsyncIOScheduler:
    """Build a scheduler with every background job registered."""
    settings = context.settings
    scheduler = AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults=job_defaults,
        timezone=settings.SCHEDULER_TIMEZONE,
    )

    # Low stock sweep
    scheduler.add_job(
        run_job,
        'interval',
        minutes=settings.LOW_STOCK_CHECK_INTERVAL_MINUTES,
        args=[check_low_stock, context],
        id='check_low_stock',
        name='Check low stock products',
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Start the background job scheduler."""
    if not scheduler.running:
        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")


def get_job_status(scheduler: AsyncIOScheduler) -> List[Dict[str, Any]]:
    """Get status of all scheduled jobs."""
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": next_run.isoformat() if next_run else None,
        })
    return jobs
