"""
Background Jobs Module

Handles scheduled tasks for:
- Low stock alerts
"""

from storefront.jobs.scheduler import create_scheduler, start_scheduler, shutdown_scheduler
from storefront.jobs.inventory_jobs import check_low_stock

__all__ = [
    "create_scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "check_low_stock",
]
