"""Storefront order lifecycle and inventory reconciliation service."""

__version__ = "1.0.0"
