"""
Catalog package for tablewright.

This package provides:
- The abstract catalog store interface
- A PostgreSQL catalog store with change notifications
"""

from .base import CatalogStore, CatalogEvent, Subscription
from .postgres import PostgresCatalogStore

__all__ = [
    "CatalogStore",
    "CatalogEvent",
    "Subscription",
    "PostgresCatalogStore",
]
