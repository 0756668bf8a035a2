"""
Structured data store package for tablewright.
"""

from .base import DataStore
from .postgres import PostgresDataStore

__all__ = [
    "DataStore",
    "PostgresDataStore",
]
