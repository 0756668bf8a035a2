"""
Database integration package for tablewright.

This package provides:
- Async PostgreSQL connection pooling with task-scoped transactions
- Physical schema introspection
"""

from .connection import ConnectionPool, connection_from_url
from .introspection import SchemaIntrospector, ColumnInfo

__all__ = [
    "ConnectionPool",
    "connection_from_url",
    "SchemaIntrospector",
    "ColumnInfo",
]
