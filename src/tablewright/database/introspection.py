"""
Database schema introspection for tablewright.

Reads the physical shape of deployed tables from information_schema so it
can be compared with the catalog.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .connection import ConnectionPool
from ..exceptions import DatabaseError


logger = logging.getLogger(__name__)


@dataclass
class ColumnInfo:
    """Information about a physical column."""

    name: str
    data_type: str
    is_nullable: bool
    default_value: Optional[str] = None
    ordinal_position: int = 0
    udt_name: Optional[str] = None

    @property
    def normalized_type(self) -> str:
        """Type name in the upper-case spelling used by generated DDL."""
        return self.data_type.upper()

    def __str__(self) -> str:
        result = f"{self.name} {self.data_type}"
        if not self.is_nullable:
            result += " NOT NULL"
        if self.default_value:
            result += f" DEFAULT {self.default_value}"
        return result


class SchemaIntrospector:
    """Database schema introspection utilities."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    async def table_exists(self, schema: str, table: str) -> bool:
        """Check if a table exists."""
        query = """
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = $1 AND table_name = $2
            )
        """

        try:
            result = await self.pool.fetchval(query, schema, table)
            return bool(result)
        except Exception as e:
            logger.error(f"Error checking table existence for {schema}.{table}: {e}")
            raise DatabaseError(f"Failed to check table existence: {e}") from e

    async def get_columns(self, schema: str, table: str) -> Dict[str, ColumnInfo]:
        """Get all columns for a table, keyed by name."""
        query = """
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                c.column_default,
                c.ordinal_position,
                c.udt_name
            FROM information_schema.columns c
            WHERE c.table_schema = $1 AND c.table_name = $2
            ORDER BY c.ordinal_position
        """

        try:
            rows = await self.pool.fetch(query, schema, table)
        except Exception as e:
            logger.error(f"Error getting columns for {schema}.{table}: {e}")
            raise DatabaseError(f"Failed to get columns: {e}") from e

        columns = {}
        for row in rows:
            col_info = ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=row["is_nullable"] == "YES",
                default_value=row["column_default"],
                ordinal_position=row["ordinal_position"],
                udt_name=row["udt_name"],
            )
            columns[col_info.name] = col_info

        return columns

