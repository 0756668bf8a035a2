"""
PostgreSQL data store for deployed tables.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import asyncpg

from .base import DataStore
from ..database.connection import ConnectionPool
from ..database.introspection import SchemaIntrospector
from ..exceptions import ExecutionError
from ..schema.identifiers import quote_identifier, sanitize
from ..schema.synthesizer import DDLStatement


logger = logging.getLogger(__name__)


class PostgresDataStore(DataStore):
    """Data store on top of a ConnectionPool."""

    def __init__(
        self,
        pool: ConnectionPool,
        schema: str = "public",
        reload_notify_channel: Optional[str] = None,
        statement_timeout_seconds: int = 300,
    ):
        self.pool = pool
        self.schema = schema
        self.reload_notify_channel = reload_notify_channel
        self.statement_timeout_seconds = statement_timeout_seconds
        self.introspector = SchemaIntrospector(pool)

    def _qualify(self, table: str) -> str:
        return f"{quote_identifier(self.schema)}.{quote_identifier(table)}"

    async def execute_ddl(self, statement: DDLStatement) -> DDLStatement:
        start_time = time.time()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        f"SET LOCAL statement_timeout = '{int(self.statement_timeout_seconds)}s'"
                    )
                    await conn.execute(statement.sql)
                    if self.reload_notify_channel:
                        await conn.execute(
                            "SELECT pg_notify($1, 'reload schema')", self.reload_notify_channel
                        )
        except asyncpg.PostgresError as e:
            statement.executed = False
            statement.error = str(e)
            logger.error(f"Failed to execute {statement.statement_id}: {e}")
            raise ExecutionError(
                f"Store rejected {statement.kind.value} on {statement.table}: {e}",
                {"sql": statement.sql},
                cause=e,
            ) from e

        statement.executed = True
        statement.error = None
        statement.execution_time_ms = (time.time() - start_time) * 1000
        logger.info(f"Executed {statement.statement_id} ({statement.execution_time_ms:.1f}ms)")
        return statement

    async def table_exists(self, table: str) -> bool:
        return await self.introspector.table_exists(self.schema, sanitize(table))

    async def insert_empty_row(self, table: str) -> Optional[Any]:
        return await self._run(
            "insert row",
            table,
            "fetchval",
            f"INSERT INTO {self._qualify(table)} DEFAULT VALUES RETURNING id",
        )

    async def update_cell(self, table: str, row_id: Any, column: str, value: Any) -> None:
        await self._run(
            "update cell",
            table,
            "execute",
            f"UPDATE {self._qualify(table)} SET {quote_identifier(column)} = $1 WHERE id = $2",
            value,
            row_id,
        )

    async def delete_row(self, table: str, row_id: Any) -> bool:
        status = await self._run(
            "delete row",
            table,
            "execute",
            f"DELETE FROM {self._qualify(table)} WHERE id = $1",
            row_id,
        )
        return status.split()[-1] != "0"

    async def fetch_rows(self, table: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Fetch up to ``limit`` rows, newest first so freshly added rows lead the list."""
        rows = await self._run(
            "fetch rows",
            table,
            "fetch",
            f"SELECT * FROM {self._qualify(table)} ORDER BY created_at DESC, id DESC LIMIT $1",
            limit,
        )
        return [dict(row) for row in rows]

    async def _run(self, action: str, table: str, method: str, sql: str, *args) -> Any:
        try:
            return await getattr(self.pool, method)(sql, *args)
        except asyncpg.PostgresError as e:
            logger.error(f"Failed to {action} on {table}: {e}")
            raise ExecutionError(
                f"Store rejected {action} on {table}: {e}", {"sql": sql}, cause=e
            ) from e
