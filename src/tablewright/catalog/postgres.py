"""
PostgreSQL-backed catalog store.

Keeps table and column definitions in two tables of a dedicated schema and
publishes row changes on a NOTIFY channel for subscribers.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import asyncpg

from .base import CatalogCallback, CatalogEvent, CatalogStore, Subscription, dispatch
from ..config import CatalogConfig
from ..database.connection import ConnectionPool
from ..database.introspection import SchemaIntrospector
from ..exceptions import DatabaseError, ValidationError
from ..schema.identifiers import quote_identifier
from ..schema.models import ColumnDefinition, TableDefinition


logger = logging.getLogger(__name__)


class PostgresSubscription(Subscription):
    """LISTEN on a dedicated connection, filtered to one table id."""

    def __init__(self, conn: asyncpg.Connection, channel: str, table_id: int, callback: CatalogCallback):
        self.conn = conn
        self.channel = channel
        self.table_id = table_id
        self.callback = callback

    async def handle_notification(
        self, connection: asyncpg.Connection, pid: int, channel: str, payload: str
    ) -> None:
        """Parse a notification payload and forward matching events."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in catalog notification: {payload}, error: {e}")
            return

        if data.get("table_id") != self.table_id:
            return

        event = CatalogEvent(
            table_id=data["table_id"],
            entity=data.get("entity", ""),
            operation=data.get("operation", ""),
            record_id=data.get("id"),
        )
        try:
            await dispatch(self.callback, event)
        except Exception as e:
            # A failing subscriber must not break the listener connection
            logger.error(f"Catalog subscriber for table {self.table_id} failed: {e}")

    async def close(self) -> None:
        if self.conn.is_closed():
            return
        await self.conn.remove_listener(self.channel, self.handle_notification)
        await self.conn.close()
        logger.debug(f"Closed catalog subscription for table {self.table_id}")


class PostgresCatalogStore(CatalogStore):
    """Catalog store on top of a ConnectionPool."""

    def __init__(self, pool: ConnectionPool, config: Optional[CatalogConfig] = None):
        self.pool = pool
        self.config = config or CatalogConfig()
        self.introspector = SchemaIntrospector(pool)

        schema = quote_identifier(self.config.schema_name)
        self._tables = f"{schema}.{quote_identifier(self.config.tables_table)}"
        self._columns = f"{schema}.{quote_identifier(self.config.columns_table)}"

    # Schema setup

    async def setup(self) -> Dict[str, Any]:
        """Create the catalog schema, tables and notification triggers."""
        results = {"statements": 0, "schema": self.config.schema_name}
        async with self.pool.transaction() as conn:
            for sql in self._get_setup_ddl():
                await conn.execute(sql)
                results["statements"] += 1
        logger.info(f"Catalog schema {self.config.schema_name} is ready")
        return results

    async def check_integrity(self) -> Dict[str, Any]:
        """Report which catalog tables exist."""
        schema = self.config.schema_name
        report = {"tables_exist": {}, "is_healthy": True}
        for table in (self.config.tables_table, self.config.columns_table):
            exists = await self.introspector.table_exists(schema, table)
            report["tables_exist"][table] = exists
            if not exists:
                report["is_healthy"] = False
        return report

    def _get_setup_ddl(self) -> List[str]:
        schema = quote_identifier(self.config.schema_name)
        function = f"{schema}.notify_catalog_change"
        channel = self.config.notify_channel.replace("'", "''")
        columns_table = self.config.columns_table.replace("'", "''")
        tables_index = quote_identifier(f"{self.config.tables_table}_name_lower")
        columns_index = quote_identifier(f"{self.config.columns_table}_table_name_lower")

        statements = [
            f"CREATE SCHEMA IF NOT EXISTS {schema}",
            f"""
            CREATE TABLE IF NOT EXISTS {self._tables} (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                physical_table_name TEXT UNIQUE,
                created_by TEXT NOT NULL,
                initial_rows INTEGER NOT NULL DEFAULT 0 CHECK (initial_rows >= 0),
                created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
            )
            """,
            f"CREATE UNIQUE INDEX IF NOT EXISTS {tables_index} ON {self._tables} (lower(name))",
            f"""
            CREATE TABLE IF NOT EXISTS {self._columns} (
                id BIGSERIAL PRIMARY KEY,
                table_id BIGINT NOT NULL REFERENCES {self._tables}(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                required BOOLEAN NOT NULL DEFAULT FALSE,
                default_value TEXT,
                created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
            )
            """,
            f"CREATE UNIQUE INDEX IF NOT EXISTS {columns_index} ON {self._columns} (table_id, lower(name))",
            f"""
            CREATE OR REPLACE FUNCTION {function}() RETURNS trigger AS $$
            DECLARE
                rec RECORD;
                tid BIGINT;
            BEGIN
                IF TG_OP = 'DELETE' THEN
                    rec := OLD;
                ELSE
                    rec := NEW;
                END IF;
                IF TG_TABLE_NAME = '{columns_table}' THEN
                    tid := rec.table_id;
                ELSE
                    tid := rec.id;
                END IF;
                PERFORM pg_notify('{channel}', json_build_object(
                    'table_id', tid,
                    'entity', TG_TABLE_NAME,
                    'operation', TG_OP,
                    'id', rec.id
                )::text);
                RETURN NULL;
            END;
            $$ LANGUAGE plpgsql
            """,
        ]

        for name, table in (
            (self.config.tables_table, self._tables),
            (self.config.columns_table, self._columns),
        ):
            trigger = quote_identifier(f"{name}_notify")
            statements.append(f"DROP TRIGGER IF EXISTS {trigger} ON {table}")
            statements.append(
                f"CREATE TRIGGER {trigger} AFTER INSERT OR UPDATE OR DELETE ON {table} "
                f"FOR EACH ROW EXECUTE FUNCTION {function}()"
            )

        return statements

    # Tables

    async def create_table(self, table: TableDefinition) -> TableDefinition:
        sql = f"""
            INSERT INTO {self._tables} (name, description, created_by, initial_rows)
            VALUES ($1, $2, $3, $4)
            RETURNING id, created_at
        """
        row = await self._fetchrow(
            sql, table.name, table.description, str(table.created_by), table.initial_row_count
        )
        return table.replace(id=row["id"], created_at=row["created_at"])

    async def get_table(self, table_id: int) -> Optional[TableDefinition]:
        row = await self._fetchrow(f"SELECT * FROM {self._tables} WHERE id = $1", table_id)
        return self._table_from_row(row) if row else None

    async def list_tables(self) -> List[TableDefinition]:
        rows = await self._fetch(f"SELECT * FROM {self._tables} ORDER BY created_at DESC, id DESC")
        return [self._table_from_row(row) for row in rows]

    async def update_table(self, table: TableDefinition) -> TableDefinition:
        await self._execute(
            f"UPDATE {self._tables} SET name = $2, description = $3 WHERE id = $1",
            table.id, table.name, table.description,
        )
        return table

    async def set_physical_name(self, table_id: int, physical_name: Optional[str]) -> None:
        await self._execute(
            f"UPDATE {self._tables} SET physical_table_name = $2 WHERE id = $1",
            table_id, physical_name,
        )

    async def delete_tables(self, table_ids: Iterable[int]) -> int:
        ids = list(table_ids)
        if not ids:
            return 0
        status = await self._execute(
            f"DELETE FROM {self._tables} WHERE id = ANY($1::bigint[])", ids
        )
        return _affected_rows(status)

    # Columns

    async def insert_column(self, column: ColumnDefinition) -> ColumnDefinition:
        sql = f"""
            INSERT INTO {self._columns} (table_id, name, type, required, default_value)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id, created_at
        """
        row = await self._fetchrow(
            sql, column.table_id, column.name, column.type.value,
            column.required, column.default_text,
        )
        return column.replace(id=row["id"], created_at=row["created_at"])

    async def get_column(self, column_id: int) -> Optional[ColumnDefinition]:
        row = await self._fetchrow(f"SELECT * FROM {self._columns} WHERE id = $1", column_id)
        return self._column_from_row(row) if row else None

    async def list_columns(self, table_id: int) -> List[ColumnDefinition]:
        rows = await self._fetch(
            f"SELECT * FROM {self._columns} WHERE table_id = $1 ORDER BY created_at, id",
            table_id,
        )
        return [self._column_from_row(row) for row in rows]

    async def update_column(self, column: ColumnDefinition) -> ColumnDefinition:
        await self._execute(
            f"""
            UPDATE {self._columns}
            SET name = $3, type = $4, required = $5, default_value = $6
            WHERE id = $1 AND table_id = $2
            """,
            column.id, column.table_id, column.name, column.type.value,
            column.required, column.default_text,
        )
        return column

    async def delete_column(self, column_id: int) -> bool:
        status = await self._execute(f"DELETE FROM {self._columns} WHERE id = $1", column_id)
        return _affected_rows(status) > 0

    # Notifications

    async def subscribe(self, table_id: int, callback: CatalogCallback) -> Subscription:
        conn = await self.pool.connect_dedicated()
        subscription = PostgresSubscription(conn, self.config.notify_channel, table_id, callback)
        await conn.add_listener(self.config.notify_channel, subscription.handle_notification)
        logger.info(f"Subscribed to catalog changes of table {table_id}")
        return subscription

    # Helpers

    async def _execute(self, sql: str, *args) -> str:
        try:
            return await self.pool.execute(sql, *args)
        except asyncpg.UniqueViolationError as e:
            raise ValidationError("A record with this name already exists", cause=e) from e
        except asyncpg.PostgresError as e:
            logger.error(f"Catalog write failed: {e}")
            raise DatabaseError(f"Catalog write failed: {e}") from e

    async def _fetchrow(self, sql: str, *args) -> Optional[asyncpg.Record]:
        try:
            return await self.pool.fetchrow(sql, *args)
        except asyncpg.UniqueViolationError as e:
            raise ValidationError("A record with this name already exists", cause=e) from e
        except asyncpg.PostgresError as e:
            logger.error(f"Catalog query failed: {e}")
            raise DatabaseError(f"Catalog query failed: {e}") from e

    async def _fetch(self, sql: str, *args) -> List[asyncpg.Record]:
        try:
            return await self.pool.fetch(sql, *args)
        except asyncpg.PostgresError as e:
            logger.error(f"Catalog query failed: {e}")
            raise DatabaseError(f"Catalog query failed: {e}") from e

    @staticmethod
    def _table_from_row(row: Any) -> TableDefinition:
        return TableDefinition(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            physical_name=row["physical_table_name"],
            created_by=row["created_by"],
            initial_row_count=row["initial_rows"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _column_from_row(row: Any) -> ColumnDefinition:
        return ColumnDefinition(
            id=row["id"],
            table_id=row["table_id"],
            name=row["name"],
            type=row["type"],
            required=row["required"],
            default_value=row["default_value"],
            created_at=row["created_at"],
        )


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg status string such as 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
