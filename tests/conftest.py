"""
Pytest configuration and shared fixtures for tablewright tests.

Provides in-memory stand-ins for the catalog and data store so the
orchestrator can be tested without a database.
"""

import asyncio
import copy
import re
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional

import pytest
import yaml

from tablewright.catalog.base import CatalogEvent, CatalogStore, Subscription, dispatch
from tablewright.config import DeploymentConfig, TablewrightConfig
from tablewright.exceptions import ExecutionError, ValidationError
from tablewright.orchestrator import TableDeployer
from tablewright.schema.models import ColumnDefinition, TableDefinition
from tablewright.schema.synthesizer import DDLStatement
from tablewright.store.base import DataStore


# ============================================================================
# In-memory catalog
# ============================================================================

class InMemorySubscription(Subscription):
    def __init__(self, catalog: "InMemoryCatalogStore", table_id: int, callback):
        self.catalog = catalog
        self.table_id = table_id
        self.callback = callback
        self.closed = False

    async def close(self) -> None:
        self.closed = True
        self.catalog.subscriptions.remove(self)


class InMemoryCatalogStore(CatalogStore):
    """Catalog kept in dictionaries; returns copies like a real store would."""

    def __init__(self):
        self.tables: Dict[int, TableDefinition] = {}
        self.columns: Dict[int, ColumnDefinition] = {}
        self.subscriptions: List[InMemorySubscription] = []
        self.ignore_physical_name_writes = False
        self.fail_column_writes = False
        self._next_id = 1

    def _id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    async def _emit(self, table_id: int, entity: str, operation: str, record_id: int) -> None:
        event = CatalogEvent(table_id, entity, operation, record_id)
        for subscription in list(self.subscriptions):
            if subscription.table_id == table_id:
                await dispatch(subscription.callback, event)

    async def create_table(self, table: TableDefinition) -> TableDefinition:
        for other in self.tables.values():
            if other.name.lower() == table.name.lower():
                raise ValidationError("A record with this name already exists")
        stored = table.replace(id=self._id())
        self.tables[stored.id] = stored
        await self._emit(stored.id, "custom_tables", "INSERT", stored.id)
        return stored.replace()

    async def get_table(self, table_id: int) -> Optional[TableDefinition]:
        table = self.tables.get(table_id)
        return table.replace() if table else None

    async def list_tables(self) -> List[TableDefinition]:
        return [t.replace() for t in sorted(self.tables.values(), key=lambda t: -t.id)]

    async def update_table(self, table: TableDefinition) -> TableDefinition:
        stored = self.tables[table.id]
        self.tables[table.id] = stored.replace(name=table.name, description=table.description)
        await self._emit(table.id, "custom_tables", "UPDATE", table.id)
        return table

    async def set_physical_name(self, table_id: int, physical_name: Optional[str]) -> None:
        if self.ignore_physical_name_writes:
            return
        self.tables[table_id] = self.tables[table_id].replace(physical_name=physical_name)
        await self._emit(table_id, "custom_tables", "UPDATE", table_id)

    async def delete_tables(self, table_ids: Iterable[int]) -> int:
        deleted = 0
        for table_id in table_ids:
            if self.tables.pop(table_id, None) is not None:
                deleted += 1
                for column_id in [c.id for c in self.columns.values() if c.table_id == table_id]:
                    del self.columns[column_id]
        return deleted

    async def insert_column(self, column: ColumnDefinition) -> ColumnDefinition:
        if self.fail_column_writes:
            raise ValidationError("Column write rejected")
        stored = column.replace(id=self._id())
        self.columns[stored.id] = stored
        await self._emit(stored.table_id, "custom_columns", "INSERT", stored.id)
        return stored.replace()

    async def get_column(self, column_id: int) -> Optional[ColumnDefinition]:
        column = self.columns.get(column_id)
        return column.replace() if column else None

    async def list_columns(self, table_id: int) -> List[ColumnDefinition]:
        return [c.replace() for c in self.columns.values() if c.table_id == table_id]

    async def update_column(self, column: ColumnDefinition) -> ColumnDefinition:
        if self.fail_column_writes:
            raise ValidationError("Column write rejected")
        self.columns[column.id] = column.replace()
        await self._emit(column.table_id, "custom_columns", "UPDATE", column.id)
        return column

    async def delete_column(self, column_id: int) -> bool:
        column = self.columns.pop(column_id, None)
        if column is None:
            return False
        await self._emit(column.table_id, "custom_columns", "DELETE", column_id)
        return True

    async def subscribe(self, table_id: int, callback) -> Subscription:
        subscription = InMemorySubscription(self, table_id, callback)
        self.subscriptions.append(subscription)
        return subscription


# ============================================================================
# Recording data store with a minimal physical schema model
# ============================================================================

_CREATE_COLUMN = re.compile(r'^"?(\w+)"?\s+(.+?)(?:\s+PRIMARY KEY|\s+DEFAULT|\s+NOT NULL|$)')
_ADD_COLUMN = re.compile(r'ADD COLUMN IF NOT EXISTS "(\w+)" (.+?)(?: DEFAULT| NOT NULL|$)')
_DROP_COLUMN = re.compile(r'DROP COLUMN IF EXISTS "(\w+)"')
_RENAME = re.compile(r'RENAME COLUMN "(\w+)" TO "(\w+)"')
_RETYPE = re.compile(r'ALTER COLUMN "(\w+)" TYPE (.+?) USING')


class RecordingDataStore(DataStore):
    """Records executed SQL and tracks physical column names and types.

    Any statement whose SQL contains one of ``fail_on`` is rejected.
    DDL and existence checks yield to the event loop like a real round trip.
    """

    def __init__(self):
        self.executed: List[str] = []
        self.fail_on: List[str] = []
        self.physical: Dict[str, Dict[str, str]] = {}
        self.rows: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_insert_after: Optional[int] = None
        self.inserts = 0

    @property
    def ddl_count(self) -> int:
        return len(self.executed)

    async def execute_ddl(self, statement: DDLStatement) -> DDLStatement:
        await asyncio.sleep(0)
        if any(fragment in statement.sql for fragment in self.fail_on):
            statement.executed = False
            statement.error = "rejected"
            raise ExecutionError(
                f"Store rejected {statement.kind.value} on {statement.table}: rejected",
                {"sql": statement.sql},
            )
        self.executed.append(statement.sql)
        self._apply(statement)
        statement.executed = True
        statement.execution_time_ms = 0.1
        return statement

    def _apply(self, statement: DDLStatement) -> None:
        sql = statement.sql
        table = statement.table
        if sql.startswith("CREATE TABLE"):
            columns = self.physical.setdefault(table, {})
            for rendered in statement.columns:
                match = _CREATE_COLUMN.match(rendered)
                columns[match.group(1)] = match.group(2)
            self.rows.setdefault(table, [])
        elif sql.startswith("DROP TABLE"):
            self.physical.pop(table, None)
            self.rows.pop(table, None)
        elif _ADD_COLUMN.search(sql):
            name, store_type = _ADD_COLUMN.search(sql).groups()
            self.physical[table][name] = store_type
        elif _DROP_COLUMN.search(sql):
            self.physical[table].pop(_DROP_COLUMN.search(sql).group(1), None)
        elif _RENAME.search(sql):
            old, new = _RENAME.search(sql).groups()
            self.physical[table][new] = self.physical[table].pop(old)
        elif _RETYPE.search(sql):
            name, store_type = _RETYPE.search(sql).groups()
            self.physical[table][name] = store_type

    async def table_exists(self, table: str) -> bool:
        await asyncio.sleep(0)
        return table in self.physical

    async def insert_empty_row(self, table: str) -> Any:
        if self.fail_insert_after is not None and self.inserts >= self.fail_insert_after:
            raise ExecutionError(f"Store rejected insert row on {table}: disk full")
        self.inserts += 1
        row = {"id": uuid.uuid4()}
        self.rows.setdefault(table, []).append(row)
        return row["id"]

    async def update_cell(self, table: str, row_id: Any, column: str, value: Any) -> None:
        for row in self.rows.get(table, []):
            if row["id"] == row_id:
                row[column] = value

    async def delete_row(self, table: str, row_id: Any) -> bool:
        rows = self.rows.get(table, [])
        remaining = [row for row in rows if row["id"] != row_id]
        self.rows[table] = remaining
        return len(remaining) != len(rows)

    async def fetch_rows(self, table: str, limit: int = 100) -> List[Dict[str, Any]]:
        return [dict(row) for row in reversed(self.rows.get(table, []))][:limit]


def snapshot_transaction(catalog: InMemoryCatalogStore, store: RecordingDataStore):
    """Transaction factory that restores both fakes when the block raises."""

    @asynccontextmanager
    async def transaction():
        saved = (
            copy.deepcopy(catalog.tables),
            copy.deepcopy(catalog.columns),
            copy.deepcopy(store.physical),
        )
        try:
            yield
        except BaseException:
            catalog.tables, catalog.columns, store.physical = saved
            raise

    return transaction


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def catalog() -> InMemoryCatalogStore:
    """Empty in-memory catalog."""
    return InMemoryCatalogStore()


@pytest.fixture
def store() -> RecordingDataStore:
    """Empty recording data store."""
    return RecordingDataStore()


@pytest.fixture
def deployer(catalog, store) -> TableDeployer:
    """Deployer without a transaction scope (compensate mode)."""
    return TableDeployer(catalog, store)


@pytest.fixture
def make_table(catalog):
    """Factory that stores a table definition with the given columns."""

    async def _make(
        name: str = "contacts",
        columns: Iterable[ColumnDefinition] = (),
        created_by: str = "user1",
        physical_name: Optional[str] = None,
        initial_row_count: int = 0,
    ) -> TableDefinition:
        table = await catalog.create_table(TableDefinition(
            name=name, created_by=created_by, initial_row_count=initial_row_count
        ))
        for column in columns:
            await catalog.insert_column(column.replace(table_id=table.id))
        if physical_name:
            await catalog.set_physical_name(table.id, physical_name)
        return await catalog.get_table(table.id)

    return _make


@pytest.fixture
def make_deployed(deployer, make_table):
    """Factory that creates and deploys a table through the deployer."""

    async def _make(name: str = "contacts", columns: Iterable[ColumnDefinition] = ()) -> TableDefinition:
        table = await make_table(name, columns)
        result = await deployer.deploy_table(table.id)
        return result.table

    return _make


@pytest.fixture
def sample_config_data() -> Dict[str, Any]:
    """Configuration as it would appear in YAML."""
    return {
        "service_name": "tablewright-test",
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "tablewright_test",
            "user": "postgres",
            "password": "secret",
        },
        "catalog": {"schema_name": "tablewright"},
        "deployment": {"consistency_mode": "compensate", "reload_notify_channel": "pgrst"},
        "logging": {"level": "DEBUG"},
    }


@pytest.fixture
def temp_config_file(tmp_path, sample_config_data) -> str:
    """Configuration written to a temporary YAML file."""
    path = tmp_path / "tablewright.yaml"
    path.write_text(yaml.dump(sample_config_data))
    return str(path)


@pytest.fixture
def sample_config(sample_config_data) -> TablewrightConfig:
    """Parsed sample configuration."""
    return TablewrightConfig(**sample_config_data)


@pytest.fixture
def deployment_config() -> DeploymentConfig:
    """Default deployment configuration."""
    return DeploymentConfig()
