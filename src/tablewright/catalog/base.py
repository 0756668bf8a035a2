"""
Catalog store interface.

The catalog holds table and column definitions independently of the
physical schema of deployed tables.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Union

from ..schema.models import ColumnDefinition, TableDefinition


@dataclass
class CatalogEvent:
    """A change notification for one table's catalog records."""

    table_id: int
    entity: str
    operation: str
    record_id: Optional[int] = None


CatalogCallback = Callable[[CatalogEvent], Union[None, Awaitable[None]]]


class Subscription(ABC):
    """Handle for an active change subscription."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving notifications."""
        pass


class CatalogStore(ABC):
    """Keyed CRUD over table and column definitions."""

    @abstractmethod
    async def create_table(self, table: TableDefinition) -> TableDefinition:
        """Insert a table definition and return it with id and created_at set."""
        pass

    @abstractmethod
    async def get_table(self, table_id: int) -> Optional[TableDefinition]:
        """Fetch a table definition by id."""
        pass

    @abstractmethod
    async def list_tables(self) -> List[TableDefinition]:
        """List all table definitions, newest first."""
        pass

    @abstractmethod
    async def update_table(self, table: TableDefinition) -> TableDefinition:
        """Persist name and description of a table definition."""
        pass

    @abstractmethod
    async def set_physical_name(self, table_id: int, physical_name: Optional[str]) -> None:
        """Bind (or unbind) the physical table of a definition."""
        pass

    @abstractmethod
    async def delete_tables(self, table_ids: Iterable[int]) -> int:
        """Delete table definitions and their columns; return the count deleted."""
        pass

    @abstractmethod
    async def insert_column(self, column: ColumnDefinition) -> ColumnDefinition:
        """Insert a column definition and return it with id and created_at set."""
        pass

    @abstractmethod
    async def get_column(self, column_id: int) -> Optional[ColumnDefinition]:
        """Fetch a column definition by id."""
        pass

    @abstractmethod
    async def list_columns(self, table_id: int) -> List[ColumnDefinition]:
        """List the columns of a table in creation order."""
        pass

    @abstractmethod
    async def update_column(self, column: ColumnDefinition) -> ColumnDefinition:
        """Persist name, type, required and default of a column definition."""
        pass

    @abstractmethod
    async def delete_column(self, column_id: int) -> bool:
        """Delete a column definition; return whether it existed."""
        pass

    @abstractmethod
    async def subscribe(self, table_id: int, callback: CatalogCallback) -> Subscription:
        """Call ``callback`` for every catalog change affecting ``table_id``."""
        pass


async def dispatch(callback: CatalogCallback, event: CatalogEvent) -> Any:
    """Invoke a callback that may or may not be a coroutine function."""
    result = callback(event)
    if hasattr(result, "__await__"):
        return await result
    return result
