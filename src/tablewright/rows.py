"""
Row data operations on deployed tables.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .catalog.base import CatalogStore
from .exceptions import NotFoundError, ValidationError
from .schema.identifiers import sanitize
from .schema.models import ColumnDefinition, TableDefinition
from .schema.types import ColumnType, parse_text
from .store.base import DataStore


logger = logging.getLogger(__name__)


_TEXT_TYPES = (ColumnType.TEXT, ColumnType.EMAIL, ColumnType.URL, ColumnType.PHONE)


class TableRows:
    """Reads and edits the rows of a deployed table."""

    def __init__(self, catalog: CatalogStore, store: DataStore):
        self.catalog = catalog
        self.store = store

    async def fetch_rows(self, table_id: int, limit: int = 100) -> List[Dict[str, Any]]:
        """Fetch up to ``limit`` rows, newest first."""
        table = await self._require_deployed(table_id)
        return await self.store.fetch_rows(table.physical_name, limit=limit)

    async def add_row(self, table_id: int) -> Any:
        """Insert a blank row and return its id."""
        table = await self._require_deployed(table_id)
        row_id = await self.store.insert_empty_row(table.physical_name)
        logger.info(f"Added row {row_id} to {table.physical_name}")
        return row_id

    async def update_cell(self, table_id: int, row_id: Any, column_name: str, value: Any) -> Any:
        """
        Set one cell.

        String input is converted for the column type; JSON columns accept
        either a JSON string or an already parsed value.

        Returns:
            The value written to the store
        """
        table = await self._require_deployed(table_id)
        column = await self._require_column(table, column_name)
        converted = self._convert(column, value)
        await self.store.update_cell(table.physical_name, row_id, sanitize(column.name), converted)
        logger.debug(f"Updated {table.physical_name}.{column.name} of row {row_id}")
        return converted

    async def delete_row(self, table_id: int, row_id: Any) -> bool:
        """Delete one row; return whether it existed."""
        table = await self._require_deployed(table_id)
        deleted = await self.store.delete_row(table.physical_name, row_id)
        if deleted:
            logger.info(f"Deleted row {row_id} from {table.physical_name}")
        return deleted

    @staticmethod
    def _convert(column: ColumnDefinition, value: Any) -> Optional[Any]:
        if not isinstance(value, str):
            if column.type == ColumnType.JSON and value is not None:
                return json.dumps(value)
            return value

        if column.type in _TEXT_TYPES:
            return value
        if not value.strip():
            return None

        parsed = parse_text(column.type, value)
        if column.type == ColumnType.JSON:
            # asyncpg expects json columns as text
            return json.dumps(parsed)
        return parsed

    async def _require_deployed(self, table_id: int) -> TableDefinition:
        table = await self.catalog.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        if not table.is_deployed:
            raise ValidationError(f"Table {table.name} is not deployed")
        return table

    async def _require_column(self, table: TableDefinition, column_name: str) -> ColumnDefinition:
        for column in await self.catalog.list_columns(table.id):
            if column.name.lower() == column_name.lower():
                return column
        raise NotFoundError("Column", column_name)
