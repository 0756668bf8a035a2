"""
Structured data store interface.

The data store holds the physical tables that deployed definitions are
bound to.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..schema.synthesizer import DDLStatement


class DataStore(ABC):
    """DDL execution plus generic row CRUD on physical tables."""

    @abstractmethod
    async def execute_ddl(self, statement: DDLStatement) -> DDLStatement:
        """
        Execute one DDL statement.

        Marks the statement as executed on success. Raises ExecutionError
        (with the statement's ``error`` set) when the store rejects it.
        """
        pass

    @abstractmethod
    async def table_exists(self, table: str) -> bool:
        """Check if a physical table exists."""
        pass

    @abstractmethod
    async def insert_empty_row(self, table: str) -> Optional[Any]:
        """Insert a row with all defaults and return its id."""
        pass

    @abstractmethod
    async def update_cell(self, table: str, row_id: Any, column: str, value: Any) -> None:
        """Set one column of one row."""
        pass

    @abstractmethod
    async def delete_row(self, table: str, row_id: Any) -> bool:
        """Delete a row; return whether it existed."""
        pass

    @abstractmethod
    async def fetch_rows(self, table: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Fetch up to ``limit`` rows, newest first."""
        pass
