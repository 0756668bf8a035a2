"""
Catalog data model: table and column definitions.
"""

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from .types import ColumnType, DefaultValue


class DeploymentState(str, Enum):
    """Lifecycle state of a table definition."""

    DRAFT = "draft"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    DEPLOY_FAILED = "deploy_failed"


@dataclass
class ColumnDefinition:
    """One user-defined column of a logical table.

    ``type`` may be given as a tag string and ``default_value`` as raw text;
    both are normalised on construction.
    """

    name: str
    type: Union[ColumnType, str] = ColumnType.TEXT
    required: bool = False
    default_value: Union[DefaultValue, str, None] = None
    id: Optional[int] = None
    table_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.type = ColumnType.parse(self.type)
        if isinstance(self.default_value, DefaultValue):
            if self.default_value.column_type != self.type:
                self.default_value = self.default_value.retag(self.type)
        else:
            self.default_value = DefaultValue.from_raw(self.type, self.default_value)

    @property
    def default_text(self) -> Optional[str]:
        """Raw default text, or None when the column has no default."""
        return self.default_value.text if self.default_value else None

    def replace(self, **changes: Any) -> "ColumnDefinition":
        """Copy of this column with some fields changed."""
        return dataclasses.replace(self, **changes)


@dataclass
class TableDefinition:
    """A logical table and its binding to a physical table."""

    name: str
    created_by: str
    description: Optional[str] = None
    physical_name: Optional[str] = None
    initial_row_count: int = 0
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_deployed(self) -> bool:
        """Check if this table is bound to a physical table."""
        return bool(self.physical_name)

    @property
    def state(self) -> DeploymentState:
        """Persisted state; transient states are tracked by the deployer."""
        return DeploymentState.DEPLOYED if self.is_deployed else DeploymentState.DRAFT

    def replace(self, **changes: Any) -> "TableDefinition":
        """Copy of this table with some fields changed."""
        return dataclasses.replace(self, **changes)
