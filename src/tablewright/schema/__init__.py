"""
Schema management package for tablewright.

This package provides:
- Identifier sanitation and validation
- Column type mapping and typed defaults
- Table and column definitions
- Change detection between column definitions
- DDL synthesis with rollback statements

Collision and drift detection live in ``collision_detector`` and ``drift``;
they depend on the catalog and store interfaces and are imported directly.
"""

from .identifiers import sanitize, validate_identifier, physical_table_name
from .types import ColumnType, StoreType, DefaultValue, map_type
from .models import ColumnDefinition, TableDefinition, DeploymentState
from .differ import (
    ChangeOp,
    ChangeType,
    Added,
    Dropped,
    Renamed,
    Retyped,
    RequiredChanged,
    DefaultChanged,
    diff,
)
from .synthesizer import DDLSynthesizer, DDLStatement, StatementKind

__all__ = [
    "sanitize",
    "validate_identifier",
    "physical_table_name",
    "ColumnType",
    "StoreType",
    "DefaultValue",
    "map_type",
    "ColumnDefinition",
    "TableDefinition",
    "DeploymentState",
    "ChangeOp",
    "ChangeType",
    "Added",
    "Dropped",
    "Renamed",
    "Retyped",
    "RequiredChanged",
    "DefaultChanged",
    "diff",
    "DDLSynthesizer",
    "DDLStatement",
    "StatementKind",
]
