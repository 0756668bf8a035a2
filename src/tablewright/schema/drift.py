"""
Drift detection between catalog columns and the deployed physical table.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .identifiers import sanitize
from .synthesizer import IMPLICIT_COLUMNS
from .types import map_type
from ..catalog.base import CatalogStore
from ..database.introspection import SchemaIntrospector
from ..exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


class DriftType(str, Enum):
    """Ways the catalog and the physical table can disagree."""

    MISSING_IN_STORE = "missing_in_store"
    MISSING_IN_CATALOG = "missing_in_catalog"
    TYPE_MISMATCH = "type_mismatch"
    NULLABILITY_MISMATCH = "nullability_mismatch"


@dataclass
class DriftItem:
    """A single disagreement for one column."""

    column: str
    drift_type: DriftType
    expected: Optional[str] = None
    actual: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.column}: {self.drift_type.value} (expected={self.expected}, actual={self.actual})"


@dataclass
class DriftReport:
    """Result of comparing one table."""

    table_id: int
    physical_name: str
    items: List[DriftItem] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        """Check if catalog and store disagree."""
        return bool(self.items)

    def of_type(self, drift_type: DriftType) -> List[DriftItem]:
        """Items of one drift type."""
        return [item for item in self.items if item.drift_type == drift_type]


class DriftDetector:
    """Compares catalog definitions with information_schema."""

    def __init__(self, catalog: CatalogStore, introspector: SchemaIntrospector, schema: str = "public"):
        self.catalog = catalog
        self.introspector = introspector
        self.schema = schema

    async def check_table(self, table_id: int) -> DriftReport:
        """Compare one deployed table with its catalog definition."""
        table = await self.catalog.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        if not table.is_deployed:
            raise ValidationError(f"Table {table.name} is not deployed")

        columns = await self.catalog.list_columns(table_id)
        physical = await self.introspector.get_columns(self.schema, table.physical_name)
        report = DriftReport(table_id=table_id, physical_name=table.physical_name)

        expected_names = set()
        for column in columns:
            name = sanitize(column.name)
            expected_names.add(name)
            info = physical.get(name)
            expected_type = map_type(column.type).value

            if info is None:
                report.items.append(DriftItem(name, DriftType.MISSING_IN_STORE, expected=expected_type))
                continue

            if info.normalized_type != expected_type:
                report.items.append(DriftItem(
                    name, DriftType.TYPE_MISMATCH, expected=expected_type, actual=info.normalized_type
                ))

            if column.required == info.is_nullable:
                report.items.append(DriftItem(
                    name,
                    DriftType.NULLABILITY_MISMATCH,
                    expected="NOT NULL" if column.required else "NULL",
                    actual="NULL" if info.is_nullable else "NOT NULL",
                ))

        for name, info in physical.items():
            if name in expected_names or name in IMPLICIT_COLUMNS:
                continue
            report.items.append(DriftItem(name, DriftType.MISSING_IN_CATALOG, actual=info.normalized_type))

        if report.has_drift:
            logger.warning(
                f"Drift detected for table {table.name} ({table.physical_name}): "
                f"{len(report.items)} item(s)"
            )
        return report
