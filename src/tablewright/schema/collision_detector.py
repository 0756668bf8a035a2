"""
Collision detection for physical table and column names.

Sanitation is lossy: two different names can end up as the same physical
identifier. This module finds those cases before any DDL runs.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .identifiers import find_sanitized_collisions, sanitize
from .models import ColumnDefinition, TableDefinition
from ..catalog.base import CatalogStore
from ..store.base import DataStore


logger = logging.getLogger(__name__)


class CollisionSeverity(str, Enum):
    """Severity levels for name collisions."""

    SAFE = "safe"            # No collision
    WARNING = "warning"      # Physical table exists but nothing in the catalog owns it
    CRITICAL = "critical"    # Another definition already owns the name

    def __lt__(self, other):
        """Enable comparison of severity levels."""
        if self.__class__ is other.__class__:
            return self.order_value < other.order_value
        return NotImplemented

    @property
    def order_value(self) -> int:
        """Get numeric order value for comparison."""
        order = {"safe": 1, "warning": 2, "critical": 3}
        return order[self.value]


class CollisionType(str, Enum):
    """Types of name collisions."""

    NO_COLLISION = "no_collision"
    BOUND_TO_OTHER_TABLE = "bound_to_other_table"   # another definition is deployed there
    UNMANAGED_TABLE = "unmanaged_table"             # table exists without a catalog binding
    SANITIZED_NAME = "sanitized_name"               # names coincide after sanitation


@dataclass
class CollisionInfo:
    """Information about a name collision."""

    name: str
    collision_type: CollisionType
    severity: CollisionSeverity
    details: str
    conflicting: List[str] = field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        """Check if this collision must block the operation."""
        return self.severity == CollisionSeverity.CRITICAL

    @property
    def is_safe(self) -> bool:
        """Check if there is no collision."""
        return self.severity == CollisionSeverity.SAFE


class PhysicalNameCollisionDetector:
    """Detects collisions between physical names."""

    def __init__(self, catalog: CatalogStore, store: Optional[DataStore] = None):
        self.catalog = catalog
        self.store = store

    async def detect_table_collision(
        self, table: TableDefinition, physical_name: str
    ) -> CollisionInfo:
        """
        Check whether ``physical_name`` is free for ``table``.

        Args:
            table: Definition about to be deployed
            physical_name: Physical name it would bind to

        Returns:
            CollisionInfo; critical when another definition owns the name
        """
        wanted = physical_name.lower()
        owners = [
            other.name
            for other in await self.catalog.list_tables()
            if other.id != table.id
            and other.physical_name
            and other.physical_name.lower() == wanted
        ]
        if owners:
            return CollisionInfo(
                name=physical_name,
                collision_type=CollisionType.BOUND_TO_OTHER_TABLE,
                severity=CollisionSeverity.CRITICAL,
                details=f"Physical table {physical_name} is already bound to {', '.join(owners)}",
                conflicting=owners,
            )

        if self.store is not None and await self.store.table_exists(physical_name):
            return CollisionInfo(
                name=physical_name,
                collision_type=CollisionType.UNMANAGED_TABLE,
                severity=CollisionSeverity.WARNING,
                details=(
                    f"Physical table {physical_name} already exists without a catalog "
                    f"binding and will be adopted as-is"
                ),
            )

        return CollisionInfo(
            name=physical_name,
            collision_type=CollisionType.NO_COLLISION,
            severity=CollisionSeverity.SAFE,
            details="No collision",
        )

    def detect_column_collisions(
        self, columns: Sequence[ColumnDefinition]
    ) -> List[CollisionInfo]:
        """Report column names that map to the same physical column."""
        collisions = []
        for key, members in find_sanitized_collisions(c.name for c in columns).items():
            collisions.append(CollisionInfo(
                name=key,
                collision_type=CollisionType.SANITIZED_NAME,
                severity=CollisionSeverity.CRITICAL,
                details=f"Columns {', '.join(members)} all map to physical column {sanitize(members[0])}",
                conflicting=members,
            ))
        return collisions
