"""
Typed-result facade over the table deployer.

Every operation returns an OperationResult instead of raising, so callers
can branch on the error kind without exception handling.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from .exceptions import TablewrightError
from .orchestrator import DeploymentResult, MutationResult, TableDeployer
from .schema.drift import DriftDetector, DriftReport
from .schema.models import ColumnDefinition, TableDefinition


logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationStatus(str, Enum):
    """Outcome of a service operation."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class OperationResult(Generic[T]):
    """Result of a service operation."""

    operation: str
    status: OperationStatus
    value: Optional[T] = None
    error: Optional[TablewrightError] = None
    execution_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """Check if the operation succeeded."""
        return self.status == OperationStatus.SUCCESS

    @property
    def error_kind(self) -> Optional[str]:
        """Error kind such as 'validation' or 'execution'."""
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        """Human readable error message."""
        return self.error.message if self.error else None

    def unwrap(self) -> T:
        """Return the value or re-raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value


class TableService:
    """Exposes the deployer operations with typed results."""

    def __init__(self, deployer: TableDeployer, drift_detector: Optional[DriftDetector] = None):
        self.deployer = deployer
        self.drift_detector = drift_detector

    async def _run(
        self, operation: str, call: Callable[[], Awaitable[T]]
    ) -> OperationResult[T]:
        start_time = time.time()
        try:
            value = await call()
        except TablewrightError as e:
            logger.warning(f"{operation} failed ({e.kind}): {e}")
            return OperationResult(
                operation=operation,
                status=OperationStatus.FAILED,
                error=e,
                execution_time_ms=(time.time() - start_time) * 1000,
            )
        return OperationResult(
            operation=operation,
            status=OperationStatus.SUCCESS,
            value=value,
            execution_time_ms=(time.time() - start_time) * 1000,
        )

    async def create_table_draft(
        self,
        name: str,
        created_by: str,
        description: Optional[str] = None,
        initial_column_count: int = 0,
        initial_row_count: int = 0,
    ) -> OperationResult[TableDefinition]:
        return await self._run(
            "create_table_draft",
            lambda: self.deployer.create_table_draft(
                name,
                created_by,
                description=description,
                initial_column_count=initial_column_count,
                initial_row_count=initial_row_count,
            ),
        )

    async def update_table(
        self, table_id: int, name: Optional[str] = None, description: Optional[str] = None
    ) -> OperationResult[TableDefinition]:
        return await self._run(
            "update_table",
            lambda: self.deployer.update_table(table_id, name=name, description=description),
        )

    async def delete_tables(self, table_ids: Iterable[int]) -> OperationResult[int]:
        ids = list(table_ids)
        return await self._run("delete_tables", lambda: self.deployer.delete_tables(ids))

    async def add_column(
        self,
        table_id: int,
        name: str,
        type: Any = "text",
        required: bool = False,
        default_value: Optional[str] = None,
    ) -> OperationResult[MutationResult]:
        async def call() -> MutationResult:
            # An unknown type tag fails here with ValidationError
            column = ColumnDefinition(
                name=name, type=type, required=required, default_value=default_value
            )
            return await self.deployer.add_column(table_id, column)

        return await self._run("add_column", call)

    async def update_column(
        self, table_id: int, column_id: int, edited: ColumnDefinition
    ) -> OperationResult[MutationResult]:
        return await self._run(
            "update_column", lambda: self.deployer.update_column(table_id, column_id, edited)
        )

    async def delete_column(self, table_id: int, column_id: int) -> OperationResult[MutationResult]:
        return await self._run(
            "delete_column", lambda: self.deployer.delete_column(table_id, column_id)
        )

    async def duplicate_column(
        self, table_id: int, column_id: int
    ) -> OperationResult[MutationResult]:
        return await self._run(
            "duplicate_column", lambda: self.deployer.duplicate_column(table_id, column_id)
        )

    async def deploy_table(self, table_id: int) -> OperationResult[DeploymentResult]:
        return await self._run("deploy_table", lambda: self.deployer.deploy_table(table_id))

    async def check_drift(self, table_id: int) -> OperationResult[DriftReport]:
        """Compare a deployed table with its catalog definition."""
        if self.drift_detector is None:
            return OperationResult(
                operation="check_drift",
                status=OperationStatus.FAILED,
                error=TablewrightError("Drift detection is not configured"),
            )
        return await self._run("check_drift", lambda: self.drift_detector.check_table(table_id))
