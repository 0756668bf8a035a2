"""
Deployment and schema mutation orchestration for tablewright.

Sequences catalog writes, DDL execution and post-write verification for the
initial deployment of a table and for every later column change, and owns
the Draft -> Deploying -> Deployed state machine.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Union,
)

from .catalog.base import CatalogStore
from .config import ConsistencyMode, DeploymentConfig
from .exceptions import (
    ConfigurationError,
    ConsistencyError,
    ExecutionError,
    NotFoundError,
    TablewrightError,
    ValidationError,
)
from .schema import differ
from .schema.collision_detector import CollisionInfo, CollisionSeverity, PhysicalNameCollisionDetector
from .schema.identifiers import physical_table_name, sanitize, validate_identifier
from .schema.models import ColumnDefinition, DeploymentState, TableDefinition
from .schema.synthesizer import IMPLICIT_COLUMNS, DDLStatement, DDLSynthesizer
from .schema.types import ColumnType
from .store.base import DataStore


logger = logging.getLogger(__name__)


TransactionFactory = Callable[[], AsyncContextManager[Any]]


@dataclass
class DeploymentResult:
    """Result of deploying a table."""

    table: TableDefinition
    statement: DDLStatement
    rows_seeded: int = 0
    dry_run: bool = False
    collision: Optional[CollisionInfo] = None

    @property
    def physical_name(self) -> Optional[str]:
        """Physical table the definition is bound to."""
        return self.table.physical_name if not self.dry_run else self.statement.table


@dataclass
class MutationResult:
    """Result of a column mutation."""

    column: Optional[ColumnDefinition]
    ops: List[differ.ChangeOp] = field(default_factory=list)
    statements: List[DDLStatement] = field(default_factory=list)
    dry_run: bool = False

    @property
    def executed_statements(self) -> List[DDLStatement]:
        """Statements that ran against the data store."""
        return [s for s in self.statements if s.executed]

    @property
    def changed(self) -> bool:
        """Check if the mutation changed anything."""
        return bool(self.ops)


class TableDeployer:
    """
    Orchestrates table deployment and column mutations.

    Every operation validates its input before touching either store. After
    validation, the catalog write comes first and DDL follows only when the
    table is bound to a physical table. How failures between the two writes
    are handled depends on the consistency mode:

    - transactional: both writes run inside ``transaction()``, so a failure
      rolls back the catalog write together with the DDL
    - compensate: applied statements are undone with their rollback SQL and
      the catalog write is reverted before the error is raised
    - best_effort: nothing is undone; the raised ExecutionError carries
      ``divergent=True``
    """

    def __init__(
        self,
        catalog: CatalogStore,
        store: DataStore,
        config: Optional[DeploymentConfig] = None,
        transaction: Optional[TransactionFactory] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.config = config or DeploymentConfig()
        self.transaction = transaction

        mode = self.config.consistency_mode
        if mode is None:
            mode = ConsistencyMode.TRANSACTIONAL if transaction else ConsistencyMode.COMPENSATE
        if mode == ConsistencyMode.TRANSACTIONAL and transaction is None:
            raise ConfigurationError("Transactional consistency requires a transaction scope")
        self.consistency_mode = mode

        self.synthesizer = DDLSynthesizer(self.config.data_schema)
        self.collision_detector = PhysicalNameCollisionDetector(catalog, store)

        # Transient deployment states, keyed by table id
        self._states: Dict[int, DeploymentState] = {}
        self._state_lock = asyncio.Lock()

    # Table definitions

    async def create_table_draft(
        self,
        name: str,
        created_by: str,
        description: Optional[str] = None,
        initial_column_count: int = 0,
        initial_row_count: int = 0,
    ) -> TableDefinition:
        """
        Create a table definition in Draft state.

        Args:
            name: Logical table name
            created_by: Owner id, part of the physical name
            description: Optional description
            initial_column_count: Number of ``column_N`` text columns to create
            initial_row_count: Blank rows to seed on deployment

        Returns:
            The stored table definition
        """
        name = validate_identifier(name, "Table name")
        if initial_column_count < 0 or initial_row_count < 0:
            raise ValidationError("Initial column and row counts must not be negative")
        if initial_row_count > self.config.max_initial_rows:
            raise ValidationError(
                f"Initial row count {initial_row_count} exceeds the limit of "
                f"{self.config.max_initial_rows}"
            )
        await self._ensure_unique_table_name(name)

        draft = TableDefinition(
            name=name,
            created_by=str(created_by),
            description=(description or "").strip() or None,
            initial_row_count=initial_row_count,
        )

        async with self._scope():
            table = await self.catalog.create_table(draft)
            for i in range(1, initial_column_count + 1):
                await self.catalog.insert_column(ColumnDefinition(
                    name=f"column_{i}",
                    type=ColumnType.TEXT,
                    table_id=table.id,
                ))

        logger.info(
            f"Created draft table {table.name} (id={table.id}) with "
            f"{initial_column_count} column(s)"
        )
        return table

    async def update_table(
        self,
        table_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TableDefinition:
        """Rename a table definition or change its description.

        The physical table of a deployed definition keeps its name.
        """
        table = await self._require_table(table_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = validate_identifier(name, "Table name")
            await self._ensure_unique_table_name(changes["name"], exclude_id=table_id)
        if description is not None:
            changes["description"] = description.strip() or None

        if not changes:
            return table

        updated = await self.catalog.update_table(table.replace(**changes))
        logger.info(f"Updated table {updated.name} (id={table_id})")
        return updated

    async def delete_tables(self, table_ids: Iterable[int]) -> int:
        """Delete table definitions. Physical tables are never dropped."""
        ids = list(table_ids)
        for table_id in ids:
            table = await self.catalog.get_table(table_id)
            if table is not None and table.is_deployed:
                logger.warning(
                    f"Deleting definition of {table.name}; physical table "
                    f"{table.physical_name} is kept"
                )
            self._states.pop(table_id, None)

        deleted = await self.catalog.delete_tables(ids)
        logger.info(f"Deleted {deleted} table definition(s)")
        return deleted

    async def get_table(self, table_id: int) -> TableDefinition:
        """Fetch a table definition, raising NotFoundError if absent."""
        return await self._require_table(table_id)

    async def list_tables(
        self, status: Union[DeploymentState, str, None] = None
    ) -> List[TableDefinition]:
        """List table definitions, optionally only deployed or draft ones."""
        tables = await self.catalog.list_tables()
        if status in (None, "all"):
            return tables
        wanted = DeploymentState(status)
        return [t for t in tables if t.state == wanted]

    async def table_stats(self) -> Dict[str, int]:
        """Count tables by state."""
        tables = await self.catalog.list_tables()
        deployed = sum(1 for t in tables if t.is_deployed)
        return {"total": len(tables), "deployed": deployed, "draft": len(tables) - deployed}

    async def list_columns(self, table_id: int) -> List[ColumnDefinition]:
        """List the columns of an existing table."""
        await self._require_table(table_id)
        return await self.catalog.list_columns(table_id)

    async def deployment_state(self, table_id: int) -> DeploymentState:
        """Current state, including transient deploying/failed states."""
        table = await self._require_table(table_id)
        if table.is_deployed:
            return DeploymentState.DEPLOYED
        return self._states.get(table_id, DeploymentState.DRAFT)

    # Deployment

    async def deploy_table(self, table_id: int) -> DeploymentResult:
        """
        Deploy a draft table.

        Creates the physical table from the current column list, binds its
        name in the catalog, verifies the binding by re-reading the catalog
        and finally seeds the configured number of blank rows.

        Raises:
            NotFoundError: Table does not exist
            ValidationError: Already deployed, deploy in progress, no columns,
                or name collisions
            ExecutionError: The store rejected the CREATE TABLE or a seed row
            ConsistencyError: The physical name did not persist in the catalog
        """
        table = await self._require_table(table_id)

        if table.is_deployed:
            raise ValidationError(
                f"Table {table.name} is already deployed",
                {"physical_name": table.physical_name},
            )
        if self._states.get(table_id) == DeploymentState.DEPLOYING:
            raise ValidationError(f"Deployment of table {table.name} is already in progress")

        columns = await self.catalog.list_columns(table_id)
        if not columns:
            raise ValidationError("Add at least one column before deploying")
        self._check_column_collisions(columns)
        for column in columns:
            _check_reserved(column)
            if column.default_value is not None:
                column.default_value.validate()

        physical_name = physical_table_name(table.name, table.created_by)
        collision = await self.collision_detector.detect_table_collision(table, physical_name)
        if collision.is_critical:
            raise ValidationError(collision.details, {"physical_name": physical_name})
        if collision.severity == CollisionSeverity.WARNING:
            logger.warning(collision.details)

        statement = self.synthesizer.create_table(physical_name, columns)

        if self.config.dry_run:
            logger.info(f"DRY RUN: Would deploy {table.name} as {physical_name}")
            logger.info(f"SQL: {statement.sql}")
            return DeploymentResult(table, statement, dry_run=True, collision=collision)

        async with self._state_lock:
            state = self._states.get(table_id)
            if state == DeploymentState.DEPLOYING:
                raise ValidationError(f"Deployment of table {table.name} is already in progress")
            # Another deploy may have finished while this one was validating
            current = await self.catalog.get_table(table_id)
            if state == DeploymentState.DEPLOYED or (current is not None and current.is_deployed):
                raise ValidationError(
                    f"Table {table.name} is already deployed",
                    {"physical_name": current.physical_name if current else physical_name},
                )
            self._states[table_id] = DeploymentState.DEPLOYING

        logger.info(f"Deploying table {table.name} (id={table_id}) as {physical_name}")
        try:
            async with self._scope():
                try:
                    await self.store.execute_ddl(statement)
                    await self.catalog.set_physical_name(table_id, physical_name)
                    deployed = await self._verify_binding(table_id, physical_name)
                except TablewrightError as e:
                    if statement.executed:
                        if self.consistency_mode == ConsistencyMode.COMPENSATE:
                            await self._compensate_deploy(table_id, statement, collision)
                        elif self.consistency_mode == ConsistencyMode.BEST_EFFORT:
                            e.details["divergent"] = True
                    raise
        except Exception:
            self._states[table_id] = DeploymentState.DEPLOY_FAILED
            logger.error(f"Deployment of table {table.name} failed")
            raise

        self._states[table_id] = DeploymentState.DEPLOYED
        rows_seeded = await self._seed_rows(physical_name, table.initial_row_count)

        logger.info(f"Deployed table {table.name} as {physical_name} ({rows_seeded} row(s) seeded)")
        return DeploymentResult(deployed, statement, rows_seeded=rows_seeded, collision=collision)

    async def _verify_binding(self, table_id: int, physical_name: str) -> TableDefinition:
        """Re-read the catalog to confirm the physical name was stored."""
        refreshed = await self.catalog.get_table(table_id)
        if refreshed is None or refreshed.physical_name != physical_name:
            raise ConsistencyError(
                "Physical table name not set after update; check catalog write permissions",
                {
                    "table_id": table_id,
                    "expected": physical_name,
                    "actual": refreshed.physical_name if refreshed else None,
                },
            )
        return refreshed

    async def _compensate_deploy(
        self, table_id: int, statement: DDLStatement, collision: CollisionInfo
    ) -> None:
        """Undo a half-finished deployment."""
        try:
            await self.catalog.set_physical_name(table_id, None)
        except TablewrightError as e:
            logger.error(f"Could not clear physical name of table {table_id}: {e}")

        # An adopted pre-existing table is never dropped
        if collision.is_safe:
            await self._rollback_statements([statement])

    async def _seed_rows(self, physical_name: str, count: int) -> int:
        """Insert ``count`` blank rows one at a time."""
        seeded = 0
        for _ in range(count):
            try:
                await self.store.insert_empty_row(physical_name)
            except ExecutionError as e:
                logger.error(
                    f"Seeding {physical_name} aborted after {seeded} of {count} row(s): {e}"
                )
                raise ExecutionError(
                    f"Seeding aborted after {seeded} of {count} row(s); "
                    f"table {physical_name} remains deployed",
                    {"physical_name": physical_name, "rows_seeded": seeded},
                    cause=e,
                ) from e
            seeded += 1
        return seeded

    # Column mutations

    async def add_column(self, table_id: int, column: ColumnDefinition) -> MutationResult:
        """Add a column; on a deployed table the physical column is added too."""
        table = await self._require_table(table_id)
        siblings = await self.catalog.list_columns(table_id)
        column = column.replace(
            id=None,
            table_id=table_id,
            created_at=None,
            name=validate_identifier(column.name, "Column name"),
        )
        self._validate_column(column, siblings)

        ops = differ.added(column)
        statements = self._statements_for(table, ops)

        if self.config.dry_run:
            return self._dry_run_result(table, column, ops, statements)

        saved = await self._apply(
            table,
            statements,
            write=lambda: self.catalog.insert_column(column),
            revert=lambda saved: self.catalog.delete_column(saved.id),
        )
        logger.info(f"Added column {saved.name} to table {table.name}")
        return MutationResult(saved, ops, statements)

    async def update_column(
        self, table_id: int, column_id: int, edited: ColumnDefinition
    ) -> MutationResult:
        """Apply an edited column definition.

        Only the fields that differ from the stored definition produce
        statements; an unchanged edit writes nothing.
        """
        table = await self._require_table(table_id)
        original = await self._require_column(table_id, column_id)
        siblings = await self.catalog.list_columns(table_id)

        edited = edited.replace(
            id=original.id,
            table_id=table_id,
            created_at=original.created_at,
            name=validate_identifier(edited.name, "Column name"),
        )
        self._validate_column(edited, siblings, exclude_id=original.id)

        ops = differ.diff(original, edited)
        if not ops:
            logger.debug(f"No changes for column {original.name} of table {table.name}")
            return MutationResult(original)

        statements = self._statements_for(table, ops, column_name=original.name)

        if self.config.dry_run:
            return self._dry_run_result(table, edited, ops, statements)

        saved = await self._apply(
            table,
            statements,
            write=lambda: self.catalog.update_column(edited),
            revert=lambda _: self.catalog.update_column(original),
        )
        logger.info(
            f"Updated column {original.name} of table {table.name}: "
            f"{', '.join(op.change_type.value for op in ops)}"
        )
        return MutationResult(saved, ops, statements)

    async def delete_column(self, table_id: int, column_id: int) -> MutationResult:
        """Delete a column; on a deployed table the physical column is dropped."""
        table = await self._require_table(table_id)
        original = await self._require_column(table_id, column_id)

        ops = differ.dropped(original)
        statements = self._statements_for(table, ops)

        if self.config.dry_run:
            return self._dry_run_result(table, original, ops, statements)

        await self._apply(
            table,
            statements,
            write=lambda: self.catalog.delete_column(original.id),
            revert=lambda _: self.catalog.insert_column(original.replace(id=None)),
        )
        logger.info(f"Deleted column {original.name} from table {table.name}")
        return MutationResult(original, ops, statements)

    async def duplicate_column(self, table_id: int, column_id: int) -> MutationResult:
        """Add a copy of a column named ``<name>_copy``."""
        original = await self._require_column(table_id, column_id)
        copy = original.replace(id=None, created_at=None, name=f"{original.name}_copy")
        return await self.add_column(table_id, copy)

    # Internals

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[None]:
        if self.consistency_mode == ConsistencyMode.TRANSACTIONAL:
            async with self.transaction():
                yield
        else:
            yield

    def _statements_for(
        self,
        table: TableDefinition,
        ops: List[differ.ChangeOp],
        column_name: Optional[str] = None,
    ) -> List[DDLStatement]:
        if not table.is_deployed:
            return []
        return self.synthesizer.alter_table(table.physical_name, ops, column_name=column_name)

    def _dry_run_result(
        self,
        table: TableDefinition,
        column: ColumnDefinition,
        ops: List[differ.ChangeOp],
        statements: List[DDLStatement],
    ) -> MutationResult:
        logger.info(f"DRY RUN: {len(ops)} change(s) to column {column.name} of {table.name}")
        for statement in statements:
            logger.info(f"SQL: {statement.sql}")
        return MutationResult(column, ops, statements, dry_run=True)

    async def _apply(
        self,
        table: TableDefinition,
        statements: List[DDLStatement],
        write: Callable[[], Awaitable[Any]],
        revert: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        """Catalog write followed by DDL, under the configured consistency mode."""
        async with self._scope():
            saved = await write()
            if not statements:
                return saved

            executed: List[DDLStatement] = []
            for index, statement in enumerate(statements):
                try:
                    await self.store.execute_ddl(statement)
                except ExecutionError as e:
                    e.details["statement_index"] = index
                    e.details["divergent"] = await self._handle_ddl_failure(
                        table, executed, saved, revert
                    )
                    raise
                executed.append(statement)

        return saved

    async def _handle_ddl_failure(
        self,
        table: TableDefinition,
        executed: List[DDLStatement],
        saved: Any,
        revert: Callable[[Any], Awaitable[Any]],
    ) -> bool:
        """React to a failed statement; return whether stores are left divergent."""
        if self.consistency_mode == ConsistencyMode.TRANSACTIONAL:
            return False

        if self.consistency_mode == ConsistencyMode.BEST_EFFORT:
            logger.warning(
                f"Catalog and physical schema of {table.name} ({table.physical_name}) "
                f"diverged: metadata written, {len(executed)} statement(s) applied"
            )
            return True

        clean = await self._rollback_statements(executed)
        try:
            await revert(saved)
        except TablewrightError as e:
            logger.error(f"Reverting catalog write for {table.name} failed: {e}")
            clean = False
        if not clean:
            logger.warning(f"Compensation for {table.name} was incomplete; stores may diverge")
        return not clean

    async def _rollback_statements(self, executed: List[DDLStatement]) -> bool:
        """Run rollback SQL of executed statements in reverse order."""
        clean = True
        for statement in reversed(executed):
            if not statement.can_rollback:
                logger.warning(f"No rollback available for {statement.statement_id}")
                clean = False
                continue
            inverse = DDLStatement(
                kind=statement.kind,
                table=statement.table,
                column=statement.column,
                sql=statement.rollback_sql,
            )
            try:
                logger.info(f"Attempting rollback for {statement.statement_id}")
                await self.store.execute_ddl(inverse)
                statement.executed = False
            except ExecutionError as rollback_error:
                # The original error is reported to the caller
                logger.error(f"Rollback failed for {statement.statement_id}: {rollback_error}")
                clean = False
        return clean

    async def _require_table(self, table_id: int) -> TableDefinition:
        table = await self.catalog.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    async def _require_column(self, table_id: int, column_id: int) -> ColumnDefinition:
        column = await self.catalog.get_column(column_id)
        if column is None or column.table_id != table_id:
            raise NotFoundError("Column", column_id)
        return column

    async def _ensure_unique_table_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        for other in await self.catalog.list_tables():
            if other.id != exclude_id and other.name.lower() == name.lower():
                raise ValidationError("A table with this name already exists", {"name": name})

    def _validate_column(
        self,
        column: ColumnDefinition,
        siblings: List[ColumnDefinition],
        exclude_id: Optional[int] = None,
    ) -> None:
        others = [c for c in siblings if c.id != exclude_id]
        if any(c.name.lower() == column.name.lower() for c in others):
            raise ValidationError("A column with this name already exists", {"name": column.name})
        _check_reserved(column)
        self._check_column_collisions(others + [column])
        if column.default_value is not None:
            column.default_value.validate()

    def _check_column_collisions(self, columns: List[ColumnDefinition]) -> None:
        collisions = self.collision_detector.detect_column_collisions(columns)
        if collisions:
            raise ValidationError(
                collisions[0].details,
                {"columns": ", ".join(collisions[0].conflicting)},
            )


def _check_reserved(column: ColumnDefinition) -> None:
    """Every physical table already carries the implicit id and created_at columns."""
    if sanitize(column.name).lower() in IMPLICIT_COLUMNS:
        raise ValidationError(
            f"Column name {column.name} is reserved",
            {"name": column.name, "reserved": ", ".join(IMPLICIT_COLUMNS)},
        )
