"""
DDL synthesis for deployed tables.

Turns a full column list into one CREATE TABLE statement, and a list of
column changes into ordered ALTER TABLE statements, each with a rollback
statement where an inverse exists.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .differ import (
    Added,
    ChangeOp,
    DefaultChanged,
    Dropped,
    Renamed,
    RequiredChanged,
    Retyped,
)
from .identifiers import quote_identifier
from .models import ColumnDefinition
from .types import DefaultValue, map_type
from ..exceptions import ValidationError


logger = logging.getLogger(__name__)


ID_COLUMN_SQL = "id UUID PRIMARY KEY DEFAULT gen_random_uuid()"
CREATED_AT_COLUMN_SQL = "created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP"
IMPLICIT_COLUMNS = ("id", "created_at")


class StatementKind(str, Enum):
    """Kinds of generated statements."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    DROP_COLUMN = "drop_column"
    RENAME_COLUMN = "rename_column"
    ALTER_TYPE = "alter_type"
    SET_REQUIRED = "set_required"
    SET_DEFAULT = "set_default"


@dataclass
class DDLStatement:
    """An executable statement targeting exactly one physical table."""

    kind: StatementKind
    table: str
    sql: str
    rollback_sql: Optional[str] = None
    column: Optional[str] = None
    idempotent: bool = False

    # Rendered column definitions (create statements only)
    columns: List[str] = field(default_factory=list)

    # Execution results
    executed: bool = False
    execution_time_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def column_count(self) -> int:
        """Number of columns declared by a create statement."""
        return len(self.columns)

    @property
    def can_rollback(self) -> bool:
        """Check if this statement has an inverse."""
        return bool(self.rollback_sql and self.rollback_sql.strip())

    @property
    def has_error(self) -> bool:
        """Check if execution of this statement failed."""
        return self.error is not None

    @property
    def statement_id(self) -> str:
        """Identifier used in logs."""
        target = self.column or "table"
        return f"{self.kind.value}_{self.table}_{target}"


def render_literal(value: DefaultValue) -> str:
    """Render a default as a single-quoted text literal."""
    escaped = value.text.replace("'", "''")
    return f"'{escaped}'"


def render_column(column: ColumnDefinition) -> str:
    """Render a column definition for CREATE TABLE / ADD COLUMN."""
    parts = [quote_identifier(column.name), map_type(column.type).value]
    if column.default_value is not None:
        parts.append(f"DEFAULT {render_literal(column.default_value)}")
    if column.required:
        parts.append("NOT NULL")
    return " ".join(parts)


class DDLSynthesizer:
    """Builds DDL statements for one schema of the data store."""

    def __init__(self, schema: Optional[str] = None):
        self.schema = schema

    def qualify(self, physical_name: str) -> str:
        """Quoted, optionally schema-qualified table reference."""
        table = quote_identifier(physical_name)
        if self.schema:
            return f"{quote_identifier(self.schema)}.{table}"
        return table

    def create_table(
        self, physical_name: str, columns: Sequence[ColumnDefinition]
    ) -> DDLStatement:
        """Build the CREATE TABLE statement for a full column list."""
        if not columns:
            raise ValidationError("Add at least one column before deploying")

        table = self.qualify(physical_name)
        rendered = [ID_COLUMN_SQL]
        rendered.extend(render_column(column) for column in columns)
        rendered.append(CREATED_AT_COLUMN_SQL)

        body = ",\n  ".join(rendered)
        sql = f"CREATE TABLE IF NOT EXISTS {table} (\n  {body}\n)"

        return DDLStatement(
            kind=StatementKind.CREATE_TABLE,
            table=physical_name,
            sql=sql,
            rollback_sql=f"DROP TABLE IF EXISTS {table}",
            columns=rendered,
            idempotent=True,
        )

    def alter_table(
        self,
        physical_name: str,
        ops: Sequence[ChangeOp],
        column_name: Optional[str] = None,
    ) -> List[DDLStatement]:
        """
        Build one ALTER TABLE statement per change, preserving order.

        Args:
            physical_name: Bound physical table
            ops: Ordered changes, as produced by the differ
            column_name: Column name before the changes; not needed when
                every op is an Added or Dropped

        Returns:
            Ordered list of statements
        """
        table = self.qualify(physical_name)
        current = column_name
        statements: List[DDLStatement] = []
        retyped = False

        for index, op in enumerate(ops):
            if isinstance(op, Added):
                col = quote_identifier(op.column.name)
                statements.append(DDLStatement(
                    kind=StatementKind.ADD_COLUMN,
                    table=physical_name,
                    column=op.column.name,
                    sql=f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {render_column(op.column)}",
                    rollback_sql=f"ALTER TABLE {table} DROP COLUMN IF EXISTS {col}",
                    idempotent=True,
                ))
                continue

            if isinstance(op, Dropped):
                col = quote_identifier(op.column.name)
                statements.append(DDLStatement(
                    kind=StatementKind.DROP_COLUMN,
                    table=physical_name,
                    column=op.column.name,
                    sql=f"ALTER TABLE {table} DROP COLUMN IF EXISTS {col}",
                    idempotent=True,
                ))
                continue

            if isinstance(op, Renamed):
                old, new = quote_identifier(op.from_name), quote_identifier(op.to_name)
                statements.append(DDLStatement(
                    kind=StatementKind.RENAME_COLUMN,
                    table=physical_name,
                    column=op.to_name,
                    sql=f"ALTER TABLE {table} RENAME COLUMN {old} TO {new}",
                    rollback_sql=f"ALTER TABLE {table} RENAME COLUMN {new} TO {old}",
                ))
                current = op.to_name
                continue

            if current is None:
                raise ValidationError(
                    f"Column name required for {op.change_type.value} change"
                )
            col = quote_identifier(current)

            if isinstance(op, Retyped):
                store_type = map_type(op.to).value
                lifted = op.previous_default
                # A later DefaultChanged sets the final default itself
                restored = lifted if not _default_follows(ops, index) else None
                rollback = None
                if op.previous is not None:
                    rollback = _retype_sql(
                        table, col, map_type(op.previous).value, lifted, lifted
                    )
                statements.append(DDLStatement(
                    kind=StatementKind.ALTER_TYPE,
                    table=physical_name,
                    column=current,
                    sql=_retype_sql(table, col, store_type, lifted, restored),
                    rollback_sql=rollback,
                ))
                retyped = True

            elif isinstance(op, RequiredChanged):
                statements.append(DDLStatement(
                    kind=StatementKind.SET_REQUIRED,
                    table=physical_name,
                    column=current,
                    sql=f"ALTER TABLE {table} ALTER COLUMN {col} {_not_null_clause(op.to)}",
                    rollback_sql=(
                        f"ALTER TABLE {table} ALTER COLUMN {col} {_not_null_clause(op.previous)}"
                        if op.previous is not None else None
                    ),
                    idempotent=True,
                ))

            elif isinstance(op, DefaultChanged):
                statements.append(DDLStatement(
                    kind=StatementKind.SET_DEFAULT,
                    table=physical_name,
                    column=current,
                    sql=f"ALTER TABLE {table} ALTER COLUMN {col} {_default_clause(op.to)}",
                    # After a retype the column is left without a default
                    rollback_sql=(
                        f"ALTER TABLE {table} ALTER COLUMN {col} "
                        f"{_default_clause(None if retyped else op.previous)}"
                    ),
                    idempotent=True,
                ))

            else:
                raise ValidationError(f"Unsupported change operation: {op!r}")

        logger.debug(f"Synthesized {len(statements)} statement(s) for {physical_name}")
        return statements


def _retype_sql(
    table: str,
    col: str,
    store_type: str,
    lifted: Optional[DefaultValue],
    restored: Optional[DefaultValue],
) -> str:
    """Type change that drops and re-sets the default around the cast.

    A text default such as '0'::text cannot be cast automatically, so it is
    removed first and re-applied against the new type.
    """
    actions = []
    if lifted is not None:
        actions.append(f"ALTER COLUMN {col} DROP DEFAULT")
    actions.append(f"ALTER COLUMN {col} TYPE {store_type} USING {col}::{store_type}")
    if restored is not None:
        actions.append(f"ALTER COLUMN {col} SET DEFAULT {render_literal(restored)}")
    return f"ALTER TABLE {table} " + ", ".join(actions)


def _default_follows(ops: Sequence[ChangeOp], index: int) -> bool:
    return any(isinstance(op, DefaultChanged) for op in ops[index + 1:])


def _not_null_clause(required: bool) -> str:
    return "SET NOT NULL" if required else "DROP NOT NULL"


def _default_clause(value: Optional[DefaultValue]) -> str:
    if value is None:
        return "DROP DEFAULT"
    return f"SET DEFAULT {render_literal(value)}"
