"""
Command-line interface for tablewright.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import AsyncIterator, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .catalog.base import CatalogEvent
from .catalog.postgres import PostgresCatalogStore
from .config import ConsistencyMode, DatabaseConnection, TablewrightConfig
from .database.connection import ConnectionPool
from .database.introspection import SchemaIntrospector
from .exceptions import ConfigurationError, TablewrightError
from .logging_setup import setup_logging
from .orchestrator import TableDeployer
from .schema.drift import DriftDetector
from .schema.types import ColumnType
from .service import OperationResult, TableService
from .store.postgres import PostgresDataStore


console = Console()

COLUMN_TYPES = [t.value for t in ColumnType]


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TablewrightError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)


@dataclass
class Workspace:
    """Everything a command needs to talk to the database."""

    pool: ConnectionPool
    catalog: PostgresCatalogStore
    store: PostgresDataStore
    service: TableService


@asynccontextmanager
async def open_workspace(config: TablewrightConfig) -> AsyncIterator[Workspace]:
    """Connect to the database and wire up stores and the table service."""
    pool = ConnectionPool(config.database)
    await pool.initialize()
    try:
        catalog = PostgresCatalogStore(pool, config.catalog)
        store = PostgresDataStore(
            pool,
            schema=config.deployment.data_schema,
            reload_notify_channel=config.deployment.reload_notify_channel,
            statement_timeout_seconds=config.deployment.statement_timeout_seconds,
        )
        deployer = TableDeployer(catalog, store, config.deployment, transaction=pool.transaction)
        drift = DriftDetector(
            catalog, SchemaIntrospector(pool), schema=config.deployment.data_schema
        )
        yield Workspace(pool, catalog, store, TableService(deployer, drift))
    finally:
        await pool.close()


def _load_config(path: str) -> TablewrightConfig:
    config = TablewrightConfig.from_yaml(path)
    config.validate_config()
    ctx = click.get_current_context(silent=True)
    debug = bool(ctx and ctx.obj and ctx.obj.get("debug")) or config.debug
    setup_logging(config.logging, debug=debug)
    return config


def _report(result: OperationResult) -> int:
    """Print a failed result; return the exit code."""
    if result.ok:
        return 0
    console.print(f"[red]✗ {result.operation} failed ({result.error_kind}):[/red] {result.message}")
    if result.error and result.error.details.get("divergent"):
        console.print(
            "[yellow]Catalog and physical table are out of sync; run 'tablewright drift'[/yellow]"
        )
    return 1


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """tablewright: user-defined tables deployed to PostgreSQL."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="tablewright-config.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new tablewright configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config()
    config.to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Edit the configuration file with your database details")
    console.print("2. Run: tablewright validate-config -c your-config.yaml")
    console.print("3. Run: tablewright setup-catalog -c your-config.yaml")


@main.command()
@config_option
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        tw_config = TablewrightConfig.from_yaml(config)
        tw_config.validate_config()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")
    _display_config_summary(tw_config)


@main.command()
@config_option
@handle_errors
def setup_catalog(config: str):
    """Create the catalog schema, tables and triggers."""
    tw_config = _load_config(config)

    async def run_setup():
        async with open_workspace(tw_config) as ws:
            result = await ws.catalog.setup()
            integrity = await ws.catalog.check_integrity()
            stats = ws.pool.get_stats()
        return result, integrity, stats

    result, integrity, stats = asyncio.run(run_setup())
    console.print(
        f"[green]✓[/green] Catalog schema {result['schema']} ready "
        f"({result['statements']} statements)"
    )
    for table, exists in integrity["tables_exist"].items():
        mark = "[green]✓[/green]" if exists else "[red]✗[/red]"
        console.print(f"  {mark} {table}")
    console.print(
        f"Connection pool: {stats['size']} open, {stats['acquired']} in use, {stats['free']} idle"
    )


@main.command()
@config_option
@click.option("--name", required=True, help="Table name")
@click.option("--owner", required=True, help="Owner id, part of the physical table name")
@click.option("--description", help="Table description")
@click.option("--columns", "column_count", type=int, default=0, help="Number of text columns to create")
@click.option("--rows", "row_count", type=int, default=0, help="Blank rows to seed on deploy")
@handle_errors
def create_table(
    config: str,
    name: str,
    owner: str,
    description: Optional[str],
    column_count: int,
    row_count: int,
):
    """Create a draft table definition."""
    tw_config = _load_config(config)

    async def run_create():
        async with open_workspace(tw_config) as ws:
            result = await ws.service.create_table_draft(
                name,
                owner,
                description=description,
                initial_column_count=column_count,
                initial_row_count=row_count,
            )
        if result.ok:
            console.print(f"[green]✓[/green] Created draft table {result.value.name} (id={result.value.id})")
        return _report(result)

    sys.exit(asyncio.run(run_create()))


@main.command()
@config_option
@click.option(
    "--status",
    type=click.Choice(["all", "deployed", "draft"]),
    default="all",
    help="Filter by deployment state",
)
@handle_errors
def list_tables(config: str, status: str):
    """List table definitions."""
    tw_config = _load_config(config)

    async def run_list():
        async with open_workspace(tw_config) as ws:
            tables = await ws.service.deployer.list_tables(status)
            stats = await ws.service.deployer.table_stats()
        return tables, stats

    tables, stats = asyncio.run(run_list())

    table = Table(title="Tables")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("State", style="green")
    table.add_column("Physical Table", style="yellow")
    table.add_column("Owner")
    for t in tables:
        table.add_row(str(t.id), t.name, t.state.value, t.physical_name or "-", t.created_by)

    console.print(table)
    console.print(
        f"Total: {stats['total']}  Deployed: {stats['deployed']}  Draft: {stats['draft']}"
    )


@main.command()
@config_option
@click.argument("table_id", type=int)
@handle_errors
def show_table(config: str, table_id: int):
    """Show a table definition and its columns."""
    tw_config = _load_config(config)

    async def run_show():
        async with open_workspace(tw_config) as ws:
            deployer = ws.service.deployer
            table = await deployer.get_table(table_id)
            columns = await deployer.list_columns(table_id)
            state = await deployer.deployment_state(table_id)
        return table, columns, state

    table, columns, state = asyncio.run(run_show())

    console.print(f"[bold]{table.name}[/bold] (id={table.id}, {state.value})")
    if table.description:
        console.print(table.description)
    if table.physical_name:
        console.print(f"Physical table: {table.physical_name}")

    col_table = Table(title="Columns")
    col_table.add_column("ID", style="cyan")
    col_table.add_column("Name", style="magenta")
    col_table.add_column("Type", style="green")
    col_table.add_column("Required", style="yellow")
    col_table.add_column("Default")
    for column in columns:
        col_table.add_row(
            str(column.id),
            column.name,
            column.type.value,
            "yes" if column.required else "no",
            column.default_text or "",
        )
    console.print(col_table)


@main.command()
@config_option
@click.argument("table_id", type=int)
@click.argument("name")
@click.option("--type", "column_type", type=click.Choice(COLUMN_TYPES), default="text", help="Column type")
@click.option("--required", is_flag=True, help="Column is NOT NULL")
@click.option("--default", "default_value", help="Default value")
@handle_errors
def add_column(
    config: str,
    table_id: int,
    name: str,
    column_type: str,
    required: bool,
    default_value: Optional[str],
):
    """Add a column to a table."""
    tw_config = _load_config(config)

    async def run_add():
        async with open_workspace(tw_config) as ws:
            result = await ws.service.add_column(
                table_id, name, type=column_type, required=required, default_value=default_value
            )
        if result.ok:
            console.print(f"[green]✓[/green] Added column {result.value.column.name}")
            _print_statements(result.value.statements)
        return _report(result)

    sys.exit(asyncio.run(run_add()))


@main.command()
@config_option
@click.argument("table_id", type=int)
@click.argument("column_id", type=int)
@click.option("--name", help="New column name")
@click.option("--type", "column_type", type=click.Choice(COLUMN_TYPES), help="New column type")
@click.option("--required/--optional", default=None, help="Toggle NOT NULL")
@click.option("--default", "default_value", help="New default value")
@click.option("--drop-default", is_flag=True, help="Remove the default value")
@handle_errors
def update_column(
    config: str,
    table_id: int,
    column_id: int,
    name: Optional[str],
    column_type: Optional[str],
    required: Optional[bool],
    default_value: Optional[str],
    drop_default: bool,
):
    """Edit a column of a table."""
    tw_config = _load_config(config)

    async def run_update():
        async with open_workspace(tw_config) as ws:
            original = await ws.catalog.get_column(column_id)
            if original is None or original.table_id != table_id:
                console.print(f"[red]✗ Column {column_id} not found in table {table_id}[/red]")
                return 1

            edited = original.replace(
                name=name if name is not None else original.name,
                type=column_type if column_type is not None else original.type,
                required=required if required is not None else original.required,
                default_value=None if drop_default else (
                    default_value if default_value is not None else original.default_text
                ),
            )
            result = await ws.service.update_column(table_id, column_id, edited)

        if result.ok:
            if result.value.changed:
                console.print(f"[green]✓[/green] Updated column {result.value.column.name}")
                _print_statements(result.value.statements)
            else:
                console.print("[yellow]No changes[/yellow]")
        return _report(result)

    sys.exit(asyncio.run(run_update()))


@main.command()
@config_option
@click.argument("table_id", type=int)
@click.argument("column_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@handle_errors
def delete_column(config: str, table_id: int, column_id: int, yes: bool):
    """Delete a column; drops the physical column of a deployed table."""
    if not yes and not click.confirm(f"Delete column {column_id} of table {table_id}?"):
        return

    tw_config = _load_config(config)

    async def run_delete():
        async with open_workspace(tw_config) as ws:
            result = await ws.service.delete_column(table_id, column_id)
        if result.ok:
            console.print(f"[green]✓[/green] Deleted column {result.value.column.name}")
            _print_statements(result.value.statements)
        return _report(result)

    sys.exit(asyncio.run(run_delete()))


@main.command()
@config_option
@click.argument("table_id", type=int)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without making changes",
)
@handle_errors
def deploy(config: str, table_id: int, dry_run: bool):
    """Deploy a draft table to the database."""
    tw_config = _load_config(config)
    if dry_run:
        tw_config.deployment.dry_run = True
        console.print("[yellow]Dry run mode - no changes will be made[/yellow]")

    async def run_deploy():
        async with open_workspace(tw_config) as ws:
            result = await ws.service.deploy_table(table_id)
        if result.ok:
            deployment = result.value
            console.print(deployment.statement.sql)
            if deployment.dry_run:
                console.print(f"[yellow]Would deploy as {deployment.physical_name}[/yellow]")
            else:
                console.print(
                    f"[green]✓[/green] Deployed as {deployment.physical_name} "
                    f"({deployment.rows_seeded} row(s) seeded)"
                )
        return _report(result)

    sys.exit(asyncio.run(run_deploy()))


@main.command()
@config_option
@click.argument("table_id", type=int)
@handle_errors
def drift(config: str, table_id: int):
    """Compare a deployed table with its catalog definition."""
    tw_config = _load_config(config)

    async def run_drift():
        async with open_workspace(tw_config) as ws:
            result = await ws.service.check_drift(table_id)
        if not result.ok:
            return _report(result)

        report = result.value
        if not report.has_drift:
            console.print(f"[green]✓[/green] {report.physical_name} matches its definition")
            return 0

        drift_table = Table(title=f"Drift in {report.physical_name}")
        drift_table.add_column("Column", style="cyan")
        drift_table.add_column("Drift", style="red")
        drift_table.add_column("Expected", style="green")
        drift_table.add_column("Actual", style="yellow")
        for item in report.items:
            drift_table.add_row(
                item.column, item.drift_type.value, item.expected or "-", item.actual or "-"
            )
        console.print(drift_table)
        return 1

    sys.exit(asyncio.run(run_drift()))


@main.command()
@config_option
@click.argument("table_id", type=int)
@handle_errors
def watch(config: str, table_id: int):
    """Print catalog changes of a table until interrupted."""
    tw_config = _load_config(config)

    def on_change(event: CatalogEvent) -> None:
        console.print(
            f"[cyan]{event.entity}[/cyan] {event.operation.lower()} "
            f"(record {event.record_id})"
        )

    async def run_watch():
        async with open_workspace(tw_config) as ws:
            subscription = await ws.catalog.subscribe(table_id, on_change)
            console.print(f"[blue]Watching table {table_id} (Ctrl+C to stop)...[/blue]")
            try:
                await asyncio.Event().wait()
            finally:
                await subscription.close()

    try:
        asyncio.run(run_watch())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped watching[/yellow]")


def _print_statements(statements) -> None:
    for statement in statements:
        console.print(f"  [dim]{statement.sql}[/dim]")


def _create_default_config() -> TablewrightConfig:
    """Create a default configuration with environment placeholders."""
    return TablewrightConfig(
        database=DatabaseConnection(
            host="${POSTGRES_HOST}",
            port=5432,
            database="${POSTGRES_DB}",
            user="${POSTGRES_USER}",
            password="${POSTGRES_PASSWORD}",
        ),
    )


def _display_config_summary(config: TablewrightConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    summary = Table(title="Settings")
    summary.add_column("Setting", style="cyan")
    summary.add_column("Value", style="green")

    db = config.database
    mode = config.deployment.consistency_mode or ConsistencyMode.TRANSACTIONAL
    summary.add_row("Database", f"{db.host}:{db.port}/{db.database}")
    summary.add_row("Catalog", f"{config.catalog.schema_name}.{config.catalog.tables_table}")
    summary.add_row("Data schema", config.deployment.data_schema)
    summary.add_row("Consistency mode", mode.value)
    summary.add_row("Reload channel", config.deployment.reload_notify_channel or "-")
    summary.add_row("Log level", config.logging.level)

    console.print(summary)


if __name__ == "__main__":
    main()
