"""
Unit tests for the tablewright CLI interface.
"""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from tablewright.cli import Workspace, handle_errors, main
from tablewright.exceptions import ValidationError
from tablewright.orchestrator import TableDeployer
from tablewright.schema.models import ColumnDefinition
from tablewright.service import TableService


@pytest.fixture
def runner():
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def patched_workspace(catalog, store):
    """Replace open_workspace with one backed by the in-memory fakes."""
    workspace = Workspace(pool=MagicMock(), catalog=catalog, store=store, service=None)

    @asynccontextmanager
    async def fake_open_workspace(config):
        deployer = TableDeployer(catalog, store, config.deployment)
        workspace.service = TableService(deployer)
        yield workspace

    with patch("tablewright.cli.open_workspace", fake_open_workspace):
        yield workspace


class TestCLIMain:
    """Test main CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "user-defined tables deployed to PostgreSQL" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInitCommand:
    """Test init command functionality."""

    def test_init_creates_config(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["init", "-o", "tw.yaml"])

            assert result.exit_code == 0
            assert "Configuration file created: tw.yaml" in result.output
            with open("tw.yaml") as f:
                data = yaml.safe_load(f)
            assert data["database"]["host"] == "${POSTGRES_HOST}"

    @patch("tablewright.cli.click.confirm")
    def test_init_file_exists_no_overwrite(self, mock_confirm, runner):
        mock_confirm.return_value = False

        with runner.isolated_filesystem():
            with open("tw.yaml", "w") as f:
                f.write("existing content")

            result = runner.invoke(main, ["init", "-o", "tw.yaml"])

            assert result.exit_code == 0
            with open("tw.yaml") as f:
                assert f.read() == "existing content"


class TestValidateConfigCommand:
    """Test validate-config command."""

    def test_valid(self, runner, temp_config_file):
        result = runner.invoke(main, ["validate-config", "-c", temp_config_file])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "compensate" in result.output

    def test_invalid(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"catalog": {"tables_table": "x", "columns_table": "x"}}))

        result = runner.invoke(main, ["validate-config", "-c", str(path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestSetupCatalogCommand:
    """Test setup-catalog command."""

    def test_reports_tables_and_pool(self, runner, temp_config_file):
        pool = MagicMock()
        pool.get_stats.return_value = {"size": 2, "free": 1, "acquired": 1, "initialized": True}
        catalog = AsyncMock()
        catalog.setup.return_value = {"schema": "public", "statements": 6}
        catalog.check_integrity.return_value = {
            "tables_exist": {"custom_tables": True, "custom_columns": False},
        }
        workspace = Workspace(pool=pool, catalog=catalog, store=None, service=None)

        @asynccontextmanager
        async def fake_open_workspace(config):
            yield workspace

        with patch("tablewright.cli.open_workspace", fake_open_workspace):
            result = runner.invoke(main, ["setup-catalog", "-c", temp_config_file])

        assert result.exit_code == 0
        assert "Catalog schema public ready (6 statements)" in result.output
        assert "custom_columns" in result.output
        assert "Connection pool: 2 open, 1 in use, 1 idle" in result.output


class TestTableCommands:
    """Test commands that go through the table service."""

    def test_create_and_list(self, runner, temp_config_file, patched_workspace):
        result = runner.invoke(main, [
            "create-table", "-c", temp_config_file,
            "--name", "contacts", "--owner", "user1", "--columns", "2",
        ])
        assert result.exit_code == 0
        assert "Created draft table contacts" in result.output

        result = runner.invoke(main, ["list-tables", "-c", temp_config_file])
        assert result.exit_code == 0
        assert "contacts" in result.output
        assert "Total: 1" in result.output

    def test_create_invalid_name(self, runner, temp_config_file, patched_workspace):
        result = runner.invoke(main, [
            "create-table", "-c", temp_config_file, "--name", "1bad", "--owner", "user1",
        ])

        assert result.exit_code == 1
        assert "validation" in result.output

    def test_deploy_dry_run(self, runner, temp_config_file, patched_workspace, make_table):
        table = asyncio.run(make_table("contacts", [ColumnDefinition(name="email", type="email")]))

        result = runner.invoke(main, ["deploy", "-c", temp_config_file, str(table.id), "--dry-run"])

        assert result.exit_code == 0
        assert "CREATE TABLE IF NOT EXISTS" in result.output
        assert "Would deploy as contacts_user1" in result.output
        assert patched_workspace.store.executed == []

    def test_deploy(self, runner, temp_config_file, patched_workspace, make_table):
        table = asyncio.run(make_table("contacts", [ColumnDefinition(name="email")]))

        result = runner.invoke(main, ["deploy", "-c", temp_config_file, str(table.id)])

        assert result.exit_code == 0
        assert "Deployed as contacts_user1" in result.output
        assert "contacts_user1" in patched_workspace.store.physical

    def test_add_column_to_unknown_table(self, runner, temp_config_file, patched_workspace):
        result = runner.invoke(main, ["add-column", "-c", temp_config_file, "99", "email"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestHandleErrors:
    """Test the error handling decorator."""

    def test_tablewright_error_exits_1(self):
        @handle_errors
        def failing():
            raise ValidationError("bad input")

        with pytest.raises(SystemExit) as exc_info:
            failing()
        assert exc_info.value.code == 1

    def test_success_passes_through(self):
        @handle_errors
        def ok():
            return "ok"

        assert ok() == "ok"
