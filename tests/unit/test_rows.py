"""
Unit tests for row data operations.
"""

import json
from decimal import Decimal

import pytest

from tablewright.exceptions import NotFoundError, ValidationError
from tablewright.rows import TableRows
from tablewright.schema.models import ColumnDefinition


@pytest.fixture
def rows(catalog, store) -> TableRows:
    return TableRows(catalog, store)


@pytest.fixture
def deployed(make_deployed):
    async def _make():
        return await make_deployed("items", [
            ColumnDefinition(name="title"),
            ColumnDefinition(name="price", type="number"),
            ColumnDefinition(name="meta", type="json"),
            ColumnDefinition(name="active", type="boolean"),
        ])
    return _make


class TestTableRows:
    """Test TableRows."""

    @pytest.mark.asyncio
    async def test_add_fetch_delete(self, rows, deployed):
        table = await deployed()

        row_id = await rows.add_row(table.id)
        fetched = await rows.fetch_rows(table.id)
        deleted = await rows.delete_row(table.id, row_id)

        assert [r["id"] for r in fetched] == [row_id]
        assert deleted is True
        assert await rows.fetch_rows(table.id) == []

    @pytest.mark.asyncio
    async def test_fetch_rows_newest_first(self, rows, deployed):
        table = await deployed()
        first = await rows.add_row(table.id)
        second = await rows.add_row(table.id)

        assert [r["id"] for r in await rows.fetch_rows(table.id)] == [second, first]
        assert [r["id"] for r in await rows.fetch_rows(table.id, limit=1)] == [second]

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, rows, deployed):
        table = await deployed()
        assert await rows.delete_row(table.id, "nope") is False

    @pytest.mark.asyncio
    async def test_update_cell_converts_input(self, rows, deployed, store):
        table = await deployed()
        row_id = await rows.add_row(table.id)

        assert await rows.update_cell(table.id, row_id, "price", "9.99") == Decimal("9.99")
        assert await rows.update_cell(table.id, row_id, "active", "yes") is True
        assert await rows.update_cell(table.id, row_id, "title", "  spaced  ") == "  spaced  "
        assert await rows.update_cell(table.id, row_id, "price", "") is None

        [row] = store.rows["items_user1"]
        assert row["active"] is True
        assert row["price"] is None

    @pytest.mark.asyncio
    async def test_update_json_cell(self, rows, deployed, store):
        table = await deployed()
        row_id = await rows.add_row(table.id)

        written = await rows.update_cell(table.id, row_id, "meta", '{"tags": ["a"]}')
        from_object = await rows.update_cell(table.id, row_id, "META", {"n": 1})

        assert json.loads(written) == {"tags": ["a"]}
        assert json.loads(from_object) == {"n": 1}

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self, rows, deployed, store):
        table = await deployed()
        row_id = await rows.add_row(table.id)

        with pytest.raises(ValidationError, match="is not a valid json"):
            await rows.update_cell(table.id, row_id, "meta", "{broken")

        assert "meta" not in store.rows["items_user1"][0]

    @pytest.mark.asyncio
    async def test_unknown_column(self, rows, deployed):
        table = await deployed()

        with pytest.raises(NotFoundError, match="Column 'missing' not found"):
            await rows.update_cell(table.id, "x", "missing", "1")

    @pytest.mark.asyncio
    async def test_draft_table_rejected(self, rows, make_table):
        table = await make_table("draft", [ColumnDefinition(name="a")])

        with pytest.raises(ValidationError, match="is not deployed"):
            await rows.add_row(table.id)

    @pytest.mark.asyncio
    async def test_unknown_table(self, rows):
        with pytest.raises(NotFoundError):
            await rows.fetch_rows(404)
