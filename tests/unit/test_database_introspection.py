"""
Tests for tablewright.database.introspection module.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from tablewright.database.introspection import ColumnInfo, SchemaIntrospector
from tablewright.exceptions import DatabaseError


class TestColumnInfo:
    """Test ColumnInfo dataclass."""

    def test_normalized_type(self):
        col = ColumnInfo(name="when", data_type="timestamp with time zone", is_nullable=True)
        assert col.normalized_type == "TIMESTAMP WITH TIME ZONE"

    def test_str(self):
        col = ColumnInfo(name="qty", data_type="numeric", is_nullable=False, default_value="'1'::numeric")
        assert str(col) == "qty numeric NOT NULL DEFAULT '1'::numeric"


class TestSchemaIntrospector:
    """Test SchemaIntrospector with a mocked pool."""

    @pytest.fixture
    def pool(self):
        pool = MagicMock()
        pool.fetchval = AsyncMock()
        pool.fetch = AsyncMock()
        return pool

    @pytest.mark.asyncio
    async def test_table_exists(self, pool):
        pool.fetchval.return_value = True

        assert await SchemaIntrospector(pool).table_exists("public", "t") is True
        assert pool.fetchval.await_args.args[1:] == ("public", "t")

    @pytest.mark.asyncio
    async def test_table_exists_error(self, pool):
        pool.fetchval.side_effect = RuntimeError("down")

        with pytest.raises(DatabaseError, match="Failed to check table existence"):
            await SchemaIntrospector(pool).table_exists("public", "t")

    @pytest.mark.asyncio
    async def test_get_columns(self, pool):
        pool.fetch.return_value = [
            {
                "column_name": "id",
                "data_type": "uuid",
                "is_nullable": "NO",
                "column_default": "gen_random_uuid()",
                "ordinal_position": 1,
                "udt_name": "uuid",
            },
            {
                "column_name": "email",
                "data_type": "text",
                "is_nullable": "YES",
                "column_default": None,
                "ordinal_position": 2,
                "udt_name": "text",
            },
        ]

        columns = await SchemaIntrospector(pool).get_columns("public", "t")

        assert list(columns) == ["id", "email"]
        assert columns["id"].is_nullable is False
        assert columns["email"].is_nullable is True
