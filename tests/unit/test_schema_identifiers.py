"""
Unit tests for identifier sanitation and validation.
"""

import pytest

from tablewright.exceptions import ValidationError
from tablewright.schema.identifiers import (
    find_sanitized_collisions,
    is_valid_identifier,
    physical_table_name,
    quote_identifier,
    sanitize,
    validate_identifier,
)


class TestSanitize:
    """Test sanitize()."""

    @pytest.mark.parametrize("name,expected", [
        ("first name", "first_name"),
        ("Price($)", "Price___"),
        ("e-mail", "e_mail"),
        ("héllo", "h_llo"),
        ("", ""),
        ('a"; DROP TABLE x; --', "a___DROP_TABLE_x____"),
    ])
    def test_replaces_unsafe_characters(self, name, expected):
        assert sanitize(name) == expected

    @pytest.mark.parametrize("name", [
        "plain", "Mixed Case", "tab\there", "ünï©ødé", "__", "a.b.c", "123 go",
    ])
    def test_idempotent(self, name):
        assert sanitize(sanitize(name)) == sanitize(name)

    @pytest.mark.parametrize("name", ["email", "Email", "column_1", "a1_b2", "X"])
    def test_valid_identifiers_unchanged(self, name):
        assert is_valid_identifier(name)
        assert sanitize(name) == name

    def test_preserves_case(self):
        assert sanitize("CamelCase") == "CamelCase"


class TestValidateIdentifier:
    """Test identifier grammar checks."""

    @pytest.mark.parametrize("name", ["1abc", "_abc", "a b", "a-b", "ab$"])
    def test_rejects_bad_grammar(self, name):
        with pytest.raises(ValidationError) as exc_info:
            validate_identifier(name, "Column name")
        assert "Column name must start with a letter" in str(exc_info.value)

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_rejects_empty(self, name):
        with pytest.raises(ValidationError, match="Table name is required"):
            validate_identifier(name, "Table name")

    def test_strips_whitespace(self):
        assert validate_identifier("  email ") == "email"


class TestPhysicalNames:
    """Test physical table naming and quoting."""

    def test_physical_table_name_lowercases_table_name(self):
        assert physical_table_name("Contacts", "user1") == "contacts_user1"

    def test_physical_table_name_sanitizes_owner(self):
        owner = "8f14e45f-ceea-467a-9575-1b6a2f0c8d11"
        assert physical_table_name("leads", owner) == "leads_8f14e45f_ceea_467a_9575_1b6a2f0c8d11"

    def test_owner_case_is_kept(self):
        assert physical_table_name("T", "AbC") == "t_AbC"

    def test_quote_identifier(self):
        assert quote_identifier("first name") == '"first_name"'
        assert quote_identifier('x"y') == '"x_y"'


class TestSanitizedCollisions:
    """Test collision grouping."""

    def test_no_collisions(self):
        assert find_sanitized_collisions(["a", "b", "c"]) == {}

    def test_groups_names_that_coincide(self):
        result = find_sanitized_collisions(["first name", "first_name", "other"])
        assert result == {"first_name": ["first name", "first_name"]}

    def test_case_insensitive(self):
        result = find_sanitized_collisions(["Email", "email"])
        assert result == {"email": ["Email", "email"]}
