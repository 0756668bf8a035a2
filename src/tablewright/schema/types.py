"""
Column types, store type mapping and typed default values.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from ..exceptions import ValidationError


class ColumnType(str, Enum):
    """Abstract column types a user can pick."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    JSON = "json"
    UUID = "uuid"

    @classmethod
    def parse(cls, value: Union["ColumnType", str]) -> "ColumnType":
        """Parse a type tag, raising ValidationError for unknown tags."""
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Unknown column type '{value}'",
                {"allowed": ", ".join(t.value for t in cls)},
            )


class StoreType(str, Enum):
    """PostgreSQL column types produced by the mapper."""

    TEXT = "TEXT"
    NUMERIC = "NUMERIC"
    BOOLEAN = "BOOLEAN"
    TIMESTAMPTZ = "TIMESTAMP WITH TIME ZONE"
    JSON = "JSON"
    UUID = "UUID"


_TYPE_MAP = {
    ColumnType.NUMBER: StoreType.NUMERIC,
    ColumnType.BOOLEAN: StoreType.BOOLEAN,
    ColumnType.DATE: StoreType.TIMESTAMPTZ,
    ColumnType.JSON: StoreType.JSON,
    ColumnType.UUID: StoreType.UUID,
    ColumnType.TEXT: StoreType.TEXT,
    ColumnType.EMAIL: StoreType.TEXT,
    ColumnType.URL: StoreType.TEXT,
    ColumnType.PHONE: StoreType.TEXT,
}

_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}


def map_type(column_type: Union[ColumnType, str, None]) -> StoreType:
    """Map a column type tag to its store type. Unknown tags map to TEXT."""
    try:
        return _TYPE_MAP[ColumnType(column_type)]
    except ValueError:
        return StoreType.TEXT


def parse_text(column_type: ColumnType, text: str, what: str = "Value") -> Any:
    """Parse user-entered text into the Python value for a column type.

    Text-like types (text, email, url, phone) are returned unchanged.
    """
    try:
        if column_type == ColumnType.NUMBER:
            return Decimal(text)
        if column_type == ColumnType.BOOLEAN:
            lowered = text.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(f"not a boolean: {text}")
        if column_type == ColumnType.DATE:
            return datetime.fromisoformat(text)
        if column_type == ColumnType.JSON:
            return json.loads(text)
        if column_type == ColumnType.UUID:
            return UUID(text)
    except (ValueError, InvalidOperation) as e:
        raise ValidationError(
            f"{what} '{text}' is not a valid {column_type.value}",
            {"type": column_type.value},
            cause=e,
        )
    return text


@dataclass(frozen=True)
class DefaultValue:
    """A column default kept as raw text, tagged with the column type."""

    column_type: ColumnType
    text: str

    @classmethod
    def from_raw(
        cls, column_type: Union[ColumnType, str], raw: Optional[str]
    ) -> Optional["DefaultValue"]:
        """Build a default from user input; blank input means no default."""
        if raw is None:
            return None
        text = str(raw).strip()
        if not text:
            return None
        return cls(ColumnType.parse(column_type), text)

    def typed(self) -> Any:
        """Convert the raw text to a Python value for the column type."""
        return parse_text(self.column_type, self.text, what="Default value")

    def validate(self) -> "DefaultValue":
        """Raise ValidationError unless the text parses for the column type."""
        self.typed()
        return self

    def retag(self, column_type: ColumnType) -> "DefaultValue":
        """Same text, interpreted as another column type."""
        return DefaultValue(column_type, self.text)

    def __str__(self) -> str:
        return self.text
