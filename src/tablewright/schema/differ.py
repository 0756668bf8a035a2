"""
Change detection between a captured column definition and its edited form.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Sequence

from .models import ColumnDefinition
from .types import ColumnType, DefaultValue
from ..exceptions import ValidationError


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kinds of column changes."""

    ADDED = "added"
    DROPPED = "dropped"
    RENAMED = "renamed"
    RETYPED = "retyped"
    REQUIRED_CHANGED = "required_changed"
    DEFAULT_CHANGED = "default_changed"


@dataclass(frozen=True)
class ChangeOp:
    """Base class of all column change operations."""

    change_type: ClassVar[ChangeType]


@dataclass(frozen=True)
class Added(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.ADDED

    column: ColumnDefinition


@dataclass(frozen=True)
class Dropped(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.DROPPED

    column: ColumnDefinition


@dataclass(frozen=True)
class Renamed(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.RENAMED

    from_name: str
    to_name: str


@dataclass(frozen=True)
class Retyped(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.RETYPED

    to: ColumnType
    previous: Optional[ColumnType] = field(default=None, compare=False)
    # Default in place before the change; it has to be lifted around the cast
    previous_default: Optional[DefaultValue] = field(default=None, compare=False)


@dataclass(frozen=True)
class RequiredChanged(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.REQUIRED_CHANGED

    to: bool
    previous: Optional[bool] = field(default=None, compare=False)


@dataclass(frozen=True)
class DefaultChanged(ChangeOp):
    change_type: ClassVar[ChangeType] = ChangeType.DEFAULT_CHANGED

    to: Optional[DefaultValue]
    previous: Optional[DefaultValue] = field(default=None, compare=False)


def diff(original: ColumnDefinition, edited: ColumnDefinition) -> List[ChangeOp]:
    """
    Compute the ordered changes that turn ``original`` into ``edited``.

    Order is fixed: rename, retype, required, default. A rename comes first
    so later statements address the column by its new name; a retype comes
    before the default so the default is read against the new type.

    Args:
        original: Column as captured before editing
        edited: Column after editing, with the same id

    Returns:
        List of change operations, empty when nothing changed
    """
    if original.id is not None and edited.id is not None and original.id != edited.id:
        raise ValidationError(
            "Cannot diff two different columns",
            {"original_id": original.id, "edited_id": edited.id},
        )

    ops: List[ChangeOp] = []

    if edited.name != original.name:
        ops.append(Renamed(original.name, edited.name))

    if edited.type != original.type:
        ops.append(Retyped(
            edited.type, previous=original.type, previous_default=original.default_value
        ))

    if edited.required != original.required:
        ops.append(RequiredChanged(edited.required, previous=original.required))

    if edited.default_text != original.default_text:
        ops.append(DefaultChanged(edited.default_value, previous=original.default_value))

    return ops


def added(column: ColumnDefinition) -> List[ChangeOp]:
    """Changes for a newly added column."""
    return [Added(column)]


def dropped(
    column: ColumnDefinition, pending: Optional[Sequence[ChangeOp]] = None
) -> List[ChangeOp]:
    """Changes for a removed column; a drop supersedes any pending edits."""
    if pending:
        logger.debug(
            f"Discarding {len(pending)} pending change(s) for dropped column {column.name}"
        )
    return [Dropped(column)]
