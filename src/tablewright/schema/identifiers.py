"""
Identifier handling for physical table and column names.
"""

import re
from typing import Any, Dict, Iterable, List

from ..exceptions import ValidationError


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")
_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def sanitize(name: str) -> str:
    """Replace every character outside [A-Za-z0-9_] with an underscore.

    Case is preserved. Distinct inputs may map to the same output; use
    find_sanitized_collisions() where that matters.
    """
    return _UNSAFE_CHARS.sub("_", name)


def is_valid_identifier(name: str) -> bool:
    """Check the ``letter (letter|digit|_)*`` grammar."""
    return bool(_IDENTIFIER.match(name or ""))


def validate_identifier(name: str, kind: str = "Name") -> str:
    """Return the stripped name or raise ValidationError."""
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError(f"{kind} is required")
    if not is_valid_identifier(stripped):
        raise ValidationError(
            f"{kind} must start with a letter and contain only letters, "
            f"numbers, and underscores",
            {"name": stripped},
        )
    return stripped


def quote_identifier(name: str) -> str:
    """Sanitize and double-quote an identifier for use in DDL."""
    return f'"{sanitize(name)}"'


def physical_table_name(table_name: str, owner: Any) -> str:
    """Name of the physical table a definition deploys to."""
    return sanitize(f"{table_name.lower()}_{owner}")


def find_sanitized_collisions(names: Iterable[str]) -> Dict[str, List[str]]:
    """Group names whose sanitized, lower-cased forms coincide.

    Only groups with more than one member are returned.
    """
    groups: Dict[str, List[str]] = {}
    for name in names:
        groups.setdefault(sanitize(name).lower(), []).append(name)
    return {key: members for key, members in groups.items() if len(members) > 1}
