"""
Exception classes for tablewright.
"""

from typing import Any, Dict, Optional


class TablewrightError(Exception):
    """Base exception for all tablewright errors."""

    kind: str = "error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(TablewrightError):
    """Raised when there's an error in configuration."""

    kind = "configuration"


class ValidationError(TablewrightError):
    """Raised when a request is rejected before any side effect happens."""

    kind = "validation"


class NotFoundError(TablewrightError):
    """Raised when a referenced table or column does not exist in the catalog."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity} '{entity_id}' not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ExecutionError(TablewrightError):
    """Raised when the data store rejects a DDL or DML statement."""

    kind = "execution"

    @property
    def divergent(self) -> bool:
        """Whether catalog and physical schema were left out of sync."""
        return bool(self.details.get("divergent", False))


class ConsistencyError(TablewrightError):
    """Raised when post-write verification finds catalog and store diverged."""

    kind = "consistency"


class DatabaseError(TablewrightError):
    """Raised when there's an error with database operations."""

    kind = "database"


class DatabaseConnectionError(DatabaseError):
    """Raised when there's an error establishing or maintaining database connections."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass
