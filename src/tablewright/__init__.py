"""
tablewright: user-defined tables deployed to PostgreSQL.

tablewright keeps a catalog of user-defined tables and columns, deploys each
definition as a physical PostgreSQL table, and turns later column edits into
ALTER TABLE statements while keeping catalog and schema in step.
"""

__version__ = "0.1.0"
__author__ = "tablewright Contributors"

from .config import TablewrightConfig, ConsistencyMode
from .exceptions import (
    TablewrightError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    ExecutionError,
    ConsistencyError,
    DatabaseError,
)
from .orchestrator import TableDeployer, DeploymentResult, MutationResult
from .service import TableService, OperationResult, OperationStatus
from .rows import TableRows

__all__ = [
    "__version__",
    "TablewrightConfig",
    "ConsistencyMode",
    "TablewrightError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "ExecutionError",
    "ConsistencyError",
    "DatabaseError",
    "TableDeployer",
    "DeploymentResult",
    "MutationResult",
    "TableService",
    "OperationResult",
    "OperationStatus",
    "TableRows",
]
