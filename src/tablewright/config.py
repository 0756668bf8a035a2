"""
Configuration system for tablewright using Pydantic.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class ConsistencyMode(str, Enum):
    """How a metadata write and its DDL are kept in step."""

    TRANSACTIONAL = "transactional"  # one database transaction per operation
    COMPENSATE = "compensate"        # undo applied DDL and catalog write on failure
    BEST_EFFORT = "best_effort"      # leave divergence in place and report it


class DatabaseConnection(BaseModel):
    """Database connection configuration."""

    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("postgres", description="Database name")
    user: str = Field("postgres", description="Database user")
    password: str = Field("", description="Database password")
    ssl_mode: Optional[str] = Field(None, description="SSL mode")
    min_size: int = Field(1, description="Minimum connections in pool")
    max_size: int = Field(10, description="Maximum connections in pool")
    command_timeout: float = Field(60.0, description="Command timeout in seconds")

    def to_dsn(self) -> str:
        """Convert to PostgreSQL DSN string."""
        dsn = (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.database}"
        )
        if self.ssl_mode:
            dsn += f"?sslmode={self.ssl_mode}"
        return dsn


class CatalogConfig(BaseModel):
    """Where the table/column catalog lives."""

    schema_name: str = Field("tablewright", description="Catalog schema")
    tables_table: str = Field("custom_tables", description="Table definitions table")
    columns_table: str = Field("custom_columns", description="Column definitions table")
    notify_channel: str = Field(
        "tablewright_catalog", description="NOTIFY channel for catalog changes"
    )


class DeploymentConfig(BaseModel):
    """Deployment and schema mutation behaviour."""

    consistency_mode: Optional[ConsistencyMode] = Field(
        None,
        description=(
            "Consistency mode; defaults to transactional when a transaction "
            "scope is available and compensate otherwise"
        ),
    )
    dry_run: bool = Field(False, description="Synthesize DDL without executing it")
    data_schema: str = Field("public", description="Schema holding deployed tables")
    reload_notify_channel: Optional[str] = Field(
        None, description="Channel notified with 'reload schema' after each DDL"
    )
    statement_timeout_seconds: int = Field(300, description="DDL statement timeout")
    max_initial_rows: int = Field(10000, description="Upper bound for seeded rows")

    @field_validator("max_initial_rows")
    @classmethod
    def validate_max_initial_rows(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_initial_rows must not be negative")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class TablewrightConfig(BaseSettings):
    """Main tablewright configuration."""

    service_name: str = Field("tablewright", description="Service name")
    debug: bool = Field(False, description="Enable debug mode")

    database: DatabaseConnection = Field(
        default_factory=DatabaseConnection, description="Database connection"
    )
    catalog: CatalogConfig = Field(
        default_factory=CatalogConfig, description="Catalog configuration"
    )
    deployment: DeploymentConfig = Field(
        default_factory=DeploymentConfig, description="Deployment configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TABLEWRIGHT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TablewrightConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def validate_config(self) -> None:
        """Validate the configuration for consistency."""
        if self.catalog.tables_table == self.catalog.columns_table:
            raise ConfigurationError(
                "Catalog tables_table and columns_table must be different"
            )
        if self.database.min_size > self.database.max_size:
            raise ConfigurationError(
                f"database.min_size ({self.database.min_size}) exceeds "
                f"database.max_size ({self.database.max_size})"
            )

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
            )
