"""
Database connection management for tablewright.

Provides an async PostgreSQL connection pool with connection lifecycle
management and task-scoped transactions shared by the catalog and data stores.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Dict, Optional, Any, AsyncIterator, List
from urllib.parse import urlparse, parse_qs

import asyncpg

from ..config import DatabaseConnection
from ..exceptions import DatabaseConnectionError, DatabaseConfigurationError


logger = logging.getLogger(__name__)


def connection_from_url(url: str) -> DatabaseConnection:
    """Create connection configuration from a database URL."""
    parsed = urlparse(url)

    if parsed.scheme not in ("postgresql", "postgres"):
        raise DatabaseConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")

    if not parsed.path or parsed.path == "/":
        raise DatabaseConfigurationError("Database name is required")

    query_params = parse_qs(parsed.query) if parsed.query else {}

    config_data = {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 5432,
        "database": parsed.path.lstrip("/"),
        "user": parsed.username or "",
        "password": parsed.password or "",
    }
    if "sslmode" in query_params:
        config_data["ssl_mode"] = query_params["sslmode"][0]

    return DatabaseConnection(**config_data)


class ConnectionPool:
    """Async PostgreSQL connection pool wrapper.

    While a ``transaction()`` block is active, every ``acquire()`` made from
    the same task reuses the transaction's connection, so independent
    components join the same unit of work.
    """

    def __init__(self, config: DatabaseConnection):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()
        self._bound: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
            f"tablewright_bound_connection_{id(self)}", default=None
        )

    def _connection_kwargs(self) -> Dict[str, Any]:
        kwargs = {
            "host": self.config.host,
            "port": self.config.port,
            "database": self.config.database,
            "user": self.config.user,
            "password": self.config.password,
            "command_timeout": self.config.command_timeout,
            "server_settings": {"application_name": "tablewright"},
        }
        if self.config.ssl_mode:
            kwargs["ssl"] = self.config.ssl_mode
        return kwargs

    async def initialize(self) -> None:
        """Initialize the connection pool."""
        async with self._lock:
            if self._pool is not None:
                return

            try:
                logger.info(
                    f"Initializing connection pool to {self.config.host}:{self.config.port}"
                    f"/{self.config.database} (min={self.config.min_size}, max={self.config.max_size})"
                )

                self._pool = await asyncpg.create_pool(
                    **self._connection_kwargs(),
                    min_size=self.config.min_size,
                    max_size=self.config.max_size,
                )

                logger.info("Connection pool initialized successfully")

            except Exception as e:
                logger.error(f"Failed to initialize connection pool: {e}")
                raise DatabaseConnectionError(f"Failed to initialize connection pool: {e}") from e

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._pool is not None:
                logger.info("Closing connection pool")
                await self._pool.close()
                self._pool = None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection, reusing the task's transaction connection if any."""
        bound = self._bound.get()
        if bound is not None:
            yield bound
            return

        if self._pool is None:
            raise DatabaseConnectionError("Pool is not connected")

        async with self._pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run the block in one transaction shared by all acquire() calls of this task."""
        bound = self._bound.get()
        if bound is not None:
            # Nested scope becomes a savepoint
            async with bound.transaction():
                yield bound
            return

        async with self.acquire() as conn:
            token = self._bound.set(conn)
            try:
                async with conn.transaction():
                    yield conn
            finally:
                self._bound.reset(token)

    async def connect_dedicated(self) -> asyncpg.Connection:
        """Open a connection outside the pool, e.g. for LISTEN."""
        try:
            return await asyncpg.connect(**self._connection_kwargs())
        except Exception as e:
            raise DatabaseConnectionError(f"Failed to open dedicated connection: {e}") from e

    @property
    def in_transaction(self) -> bool:
        """Whether the current task is inside a transaction() block."""
        return self._bound.get() is not None

    async def execute(self, query: str, *args) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all results from a query."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row from a query."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args, column: int = 0) -> Any:
        """Fetch a single value from a query."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        if self._pool is None:
            return {
                "size": 0,
                "free": 0,
                "acquired": 0,
                "initialized": False
            }

        return {
            "size": self._pool.get_size(),
            "free": self._pool.get_idle_size(),
            "acquired": self._pool.get_size() - self._pool.get_idle_size(),
            "initialized": True
        }

    @property
    def is_initialized(self) -> bool:
        """Check if pool is initialized."""
        return self._pool is not None

    async def __aenter__(self) -> "ConnectionPool":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
