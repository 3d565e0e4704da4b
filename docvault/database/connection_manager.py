"""
Shared PostgreSQL connection pool for the docvault pipeline.

All repositories borrow connections from a single asyncpg pool so a batch
run holds at most a handful of connections regardless of catalog size.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from docvault.config import get_settings
from docvault.utils.errors import DatabaseConnectionError, MissingConfigurationError
from docvault.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConnectionHealth:
    """Connection pool health status."""
    status: str
    total_connections: int
    idle_connections: int
    last_check: datetime
    error_count: int = 0
    last_error: Optional[str] = None


class DatabaseConnectionManager:
    """
    Lazily created asyncpg pool with retrying connection acquisition.

    Usage:
        async with DatabaseConnectionManager() as db:
            rows = await db.fetch_all("SELECT id FROM documents")
    """

    def __init__(self, connection_string: Optional[str] = None):
        self.connection_string = connection_string or get_settings().database_url
        self.pool: Optional[asyncpg.Pool] = None
        self._health = ConnectionHealth(
            status="uninitialized",
            total_connections=0,
            idle_connections=0,
            last_check=datetime.now(timezone.utc),
        )
        self._initialization_lock = asyncio.Lock()
        self._is_closing = False

        # Configuration
        self.min_connections = 1
        self.max_connections = 5
        self.connection_timeout = 30
        self.command_timeout = 60
        self.retry_attempts = 3
        self.retry_delay = 2.0

    async def initialize(self) -> None:
        """Create the pool on first use."""
        if not self.connection_string:
            raise MissingConfigurationError("DATABASE_URL")

        async with self._initialization_lock:
            if self.pool is not None:
                return

            if self._is_closing:
                raise DatabaseConnectionError("Connection manager is being closed")

            try:
                logger.debug("Initializing database connection pool...")
                self.pool = await asyncpg.create_pool(
                    self.connection_string,
                    min_size=self.min_connections,
                    max_size=self.max_connections,
                    timeout=self.connection_timeout,
                    command_timeout=self.command_timeout,
                    server_settings={"application_name": "docvault"},
                )
            except Exception as e:
                self._record_error(e, status="failed")
                logger.error(f"Failed to initialize database connection pool: {e}")
                raise DatabaseConnectionError(
                    f"Could not connect to database: {e}",
                    {"error_type": type(e).__name__},
                ) from e

            self._health.status = "healthy"
            self._refresh_pool_stats()
            logger.debug(
                f"Database connection pool initialized: {self.min_connections}-{self.max_connections} connections"
            )

    async def _acquire(self) -> asyncpg.Connection:
        """Acquire a connection, retrying transient failures with a linear backoff."""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self.pool.acquire(timeout=self.connection_timeout)
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                last_error = e
                self._record_error(e, status="degraded")
                if attempt < self.retry_attempts:
                    logger.warning(f"Database connection attempt {attempt} failed: {e}, retrying...")
                    await asyncio.sleep(self.retry_delay * attempt)

        self._health.status = "failed"
        logger.error(f"Failed to acquire database connection after {self.retry_attempts} attempts: {last_error}")
        raise DatabaseConnectionError(
            f"Failed to acquire database connection: {last_error}",
            {"attempts": self.retry_attempts},
        )

    @asynccontextmanager
    async def get_connection(self):
        """
        Borrow a connection from the pool.

        Usage:
            async with manager.get_connection() as conn:
                await conn.fetchval("SELECT 1")
        """
        if self.pool is None:
            await self.initialize()

        if self._is_closing:
            raise DatabaseConnectionError("Connection manager is being closed")

        conn = await self._acquire()
        try:
            yield conn
        finally:
            await self.pool.release(conn)

    async def execute(self, query: str, *args) -> str:
        """Run a statement and return its status tag (e.g. 'UPDATE 1')."""
        async with self.get_connection() as conn:
            return await conn.execute(query, *args)

    async def fetch_all(self, query: str, *args) -> list:
        async with self.get_connection() as conn:
            return await conn.fetch(query, *args)

    async def fetch_one(self, query: str, *args) -> Optional[Any]:
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args)

    def _record_error(self, error: Exception, status: str) -> None:
        self._health.status = status
        self._health.error_count += 1
        self._health.last_error = str(error)
        self._health.last_check = datetime.now(timezone.utc)

    def _refresh_pool_stats(self) -> None:
        if self.pool is None:
            return
        self._health.total_connections = self.pool.get_size()
        self._health.idle_connections = self.pool.get_idle_size()
        self._health.last_check = datetime.now(timezone.utc)

    def get_health(self) -> ConnectionHealth:
        self._refresh_pool_stats()
        return self._health

    async def close(self) -> None:
        """Close the connection pool and clean up resources."""
        async with self._initialization_lock:
            if self.pool is None:
                return

            self._is_closing = True
            try:
                await self.pool.close()
                self.pool = None
                self._health.status = "closed"
                logger.debug("Database connection pool closed")
            finally:
                self._is_closing = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
