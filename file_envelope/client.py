"""
Explicit PostgreSQL client handle.

A DatabaseClient is constructed by the caller, connected with ``connect()``
and released with ``close()`` (or used as an async context manager). Every
query goes through the client's RetryPolicy.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

import asyncpg

from .errors import ConnectionFailedError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ConnectionStatus:
    """Snapshot of a client's connection state."""

    connected: bool
    last_error: Optional[str]
    retry_count: int
    last_retry_time: float  # epoch seconds, 0.0 if never retried


class DatabaseClient:
    """
    asyncpg pool wrapper with explicit lifecycle and retried queries.
    """

    def __init__(
        self,
        dsn: str,
        retry: Optional[RetryPolicy] = None,
        application_name: str = "psychology-files",
    ) -> None:
        """
        Initialize the client (no I/O until connect()).

        Args:
            dsn: PostgreSQL connection string
            retry: Retry policy for connect and queries
            application_name: Reported to the server for this connection
        """
        self._dsn = dsn
        self._retry = retry or RetryPolicy()
        self._application_name = application_name
        self._pool: Optional[asyncpg.Pool] = None
        self._last_error: Optional[str] = None
        self._retry_count = 0
        self._last_retry_time = 0.0

    @property
    def connected(self) -> bool:
        return self._pool is not None

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        if self._pool is None:
            raise ConnectionFailedError("Database client is not connected")
        return self._pool

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            connected=self.connected,
            last_error=self._last_error,
            retry_count=self._retry_count,
            last_retry_time=self._last_retry_time,
        )

    async def connect(self) -> None:
        """
        Create the connection pool. No-op when already connected.

        Raises:
            ConnectionFailedError: If all attempts fail
        """
        if self._pool is not None:
            return

        async def create() -> asyncpg.Pool:
            return await asyncpg.create_pool(
                self._dsn,
                server_settings={"application_name": self._application_name},
            )

        try:
            pool = await self._retry.run(create, description="connect")
        except Exception as e:
            self._last_error = str(e) or type(e).__name__
            self._retry_count += 1
            self._last_retry_time = time.time()
            raise ConnectionFailedError(
                f"Failed to connect after {self._retry.max_attempts} attempts: "
                f"{self._last_error}"
            ) from e

        if pool is None:
            raise ConnectionFailedError("Failed to create connection pool")

        self._pool = pool
        self._last_error = None
        self._retry_count = 0
        logger.info("Connected to database")

    async def close(self) -> None:
        """Close the pool. Safe to call more than once."""
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Database connection closed")

    async def __aenter__(self) -> DatabaseClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        pool = self.pool
        return await self._retry.run(
            lambda: pool.fetchrow(query, *args), description="fetchrow"
        )

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        pool = self.pool
        return await self._retry.run(
            lambda: pool.fetch(query, *args), description="fetch"
        )

    async def execute(self, query: str, *args: Any) -> str:
        pool = self.pool
        return await self._retry.run(
            lambda: pool.execute(query, *args), description="execute"
        )
