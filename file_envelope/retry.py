"""
Call-site retry policy for backend operations.

Replaces a process-wide reconnect loop: each client owns a RetryPolicy and
applies it explicitly around the operations it performs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import asyncpg

from .errors import ConfigError, ConnectionFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    ConnectionFailedError,
    asyncio.TimeoutError,
    OSError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff: delay = min(initial_delay * 2**attempt, max_delay).

    ``timeout`` bounds each individual attempt, not the whole run.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    timeout: float = 15.0  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ConfigError("Retry delays must not be negative")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given zero-based attempt."""
        return min(self.initial_delay * (2 ** attempt), self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
        description: str = "operation",
    ) -> T:
        """
        Await ``operation()`` with per-attempt timeout and backoff.

        Only transient errors are retried; anything else propagates at once.

        Raises:
            ConnectionFailedError: If the final attempt timed out
            Exception: The last transient error after all attempts
        """
        limit = timeout or self.timeout
        for attempt in range(self.max_attempts):
            try:
                return await asyncio.wait_for(operation(), limit)
            except TRANSIENT_ERRORS as e:
                logger.warning(
                    "%s attempt %d/%d failed: %s",
                    description,
                    attempt + 1,
                    self.max_attempts,
                    str(e) or type(e).__name__,
                )
                if attempt == self.max_attempts - 1:
                    if isinstance(e, asyncio.TimeoutError):
                        raise ConnectionFailedError("Operation timed out") from e
                    raise
                await asyncio.sleep(self.delay_for(attempt))

        raise ConnectionFailedError(
            f"Failed to execute {description} after {self.max_attempts} attempts"
        )
