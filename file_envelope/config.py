"""
Settings loaded from the environment (and a ``.env`` file if present).

Variables:
    DATABASE_URL                        PostgreSQL DSN for the storage backend
    FILE_ENVELOPE_MAX_FILE_SIZE         upload bound in bytes (default 10 MiB)
    FILE_ENVELOPE_RETRY_ATTEMPTS        attempts per backend call (default 3)
    FILE_ENVELOPE_RETRY_INITIAL_DELAY   first backoff delay, seconds (1.0)
    FILE_ENVELOPE_RETRY_MAX_DELAY       backoff ceiling, seconds (10.0)
    FILE_ENVELOPE_TIMEOUT               per-attempt timeout, seconds (15.0)
    FILE_ENVELOPE_DOWNLOAD_DIR          where downloads are saved (".")
    FILE_ENVELOPE_APP_NAME              application_name sent to PostgreSQL
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import find_dotenv, load_dotenv

from .crypto import MAX_FILE_SIZE
from .errors import ConfigError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PREFIX = "FILE_ENVELOPE_"


def _read(
    env: Mapping[str, str], name: str, convert: Callable[[str], T], default: T
) -> T:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw.strip())
    except ValueError:
        raise ConfigError(f"Invalid value for {name}: {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Validated runtime settings."""

    database_url: Optional[str] = None
    max_file_size: int = MAX_FILE_SIZE
    retry_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    timeout: float = 15.0
    download_dir: str = "."
    app_name: str = "psychology-files"

    def __post_init__(self) -> None:
        if self.max_file_size <= 0:
            raise ConfigError("max_file_size must be positive")

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True
    ) -> Settings:
        """
        Build Settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ
            dotenv: Load ``.env`` into os.environ first (ignored with env)

        Raises:
            ConfigError: If a value cannot be parsed
        """
        if env is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True))
            env = os.environ

        settings = cls(
            database_url=env.get("DATABASE_URL") or None,
            max_file_size=_read(env, _PREFIX + "MAX_FILE_SIZE", int, MAX_FILE_SIZE),
            retry_attempts=_read(env, _PREFIX + "RETRY_ATTEMPTS", int, 3),
            retry_initial_delay=_read(env, _PREFIX + "RETRY_INITIAL_DELAY", float, 1.0),
            retry_max_delay=_read(env, _PREFIX + "RETRY_MAX_DELAY", float, 10.0),
            timeout=_read(env, _PREFIX + "TIMEOUT", float, 15.0),
            download_dir=env.get(_PREFIX + "DOWNLOAD_DIR") or ".",
            app_name=env.get(_PREFIX + "APP_NAME") or "psychology-files",
        )
        # validate eagerly so a bad retry setting fails at startup
        settings.retry_policy()
        logger.debug(
            "Settings loaded (database configured: %s)", settings.database_url is not None
        )
        return settings

    def require_database_url(self) -> str:
        """Return DATABASE_URL or raise ConfigError."""
        if not self.database_url:
            raise ConfigError("DATABASE_URL must be set in environment or .env file")
        return self.database_url

    def retry_policy(self) -> RetryPolicy:
        """RetryPolicy built from these settings."""
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            timeout=self.timeout,
        )
