"""Scheduler defaults and logging, read from the environment with Pydantic Settings.

Sources, highest precedence first:
- real environment variables,
- `.env.<AUTOSAVER_ENV>` (`.env.dev`, `.env.test` or `.env.prod`),
- `.env.local`, then `.env`.

The overlay is picked from `AUTOSAVER_ENV` in the process environment, so
setting it inside `.env` itself does not switch overlays.

The autosave defaults (`AUTOSAVER_IDLE_MS`, `AUTOSAVER_IMMEDIATE_FIRST`,
`AUTOSAVER_DISABLED`) feed :meth:`SchedulerConfig.from_settings` when a
scheduler is created without an explicit config.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, get_args

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Typed configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Selects the `.env.<environment>` overlay; maps from `AUTOSAVER_ENV`.
    log_level : LogLevelName
        Level for every `autosaver.*` logger; maps from `LOG_LEVEL`.
    idle_ms : int
        Default inactivity window in milliseconds; maps from `AUTOSAVER_IDLE_MS`.
    immediate_first : bool
        Default for saving the first edit of a burst right away.
    disabled : bool
        Kill switch: schedulers built from settings never persist anything.
    trace_dir : str | None
        Directory for JSON scheduler traces; maps from `AUTOSAVER_TRACE_DIR`.
    """

    environment: EnvName = Field(default="dev", alias="AUTOSAVER_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")
    idle_ms: int = Field(default=5000, ge=0, alias="AUTOSAVER_IDLE_MS")
    immediate_first: bool = Field(default=True, alias="AUTOSAVER_IMMEDIATE_FIRST")
    disabled: bool = Field(default=False, alias="AUTOSAVER_DISABLED")
    trace_dir: str | None = Field(default=None, alias="AUTOSAVER_TRACE_DIR")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


def env_files(environment: str) -> tuple[str, ...]:
    """Return the `.env` files read for ``environment``, lowest precedence first.

    Unknown names fall back to the shared files only; `Settings` then rejects
    the value itself.
    """
    if environment not in get_args(EnvName):
        return (".env", ".env.local")
    return (".env", ".env.local", f".env.{environment}")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    Kept behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    environment = os.environ.get("AUTOSAVER_ENV", "dev")
    return Settings(_env_file=env_files(environment))


# Import-time read of env / .env files.
settings: Settings = load_settings()


def get_logger(name: str = "autosaver") -> logging.Logger:
    """Return a logger with one stream handler, levelled from `LOG_LEVEL`."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
