"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass
class Config:
    database_path: str
    log_level: str
    log_file: str
    sync_staleness_minutes: int
    validate_ranges: bool
    remote_retry_attempts: int
    backup_dir: str
    backup_keep: int

    # Derived fields
    staleness_threshold: timedelta = field(init=False)

    def __post_init__(self) -> None:
        if self.sync_staleness_minutes <= 0:
            raise ConfigError(
                f"SYNC_STALENESS_MINUTES must be positive, got: {self.sync_staleness_minutes}"
            )
        if self.remote_retry_attempts < 1:
            raise ConfigError(
                f"REMOTE_RETRY_ATTEMPTS must be at least 1, got: {self.remote_retry_attempts}"
            )
        self.staleness_threshold = timedelta(minutes=self.sync_staleness_minutes)


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got: {raw!r}")


def load_config() -> Config:
    """Load and validate configuration from environment variables."""
    # Ensure data and logs directories exist
    database_path = os.getenv("DATABASE_PATH", "./data/healthsync.db")
    log_file = os.getenv("LOG_FILE", "./logs/healthsync.log")

    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # VALIDATE_RANGES: default False, True only if value is "true"
    validate_ranges = os.getenv("VALIDATE_RANGES", "false").strip().lower() == "true"

    return Config(
        database_path=database_path,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=log_file,
        sync_staleness_minutes=_int_env("SYNC_STALENESS_MINUTES", "5"),
        validate_ranges=validate_ranges,
        remote_retry_attempts=_int_env("REMOTE_RETRY_ATTEMPTS", "3"),
        backup_dir=os.getenv("BACKUP_DIR", "./data/backups"),
        backup_keep=_int_env("BACKUP_KEEP", "7"),
    )
