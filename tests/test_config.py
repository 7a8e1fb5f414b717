"""Tests for healthsync/config.py."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from healthsync.config import Config, ConfigError, load_config


def _base_env(tmp_path) -> dict:
    return {
        "DATABASE_PATH": str(tmp_path / "data" / "test.db"),
        "LOG_FILE": str(tmp_path / "logs" / "test.log"),
        "LOG_LEVEL": "DEBUG",
        "SYNC_STALENESS_MINUTES": "10",
        "VALIDATE_RANGES": "true",
        "REMOTE_RETRY_ATTEMPTS": "5",
        "BACKUP_DIR": str(tmp_path / "backups"),
        "BACKUP_KEEP": "3",
    }


def test_load_config_success(tmp_path):
    with patch.dict(os.environ, _base_env(tmp_path), clear=True):
        config = load_config()
    assert config.log_level == "DEBUG"
    assert config.sync_staleness_minutes == 10
    assert config.staleness_threshold == timedelta(minutes=10)
    assert config.validate_ranges is True
    assert config.remote_retry_attempts == 5
    assert config.backup_keep == 3


def test_load_config_creates_directories(tmp_path):
    with patch.dict(os.environ, _base_env(tmp_path), clear=True):
        load_config()
    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "logs").is_dir()


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, {}, clear=True):
        config = load_config()
    assert config.database_path == "./data/healthsync.db"
    assert config.log_file == "./logs/healthsync.log"
    assert config.log_level == "INFO"
    assert config.staleness_threshold == timedelta(minutes=5)
    assert config.validate_ranges is False
    assert config.remote_retry_attempts == 3
    assert config.backup_dir == "./data/backups"
    assert config.backup_keep == 7


def test_load_config_bad_integer(tmp_path):
    env = _base_env(tmp_path)
    env["SYNC_STALENESS_MINUTES"] = "five"
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ConfigError, match="SYNC_STALENESS_MINUTES"):
            load_config()


def test_load_config_non_positive_staleness(tmp_path):
    env = _base_env(tmp_path)
    env["SYNC_STALENESS_MINUTES"] = "0"
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ConfigError, match="SYNC_STALENESS_MINUTES"):
            load_config()


def test_load_config_retry_attempts_must_be_positive(tmp_path):
    env = _base_env(tmp_path)
    env["REMOTE_RETRY_ATTEMPTS"] = "0"
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ConfigError, match="REMOTE_RETRY_ATTEMPTS"):
            load_config()


def test_validate_ranges_only_true_enables():
    for raw, expected in (("TRUE", True), ("yes", False), ("0", False)):
        with patch.dict(os.environ, {"VALIDATE_RANGES": raw, "DATABASE_PATH": "/tmp/hs.db",
                                     "LOG_FILE": "/tmp/hs.log"}, clear=True):
            assert load_config().validate_ranges is expected


def test_config_direct_construction():
    config = Config(
        database_path="x.db", log_level="INFO", log_file="x.log",
        sync_staleness_minutes=2, validate_ranges=False, remote_retry_attempts=1,
        backup_dir="b", backup_keep=1,
    )
    assert config.staleness_threshold == timedelta(minutes=2)
