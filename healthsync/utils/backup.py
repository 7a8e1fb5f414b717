"""Local store backup: timestamped copies with a retention limit."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

_PREFIX = "healthsync_"


def create_backup(database_path: str, backup_dir: str = "./data/backups", keep: int = 7) -> Path | None:
    """Copy the SQLite store to a timestamped backup file.

    Args:
        database_path: Path to the source database file.
        backup_dir: Directory receiving the copies.
        keep: Number of most recent backups to retain.

    Returns:
        Path to the created backup, or None on failure.
    """
    source = Path(database_path)
    if not source.exists():
        logger.warning("Backup: source database not found: %s", source)
        return None

    target_dir = Path(backup_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    dest = target_dir / f"{_PREFIX}{timestamp}.db"

    try:
        shutil.copy2(source, dest)
        logger.info("Backup created: %s", dest)
        _prune_old_backups(target_dir, keep)
        return dest
    except OSError as exc:
        logger.error("Backup failed: %s", exc)
        return None


def _prune_old_backups(backup_dir: Path, keep: int) -> None:
    """Remove backups older than the retention limit."""
    backups = sorted(backup_dir.glob(f"{_PREFIX}*.db"))
    to_remove = backups[:-keep] if len(backups) > keep else []
    for path in to_remove:
        try:
            path.unlink()
            logger.debug("Removed old backup: %s", path)
        except OSError as exc:
            logger.warning("Could not remove old backup %s: %s", path, exc)
