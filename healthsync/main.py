"""Entry point: load config, open the local store, take a backup and report its contents."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass

from .config import Config, ConfigError, load_config
from .database.store import LocalRecordStore, StoreError
from .remote.puller import RemotePuller
from .remote.service import RemoteRecordService
from .sync.engine import SyncEngine
from .sync.facade import SyncFacade
from .sync.repository import ReadRepository
from .utils.backup import create_backup
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class App:
    store: LocalRecordStore
    engine: SyncEngine
    repository: ReadRepository
    facade: SyncFacade
    puller: RemotePuller | None = None


def build_app(config: Config, remote: RemoteRecordService | None = None) -> App:
    """Wire the store, engine, read repository and facade from ``config``.

    A puller is only built when a remote service is supplied.
    """
    store = LocalRecordStore(config.database_path)
    engine = SyncEngine(
        store,
        validate=config.validate_ranges,
        staleness=config.staleness_threshold,
    )
    repository = ReadRepository(store)
    facade = SyncFacade(engine, repository)
    puller = None
    if remote is not None:
        puller = RemotePuller(remote, engine, attempts=config.remote_retry_attempts)
    return App(store=store, engine=engine, repository=repository, facade=facade, puller=puller)


async def _startup(app: App) -> dict[str, int]:
    """Open the store and return its partition counts."""
    await app.store.open_if_needed()
    try:
        return await app.store.stats()
    finally:
        await app.store.close()


def main() -> None:
    """Main application entry point."""
    # Minimal early logging before config is loaded
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
    except ConfigError as exc:
        logging.critical("Configuration error: %s", exc)
        sys.exit(1)

    setup_logging(config.log_level, config.log_file)
    logger.info("healthsync starting up")

    app = build_app(config)
    try:
        stats = asyncio.run(_startup(app))
    except StoreError as exc:
        logger.critical("Local store unavailable: %s", exc)
        sys.exit(1)

    create_backup(config.database_path, config.backup_dir, config.backup_keep)

    logger.info(
        "Local store ready at %s: %s",
        config.database_path,
        ", ".join(f"{name}={count}" for name, count in stats.items()),
    )
    logger.info(
        "Staleness threshold %s, range validation %s",
        config.staleness_threshold,
        "on" if config.validate_ranges else "off",
    )


if __name__ == "__main__":
    main()
