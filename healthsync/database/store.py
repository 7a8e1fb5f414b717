"""Local record store: typed partitions of encoded records in SQLite."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Generator, TypeVar

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .codec import CodecError, decode_as, encode
from .models import PARTITION_ROWS, Base, UserSetting
from .records import RecordKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreError(Exception):
    """Base class for local store failures."""


class NotInitializedError(StoreError):
    """Raised when the store is used before open_if_needed() completed."""


class StorageFailure(StoreError):
    """Raised when the storage medium rejects an operation or holds corrupt data."""


class LocalRecordStore:
    """Keyed persistence for the four record kinds plus a settings partition.

    Every public operation is a coroutine that runs its SQL on a worker
    thread, so each call is a suspension point for the event loop.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._url = f"sqlite:///{database_path}"
        self._engine = None
        self._Session: sessionmaker | None = None
        self._open_lock = asyncio.Lock()

    @property
    def database_path(self) -> str:
        return self._database_path

    @property
    def is_open(self) -> bool:
        return self._Session is not None

    async def open_if_needed(self) -> None:
        """Create the engine and partition tables once; later calls are no-ops."""
        if self.is_open:
            return
        async with self._open_lock:
            if self.is_open:
                return
            try:
                engine = create_engine(self._url, connect_args={"check_same_thread": False})
                await asyncio.to_thread(Base.metadata.create_all, engine)
            except (SQLAlchemyError, OSError) as exc:
                raise StorageFailure(f"Could not open local store at {self._database_path}: {exc}") from exc
            self._engine = engine
            # expire_on_commit=False lets ORM objects be used after session.close()
            self._Session = sessionmaker(bind=engine, expire_on_commit=False)
            logger.info("Local store opened at %s", self._database_path)

    async def close(self) -> None:
        if self._engine is not None:
            await asyncio.to_thread(self._engine.dispose)
        self._engine = None
        self._Session = None
        logger.info("Local store closed")

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._Session()  # type: ignore[misc]
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if not self.is_open:
            raise NotInitializedError("Local store not initialised. Call open_if_needed() first.")
        try:
            return await asyncio.to_thread(fn, *args)
        except CodecError as exc:
            raise StorageFailure(f"Corrupt record payload: {exc}") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StorageFailure(str(exc)) from exc

    # ------------------------------------------------------------------ #
    # Record operations                                                     #
    # ------------------------------------------------------------------ #

    async def put(self, kind: RecordKind, key: str, record: Any) -> None:
        """Insert or overwrite the record stored under ``key``."""
        if not isinstance(record, kind.record_type):
            raise TypeError(f"{kind.value} partition stores {kind.record_type.__name__}, got {type(record).__name__}")
        try:
            payload = encode(record)
        except CodecError as exc:
            raise StorageFailure(str(exc)) from exc
        await self._run(self._put_sync, kind, key, payload)
        logger.debug("Stored %s/%s (%d bytes)", kind.partition, key, len(payload))

    def _put_sync(self, kind: RecordKind, key: str, payload: bytes) -> None:
        row_type = PARTITION_ROWS[kind.partition]
        with self._session() as session:
            session.merge(row_type(key=key, payload=payload, stored_at=datetime.now(UTC)))

    async def get(self, kind: RecordKind, key: str) -> Any | None:
        """Return the record at ``key`` or None."""
        return await self._run(self._get_sync, kind, key)

    def _get_sync(self, kind: RecordKind, key: str) -> Any | None:
        row_type = PARTITION_ROWS[kind.partition]
        with self._session() as session:
            row = session.get(row_type, key)
            if row is None:
                return None
            return decode_as(row.payload, kind.record_type)

    async def scan(self, kind: RecordKind) -> list[Any]:
        """Return every record of one kind, ordered by key."""
        return await self._run(self._scan_sync, kind)

    def _scan_sync(self, kind: RecordKind) -> list[Any]:
        row_type = PARTITION_ROWS[kind.partition]
        with self._session() as session:
            rows = session.scalars(select(row_type).order_by(row_type.key)).all()
            return [decode_as(row.payload, kind.record_type) for row in rows]

    async def delete(self, kind: RecordKind, key: str) -> bool:
        """Delete one record. Returns True if it existed."""
        return await self._run(self._delete_keys_sync, kind, [key]) > 0

    async def delete_where(self, kind: RecordKind, predicate: Callable[[Any], bool]) -> int:
        """Delete every record of ``kind`` matching ``predicate``."""
        return await self._run(self._delete_where_sync, kind, predicate)

    def _delete_where_sync(self, kind: RecordKind, predicate: Callable[[Any], bool]) -> int:
        row_type = PARTITION_ROWS[kind.partition]
        with self._session() as session:
            rows = session.scalars(select(row_type)).all()
            doomed = [row.key for row in rows if predicate(decode_as(row.payload, kind.record_type))]
        return self._delete_keys_sync(kind, doomed)

    def _delete_keys_sync(self, kind: RecordKind, keys: list[str]) -> int:
        if not keys:
            return 0
        row_type = PARTITION_ROWS[kind.partition]
        with self._session() as session:
            result = session.execute(delete(row_type).where(row_type.key.in_(keys)))
            return result.rowcount or 0

    async def clear(self, kind: RecordKind) -> int:
        """Wipe one partition. Returns the number of removed records."""
        removed = await self._run(self._clear_sync, PARTITION_ROWS[kind.partition])
        logger.info("Cleared %s (%d records)", kind.partition, removed)
        return removed

    def _clear_sync(self, row_type: type) -> int:
        with self._session() as session:
            result = session.execute(delete(row_type))
            return result.rowcount or 0

    async def clear_all(self) -> None:
        """Wipe every partition, settings included."""
        for kind in RecordKind:
            await self.clear(kind)
        await self._run(self._clear_sync, UserSetting)

    # ------------------------------------------------------------------ #
    # Settings partition                                                    #
    # ------------------------------------------------------------------ #

    async def get_setting(self, key: str, default: Any = None) -> Any:
        return await self._run(self._get_setting_sync, key, default)

    def _get_setting_sync(self, key: str, default: Any) -> Any:
        with self._session() as session:
            row = session.get(UserSetting, key)
            return row.value if row is not None else default

    async def set_setting(self, key: str, value: Any) -> None:
        await self._run(self._set_setting_sync, key, value)

    def _set_setting_sync(self, key: str, value: Any) -> None:
        with self._session() as session:
            session.merge(UserSetting(key=key, value=value, updated_at=datetime.now(UTC)))

    # ------------------------------------------------------------------ #
    # Statistics                                                            #
    # ------------------------------------------------------------------ #

    async def stats(self) -> dict[str, int]:
        """Return the number of stored entries per partition."""
        return await self._run(self._stats_sync)

    def _stats_sync(self) -> dict[str, int]:
        with self._session() as session:
            counts = {
                name: session.scalar(select(func.count()).select_from(row_type)) or 0
                for name, row_type in PARTITION_ROWS.items()
            }
            counts["user_settings"] = session.scalar(select(func.count()).select_from(UserSetting)) or 0
            return counts
