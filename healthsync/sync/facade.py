"""Observable facade over the sync engine for the presentation layer.

No exception crosses this boundary: failures are logged and exposed through
``last_error`` while the previously synced data stays readable.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import date, datetime, timedelta
from typing import Any, TypeVar

from ..database.records import RecordKind
from .engine import SyncEngine
from .repository import ReadRepository, UserSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[["SyncFacade"], None]


class SyncFacade:
    def __init__(self, engine: SyncEngine, repository: ReadRepository | None = None) -> None:
        self._engine = engine
        self._repository = repository or ReadRepository(engine.store)
        self._listeners: list[Listener] = []
        self._is_initialized = False
        self._in_flight = 0
        self._last_error = ""

    # ------------------------------------------------------------------ #
    # Observable state                                                      #
    # ------------------------------------------------------------------ #

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_syncing(self) -> bool:
        return self._in_flight > 0

    @property
    def last_error(self) -> str:
        return self._last_error

    @property
    def last_sync_times(self) -> Mapping[str, datetime]:
        return self._engine.last_sync_times

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                logger.error("Sync listener %r failed: %s", listener, exc, exc_info=True)

    # ------------------------------------------------------------------ #
    # Call shielding                                                        #
    # ------------------------------------------------------------------ #

    async def _open(self) -> None:
        await self._engine.store.open_if_needed()
        self._is_initialized = True

    async def _shielded(self, action: str, operation: Callable[[], Awaitable[T]], fallback: T) -> T:
        self._last_error = ""
        self._in_flight += 1
        try:
            if not self._is_initialized:
                await self._open()
            return await operation()
        except Exception as exc:
            self._last_error = f"Failed to {action}: {exc}"
            logger.error("Failed to %s: %s", action, exc, exc_info=True)
            return fallback
        finally:
            self._in_flight -= 1
            self._notify()

    async def initialize(self) -> bool:
        """Open the local store. Returns False (with last_error set) on failure."""
        if self._is_initialized:
            return True

        async def _init() -> bool:
            return True

        return await self._shielded("initialize sync", _init, False)

    # ------------------------------------------------------------------ #
    # Writes                                                                #
    # ------------------------------------------------------------------ #

    async def sync_fields(self, kind: RecordKind, user_id: str, day: date, fields: Mapping[str, Any]) -> Any | None:
        return await self._shielded(
            f"sync {kind.value} data",
            lambda: self._engine.sync_fields(kind, user_id, day, fields),
            None,
        )

    async def sync_health_data(self, user_id: str, day: date | None = None, **fields: Any) -> Any | None:
        return await self._shielded(
            "sync health data",
            lambda: self._engine.sync_health_data(user_id, day, **fields),
            None,
        )

    async def sync_meal(self, user_id: str, meal_id: str, meal_type: Any, items: list[Any], **kwargs: Any) -> Any | None:
        return await self._shielded(
            "sync meal data",
            lambda: self._engine.sync_meal(user_id, meal_id, meal_type, items, **kwargs),
            None,
        )

    async def sync_efficiency_data(self, user_id: str, day: date, **kwargs: Any) -> Any | None:
        return await self._shielded(
            "sync efficiency data",
            lambda: self._engine.sync_efficiency_data(user_id, day, **kwargs),
            None,
        )

    async def sync_step_data(self, user_id: str, day: date, **kwargs: Any) -> Any | None:
        return await self._shielded(
            "sync step data",
            lambda: self._engine.sync_step_data(user_id, day, **kwargs),
            None,
        )

    async def clear_user_data(self, user_id: str) -> dict[RecordKind, int]:
        return await self._shielded(
            "clear user data",
            lambda: self._engine.clear_user_data(user_id),
            {},
        )

    async def force_sync(self, user_id: str) -> bool:
        async def _force() -> bool:
            self._engine.force_sync(user_id)
            return True

        return await self._shielded("force sync", _force, False)

    # ------------------------------------------------------------------ #
    # Reads                                                                 #
    # ------------------------------------------------------------------ #

    def needs_sync(self, kind: RecordKind, user_id: str, threshold: timedelta | None = None) -> bool:
        return self._engine.needs_sync(kind, user_id, threshold)

    async def get_user_snapshot(self, user_id: str) -> UserSnapshot | None:
        async def _snapshot() -> UserSnapshot:
            snapshot = await self._repository.get_user_snapshot(user_id)
            snapshot.last_sync_times = self.last_sync_times
            return snapshot

        return await self._shielded("load user data", _snapshot, None)
