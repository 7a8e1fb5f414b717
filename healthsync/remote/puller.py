"""Refresh the local store from the remote service, retrying when it is unavailable."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ..database.records import RecordKind
from ..sync.engine import SyncEngine
from .service import RemoteRecordService, RemoteUnavailable

logger = logging.getLogger(__name__)


def _on_retry(retry_state) -> None:
    logger.warning(
        "Remote attempt %d failed: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


class RemotePuller:
    """Pulls remote records into the local store through the sync engine."""

    def __init__(
        self,
        remote: RemoteRecordService,
        engine: SyncEngine,
        attempts: int = 3,
        wait: wait_base | None = None,
    ) -> None:
        self._remote = remote
        self._engine = engine
        self._attempts = attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=2, min=4, max=30)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(RemoteUnavailable),
            stop=stop_after_attempt(self._attempts),
            wait=self._wait,
            before_sleep=_on_retry,
            reraise=True,
        )

    async def refresh_range(self, kind: RecordKind, user_id: str, start: date, end: date) -> int:
        """Copy remote records for [start, end] into the local store.

        Returns the number of records stored. RemoteUnavailable is re-raised
        once the retry budget is spent.
        """
        records: list[Any] = []
        async for attempt in self._retrying():
            with attempt:
                records = await self._remote.query_range(kind, user_id, start, end)

        for record in records:
            await self._engine.store_record(kind, record)
        logger.info("Pulled %d %s records for %s (%s to %s)", len(records), kind.value, user_id[:8], start, end)
        return len(records)

    async def refresh_if_stale(
        self,
        kind: RecordKind,
        user_id: str,
        days: int = 7,
        threshold: timedelta | None = None,
    ) -> int:
        """Refresh the last ``days`` days only when the local copy is stale."""
        if not self._engine.needs_sync(kind, user_id, threshold):
            logger.debug("%s data for %s is fresh, skipping pull", kind.value, user_id[:8])
            return 0
        end = self._engine.today()
        return await self.refresh_range(kind, user_id, end - timedelta(days=days - 1), end)

    async def push(self, kind: RecordKind, record: Any) -> bool:
        """Write one record to the remote service with the same retry policy."""
        ok = False
        async for attempt in self._retrying():
            with attempt:
                ok = await self._remote.put(kind, record)
        if not ok:
            logger.warning("Remote rejected %s record %s", kind.value, record.id)
        return ok
