"""In-memory last-sync markers used for staleness polling."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from types import MappingProxyType

from ..database.records import RecordKind

logger = logging.getLogger(__name__)

DEFAULT_STALENESS = timedelta(minutes=5)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def marker_key(kind: RecordKind, user_id: str) -> str:
    return f"{kind.value}_{user_id}"


class FreshnessTracker:
    """Maps ``"{kind}_{user_id}"`` to the time that data was last written.

    Markers live for the process lifetime only. The owning SyncEngine is the
    single writer; everyone else reads through ``snapshot()``.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._markers: dict[str, datetime] = {}

    def mark(self, kind: RecordKind, user_id: str) -> datetime:
        now = self._clock()
        self._markers[marker_key(kind, user_id)] = now
        return now

    def last_sync(self, kind: RecordKind, user_id: str) -> datetime | None:
        return self._markers.get(marker_key(kind, user_id))

    def needs_sync(self, kind: RecordKind, user_id: str, threshold: timedelta = DEFAULT_STALENESS) -> bool:
        """True when no marker exists or the marker is older than ``threshold``."""
        last = self.last_sync(kind, user_id)
        if last is None:
            return True
        return self._clock() - last > threshold

    def forget_user(self, user_id: str) -> int:
        """Drop every marker belonging to ``user_id``. Returns how many were removed."""
        doomed = [key for key in self._markers if key.partition("_")[2] == user_id]
        for key in doomed:
            del self._markers[key]
        if doomed:
            logger.debug("Dropped %d freshness markers for %s", len(doomed), user_id[:8])
        return len(doomed)

    def clear(self) -> None:
        self._markers.clear()

    def snapshot(self) -> Mapping[str, datetime]:
        """Read-only copy of the current markers."""
        return MappingProxyType(dict(self._markers))

    def __len__(self) -> int:
        return len(self._markers)
