"""Contract of the remote per-user, per-day document store."""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from ..database.records import RecordKind


class RemoteUnavailable(Exception):
    """Raised by remote implementations when the service cannot be reached."""


class RemoteRecordService(Protocol):
    async def get(self, kind: RecordKind, user_id: str, day: date) -> Any | None:
        ...

    async def put(self, kind: RecordKind, record: Any) -> bool:
        ...

    async def query_range(self, kind: RecordKind, user_id: str, start: date, end: date) -> list[Any]:
        ...
