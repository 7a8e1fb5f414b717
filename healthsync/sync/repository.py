"""Read side: range queries and weekly/monthly aggregates over the local store."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from ..database.records import (
    EPOCH,
    DailyHealthRecord,
    EfficiencySnapshot,
    MealRecord,
    RecordKind,
    StepSnapshot,
    composite_key,
)
from ..database.store import LocalRecordStore
from .freshness import Clock, utc_now

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass
class Summary:
    """Count, totals and means of a kind's numeric fields over a date window."""

    kind: RecordKind
    start_date: date
    end_date: date
    count: int
    totals: dict[str, int | float]
    averages: dict[str, float]

    def total(self, name: str) -> int | float:
        return self.totals[name]

    def average(self, name: str) -> float:
        return self.averages[name]


@dataclass
class UserSnapshot:
    user_id: str
    health: DailyHealthRecord | None
    meals: list[MealRecord]
    efficiency: EfficiencySnapshot | None
    steps: StepSnapshot | None
    last_sync_times: Mapping[str, datetime] = field(default_factory=dict)


class ReadRepository:
    """Derives ranges and aggregates from full partition scans.

    There is no range index: one user's history is small enough that
    scan-and-filter is fine. Reads never write.
    """

    def __init__(self, store: LocalRecordStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def get(self, kind: RecordKind, user_id: str, day: date) -> Any | None:
        """Point lookup of one user's record for one day."""
        return await self._store.get(kind, composite_key(user_id, day))

    async def get_meal(self, meal_id: str) -> MealRecord | None:
        return await self._store.get(RecordKind.MEAL, meal_id)

    async def get_all(self, kind: RecordKind, user_id: str) -> list[Any]:
        """Every stored record of the user, oldest day first."""
        records = [r for r in await self._store.scan(kind) if r.user_id == user_id]
        return sorted(records, key=lambda r: r.day)

    async def _stored_range(self, kind: RecordKind, user_id: str, start: date, end: date) -> list[Any]:
        # one day of padding either side, compared at day granularity
        low, high = start - ONE_DAY, end + ONE_DAY
        return [r for r in await self.get_all(kind, user_id) if low < r.day < high]

    async def get_range(self, kind: RecordKind, user_id: str, start: date, end: date) -> list[Any]:
        """Records between ``start`` and ``end`` inclusive, ascending by day.

        Health ranges are dense: days without a stored record are filled with
        an unsaved zero-valued record. Other kinds return stored records only.
        """
        if end < start:
            return []
        records = await self._stored_range(kind, user_id, start, end)
        if kind is not RecordKind.HEALTH:
            return records

        by_day = {r.day: r for r in records}
        now = self._clock()
        filled = []
        current = start
        while current <= end:
            filled.append(by_day.get(current) or DailyHealthRecord.empty(user_id, current, now))
            current += ONE_DAY
        return filled

    async def get_recent_meals(self, user_id: str, limit: int = 50) -> list[MealRecord]:
        """Most recently logged meals first."""
        meals = await self.get_all(RecordKind.MEAL, user_id)
        meals.sort(key=lambda m: m.logged_at, reverse=True)
        return meals[:limit]

    # ------------------------------------------------------------------ #
    # Aggregates                                                            #
    # ------------------------------------------------------------------ #

    async def summarize(self, kind: RecordKind, user_id: str, start: date, end: date) -> Summary:
        """Aggregate stored records in [start, end]; an empty window yields zeros."""
        records = await self._stored_range(kind, user_id, start, end) if end >= start else []
        totals = kind.record_type.empty(user_id, start, EPOCH).summary_values()
        for record in records:
            for name, value in record.summary_values().items():
                totals[name] += value

        count = len(records)
        averages = {name: (value / count if count else 0.0) for name, value in totals.items()}
        return Summary(kind=kind, start_date=start, end_date=end, count=count,
                       totals=totals, averages=averages)

    async def get_weekly_summary(self, kind: RecordKind, user_id: str) -> Summary:
        """Aggregate over the current Monday..Sunday week."""
        today = self._clock().date()
        start = today - timedelta(days=today.weekday())
        return await self.summarize(kind, user_id, start, start + timedelta(days=6))

    async def get_monthly_summary(self, kind: RecordKind, user_id: str) -> Summary:
        """Aggregate over the current calendar month."""
        today = self._clock().date()
        last_day = calendar.monthrange(today.year, today.month)[1]
        return await self.summarize(kind, user_id, today.replace(day=1), today.replace(day=last_day))

    async def get_user_snapshot(self, user_id: str) -> UserSnapshot:
        """Today's health, efficiency and step records plus the 10 latest meals."""
        today = self._clock().date()
        return UserSnapshot(
            user_id=user_id,
            health=await self.get(RecordKind.HEALTH, user_id, today),
            meals=await self.get_recent_meals(user_id, limit=10),
            efficiency=await self.get(RecordKind.EFFICIENCY, user_id, today),
            steps=await self.get(RecordKind.STEPS, user_id, today),
        )
