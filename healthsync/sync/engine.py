"""Sync engine: merges field-level updates into the local store and stamps freshness."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any

from ..database.records import (
    EfficiencySnapshot,
    GoalRecord,
    MealItem,
    MealRecord,
    MealType,
    RecordKind,
    RoutineRecord,
    StepSnapshot,
    TaskRecord,
    composite_key,
)
from ..database.store import LocalRecordStore
from .freshness import DEFAULT_STALENESS, Clock, FreshnessTracker, utc_now
from .locks import KeyedLocks
from .validation import validate_fields

logger = logging.getLogger(__name__)


def _from_maps(target: type, entries: Sequence[Any], now: datetime) -> list[Any]:
    return [target.from_dict(e, now) if isinstance(e, Mapping) else e for e in entries]


class SyncEngine:
    """Writes application updates into the local store.

    Updates are last-writer-wins at field granularity: only the fields a
    caller passes overwrite stored values. Read-modify-write on one key is
    serialised by a per-key lock; different keys proceed independently.
    """

    def __init__(
        self,
        store: LocalRecordStore,
        freshness: FreshnessTracker | None = None,
        clock: Clock = utc_now,
        validate: bool = False,
        staleness: timedelta = DEFAULT_STALENESS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._freshness = freshness if freshness is not None else FreshnessTracker(clock)
        self._locks = KeyedLocks()
        self._validate = validate
        self._staleness = staleness

    @property
    def store(self) -> LocalRecordStore:
        return self._store

    @property
    def freshness(self) -> FreshnessTracker:
        return self._freshness

    @property
    def last_sync_times(self) -> Mapping[str, datetime]:
        return self._freshness.snapshot()

    def today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------ #
    # Field-level merge                                                     #
    # ------------------------------------------------------------------ #

    def _updates(self, kind: RecordKind, fields: Mapping[str, Any]) -> dict[str, Any]:
        allowed = kind.record_type.mergeable_fields()
        updates = {}
        for name, value in fields.items():
            if value is None:
                continue
            if name not in allowed:
                logger.warning("Ignoring unknown %s field %r", kind.value, name)
                continue
            updates[name] = value
        return updates

    async def sync_fields(self, kind: RecordKind, user_id: str, day: date, fields: Mapping[str, Any]) -> Any:
        """Merge ``fields`` into the (kind, user, day) record, creating it if absent.

        Fields that are missing or None keep their stored value; a new record
        starts from zero values. Returns the record as persisted.
        """
        updates = self._updates(kind, fields)
        if self._validate:
            validate_fields(kind, updates)

        key = composite_key(user_id, day)
        async with self._locks.hold(f"{kind.value}:{key}"):
            existing = await self._store.get(kind, key)
            now = self._clock()
            if existing is not None:
                record = replace(existing, **updates, updated_at=now)
            else:
                record = replace(kind.record_type.empty(user_id, day, now), **updates)
            await self._store.put(kind, key, record)

        self._freshness.mark(kind, user_id)
        logger.debug("Synced %s for %s on %s (%s)", kind.value, user_id[:8], day, ", ".join(sorted(updates)))
        return record

    # ------------------------------------------------------------------ #
    # Typed entry points                                                    #
    # ------------------------------------------------------------------ #

    async def sync_health_data(self, user_id: str, day: date | None = None, **fields: Any) -> Any:
        """Update today's (or ``day``'s) health metrics; e.g. ``steps=8500``."""
        return await self.sync_fields(RecordKind.HEALTH, user_id, day or self.today(), fields)

    async def sync_meal(
        self,
        user_id: str,
        meal_id: str,
        meal_type: MealType | str,
        items: Sequence[MealItem | Mapping[str, Any]],
        logged_at: datetime | None = None,
        notes: str | None = None,
        image_url: str | None = None,
    ) -> MealRecord:
        """Write a whole meal under its own id, keeping the original created_at."""
        now = self._clock()
        meal_items = _from_maps(MealItem, items, now)
        if self._validate:
            validate_fields(RecordKind.MEAL, {"items": meal_items})

        async with self._locks.hold(f"{RecordKind.MEAL.value}:{meal_id}"):
            existing = await self._store.get(RecordKind.MEAL, meal_id)
            record = MealRecord(
                id=meal_id,
                user_id=user_id,
                meal_type=MealType(meal_type),
                items=meal_items,
                logged_at=logged_at or now,
                notes=notes,
                image_url=image_url,
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )
            await self._store.put(RecordKind.MEAL, meal_id, record)

        self._freshness.mark(RecordKind.MEAL, user_id)
        logger.debug("Synced meal %s for %s (%d items)", meal_id, user_id[:8], len(meal_items))
        return record

    async def sync_efficiency_data(
        self,
        user_id: str,
        day: date,
        tasks: Sequence[TaskRecord | Mapping[str, Any]],
        routines: Sequence[RoutineRecord | Mapping[str, Any]],
        goals: Sequence[GoalRecord | Mapping[str, Any]],
        completed_tasks: int,
        total_tasks: int,
        completed_pomodoros: int,
        total_focus_minutes: int,
        efficiency_score: float,
    ) -> EfficiencySnapshot:
        now = self._clock()
        return await self.sync_fields(RecordKind.EFFICIENCY, user_id, day, {
            "tasks": _from_maps(TaskRecord, tasks, now),
            "routines": _from_maps(RoutineRecord, routines, now),
            "goals": _from_maps(GoalRecord, goals, now),
            "completed_tasks": completed_tasks,
            "total_tasks": total_tasks,
            "completed_pomodoros": completed_pomodoros,
            "total_focus_minutes": total_focus_minutes,
            "efficiency_score": efficiency_score,
        })

    async def sync_step_data(
        self,
        user_id: str,
        day: date,
        steps: int,
        status: str,
        user_height: float,
        user_weight: float,
        distance: float | None = None,
        calories: float | None = None,
    ) -> StepSnapshot:
        """Record a step reading; distance and calories are derived when omitted."""
        derived_distance, derived_calories = StepSnapshot.derive(steps, user_height, user_weight)
        return await self.sync_fields(RecordKind.STEPS, user_id, day, {
            "steps": steps,
            "distance": distance if distance is not None else derived_distance,
            "calories": calories if calories is not None else derived_calories,
            "status": status,
            "user_height": user_height,
            "user_weight": user_weight,
        })

    async def store_record(self, kind: RecordKind, record: Any) -> None:
        """Persist a complete record as-is (e.g. one pulled from the remote store)."""
        if not record.id:
            raise ValueError("Cannot store a record without an id")
        async with self._locks.hold(f"{kind.value}:{record.id}"):
            await self._store.put(kind, record.id, record)
        self._freshness.mark(kind, record.user_id)

    async def ensure_health_record(self, user_id: str, day: date | None = None) -> Any:
        """Return the stored health record for ``day``, persisting an empty one if missing."""
        day = day or self.today()
        key = composite_key(user_id, day)
        async with self._locks.hold(f"{RecordKind.HEALTH.value}:{key}"):
            record = await self._store.get(RecordKind.HEALTH, key)
            if record is None:
                record = RecordKind.HEALTH.record_type.empty(user_id, day, self._clock())
                await self._store.put(RecordKind.HEALTH, key, record)
                logger.debug("Created empty health record %s", key)
        return record

    async def delete_record(self, kind: RecordKind, user_id: str, day: date) -> bool:
        key = composite_key(user_id, day)
        async with self._locks.hold(f"{kind.value}:{key}"):
            return await self._store.delete(kind, key)

    async def delete_meal(self, meal_id: str) -> bool:
        async with self._locks.hold(f"{RecordKind.MEAL.value}:{meal_id}"):
            return await self._store.delete(RecordKind.MEAL, meal_id)

    # ------------------------------------------------------------------ #
    # Freshness and housekeeping                                            #
    # ------------------------------------------------------------------ #

    def needs_sync(self, kind: RecordKind, user_id: str, threshold: timedelta | None = None) -> bool:
        return self._freshness.needs_sync(kind, user_id, self._staleness if threshold is None else threshold)

    def force_sync(self, user_id: str) -> None:
        """Mark every kind stale for ``user_id``; no data is fetched here."""
        removed = self._freshness.forget_user(user_id)
        logger.info("Force sync for %s: %d markers invalidated", user_id[:8], removed)

    async def clear_user_data(self, user_id: str) -> dict[RecordKind, int]:
        """Delete every record of ``user_id`` in all partitions and forget its markers."""
        removed = {}
        for kind in RecordKind:
            removed[kind] = await self._store.delete_where(kind, lambda r: r.user_id == user_id)
        self._freshness.forget_user(user_id)
        logger.info("Cleared data for %s: %s", user_id[:8],
                    ", ".join(f"{k.value}={n}" for k, n in removed.items()))
        return removed

    def sync_stats(self) -> dict[str, Any]:
        markers = self._freshness.snapshot()
        return {
            "is_initialized": self._store.is_open,
            "last_sync_times": dict(markers),
            "total_sync_operations": len(markers),
        }
