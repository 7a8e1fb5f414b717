"""Tests for healthsync/sync/engine.py."""

import asyncio
import os
import tempfile
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta

import pytest

from healthsync.database.records import (
    DailyHealthRecord,
    MealType,
    RecordKind,
    StepSnapshot,
    TaskRecord,
    TaskStatus,
    composite_key,
)
from healthsync.database.store import LocalRecordStore, NotInitializedError
from healthsync.sync.engine import SyncEngine
from healthsync.sync.validation import RecordValidationError

START = datetime(2024, 3, 15, 9, 0, tzinfo=UTC)
TODAY = START.date()


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    try:
        os.unlink(path)
    except PermissionError:
        pass


def _run(db_path, scenario, clock=None, **engine_kwargs):
    async def _main():
        store = LocalRecordStore(db_path)
        await store.open_if_needed()
        engine = SyncEngine(store, clock=clock or FakeClock(), **engine_kwargs)
        try:
            return await scenario(engine)
        finally:
            await store.close()

    return asyncio.run(_main())


def test_sync_creates_record_on_empty_store(db_path):
    async def scenario(engine):
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 8500})
        return await engine.store.get(RecordKind.HEALTH, composite_key("u1", TODAY))

    record = _run(db_path, scenario)
    assert record.steps == 8500
    assert record.sleep_hours == 0.0
    assert record.calories_in == 0.0
    assert record.tasks_done == 0
    assert record.user_id == "u1"
    assert record.date == TODAY
    assert record.created_at == record.updated_at == START


def test_merge_preserves_untouched_fields(db_path):
    async def scenario(engine):
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"sleep_hours": 7, "steps": 5000})
        return await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 6000})

    record = _run(db_path, scenario)
    assert record.sleep_hours == 7.0
    assert record.steps == 6000


def test_sequential_updates_merge_not_overwrite(db_path):
    async def scenario(engine):
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"efficiency_score": 70})
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"health_score": 80})
        return await engine.store.get(RecordKind.HEALTH, composite_key("u1", TODAY))

    record = _run(db_path, scenario)
    assert record.efficiency_score == 70.0
    assert record.health_score == 80.0


def test_repeated_sync_only_advances_updated_at(db_path):
    clock = FakeClock()

    async def scenario(engine):
        once = await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 100})
        clock.advance(minutes=1)
        twice = await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 100})
        return once, twice

    once, twice = _run(db_path, scenario, clock=clock)
    assert twice.updated_at == once.updated_at + timedelta(minutes=1)
    assert twice.created_at == once.created_at
    assert replace(twice, updated_at=once.updated_at) == once


def test_none_and_unknown_fields_are_ignored(db_path):
    async def scenario(engine):
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 10, "sleep_hours": 6})
        return await engine.sync_fields(
            RecordKind.HEALTH, "u1", TODAY,
            {"sleep_hours": None, "mood": "great", "user_id": "intruder", "steps": 11},
        )

    record = _run(db_path, scenario)
    assert record.sleep_hours == 6.0
    assert record.steps == 11
    assert record.user_id == "u1"
    assert not hasattr(record, "mood")


def test_sync_before_open_propagates(db_path):
    async def scenario():
        engine = SyncEngine(LocalRecordStore(db_path), clock=FakeClock())
        with pytest.raises(NotInitializedError):
            await engine.sync_health_data("u1", TODAY, steps=1)

    asyncio.run(scenario())


def test_concurrent_updates_to_one_key_are_not_lost(db_path):
    async def scenario(engine):
        fields = ["sleep_hours", "steps", "calories_in", "calories_out", "tasks_done", "health_score"]
        await asyncio.gather(*(
            engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {name: i + 1})
            for i, name in enumerate(fields)
        ))
        return await engine.store.get(RecordKind.HEALTH, composite_key("u1", TODAY))

    record = _run(db_path, scenario)
    assert record.sleep_hours == 1.0
    assert record.steps == 2
    assert record.calories_in == 3.0
    assert record.calories_out == 4.0
    assert record.tasks_done == 5
    assert record.health_score == 6.0


def test_sync_health_data_defaults_to_today(db_path):
    async def scenario(engine):
        return await engine.sync_health_data("u1", steps=42)

    record = _run(db_path, scenario)
    assert record.date == TODAY
    assert record.id == composite_key("u1", TODAY)


def test_freshness_threshold(db_path):
    clock = FakeClock()

    async def scenario(engine):
        before = engine.needs_sync(RecordKind.HEALTH, "u1")
        await engine.sync_fields(RecordKind.HEALTH, "u1", TODAY, {"steps": 1})
        fresh = engine.needs_sync(RecordKind.HEALTH, "u1", timedelta(minutes=5))
        clock.advance(minutes=5)
        at_threshold = engine.needs_sync(RecordKind.HEALTH, "u1", timedelta(minutes=5))
        clock.advance(seconds=1)
        stale = engine.needs_sync(RecordKind.HEALTH, "u1", timedelta(minutes=5))
        return before, fresh, at_threshold, stale

    assert _run(db_path, scenario, clock=clock) == (True, False, False, True)


def test_configured_staleness_is_default_threshold(db_path):
    clock = FakeClock()

    async def scenario(engine):
        await engine.sync_health_data("u1", steps=1)
        clock.advance(minutes=2)
        return engine.needs_sync(RecordKind.HEALTH, "u1")

    assert _run(db_path, scenario, clock=clock, staleness=timedelta(minutes=1)) is True


def test_sync_meal_keeps_created_at(db_path):
    clock = FakeClock()

    async def scenario(engine):
        first = await engine.sync_meal("u1", "m1", "lunch", [{"foodName": "Soup", "nutrition": {"calories": 90}}])
        clock.advance(hours=1)
        second = await engine.sync_meal("u1", "m1", MealType.DINNER, [], notes="late")
        stored = await engine.store.get(RecordKind.MEAL, "m1")
        return first, second, stored

    first, second, stored = _run(db_path, scenario, clock=clock)
    assert first.items[0].food_name == "Soup"
    assert first.items[0].nutrition.calories == 90.0
    assert second.created_at == START
    assert second.updated_at == START + timedelta(hours=1)
    assert stored == second
    assert stored.meal_type is MealType.DINNER
    assert stored.items == []


def test_sync_efficiency_data_builds_nested_records(db_path):
    async def scenario(engine):
        return await engine.sync_efficiency_data(
            "u1", TODAY,
            tasks=[{"id": "t1", "title": "Review", "status": "completed"}, TaskRecord(id="t2")],
            routines=[],
            goals=[{"id": "g1", "targetValue": 4}],
            completed_tasks=1, total_tasks=2, completed_pomodoros=3,
            total_focus_minutes=75, efficiency_score=50,
        )

    snap = _run(db_path, scenario)
    assert snap.tasks[0].status is TaskStatus.COMPLETED
    assert snap.tasks[1].id == "t2"
    assert snap.goals[0].target_value == 4
    assert snap.efficiency_score == 50.0


def test_sync_step_data_derives_distance_and_calories(db_path):
    async def scenario(engine):
        derived = await engine.sync_step_data("u1", TODAY, 10_000, "walking", 1.8, 80)
        explicit = await engine.sync_step_data("u2", TODAY, 10_000, "walking", 1.8, 80,
                                               distance=5.0, calories=300.0)
        return derived, explicit

    derived, explicit = _run(db_path, scenario)
    distance, calories = StepSnapshot.derive(10_000, 1.8, 80)
    assert derived.distance == pytest.approx(distance)
    assert derived.calories == pytest.approx(calories)
    assert explicit.distance == 5.0
    assert explicit.calories == 300.0


def test_validation_rejects_out_of_range_when_enabled(db_path):
    async def scenario(engine):
        with pytest.raises(RecordValidationError, match="sleep_hours"):
            await engine.sync_health_data("u1", TODAY, sleep_hours=25)
        with pytest.raises(RecordValidationError, match="portion"):
            await engine.sync_meal("u1", "m1", "snack", [{"portionMultiplier": -1}])
        return await engine.store.stats()

    stats = _run(db_path, scenario, validate=True)
    assert stats["health_data"] == 0
    assert stats["meal_data"] == 0


def test_validation_off_by_default(db_path):
    async def scenario(engine):
        return await engine.sync_health_data("u1", TODAY, steps=-5)

    assert _run(db_path, scenario).steps == -5


def test_ensure_health_record_creates_once(db_path):
    async def scenario(engine):
        first = await engine.ensure_health_record("u1", TODAY)
        await engine.sync_health_data("u1", TODAY, steps=7)
        second = await engine.ensure_health_record("u1", TODAY)
        return first, second

    first, second = _run(db_path, scenario)
    assert first.steps == 0
    assert second.steps == 7


def test_store_record_requires_id(db_path):
    async def scenario(engine):
        with pytest.raises(ValueError, match="id"):
            await engine.store_record(RecordKind.HEALTH, DailyHealthRecord(user_id="u1"))
        record = DailyHealthRecord(id="remote-1", user_id="u1", date=TODAY, steps=3)
        await engine.store_record(RecordKind.HEALTH, record)
        return await engine.store.get(RecordKind.HEALTH, "remote-1"), engine.needs_sync(RecordKind.HEALTH, "u1")

    stored, needs = _run(db_path, scenario)
    assert stored.steps == 3
    assert needs is False


def test_delete_record_and_meal(db_path):
    async def scenario(engine):
        await engine.sync_health_data("u1", TODAY, steps=1)
        await engine.sync_meal("u1", "m1", "lunch", [])
        return (
            await engine.delete_record(RecordKind.HEALTH, "u1", TODAY),
            await engine.delete_meal("m1"),
            await engine.delete_meal("m1"),
        )

    assert _run(db_path, scenario) == (True, True, False)


def test_clear_user_data_removes_records_and_markers(db_path):
    async def scenario(engine):
        for user in ("u1", "u2"):
            await engine.sync_health_data(user, TODAY, steps=1)
            await engine.sync_meal(user, f"{user}-meal", "lunch", [])
            await engine.sync_efficiency_data(user, TODAY, [], [], [], 0, 0, 0, 0, 0.0)
            await engine.sync_step_data(user, TODAY, 100, "ok", 1.7, 60)
        removed = await engine.clear_user_data("u1")
        remaining = {kind: await engine.store.scan(kind) for kind in RecordKind}
        return removed, remaining, dict(engine.last_sync_times)

    removed, remaining, markers = _run(db_path, scenario)
    assert removed == {kind: 1 for kind in RecordKind}
    for records in remaining.values():
        assert [r.user_id for r in records] == ["u2"]
    assert not any(key.endswith("_u1") for key in markers)
    assert len(markers) == 4


def test_force_sync_only_affects_that_user(db_path):
    async def scenario(engine):
        await engine.sync_health_data("u1", TODAY, steps=1)
        await engine.sync_health_data("u2", TODAY, steps=1)
        engine.force_sync("u1")
        return engine.needs_sync(RecordKind.HEALTH, "u1"), engine.needs_sync(RecordKind.HEALTH, "u2")

    assert _run(db_path, scenario) == (True, False)


def test_sync_stats(db_path):
    async def scenario(engine):
        await engine.sync_health_data("u1", TODAY, steps=1)
        return engine.sync_stats()

    stats = _run(db_path, scenario)
    assert stats["is_initialized"] is True
    assert stats["total_sync_operations"] == 1
    assert stats["last_sync_times"] == {"health_u1": START}
