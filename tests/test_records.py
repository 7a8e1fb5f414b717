"""Tests for healthsync/database/records.py."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from healthsync.database.records import (
    DailyHealthRecord,
    EfficiencySnapshot,
    GoalRecord,
    GoalStatus,
    MealItem,
    MealRecord,
    MealType,
    NutritionInfo,
    RecognitionType,
    RecordKind,
    StepSnapshot,
    TaskPriority,
    TaskRecord,
    TaskStatus,
    composite_key,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


def test_composite_key_is_utc_midnight_millis():
    assert composite_key("u1", date(2024, 1, 1)) == "u1_1704067200000"
    assert composite_key("u1", date(1970, 1, 1)) == "u1_0"


def test_composite_key_distinct_per_day_and_user():
    keys = {composite_key(u, date(2024, 1, d)) for u in ("a", "b") for d in (1, 2)}
    assert len(keys) == 4


def test_unknown_enum_values_fall_back():
    assert MealType("brunch") is MealType.BREAKFAST
    assert RecognitionType("psychic") is RecognitionType.MANUAL
    assert TaskPriority("whenever") is TaskPriority.MEDIUM
    assert TaskStatus("blocked") is TaskStatus.PENDING
    assert GoalStatus("archived") is GoalStatus.ACTIVE


def test_enum_fields_coerced_from_strings():
    task = TaskRecord(id="t", priority="high", status="inProgress")
    assert task.priority is TaskPriority.HIGH
    assert task.status is TaskStatus.IN_PROGRESS


def test_empty_health_record_has_zero_values():
    record = DailyHealthRecord.empty("u1", date(2024, 3, 15), NOW)
    assert record.id == composite_key("u1", date(2024, 3, 15))
    assert record.steps == 0
    assert record.sleep_hours == 0.0
    assert record.created_at == NOW == record.updated_at


def test_mergeable_fields_exclude_identity():
    names = DailyHealthRecord.mergeable_fields()
    assert "steps" in names
    assert not names & {"id", "user_id", "date", "created_at", "updated_at"}


def test_int_assigned_to_float_field_becomes_float():
    record = DailyHealthRecord(sleep_hours=8)
    assert isinstance(record.sleep_hours, float)


def test_naive_datetimes_become_utc():
    record = DailyHealthRecord(created_at=datetime(2024, 1, 1, 9, 0))
    assert record.created_at.tzinfo is UTC


def test_datetime_in_date_field_becomes_utc_day():
    record = DailyHealthRecord(date=datetime(2024, 3, 15, 18, 30, tzinfo=UTC))
    assert record.date == date(2024, 3, 15)
    assert type(record.date) is date

    shifted = DailyHealthRecord(date=datetime(2024, 3, 16, 1, 0, tzinfo=timezone(timedelta(hours=3))))
    assert shifted.date == date(2024, 3, 15)


def test_meal_item_from_camel_case_document():
    item = MealItem.from_dict({
        "id": "i1",
        "foodName": "Oats",
        "nutrition": {"foodName": "Oats", "calories": 380, "protein": 13},
        "portionMultiplier": 0.5,
        "recognitionType": "barcode",
        "loggedAt": 1704067200000,
    })
    assert item.food_name == "Oats"
    assert item.nutrition.calories == 380.0
    assert item.portion_multiplier == 0.5
    assert item.recognition_type is RecognitionType.BARCODE
    assert item.logged_at == datetime(2024, 1, 1, tzinfo=UTC)


def test_meal_item_defaults():
    item = MealItem.from_dict({}, NOW)
    assert item.portion_multiplier == 1.0
    assert item.recognition_type is RecognitionType.MANUAL
    assert item.logged_at == NOW
    assert item.nutrition.serving_size == "100g"


def test_meal_total_nutrition_scales_by_portion():
    meal = MealRecord(items=[
        MealItem(nutrition=NutritionInfo(calories=200, protein=10), portion_multiplier=2),
        MealItem(nutrition=NutritionInfo(calories=100, fat=5)),
    ])
    total = meal.total_nutrition()
    assert total.calories == pytest.approx(500.0)
    assert total.protein == pytest.approx(20.0)
    assert total.fat == pytest.approx(5.0)
    assert meal.summary_values()["items"] == 2


def test_meal_day_follows_logged_at():
    meal = MealRecord(logged_at=datetime(2024, 3, 15, 23, 30, tzinfo=UTC))
    assert meal.day == date(2024, 3, 15)
    assert MealRecord.empty("u1", date(2024, 3, 10), NOW).day == date(2024, 3, 10)


def test_task_from_dict_defaults():
    task = TaskRecord.from_dict({"id": "t1", "title": "Write"}, NOW)
    assert task.priority is TaskPriority.MEDIUM
    assert task.status is TaskStatus.PENDING
    assert task.estimated_minutes == 30
    assert task.is_top_three is False
    assert task.created_at == NOW
    assert task.completed_at is None


def test_goal_target_date_defaults_to_thirty_days():
    goal = GoalRecord.from_dict({"id": "g1", "type": "pomodoro"}, NOW)
    assert goal.target_date == NOW + timedelta(days=30)
    assert goal.status is GoalStatus.ACTIVE


def test_efficiency_nested_documents_become_records():
    snap = EfficiencySnapshot(tasks=[{"id": "t1", "title": "A"}], goals=[{"id": "g1"}])
    assert isinstance(snap.tasks[0], TaskRecord)
    assert isinstance(snap.goals[0], GoalRecord)


def test_step_derivation():
    distance, calories = StepSnapshot.derive(10_000, 1.75, 70)
    assert distance == pytest.approx(13.65)
    assert calories == pytest.approx(13.65 * 70 * 1.036)


def test_record_kind_partitions_and_types():
    assert RecordKind.HEALTH.partition == "health_data"
    assert RecordKind.MEAL.partition == "meal_data"
    assert RecordKind.EFFICIENCY.record_type is EfficiencySnapshot
    assert RecordKind.STEPS.record_type is StepSnapshot
