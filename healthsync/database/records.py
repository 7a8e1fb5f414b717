"""Record types mirrored into the local store.

Each top-level record belongs to one user and one calendar day and is stored
under a composite key ``{user_id}_{epoch_millis}``. ``FIELD_NUMBERS`` pins the
binary layout written by :mod:`healthsync.database.codec`: numbers are never
reused, new attributes get new numbers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any, ClassVar

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
EPOCH_DAY = EPOCH.date()
_MILLIS_PER_DAY = 86_400_000


def day_start(day: date) -> datetime:
    """Return UTC midnight of the given calendar day."""
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def composite_key(user_id: str, day: date) -> str:
    """Build the ``{user_id}_{epoch_millis}`` key addressing one day's record."""
    return f"{user_id}_{(day - EPOCH_DAY).days * _MILLIS_PER_DAY}"


def _as_datetime(value: Any, default: datetime | None) -> datetime | None:
    """Accept epoch milliseconds or datetimes, as found in remote documents."""
    if value is None:
        return default
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return EPOCH + timedelta(milliseconds=int(value))


def _pick(data: Mapping[str, Any], name: str, alias: str | None, default: Any) -> Any:
    """Read ``name`` (snake_case) or its camelCase ``alias`` from a document."""
    if name in data and data[name] is not None:
        return data[name]
    if alias and alias in data and data[alias] is not None:
        return data[alias]
    return default


# ------------------------------------------------------------------ #
# Enumerations                                                         #
# ------------------------------------------------------------------ #

class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"

    @classmethod
    def _missing_(cls, value: object) -> MealType:
        return cls.BREAKFAST


class RecognitionType(str, Enum):
    BARCODE = "barcode"
    VISION = "vision"
    MANUAL = "manual"

    @classmethod
    def _missing_(cls, value: object) -> RecognitionType:
        return cls.MANUAL


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def _missing_(cls, value: object) -> TaskPriority:
        return cls.MEDIUM


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value: object) -> TaskStatus:
        return cls.PENDING


class GoalType(str, Enum):
    TASK = "task"
    POMODORO = "pomodoro"
    ROUTINE = "routine"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value: object) -> GoalType:
        return cls.CUSTOM


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value: object) -> GoalStatus:
        return cls.ACTIVE


# ------------------------------------------------------------------ #
# Base classes                                                         #
# ------------------------------------------------------------------ #

class _Record:
    """Shared normalisation for every persisted dataclass."""

    TYPE_ID: ClassVar[int]
    FIELD_NUMBERS: ClassVar[dict[int, str]]
    ENUMS: ClassVar[dict[str, type[Enum]]] = {}
    NESTED: ClassVar[dict[str, type]] = {}

    def __post_init__(self) -> None:
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if f.name in self.ENUMS:
                enum_type = self.ENUMS[f.name]
                if not isinstance(value, enum_type):
                    setattr(self, f.name, enum_type(value))
            elif f.name in self.NESTED:
                setattr(self, f.name, self._nest(self.NESTED[f.name], value))
            elif f.type == "float" and isinstance(value, int) and not isinstance(value, bool):
                setattr(self, f.name, float(value))
            elif f.type == "date" and isinstance(value, datetime):
                # calendar day in UTC; naive values are taken as UTC
                aware = value if value.tzinfo else value.replace(tzinfo=UTC)
                setattr(self, f.name, aware.astimezone(UTC).date())
            elif isinstance(value, datetime) and value.tzinfo is None:
                setattr(self, f.name, value.replace(tzinfo=UTC))

    @staticmethod
    def _nest(target: type, value: Any) -> Any:
        if isinstance(value, Mapping):
            return target.from_dict(value)  # type: ignore[attr-defined]
        if isinstance(value, list):
            return [target.from_dict(v) if isinstance(v, Mapping) else v for v in value]  # type: ignore[attr-defined]
        return value


class _DailyRecord(_Record):
    """A record addressed by (user_id, calendar day)."""

    IDENTITY_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"id", "user_id", "date", "created_at", "updated_at"}
    )
    SUMMARY_FIELDS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def empty(cls, user_id: str, day: date, now: datetime):
        """Zero-valued record for ``day``; not persisted."""
        return cls(id=composite_key(user_id, day), user_id=user_id, date=day,
                   created_at=now, updated_at=now)

    @classmethod
    def mergeable_fields(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls)) - cls.IDENTITY_FIELDS  # type: ignore[arg-type]

    @property
    def day(self) -> date:
        return self.date  # type: ignore[attr-defined]

    def summary_values(self) -> dict[str, int | float]:
        return {name: getattr(self, name) for name in self.SUMMARY_FIELDS}


# ------------------------------------------------------------------ #
# Daily health                                                         #
# ------------------------------------------------------------------ #

@dataclass
class DailyHealthRecord(_DailyRecord):
    """Daily health and productivity metrics for one user."""

    TYPE_ID: ClassVar[int] = 0
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "user_id", 2: "date", 3: "sleep_hours", 4: "steps",
        5: "calories_in", 6: "calories_out", 7: "tasks_done", 8: "goal_progress",
        9: "efficiency_score", 10: "health_score", 11: "created_at", 12: "updated_at",
    }
    SUMMARY_FIELDS: ClassVar[tuple[str, ...]] = (
        "sleep_hours", "steps", "calories_in", "calories_out", "tasks_done",
        "goal_progress", "efficiency_score", "health_score",
    )

    id: str = ""
    user_id: str = ""
    date: date = EPOCH_DAY
    sleep_hours: float = 0.0
    steps: int = 0
    calories_in: float = 0.0
    calories_out: float = 0.0
    tasks_done: int = 0
    goal_progress: float = 0.0
    efficiency_score: float = 0.0
    health_score: float = 0.0
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH


# ------------------------------------------------------------------ #
# Meals                                                                #
# ------------------------------------------------------------------ #

_NUTRIENTS = ("calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium")


@dataclass
class NutritionInfo(_Record):
    TYPE_ID: ClassVar[int] = 3
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "food_name", 1: "calories", 2: "protein", 3: "carbs", 4: "fat",
        5: "fiber", 6: "sugar", 7: "sodium", 8: "serving_size", 9: "serving_weight",
    }

    food_name: str = ""
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    sugar: float = 0.0
    sodium: float = 0.0
    serving_size: str = "100g"
    serving_weight: float = 100.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NutritionInfo:
        return cls(
            food_name=_pick(data, "food_name", "foodName", ""),
            serving_size=_pick(data, "serving_size", "servingSize", "100g"),
            serving_weight=float(_pick(data, "serving_weight", "servingWeight", 100.0)),
            **{name: float(data.get(name) or 0.0) for name in _NUTRIENTS},
        )

    def scaled(self, factor: float) -> NutritionInfo:
        """Return a copy with every nutrient multiplied by ``factor``."""
        values = {name: getattr(self, name) * factor for name in _NUTRIENTS}
        return NutritionInfo(
            food_name=self.food_name,
            serving_size=self.serving_size,
            serving_weight=self.serving_weight,
            **values,
        )


@dataclass
class MealItem(_Record):
    TYPE_ID: ClassVar[int] = 2
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "food_name", 2: "nutrition", 3: "portion_multiplier",
        4: "image_url", 5: "barcode", 6: "recognition_type", 7: "logged_at",
    }
    ENUMS: ClassVar[dict[str, type[Enum]]] = {"recognition_type": RecognitionType}
    NESTED: ClassVar[dict[str, type]] = {"nutrition": NutritionInfo}

    id: str = ""
    food_name: str = ""
    nutrition: NutritionInfo = field(default_factory=NutritionInfo)
    portion_multiplier: float = 1.0
    image_url: str | None = None
    barcode: str | None = None
    recognition_type: RecognitionType = RecognitionType.MANUAL
    logged_at: datetime = EPOCH

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now: datetime | None = None) -> MealItem:
        return cls(
            id=data.get("id") or "",
            food_name=_pick(data, "food_name", "foodName", ""),
            nutrition=NutritionInfo.from_dict(data.get("nutrition") or {}),
            portion_multiplier=float(_pick(data, "portion_multiplier", "portionMultiplier", 1.0)),
            image_url=_pick(data, "image_url", "imageUrl", None),
            barcode=data.get("barcode"),
            recognition_type=RecognitionType(_pick(data, "recognition_type", "recognitionType", "manual")),
            logged_at=_as_datetime(_pick(data, "logged_at", "loggedAt", None), now or datetime.now(UTC)),
        )

    def scaled_nutrition(self) -> NutritionInfo:
        return self.nutrition.scaled(self.portion_multiplier)


@dataclass
class MealRecord(_DailyRecord):
    """A logged meal; keyed by its own id rather than by day."""

    TYPE_ID: ClassVar[int] = 1
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "user_id", 2: "meal_type", 3: "items", 4: "logged_at",
        5: "notes", 6: "image_url", 7: "created_at", 8: "updated_at",
    }
    ENUMS: ClassVar[dict[str, type[Enum]]] = {"meal_type": MealType}
    NESTED: ClassVar[dict[str, type]] = {"items": MealItem}

    id: str = ""
    user_id: str = ""
    meal_type: MealType = MealType.BREAKFAST
    items: list[MealItem] = field(default_factory=list)
    logged_at: datetime = EPOCH
    notes: str | None = None
    image_url: str | None = None
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH

    @classmethod
    def empty(cls, user_id: str, day: date, now: datetime) -> MealRecord:
        return cls(id=composite_key(user_id, day), user_id=user_id,
                   logged_at=day_start(day), created_at=now, updated_at=now)

    @property
    def day(self) -> date:
        return self.logged_at.date()

    def total_nutrition(self) -> NutritionInfo:
        total = NutritionInfo(food_name="total", serving_size="", serving_weight=0.0)
        for item in self.items:
            scaled = item.scaled_nutrition()
            for name in _NUTRIENTS:
                setattr(total, name, getattr(total, name) + getattr(scaled, name))
        return total

    def summary_values(self) -> dict[str, int | float]:
        total = self.total_nutrition()
        values: dict[str, int | float] = {"items": len(self.items)}
        values.update({name: getattr(total, name) for name in _NUTRIENTS})
        return values


# ------------------------------------------------------------------ #
# Efficiency                                                           #
# ------------------------------------------------------------------ #

@dataclass
class TaskRecord(_Record):
    TYPE_ID: ClassVar[int] = 5
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "title", 2: "description", 3: "priority", 4: "status",
        5: "created_at", 6: "completed_at", 7: "estimated_minutes", 8: "category",
        9: "is_top_three",
    }
    ENUMS: ClassVar[dict[str, type[Enum]]] = {"priority": TaskPriority, "status": TaskStatus}

    id: str = ""
    title: str = ""
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = EPOCH
    completed_at: datetime | None = None
    estimated_minutes: int = 30
    category: str | None = None
    is_top_three: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now: datetime | None = None) -> TaskRecord:
        return cls(
            id=data.get("id") or "",
            title=data.get("title") or "",
            description=data.get("description"),
            priority=TaskPriority(data.get("priority") or "medium"),
            status=TaskStatus(data.get("status") or "pending"),
            created_at=_as_datetime(_pick(data, "created_at", "createdAt", None), now or datetime.now(UTC)),
            completed_at=_as_datetime(_pick(data, "completed_at", "completedAt", None), None),
            estimated_minutes=int(_pick(data, "estimated_minutes", "estimatedMinutes", 30)),
            category=data.get("category"),
            is_top_three=bool(_pick(data, "is_top_three", "isTopThree", False)),
        )


@dataclass
class RoutineRecord(_Record):
    TYPE_ID: ClassVar[int] = 6
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "title", 2: "description", 3: "icon_name", 4: "days_of_week",
        5: "reminder_time", 6: "is_active", 7: "created_at", 8: "updated_at",
    }

    id: str = ""
    title: str = ""
    description: str | None = None
    icon_name: str = "routine"
    days_of_week: list[str] = field(default_factory=list)
    reminder_time: str | None = None
    is_active: bool = True
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now: datetime | None = None) -> RoutineRecord:
        now = now or datetime.now(UTC)
        return cls(
            id=data.get("id") or "",
            title=data.get("title") or "",
            description=data.get("description"),
            icon_name=_pick(data, "icon_name", "iconName", "routine"),
            days_of_week=list(_pick(data, "days_of_week", "daysOfWeek", [])),
            reminder_time=_pick(data, "reminder_time", "reminderTime", None),
            is_active=bool(_pick(data, "is_active", "isActive", True)),
            created_at=_as_datetime(_pick(data, "created_at", "createdAt", None), now),
            updated_at=_as_datetime(_pick(data, "updated_at", "updatedAt", None), now),
        )


@dataclass
class GoalRecord(_Record):
    TYPE_ID: ClassVar[int] = 7
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "title", 2: "description", 3: "type", 4: "status",
        5: "target_date", 6: "target_value", 7: "current_value", 8: "unit",
        9: "created_at", 10: "updated_at",
    }
    ENUMS: ClassVar[dict[str, type[Enum]]] = {"type": GoalType, "status": GoalStatus}

    id: str = ""
    title: str = ""
    description: str | None = None
    type: GoalType = GoalType.CUSTOM
    status: GoalStatus = GoalStatus.ACTIVE
    target_date: datetime = EPOCH
    target_value: int = 0
    current_value: int = 0
    unit: str = ""
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now: datetime | None = None) -> GoalRecord:
        now = now or datetime.now(UTC)
        return cls(
            id=data.get("id") or "",
            title=data.get("title") or "",
            description=data.get("description"),
            type=GoalType(data.get("type") or "custom"),
            status=GoalStatus(data.get("status") or "active"),
            target_date=_as_datetime(_pick(data, "target_date", "targetDate", None), now + timedelta(days=30)),
            target_value=int(_pick(data, "target_value", "targetValue", 0)),
            current_value=int(_pick(data, "current_value", "currentValue", 0)),
            unit=data.get("unit") or "",
            created_at=_as_datetime(_pick(data, "created_at", "createdAt", None), now),
            updated_at=_as_datetime(_pick(data, "updated_at", "updatedAt", None), now),
        )


@dataclass
class EfficiencySnapshot(_DailyRecord):
    """One day of tasks, routines, goals and focus time."""

    TYPE_ID: ClassVar[int] = 4
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "user_id", 2: "date", 3: "tasks", 4: "routines", 5: "goals",
        6: "completed_tasks", 7: "total_tasks", 8: "completed_pomodoros",
        9: "total_focus_minutes", 10: "efficiency_score", 11: "created_at", 12: "updated_at",
    }
    NESTED: ClassVar[dict[str, type]] = {
        "tasks": TaskRecord, "routines": RoutineRecord, "goals": GoalRecord,
    }
    SUMMARY_FIELDS: ClassVar[tuple[str, ...]] = (
        "completed_tasks", "total_tasks", "completed_pomodoros",
        "total_focus_minutes", "efficiency_score",
    )

    id: str = ""
    user_id: str = ""
    date: date = EPOCH_DAY
    tasks: list[TaskRecord] = field(default_factory=list)
    routines: list[RoutineRecord] = field(default_factory=list)
    goals: list[GoalRecord] = field(default_factory=list)
    completed_tasks: int = 0
    total_tasks: int = 0
    completed_pomodoros: int = 0
    total_focus_minutes: int = 0
    efficiency_score: float = 0.0
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH


# ------------------------------------------------------------------ #
# Steps                                                                #
# ------------------------------------------------------------------ #

_STRIDE_PER_METRE_OF_HEIGHT = 0.78
_KCAL_PER_KM_PER_KG = 1.036


@dataclass
class StepSnapshot(_DailyRecord):
    """Step counter reading with derived distance (km) and calories."""

    TYPE_ID: ClassVar[int] = 8
    FIELD_NUMBERS: ClassVar[dict[int, str]] = {
        0: "id", 1: "user_id", 2: "date", 3: "steps", 4: "distance", 5: "calories",
        6: "status", 7: "user_height", 8: "user_weight", 9: "created_at", 10: "updated_at",
    }
    SUMMARY_FIELDS: ClassVar[tuple[str, ...]] = ("steps", "distance", "calories")

    id: str = ""
    user_id: str = ""
    date: date = EPOCH_DAY
    steps: int = 0
    distance: float = 0.0
    calories: float = 0.0
    status: str = ""
    user_height: float = 0.0
    user_weight: float = 0.0
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH

    @staticmethod
    def derive(steps: int, user_height: float, user_weight: float) -> tuple[float, float]:
        """Return (distance_km, calories) for a step count.

        Stride is 0.78 x height; calories burned are distance x weight x 1.036.
        """
        distance = steps * user_height * _STRIDE_PER_METRE_OF_HEIGHT / 1000
        return distance, distance * user_weight * _KCAL_PER_KM_PER_KG


# ------------------------------------------------------------------ #
# Kinds                                                                #
# ------------------------------------------------------------------ #

class RecordKind(str, Enum):
    """The four typed partitions of the local store."""

    HEALTH = "health"
    MEAL = "meals"
    EFFICIENCY = "efficiency"
    STEPS = "steps"

    @property
    def partition(self) -> str:
        return _PARTITIONS[self]

    @property
    def record_type(self) -> type[_DailyRecord]:
        return _RECORD_TYPES[self]


_PARTITIONS = {
    RecordKind.HEALTH: "health_data",
    RecordKind.MEAL: "meal_data",
    RecordKind.EFFICIENCY: "efficiency_data",
    RecordKind.STEPS: "step_data",
}

_RECORD_TYPES: dict[RecordKind, type[_DailyRecord]] = {
    RecordKind.HEALTH: DailyHealthRecord,
    RecordKind.MEAL: MealRecord,
    RecordKind.EFFICIENCY: EfficiencySnapshot,
    RecordKind.STEPS: StepSnapshot,
}

ALL_RECORD_TYPES: tuple[type[_Record], ...] = (
    DailyHealthRecord, MealRecord, MealItem, NutritionInfo,
    EfficiencySnapshot, TaskRecord, RoutineRecord, GoalRecord, StepSnapshot,
)
