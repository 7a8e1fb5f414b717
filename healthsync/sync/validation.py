"""Optional range checks applied to field updates before they are merged."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..database.records import RecordKind


class RecordValidationError(ValueError):
    """Raised when an update carries a value outside its allowed range."""


# (minimum, maximum); None means unbounded
_RANGES: dict[RecordKind, dict[str, tuple[float | None, float | None]]] = {
    RecordKind.HEALTH: {
        "sleep_hours": (0, 24),
        "steps": (0, None),
        "calories_in": (0, None),
        "calories_out": (0, None),
        "tasks_done": (0, None),
        "goal_progress": (0.0, 1.0),
        "efficiency_score": (0.0, 100.0),
        "health_score": (0.0, 100.0),
    },
    RecordKind.EFFICIENCY: {
        "completed_tasks": (0, None),
        "total_tasks": (0, None),
        "completed_pomodoros": (0, None),
        "total_focus_minutes": (0, None),
        "efficiency_score": (0.0, 100.0),
    },
    RecordKind.STEPS: {
        "steps": (0, None),
        "distance": (0, None),
        "calories": (0, None),
        "user_height": (0, None),
        "user_weight": (0, None),
    },
    RecordKind.MEAL: {},
}


def validate_fields(kind: RecordKind, fields: Mapping[str, Any]) -> None:
    """Raise RecordValidationError for the first out-of-range value in ``fields``."""
    for name, (low, high) in _RANGES[kind].items():
        value = fields.get(name)
        if value is None:
            continue
        if low is not None and value < low:
            raise RecordValidationError(f"{kind.value}.{name} must be >= {low}, got {value}")
        if high is not None and value > high:
            raise RecordValidationError(f"{kind.value}.{name} must be <= {high}, got {value}")
    if kind is RecordKind.MEAL:
        for item in fields.get("items") or []:
            if isinstance(item, Mapping):
                portion = item.get("portion_multiplier", item.get("portionMultiplier", 1.0))
            else:
                portion = item.portion_multiplier
            if portion < 0:
                raise RecordValidationError(f"meals.items portion_multiplier must be >= 0, got {portion}")
