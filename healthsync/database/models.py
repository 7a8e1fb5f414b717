"""SQLAlchemy ORM models backing the local record store.

Each record kind lives in its own partition table holding opaque encoded
payloads; ``user_settings`` is the untyped settings partition.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class _PartitionRow:
    key = Column(String(200), primary_key=True)
    payload = Column(LargeBinary, nullable=False)
    stored_at = Column(DateTime, default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} key={self.key} bytes={len(self.payload or b'')}>"


class HealthDataRow(_PartitionRow, Base):
    __tablename__ = "health_data"


class MealDataRow(_PartitionRow, Base):
    __tablename__ = "meal_data"


class EfficiencyDataRow(_PartitionRow, Base):
    __tablename__ = "efficiency_data"


class StepDataRow(_PartitionRow, Base):
    __tablename__ = "step_data"


class UserSetting(Base):
    """Free-form key/value settings."""

    __tablename__ = "user_settings"

    key = Column(String(200), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<UserSetting {self.key}={self.value!r}>"


PARTITION_ROWS: dict[str, type[_PartitionRow]] = {
    "health_data": HealthDataRow,
    "meal_data": MealDataRow,
    "efficiency_data": EfficiencyDataRow,
    "step_data": StepDataRow,
}
