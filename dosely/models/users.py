"""Pydantic models for users and onboarding profiles."""

from __future__ import annotations

import uuid
from datetime import date
from enum import Enum

from pydantic import Field, field_validator

from dosely.models.base import DoselyBase


# ---------- Enums ----------

class MeasurementUnit(str, Enum):
    metric = "metric"
    imperial = "imperial"

    @property
    def weight_unit(self) -> str:
        return "kg" if self is MeasurementUnit.metric else "lbs"

    @property
    def height_unit(self) -> str:
        return "cm" if self is MeasurementUnit.metric else "in"


# ---------- Titration ----------

class TitrationWeek(DoselyBase):
    week: int = Field(ge=1)
    dose_mg: float = Field(gt=0)
    frequency_days: int = Field(ge=1)


# ---------- Profiles ----------

class UserProfile(DoselyBase):
    """Row of the ``profiles`` table.  Weights are kilograms."""

    username: str | None = None
    email: str | None = None
    measurement_unit: MeasurementUnit = MeasurementUnit.metric
    current_weight: float | None = Field(default=None, gt=0)
    goal_weight: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    age: int | None = Field(default=None, ge=0, le=130)
    start_date: date | None = None
    medication: str | None = None
    titration_schedule: list[TitrationWeek] | None = None

    @field_validator("titration_schedule")
    @classmethod
    def _ordered_weeks(cls, value: list[TitrationWeek] | None) -> list[TitrationWeek] | None:
        if not value:
            return value
        weeks = [step.week for step in value]
        if len(set(weeks)) != len(weeks):
            raise ValueError("titration_schedule has duplicate weeks")
        return sorted(value, key=lambda step: step.week)

    def titration_step(self, week: int) -> TitrationWeek | None:
        """Return the step in effect during ``week`` (the latest step not after it)."""
        current = None
        for step in self.titration_schedule or []:
            if step.week > week:
                break
            current = step
        return current


# ---------- Users ----------

class User(DoselyBase):
    id: uuid.UUID
    email: str
    profile: UserProfile | None = None

    @property
    def has_profile(self) -> bool:
        return self.profile is not None
