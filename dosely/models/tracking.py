"""Pydantic models for medications, dose logs and weight entries.

Field names follow the domain; where the backend column differs the field
carries an alias (``interval_days`` ↔ ``frequency_days``, ``category`` ↔
``type``, ``recorded_at`` ↔ ``date``).  Dump with ``by_alias=True`` to get a row.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from pydantic import Field

from dosely.models.base import DoselyBase, TimestampMixin
from dosely.models.users import MeasurementUnit

# Offered in the dose log symptom picker
COMMON_SYMPTOMS: list[str] = [
    "Nausea",
    "Vomiting",
    "Diarrhea",
    "Constipation",
    "Headache",
    "Fatigue",
    "Dizziness",
    "Stomach pain",
    "Loss of appetite",
    "Heartburn",
]


# ---------- Enums ----------

class MedicationType(str, Enum):
    glp1 = "GLP-1"
    other = "Other"


class WeightSource(str, Enum):
    manual = "manual"
    external_sync = "health_kit"
    imported = "imported"

    @property
    def display_name(self) -> str:
        return {
            WeightSource.manual: "Manual Entry",
            WeightSource.external_sync: "Apple Health",
            WeightSource.imported: "Imported",
        }[self]


# ---------- Medications ----------

class MedicationBase(DoselyBase):
    name: str = Field(min_length=1)
    dose_mg: float = Field(gt=0)
    interval_days: int = Field(ge=1, alias="frequency_days")
    start_date: date
    end_date: date | None = None
    category: MedicationType = Field(default=MedicationType.glp1, alias="type")
    notes: str | None = None


class MedicationCreate(MedicationBase):
    pass


class MedicationUpdate(DoselyBase):
    name: str | None = Field(default=None, min_length=1)
    dose_mg: float | None = Field(default=None, gt=0)
    interval_days: int | None = Field(default=None, ge=1, alias="frequency_days")
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None


class Medication(MedicationBase, TimestampMixin):
    id: uuid.UUID
    user_id: uuid.UUID

    def is_active(self, today: date | None = None) -> bool:
        if self.end_date is None:
            return True
        return self.end_date > (today or date.today())


# ---------- Doses ----------

class DoseBase(DoselyBase):
    medication_id: uuid.UUID
    scheduled_at: datetime
    dose_mg: float = Field(gt=0)
    taken: bool = False
    notes: str | None = None
    symptoms: list[str] | None = None
    symptom_severity: int | None = Field(default=None, ge=1, le=5)


class DoseCreate(DoseBase):
    pass


class DoseUpdate(DoselyBase):
    taken: bool | None = None
    notes: str | None = None
    symptoms: list[str] | None = None
    symptom_severity: int | None = Field(default=None, ge=1, le=5)


class Dose(DoseBase, TimestampMixin):
    id: uuid.UUID
    user_id: uuid.UUID


# ---------- Weight entries ----------

class WeightEntryBase(DoselyBase):
    recorded_at: datetime = Field(alias="date")
    weight_kg: float = Field(gt=0)
    source: WeightSource = WeightSource.manual
    notes: str | None = None


class WeightEntryCreate(WeightEntryBase):
    pass


class WeightEntryUpdate(DoselyBase):
    # Only notes are mutable after creation
    notes: str | None = None


class WeightEntry(WeightEntryBase, TimestampMixin):
    id: uuid.UUID
    user_id: uuid.UUID

    def weight_in(self, unit: MeasurementUnit) -> float:
        from dosely.models.units import to_display

        return to_display(self.weight_kg, unit)
