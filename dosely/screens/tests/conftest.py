"""Shared fixtures for screen model tests.

The gateway is mocked; the session, scheduler, notification center and
health store are real objects so the screens drive them end to end.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from dosely.config_loader import ReminderConfig
from dosely.health.apple_health import AppleHealthExportStore
from dosely.health.tests.conftest import EXPORT_XML
from dosely.models.tracking import (
    Dose,
    DoseCreate,
    DoseUpdate,
    Medication,
    MedicationCreate,
    MedicationUpdate,
    WeightEntry,
    WeightEntryCreate,
)
from dosely.models.users import MeasurementUnit, User, UserProfile
from dosely.reminders.local import LocalNotificationCenter
from dosely.reminders.scheduler import ReminderScheduler
from dosely.services.session import SessionManager
from dosely.services.supabase import SupabaseGateway

# Canonical test user ID
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_medication(**overrides) -> Medication:
    fields = {
        "id": uuid4(),
        "user_id": TEST_USER_ID,
        "name": "Wegovy",
        "dose_mg": 0.25,
        "interval_days": 7,
        "start_date": date.today() + timedelta(days=1),
    }
    fields.update(overrides)
    return Medication(**fields)


def make_weight(days_ago: int, kg: float) -> WeightEntry:
    return WeightEntry(
        id=uuid4(), user_id=TEST_USER_ID, recorded_at=NOW - timedelta(days=days_ago), weight_kg=kg
    )


class FakeBackend:
    """Side effects for the gateway mock that behave like the real tables."""

    def __init__(self) -> None:
        self.medications: dict[UUID, Medication] = {}
        self.doses: dict[UUID, Dose] = {}
        self.weights: dict[UUID, WeightEntry] = {}

    async def add_medication(self, user_id: UUID, body: MedicationCreate) -> Medication:
        med = Medication(id=uuid4(), user_id=user_id, **body.model_dump())
        self.medications[med.id] = med
        return med

    async def update_medication(self, medication_id: UUID, body: MedicationUpdate) -> Medication:
        med = self.medications[medication_id].model_copy(update=body.model_dump(exclude_unset=True))
        self.medications[medication_id] = med
        return med

    async def add_dose(self, user_id: UUID, body: DoseCreate) -> Dose:
        dose = Dose(id=uuid4(), user_id=user_id, **body.model_dump())
        self.doses[dose.id] = dose
        return dose

    async def update_dose(self, dose_id: UUID, body: DoseUpdate) -> Dose:
        dose = self.doses[dose_id].model_copy(update=body.model_dump(exclude_unset=True))
        self.doses[dose_id] = dose
        return dose

    async def add_weight_entry(self, user_id: UUID, body: WeightEntryCreate) -> WeightEntry:
        entry = WeightEntry(id=uuid4(), user_id=user_id, **body.model_dump())
        self.weights[entry.id] = entry
        return entry


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def gateway(backend: FakeBackend) -> MagicMock:
    gateway = MagicMock(spec=SupabaseGateway)
    gateway.list_medications.return_value = []
    gateway.list_doses.return_value = []
    gateway.list_weight_entries.return_value = []
    gateway.add_medication.side_effect = backend.add_medication
    gateway.update_medication.side_effect = backend.update_medication
    gateway.add_dose.side_effect = backend.add_dose
    gateway.update_dose.side_effect = backend.update_dose
    gateway.add_weight_entry.side_effect = backend.add_weight_entry
    return gateway


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        username="jane",
        email="jane@example.com",
        measurement_unit=MeasurementUnit.imperial,
        current_weight=100.0,
        goal_weight=80.0,
    )


@pytest_asyncio.fixture
async def session(gateway: MagicMock, profile: UserProfile) -> SessionManager:
    """A session signed in as the test user, onboarding done."""
    gateway.sign_in.return_value = User(id=TEST_USER_ID, email="jane@example.com")
    gateway.get_profile.return_value = profile
    manager = SessionManager(gateway)
    assert await manager.sign_in("jane@example.com", "secret")
    return manager


@pytest.fixture
def center() -> LocalNotificationCenter:
    return LocalNotificationCenter()


@pytest.fixture
def scheduler(center: LocalNotificationCenter) -> ReminderScheduler:
    config = ReminderConfig(
        horizon_count=10,
        dose_title="Time for your medication",
        dose_body="{name} - {dose_mg}mg",
        weight_title="Log your weight",
        weight_body="Track your progress today",
    )
    return ReminderScheduler(center, config)


@pytest.fixture
def health_store() -> AppleHealthExportStore:
    return AppleHealthExportStore(xml_bytes=EXPORT_XML)
