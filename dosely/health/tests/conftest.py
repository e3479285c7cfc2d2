"""Shared fixtures for health store, reconciliation and summary tests."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest

from dosely.config_loader import WeightSyncConfig
from dosely.health.base import HealthStore, SampleCallback, WeightSample
from dosely.models.tracking import WeightEntry, WeightEntryCreate, WeightSource
from dosely.services.supabase import SupabaseGateway

# Canonical test user ID
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

EXPORT_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<HealthData locale="en_US">
 <ExportDate value="2026-03-15 08:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Withings" unit="lb"
         creationDate="2026-02-20 07:31:00 -0500" startDate="2026-02-20 07:30:00 -0500"
         endDate="2026-02-20 07:30:00 -0500" value="220"/>
 <Record type="HKQuantityTypeIdentifierStepCount" sourceName="iPhone" unit="count"
         startDate="2026-02-20 08:00:00 -0500" endDate="2026-02-20 09:00:00 -0500" value="1200"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Dosely" unit="kg"
         startDate="2026-03-01 07:15:00 -0500" endDate="2026-03-01 07:15:00 -0500" value="98.5"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Scale" unit="st"
         startDate="2026-03-02 07:15:00 -0500" endDate="2026-03-02 07:15:00 -0500" value="15"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Scale" unit="kg"
         startDate="yesterday" endDate="yesterday" value="97"/>
</HealthData>
"""


class FakeHealthStore(HealthStore):
    """In-memory HealthStore returning a fixed list of samples."""

    SOURCE_ID = "fake"
    DISPLAY_NAME = "Fake Health"

    def __init__(self, samples: list[WeightSample], authorized: bool = True) -> None:
        super().__init__()
        self.samples = sorted(samples, key=lambda s: s.recorded_at)
        self._authorized = authorized
        self.saved: list[WeightSample] = []

    async def request_authorization(self) -> bool:
        self._authorized = True
        return True

    async def fetch_latest_sample(self) -> WeightSample | None:
        return self.samples[-1] if self.samples else None

    async def fetch_samples_in_range(self, start: datetime, end: datetime) -> list[WeightSample]:
        return [s for s in self.samples if start <= s.recorded_at <= end]

    async def save_sample(self, weight_kg: float, recorded_at: datetime | None = None) -> WeightSample:
        sample = WeightSample(recorded_at=recorded_at or NOW, weight_kg=weight_kg)
        self.saved.append(sample)
        return sample

    async def enable_background_delivery(self, callback: SampleCallback | None = None) -> bool:
        return self._authorized


def make_entry(
    recorded_at: datetime,
    weight_kg: float,
    source: WeightSource = WeightSource.manual,
    user_id: UUID = TEST_USER_ID,
) -> WeightEntry:
    return WeightEntry(
        id=uuid4(), user_id=user_id, recorded_at=recorded_at, weight_kg=weight_kg, source=source
    )


def stored(user_id: UUID, body: WeightEntryCreate) -> WeightEntry:
    """What the backend hands back for an inserted weight entry."""
    return WeightEntry(id=uuid4(), user_id=user_id, **body.model_dump())


@pytest.fixture
def mock_gateway() -> MagicMock:
    gateway = MagicMock(spec=SupabaseGateway)
    gateway.list_weight_entries.return_value = []
    gateway.add_weight_entry.side_effect = stored
    return gateway


@pytest.fixture
def sync_config() -> WeightSyncConfig:
    return WeightSyncConfig(window_days=90, dedupe=True)
