"""Shared fixtures for reminder scheduling tests.

Dates here are naive local wall-clock values, the way a user picks them;
the scheduler attaches the local timezone itself.
"""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID, uuid4

import pytest

from dosely.config_loader import ReminderConfig
from dosely.models.tracking import Medication
from dosely.reminders.local import LocalNotificationCenter
from dosely.reminders.scheduler import ReminderScheduler

# Canonical test user ID
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
START = date(2026, 3, 1)
NOW = datetime(2026, 3, 10, 12, 0)
NINE_AM = time(9, 0)


def make_medication(
    interval_days: int = 7,
    start_date: date = START,
    end_date: date | None = None,
    name: str = "Wegovy",
    dose_mg: float = 0.25,
) -> Medication:
    return Medication(
        id=uuid4(),
        user_id=TEST_USER_ID,
        name=name,
        dose_mg=dose_mg,
        interval_days=interval_days,
        start_date=start_date,
        end_date=end_date,
    )


@pytest.fixture
def reminder_config() -> ReminderConfig:
    return ReminderConfig(
        horizon_count=10,
        dose_title="Time for your medication",
        dose_body="{name} - {dose_mg}mg",
        weight_title="Don't forget to log your weight!",
        weight_body="Track your progress today",
    )


@pytest.fixture
def center() -> LocalNotificationCenter:
    """Center that grants authorization when asked."""
    return LocalNotificationCenter()


@pytest.fixture
def scheduler(center: LocalNotificationCenter, reminder_config: ReminderConfig) -> ReminderScheduler:
    return ReminderScheduler(center, reminder_config)
