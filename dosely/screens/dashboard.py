"""Dashboard: weight progress, active medications and upcoming doses."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from uuid import UUID

from dosely.config_loader import DisplayConfig, get_app_config
from dosely.health.base import HealthStore, HealthStoreError, WeightSample
from dosely.health.summary import WeightSummary
from dosely.models.tracking import Dose, Medication, WeightEntry
from dosely.reminders.scheduler import next_dose_at
from dosely.screens.base import ScreenModel
from dosely.services.session import SessionManager
from dosely.services.supabase import SupabaseGateway

logger = logging.getLogger("dosely.screens.dashboard")


class DashboardModel(ScreenModel):
    name = "dashboard"

    def __init__(
        self,
        session: SessionManager,
        gateway: SupabaseGateway,
        health_store: HealthStore,
        reminder_time: time = time(9, 0),
        display: DisplayConfig | None = None,
    ) -> None:
        super().__init__(session)
        self._gateway = gateway
        self._health_store = health_store
        self._display = display or get_app_config().display
        self.reminder_time = reminder_time
        self.medications: list[Medication] = []
        self.recent_doses: list[Dose] = []
        self.weight_entries: list[WeightEntry] = []
        self.latest_health_sample: WeightSample | None = None

    async def load(self, user_id: UUID) -> None:
        self.medications = await self._gateway.list_medications(user_id)
        self.recent_doses = await self._gateway.list_doses(user_id)
        self.weight_entries = await self._gateway.list_weight_entries(user_id)

        if self._health_store.is_authorized:
            try:
                self.latest_health_sample = await self._health_store.fetch_latest_sample()
            except HealthStoreError as exc:
                logger.info("Latest health sample unavailable: %s", exc)

    @property
    def summary(self) -> WeightSummary:
        """Progress measured from the onboarding weight when the profile has one."""
        profile = self.profile
        return WeightSummary(
            entries=self.weight_entries,
            unit=self.unit,
            goal_kg=profile.goal_weight if profile else None,
            baseline_kg=profile.current_weight if profile else None,
            display=self._display,
        )

    @property
    def current_weight_display(self) -> str:
        return self.summary.current_display

    @property
    def goal_weight_display(self) -> str:
        return self.summary.goal_display

    @property
    def weight_lost_display(self) -> str:
        return self.summary.lost_display

    def active_medications(self, today: date | None = None) -> list[Medication]:
        return [m for m in self.medications if m.is_active(today)]

    def upcoming_doses(self, now: datetime | None = None) -> list[tuple[Medication, datetime]]:
        """Next dose time of each active medication, soonest first."""
        upcoming = []
        for medication in self.active_medications(now.date() if now else None):
            when = next_dose_at(medication, self.reminder_time, now)
            if when is not None:
                upcoming.append((medication, when))
        return sorted(upcoming, key=lambda pair: pair[1])
