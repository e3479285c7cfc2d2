"""Weight log: manual entries, health-store sync and progress figures."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from dosely.config_loader import DisplayConfig, get_app_config
from dosely.health.base import HealthStore, HealthStoreError
from dosely.health.summary import WeightSummary
from dosely.health.sync.reconcile import ReconcileResult, WeightReconciler
from dosely.models.base import utc_now
from dosely.models.tracking import WeightEntry, WeightEntryCreate, WeightEntryUpdate
from dosely.models.units import from_display, to_display
from dosely.models.users import MeasurementUnit
from dosely.screens.base import ScreenModel
from dosely.services.session import SessionManager
from dosely.services.supabase import GatewayError, SupabaseGateway

logger = logging.getLogger("dosely.screens.weight_log")


class WeightLogModel(ScreenModel):
    name = "weight_log"

    def __init__(
        self,
        session: SessionManager,
        gateway: SupabaseGateway,
        health_store: HealthStore,
        reconciler: WeightReconciler,
        display: DisplayConfig | None = None,
    ) -> None:
        super().__init__(session)
        self._gateway = gateway
        self._health_store = health_store
        self._reconciler = reconciler
        self._display = display or get_app_config().display
        self.entries: list[WeightEntry] = []
        self.last_sync: ReconcileResult | None = None

    async def load(self, user_id: UUID) -> None:
        self.entries = await self._gateway.list_weight_entries(user_id)

    @property
    def summary(self) -> WeightSummary:
        profile = self.profile
        return WeightSummary(
            entries=self.entries,
            unit=self.unit,
            goal_kg=profile.goal_weight if profile else None,
            display=self._display,
        )

    def chart_points(self, limit: int = 90) -> list[tuple[datetime, float]]:
        """Latest ``limit`` entries as (timestamp, weight in display unit), oldest first."""
        newest = sorted(self.entries, key=lambda e: e.recorded_at, reverse=True)[:limit]
        return [(e.recorded_at, to_display(e.weight_kg, self.unit)) for e in reversed(newest)]

    async def add_entry(
        self,
        value: float,
        recorded_at: datetime | None = None,
        notes: str | None = None,
        unit: MeasurementUnit | None = None,
    ) -> WeightEntry | None:
        """Record a weight typed in ``unit`` (the profile's unit by default).

        The entry is stored in kilograms and mirrored to the health store when
        it is authorized; a failed mirror write does not fail the entry.
        """
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            body = WeightEntryCreate(
                recorded_at=recorded_at or utc_now(),
                weight_kg=from_display(value, unit or self.unit),
                notes=notes,
            )
        except ValueError as exc:
            self._report("Adding weight", exc)
            return None
        try:
            entry = await self._gateway.add_weight_entry(user_id, body)
        except GatewayError as exc:
            self._report("Adding weight", exc)
            return None
        self.entries = sorted([*self.entries, entry], key=lambda e: e.recorded_at, reverse=True)

        if self._health_store.is_authorized:
            try:
                await self._health_store.save_sample(entry.weight_kg, entry.recorded_at)
            except HealthStoreError as exc:
                logger.warning("Mirroring weight to %s failed: %s", self._health_store.DISPLAY_NAME, exc)
        return entry

    async def update_notes(self, entry_id: UUID, notes: str | None) -> WeightEntry | None:
        try:
            entry = await self._gateway.update_weight_entry(entry_id, WeightEntryUpdate(notes=notes))
        except GatewayError as exc:
            self._report("Updating notes", exc)
            return None
        self.entries = [entry if e.id == entry.id else e for e in self.entries]
        return entry

    async def delete_entry(self, entry_id: UUID) -> bool:
        try:
            await self._gateway.delete_weight_entry(entry_id)
        except GatewayError as exc:
            self._report("Deleting weight", exc)
            return False
        self.entries = [e for e in self.entries if e.id != entry_id]
        return True

    async def sync_with_health_store(self, now: datetime | None = None) -> ReconcileResult | None:
        """Import health-store samples, then reload the history."""
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            self.last_sync = await self._reconciler.sync(user_id, now=now)
            await self.load(user_id)
        except (GatewayError, HealthStoreError) as exc:
            self._report("Syncing weight", exc)
            return None
        return self.last_sync
