"""Import health-store weight samples into the backend.

Workflow for one run:
1. Fetch the backend's weight history for the trailing window (90 days)
2. Fetch the health store's samples for the same window
3. Convert each sample to a ``health_kit`` weight entry
4. Skip samples whose dedup key is already known (when dedupe is on)
5. Insert the rest one by one; a failed insert is logged and skipped

With ``weight_sync.dedupe: false`` every sample is inserted on every run
(at-least-once).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from dosely.config_loader import WeightSyncConfig, get_app_config
from dosely.health.base import HealthStore, WeightSample, as_utc
from dosely.health.sync.dedup import InMemoryDedupCache, entry_key, weight_sample_key
from dosely.models.base import utc_now
from dosely.models.tracking import WeightEntry, WeightEntryCreate, WeightSource
from dosely.services.supabase import GatewayError, SupabaseGateway

logger = logging.getLogger("dosely.health.sync.reconcile")


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation run.

    Attributes:
        user_id:            Owning user.
        window_start:       Start of the trailing window (UTC).
        window_end:         End of the trailing window (UTC).
        remote_count:       Entries already in the backend for the window.
        sample_count:       Samples returned by the health store.
        inserted:           Entries created by this run.
        skipped_duplicates: Samples skipped as already present.
        errors:             Messages for inserts that failed.
        status:             'success', 'partial', 'error' or 'unauthorized'.
        synced_at:          UTC completion time.
    """

    user_id: UUID
    window_start: datetime
    window_end: datetime
    remote_count: int = 0
    sample_count: int = 0
    inserted: list[WeightEntry] = field(default_factory=list)
    skipped_duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    status: str = "success"
    synced_at: datetime = field(default_factory=utc_now)


def sample_to_entry(sample: WeightSample) -> WeightEntryCreate:
    """Canonical record shape for a health-store sample."""
    return WeightEntryCreate(
        recorded_at=sample.recorded_at,
        weight_kg=sample.weight_kg,
        source=WeightSource.external_sync,
    )


class WeightReconciler:
    """Pull weight samples from a health store into the backend."""

    def __init__(
        self,
        gateway: SupabaseGateway,
        health_store: HealthStore,
        config: WeightSyncConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._health_store = health_store
        self._config = config or get_app_config().weight_sync

    async def sync(self, user_id: UUID, now: datetime | None = None) -> ReconcileResult:
        """Run one import for ``user_id``.

        Backend or health-store read failures propagate; individual insert
        failures do not.
        """
        window_end = as_utc(now) if now else utc_now()
        window_start = window_end - timedelta(days=self._config.window_days)
        result = ReconcileResult(
            user_id=user_id, window_start=window_start, window_end=window_end
        )

        if not self._health_store.is_authorized:
            logger.info("Weight sync skipped: %s not authorized", self._health_store.DISPLAY_NAME)
            result.status = "unauthorized"
            return result

        remote = await self._gateway.list_weight_entries(user_id, window_start, window_end)
        samples = await self._health_store.fetch_samples_in_range(window_start, window_end)
        result.remote_count = len(remote)
        result.sample_count = len(samples)

        cache = InMemoryDedupCache()
        if self._config.dedupe:
            for entry in remote:
                cache.mark_seen(entry_key(entry))

        source = WeightSource.external_sync.value
        for sample in samples:
            key = weight_sample_key(user_id, source, sample.recorded_at)
            if self._config.dedupe and cache.is_seen(key):
                result.skipped_duplicates += 1
                continue
            try:
                entry = await self._gateway.add_weight_entry(user_id, sample_to_entry(sample))
            except GatewayError as exc:
                logger.warning(
                    "Weight import failed for %s at %s: %s",
                    user_id, sample.recorded_at.isoformat(), exc,
                )
                result.errors.append(f"{sample.recorded_at.isoformat()}: {exc}")
                continue
            cache.mark_seen(key)
            result.inserted.append(entry)

        if result.errors and not result.inserted:
            result.status = "error"
        elif result.errors:
            result.status = "partial"

        logger.info(
            "Weight sync complete for %s: %d samples → %d inserted, %d duplicates, status=%s",
            user_id, result.sample_count, len(result.inserted),
            result.skipped_duplicates, result.status,
        )
        return result
