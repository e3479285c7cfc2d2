"""Apple Health store backed by a HealthKit export.

Apple does not expose HealthKit off-device, so body-mass data reaches Dosely
through the ``export.xml`` file produced by Health → Export All Health Data.
Only ``HKQuantityTypeIdentifierBodyMass`` records are read; everything else in
the export is ignored.

Samples written with ``save_sample()`` are kept in memory and queued in
``pending_writes`` for the next on-device sync.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from pathlib import Path
from xml.etree import ElementTree as ET

from dosely.health.base import (
    HealthAuthorizationError,
    HealthStore,
    SampleCallback,
    WeightSample,
    as_utc,
)
from dosely.models.base import utc_now
from dosely.models.units import lb_to_kg

logger = logging.getLogger("dosely.health.apple_health")

_HK_BODY_MASS = "HKQuantityTypeIdentifierBodyMass"

# HealthKit unit string → multiplier to kilograms
_UNIT_TO_KG: dict[str, float] = {
    "kg": 1.0,
    "g": 0.001,
    "lb": lb_to_kg(1.0),
    "lbs": lb_to_kg(1.0),
}

_EXPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def _parse_export_datetime(value: str) -> datetime | None:
    """Parse an export timestamp such as ``2026-02-23 07:30:00 -0500``."""
    if not value:
        return None
    try:
        return as_utc(datetime.strptime(value, _EXPORT_DATE_FORMAT))
    except ValueError:
        pass
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        logger.warning("Could not parse Apple Health date: %r", value)
        return None


def parse_body_mass_export(xml_bytes: bytes) -> list[WeightSample]:
    """Extract body-mass samples from an Apple Health ``export.xml``.

    Records with an unknown unit or an unparseable value/date are skipped.

    Returns:
        Samples in kilograms, oldest first.

    Raises:
        ValueError: If the XML itself is malformed.
    """
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as exc:
        logger.error("Apple Health XML parse error: %s", exc)
        raise ValueError(f"Invalid Apple Health XML: {exc}") from exc

    samples: list[WeightSample] = []
    skipped = 0
    for record in root.iter("Record"):
        if record.get("type") != _HK_BODY_MASS:
            continue
        factor = _UNIT_TO_KG.get((record.get("unit") or "").lower())
        recorded_at = _parse_export_datetime(record.get("startDate", ""))
        try:
            value = float(record.get("value", ""))
        except ValueError:
            value = None
        if factor is None or recorded_at is None or value is None or value <= 0:
            skipped += 1
            continue
        samples.append(
            WeightSample(
                recorded_at=recorded_at,
                weight_kg=value * factor,
                source_name=record.get("sourceName"),
            )
        )

    samples.sort(key=lambda s: s.recorded_at)
    logger.info(
        "Apple Health XML: %d body-mass samples (%d skipped)", len(samples), skipped
    )
    return samples


class AppleHealthExportStore(HealthStore):
    """HealthStore over an Apple Health export file (or its raw bytes)."""

    SOURCE_ID = "apple_health"
    DISPLAY_NAME = "Apple Health"

    def __init__(
        self,
        export_path: str | Path | None = None,
        xml_bytes: bytes | None = None,
    ) -> None:
        super().__init__()
        self._export_path = Path(export_path) if export_path else None
        self._xml_bytes = xml_bytes
        self._samples: list[WeightSample] = []
        self._callback: SampleCallback | None = None
        self.pending_writes: list[WeightSample] = []

    def _load_samples(self) -> list[WeightSample] | None:
        """Read and parse the export; None when there is nothing to read.

        Blocking, so callers run it in a worker thread.
        """
        data = self._xml_bytes
        if data is None:
            if self._export_path is None or not self._export_path.exists():
                return None
            data = self._export_path.read_bytes()
        return parse_body_mass_export(data)

    async def request_authorization(self) -> bool:
        samples = await asyncio.to_thread(self._load_samples)
        if samples is None:
            logger.warning("Apple Health export not available; access not granted")
            self._authorized = False
            return False
        self._samples = samples
        self._authorized = True
        logger.info("Apple Health authorized (%d samples)", len(self._samples))
        return True

    async def reload(self) -> list[WeightSample]:
        """Re-read the export and deliver samples not seen before.

        Returns:
            The newly discovered samples.
        """
        if not self._authorized:
            return []
        fresh = await asyncio.to_thread(self._load_samples)
        if fresh is None:
            return []
        known = {(s.recorded_at, s.weight_kg) for s in self._samples}
        added = [s for s in fresh if (s.recorded_at, s.weight_kg) not in known]
        self._samples = sorted(self._samples + added, key=lambda s: s.recorded_at)
        for sample in added:
            await self._deliver(sample)
        return added

    async def fetch_latest_sample(self) -> WeightSample | None:
        if not self._authorized or not self._samples:
            return None
        return self._samples[-1]

    async def fetch_samples_in_range(
        self, start: datetime, end: datetime
    ) -> list[WeightSample]:
        if not self._authorized:
            return []
        lo, hi = as_utc(start), as_utc(end)
        return [s for s in self._samples if lo <= s.recorded_at <= hi]

    async def save_sample(
        self, weight_kg: float, recorded_at: datetime | None = None
    ) -> WeightSample:
        if not self._authorized:
            raise HealthAuthorizationError("Apple Health not authorized")
        sample = WeightSample(
            recorded_at=as_utc(recorded_at) if recorded_at else utc_now(),
            weight_kg=weight_kg,
            source_name="Dosely",
        )
        self._samples.append(sample)
        self._samples.sort(key=lambda s: s.recorded_at)
        self.pending_writes.append(sample)
        logger.info("Weight saved to Apple Health: %.2f kg", weight_kg)
        await self._deliver(sample)
        return sample

    async def enable_background_delivery(
        self, callback: SampleCallback | None = None
    ) -> bool:
        if not self._authorized:
            return False
        self._callback = callback
        logger.info("Apple Health background delivery enabled")
        return True

    async def _deliver(self, sample: WeightSample) -> None:
        if self._callback is None:
            return
        result = self._callback(sample)
        if inspect.isawaitable(result):
            await result
