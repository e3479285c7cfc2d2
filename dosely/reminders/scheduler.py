"""Medication and weight reminder scheduling.

Dose reminders for a medication are registered under the identifier
``dose-<medication id>-<unix timestamp>``.  Scheduling always cancels every
registration carrying the medication's prefix before registering the new
set, so re-scheduling after an interval change replaces rather than adds.

Per-medication state:

    idle ──schedule──▶ scheduled ──cancel──▶ cancelled
                          ▲                      │
                          └──────schedule────────┘

Operations on one medication are serialized by a per-medication lock; calls
for different medications do not block each other.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable
from uuid import UUID

from dosely.config_loader import ReminderConfig, get_app_config
from dosely.models.base import utc_now
from dosely.models.tracking import Medication
from dosely.reminders.base import (
    NotificationAuthorizationError,
    NotificationCenter,
    NotificationContent,
    NotificationError,
)

logger = logging.getLogger("dosely.reminders.scheduler")

WEIGHT_REMINDER_PREFIX = "weight-reminder-"


class ReminderState(str, Enum):
    idle = "idle"
    scheduled = "scheduled"
    cancelled = "cancelled"


@dataclass
class ScheduleResult:
    """Outcome of one scheduling call.

    Attributes:
        medication_id: Medication the reminders belong to (None for weight reminders).
        identifiers:   Identifiers registered by this call, in trigger order.
        cancelled:     Identifiers removed before registering.
        errors:        Messages for registrations that failed.
        status:        'success', 'partial', 'error' or 'denied'.
        scheduled_at:  UTC time of the call.
    """

    medication_id: UUID | None
    identifiers: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    status: str = "success"
    scheduled_at: datetime = field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Pure date arithmetic
# ---------------------------------------------------------------------------


def _local(value: datetime) -> datetime:
    """Attach the local timezone to naive values; leave aware ones alone."""
    return value if value.tzinfo is not None else value.astimezone()


def _at(day: date, clock_time: time) -> datetime:
    return _local(datetime.combine(day, clock_time))


def reminder_prefix(medication_id: UUID) -> str:
    return f"dose-{medication_id}-"


def reminder_identifier(medication_id: UUID, trigger_at: datetime) -> str:
    return f"{reminder_prefix(medication_id)}{int(trigger_at.timestamp())}"


def dose_trigger_times(
    start_date: date,
    clock_time: time,
    interval_days: int,
    now: datetime | None = None,
    count: int = 10,
) -> list[datetime]:
    """Dose times ``start + i·interval`` (i < count) at ``clock_time``, after ``now``.

    Raises:
        ValueError: If ``interval_days`` is less than 1.
    """
    if interval_days < 1:
        raise ValueError(f"interval_days must be >= 1, got {interval_days}")
    moment = _local(now) if now else datetime.now().astimezone()
    candidates = (
        _at(start_date + timedelta(days=i * interval_days), clock_time) for i in range(count)
    )
    return [t for t in candidates if t > moment]


def next_dose_at(
    medication: Medication, clock_time: time, now: datetime | None = None
) -> datetime | None:
    """The first dose time strictly after ``now``, or None once the medication ended."""
    moment = _local(now) if now else datetime.now().astimezone()
    interval = medication.interval_days
    first = _at(medication.start_date, clock_time)
    if first > moment:
        candidate = first
    else:
        steps = (moment - first).days // interval + 1
        candidate = _at(medication.start_date + timedelta(days=steps * interval), clock_time)
        while candidate <= moment:
            steps += 1
            candidate = _at(medication.start_date + timedelta(days=steps * interval), clock_time)
    if medication.end_date is not None and candidate.date() > medication.end_date:
        return None
    return candidate


def next_weekday_at(weekday: int, clock_time: time, now: datetime | None = None) -> datetime:
    """Next occurrence of ISO ``weekday`` (1 = Monday) at ``clock_time`` after ``now``."""
    if not 1 <= weekday <= 7:
        raise ValueError(f"weekday must be 1..7 (ISO), got {weekday}")
    moment = _local(now) if now else datetime.now().astimezone()
    days_ahead = (weekday - moment.isoweekday()) % 7
    candidate = _at(moment.date() + timedelta(days=days_ahead), clock_time)
    if candidate <= moment:
        candidate = _at(moment.date() + timedelta(days=days_ahead + 7), clock_time)
    return candidate


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ReminderScheduler:
    """Register and cancel reminders through a NotificationCenter.

    Usage::

        scheduler = ReminderScheduler(center)
        result = await scheduler.schedule(medication, time(9, 0))
        await scheduler.cancel(medication.id)
    """

    def __init__(
        self,
        center: NotificationCenter,
        config: ReminderConfig | None = None,
    ) -> None:
        self._center = center
        self._config = config or get_app_config().reminders
        self._states: dict[UUID, ReminderState] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}

    def state(self, medication_id: UUID) -> ReminderState:
        return self._states.get(medication_id, ReminderState.idle)

    def _lock(self, medication_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(medication_id, asyncio.Lock())

    def _dose_content(self, medication: Medication) -> NotificationContent:
        return NotificationContent(
            title=self._config.dose_title,
            body=self._config.dose_body_for(medication.name, medication.dose_mg),
        )

    async def _cancel_locked(self, medication_id: UUID) -> list[str]:
        removed = await self._center.cancel_by_prefix(reminder_prefix(medication_id))
        if removed or self.state(medication_id) is ReminderState.scheduled:
            self._states[medication_id] = ReminderState.cancelled
        logger.info("Cancelled %d reminders for medication %s", len(removed), medication_id)
        return removed

    async def schedule(
        self,
        medication: Medication,
        clock_time: time,
        now: datetime | None = None,
    ) -> ScheduleResult:
        """Replace the medication's reminders with the next doses after ``now``.

        Denied authorization stops registering and is reported as status
        'denied'; any other failed registration is recorded and skipped.
        """
        result = ScheduleResult(medication_id=medication.id)
        async with self._lock(medication.id):
            result.cancelled = await self._cancel_locked(medication.id)

            times = dose_trigger_times(
                medication.start_date,
                clock_time,
                medication.interval_days,
                now=now,
                count=self._config.horizon_count,
            )
            if medication.end_date is not None:
                times = [t for t in times if t.date() <= medication.end_date]

            content = self._dose_content(medication)
            for trigger_at in times:
                identifier = reminder_identifier(medication.id, trigger_at)
                try:
                    await self._center.schedule_at(identifier, trigger_at, content)
                except NotificationAuthorizationError:
                    logger.info(
                        "Notifications not authorized; skipping remaining reminders for %s",
                        medication.id,
                    )
                    result.status = "denied"
                    break
                except NotificationError as exc:
                    logger.warning("Could not schedule %s: %s", identifier, exc)
                    result.errors.append(f"{identifier}: {exc}")
                    continue
                result.identifiers.append(identifier)

            if result.identifiers:
                self._states[medication.id] = ReminderState.scheduled

        if result.status != "denied":
            if result.errors and not result.identifiers:
                result.status = "error"
            elif result.errors:
                result.status = "partial"

        logger.info(
            "Scheduled %d reminders for %s (%s), status=%s",
            len(result.identifiers), medication.name, medication.id, result.status,
        )
        return result

    async def cancel(self, medication_id: UUID) -> list[str]:
        """Remove every reminder of this medication and no others."""
        async with self._lock(medication_id):
            return await self._cancel_locked(medication_id)

    async def cancel_all(self) -> None:
        await self._center.cancel_all()
        for medication_id, state in self._states.items():
            if state is ReminderState.scheduled:
                self._states[medication_id] = ReminderState.cancelled

    async def schedule_weight_reminders(
        self,
        clock_time: time,
        weekdays: Iterable[int],
        now: datetime | None = None,
    ) -> ScheduleResult:
        """Weekly weigh-in reminders on the given ISO weekdays, replacing earlier ones."""
        days = sorted(set(weekdays))
        invalid = [d for d in days if not 1 <= d <= 7]
        if invalid:
            raise ValueError(f"weekdays must be 1..7 (ISO), got {invalid}")
        result = ScheduleResult(medication_id=None)
        result.cancelled = await self._center.cancel_by_prefix(WEIGHT_REMINDER_PREFIX)
        content = NotificationContent(
            title=self._config.weight_title, body=self._config.weight_body, badge=None
        )
        for weekday in days:
            identifier = f"{WEIGHT_REMINDER_PREFIX}{weekday}"
            trigger_at = next_weekday_at(weekday, clock_time, now)
            try:
                await self._center.schedule_at(
                    identifier, trigger_at, content, repeat_interval=timedelta(days=7)
                )
            except NotificationAuthorizationError:
                logger.info("Notifications not authorized; weight reminders skipped")
                result.status = "denied"
                break
            except NotificationError as exc:
                logger.warning("Could not schedule %s: %s", identifier, exc)
                result.errors.append(f"{identifier}: {exc}")
                continue
            result.identifiers.append(identifier)

        if result.status != "denied" and result.errors:
            result.status = "partial" if result.identifiers else "error"
        logger.info("Weight reminders scheduled for weekdays %s", days)
        return result
