"""Medication list: add, edit, end and delete medications with their reminders."""

from __future__ import annotations

import logging
from datetime import date, time
from uuid import UUID

from dosely.models.tracking import Medication, MedicationCreate, MedicationUpdate
from dosely.reminders.scheduler import ReminderScheduler, ScheduleResult
from dosely.screens.base import ScreenModel
from dosely.services.session import SessionManager
from dosely.services.supabase import GatewayError, SupabaseGateway

logger = logging.getLogger("dosely.screens.medications")

# Changing any of these invalidates the registered reminders
_REMINDER_FIELDS = {"name", "dose_mg", "interval_days", "start_date", "end_date"}


class MedicationListModel(ScreenModel):
    name = "medications"

    def __init__(
        self,
        session: SessionManager,
        gateway: SupabaseGateway,
        scheduler: ReminderScheduler,
        reminder_time: time = time(9, 0),
    ) -> None:
        super().__init__(session)
        self._gateway = gateway
        self._scheduler = scheduler
        self.reminder_time = reminder_time
        self.medications: list[Medication] = []
        self.last_schedule: ScheduleResult | None = None

    async def load(self, user_id: UUID) -> None:
        self.medications = await self._gateway.list_medications(user_id)

    def _replace(self, medication: Medication) -> None:
        self.medications = [
            medication if m.id == medication.id else m for m in self.medications
        ]

    async def add_medication(
        self, body: MedicationCreate, reminder_time: time | None = None
    ) -> Medication | None:
        """Save the medication, then schedule its reminders.

        Reminder scheduling never fails the add; its outcome is kept in
        ``last_schedule``.
        """
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            medication = await self._gateway.add_medication(user_id, body)
        except GatewayError as exc:
            self._report("Adding medication", exc)
            return None
        self.medications.insert(0, medication)
        self.last_schedule = await self._scheduler.schedule(
            medication, reminder_time or self.reminder_time
        )
        return medication

    async def update_medication(
        self,
        medication_id: UUID,
        body: MedicationUpdate,
        reminder_time: time | None = None,
    ) -> Medication | None:
        """Save changes; reschedule reminders if timing or content changed."""
        try:
            medication = await self._gateway.update_medication(medication_id, body)
        except GatewayError as exc:
            self._report("Updating medication", exc)
            return None
        self._replace(medication)

        if body.model_fields_set & _REMINDER_FIELDS:
            if medication.is_active():
                self.last_schedule = await self._scheduler.schedule(
                    medication, reminder_time or self.reminder_time
                )
            else:
                await self._scheduler.cancel(medication.id)
        return medication

    async def end_medication(
        self, medication_id: UUID, end_date: date | None = None
    ) -> Medication | None:
        """Soft-end: set the end date (today by default)."""
        return await self.update_medication(
            medication_id, MedicationUpdate(end_date=end_date or date.today())
        )

    async def delete_medication(self, medication_id: UUID) -> bool:
        """Delete the medication and cancel every reminder it had."""
        try:
            await self._gateway.delete_medication(medication_id)
        except GatewayError as exc:
            self._report("Deleting medication", exc)
            return False
        await self._scheduler.cancel(medication_id)
        self.medications = [m for m in self.medications if m.id != medication_id]
        return True
