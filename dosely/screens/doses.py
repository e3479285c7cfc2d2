"""Dose log: record doses, mark them taken, note symptoms."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from dosely.models.tracking import Dose, DoseCreate, DoseUpdate
from dosely.screens.base import ScreenModel
from dosely.services.session import SessionManager
from dosely.services.supabase import GatewayError, SupabaseGateway

logger = logging.getLogger("dosely.screens.doses")


class DoseLogModel(ScreenModel):
    name = "doses"

    def __init__(
        self,
        session: SessionManager,
        gateway: SupabaseGateway,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> None:
        super().__init__(session)
        self._gateway = gateway
        self.start = start
        self.end = end
        self.doses: list[Dose] = []

    async def load(self, user_id: UUID) -> None:
        self.doses = await self._gateway.list_doses(user_id, self.start, self.end)

    def _replace(self, dose: Dose) -> None:
        self.doses = [dose if d.id == dose.id else d for d in self.doses]

    async def log_dose(self, body: DoseCreate) -> Dose | None:
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            dose = await self._gateway.add_dose(user_id, body)
        except GatewayError as exc:
            self._report("Logging dose", exc)
            return None
        self.doses = sorted([*self.doses, dose], key=lambda d: d.scheduled_at, reverse=True)
        return dose

    async def _update(self, dose_id: UUID, body: DoseUpdate, action: str) -> Dose | None:
        try:
            dose = await self._gateway.update_dose(dose_id, body)
        except GatewayError as exc:
            self._report(action, exc)
            return None
        self._replace(dose)
        return dose

    async def set_taken(self, dose_id: UUID, taken: bool = True) -> Dose | None:
        return await self._update(dose_id, DoseUpdate(taken=taken), "Updating dose")

    async def record_symptoms(
        self, dose_id: UUID, symptoms: list[str], severity: int | None = None
    ) -> Dose | None:
        body = DoseUpdate(symptoms=symptoms, symptom_severity=severity)
        return await self._update(dose_id, body, "Recording symptoms")

    async def update_notes(self, dose_id: UUID, notes: str | None) -> Dose | None:
        return await self._update(dose_id, DoseUpdate(notes=notes), "Updating notes")

    async def delete_dose(self, dose_id: UUID) -> bool:
        try:
            await self._gateway.delete_dose(dose_id)
        except GatewayError as exc:
            self._report("Deleting dose", exc)
            return False
        self.doses = [d for d in self.doses if d.id != dose_id]
        return True
