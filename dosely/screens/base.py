"""Base class for screen view-state models."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from uuid import UUID

from dosely.health.base import HealthStoreError
from dosely.models.users import MeasurementUnit, UserProfile
from dosely.services.session import SessionManager
from dosely.services.supabase import GatewayError

logger = logging.getLogger("dosely.screens")


class ScreenModel(ABC):
    """One load task at a time, cancelled on refresh or dismissal.

    ``appear()`` and ``refresh()`` return the asyncio task running the load,
    so callers can await it or cancel it themselves.  Load failures are
    logged and surfaced through ``error_message``; they never propagate out
    of the task.
    """

    name = "screen"

    def __init__(self, session: SessionManager) -> None:
        self._session = session
        self._task: asyncio.Task[None] | None = None
        self.is_loading = False
        self.error_message: str | None = None

    # ---------- session helpers ----------

    @property
    def user_id(self) -> UUID | None:
        user = self._session.current_user
        return user.id if user else None

    @property
    def profile(self) -> UserProfile | None:
        user = self._session.current_user
        return user.profile if user else None

    @property
    def unit(self) -> MeasurementUnit:
        profile = self.profile
        return profile.measurement_unit if profile else MeasurementUnit.metric

    # ---------- lifecycle ----------

    def appear(self) -> asyncio.Task[None]:
        return self.refresh()

    def refresh(self) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._run_load(), name=f"{self.name}-load")
        return self._task

    def dismiss(self) -> None:
        if self._task is not None and not self._task.done():
            logger.debug("%s dismissed; cancelling in-flight load", self.name)
            self._task.cancel()
        self._task = None
        self.is_loading = False

    @property
    def load_task(self) -> asyncio.Task[None] | None:
        return self._task

    async def _run_load(self) -> None:
        user_id = self.user_id
        if user_id is None:
            return
        self.is_loading = True
        self.error_message = None
        try:
            await self.load(user_id)
        except (GatewayError, HealthStoreError) as exc:
            self._report("Loading", exc)
        finally:
            # A superseded load must not clear the flag its replacement set
            if self._task is None or asyncio.current_task() is self._task:
                self.is_loading = False

    @abstractmethod
    async def load(self, user_id: UUID) -> None:
        """Fetch everything the screen shows."""

    def _report(self, action: str, exc: Exception) -> None:
        logger.warning("%s: %s failed: %s", self.name, action, exc)
        self.error_message = f"{action} failed: {exc}"
