"""Dosely application core: service wiring and lifecycle.

Usage::

    async with lifespan() as app:
        await app.session.sign_in("me@example.com", "secret")
        await app.dashboard.appear()
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import time
from typing import AsyncGenerator

import httpx

from dosely.config import Settings, get_settings
from dosely.config_loader import AppConfig, get_app_config
from dosely.health.apple_health import AppleHealthExportStore
from dosely.health.base import HealthStore
from dosely.health.sync.reconcile import WeightReconciler
from dosely.reminders.base import NotificationCenter
from dosely.reminders.local import LocalNotificationCenter
from dosely.reminders.scheduler import ReminderScheduler
from dosely.screens import DashboardModel, DoseLogModel, MedicationListModel, WeightLogModel
from dosely.services.session import SessionManager
from dosely.services.supabase import SupabaseGateway

logger = logging.getLogger("dosely")


# ---------- Logging ----------

def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


# ---------- Container ----------

class DoselyApp:
    """Every service, constructed once and passed where it is needed.

    Collaborators can be injected for tests; anything omitted is built from
    ``settings`` and ``config``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        config: AppConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        health_store: HealthStore | None = None,
        notification_center: NotificationCenter | None = None,
        reminder_time: time = time(9, 0),
    ) -> None:
        self.settings = settings or get_settings()
        self.config = config or get_app_config()

        self.gateway = SupabaseGateway(self.settings, http_client=http_client)
        self.session = SessionManager(self.gateway)
        self.health_store = health_store or AppleHealthExportStore(
            export_path=self.settings.apple_health_export_path
        )
        self.notifications = notification_center or LocalNotificationCenter()
        self.scheduler = ReminderScheduler(self.notifications, self.config.reminders)
        self.reconciler = WeightReconciler(
            self.gateway, self.health_store, self.config.weight_sync
        )

        display = self.config.display
        self.dashboard = DashboardModel(
            self.session, self.gateway, self.health_store,
            reminder_time=reminder_time, display=display,
        )
        self.medications = MedicationListModel(
            self.session, self.gateway, self.scheduler, reminder_time=reminder_time
        )
        self.doses = DoseLogModel(self.session, self.gateway)
        self.weight_log = WeightLogModel(
            self.session, self.gateway, self.health_store, self.reconciler, display=display
        )
        self._delivery_task: asyncio.Task[None] | None = None

    @property
    def screens(self) -> list:
        return [self.dashboard, self.medications, self.doses, self.weight_log]

    async def start(self) -> None:
        """Open the backend client, restore the session and ask for permissions."""
        logger.info(
            "Starting %s v%s [%s]",
            self.settings.app_name,
            self.settings.app_version,
            self.settings.environment,
        )
        await self.gateway.open()
        await self.session.check_session()
        await self.notifications.request_authorization()
        await self.health_store.request_authorization()
        if isinstance(self.notifications, LocalNotificationCenter):
            self._delivery_task = asyncio.create_task(
                self.notifications.run(), name="notification-delivery"
            )

    async def stop(self) -> None:
        for screen in self.screens:
            screen.dismiss()
        if self._delivery_task is not None:
            self._delivery_task.cancel()
            try:
                await self._delivery_task
            except asyncio.CancelledError:
                pass
            self._delivery_task = None
        await self.gateway.close()
        logger.info("%s shut down", self.settings.app_name)


def create_app(settings: Settings | None = None, **overrides) -> DoselyApp:
    settings = settings or get_settings()
    configure_logging(settings)
    return DoselyApp(settings, **overrides)


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: DoselyApp | None = None) -> AsyncGenerator[DoselyApp, None]:
    """Startup / shutdown around a DoselyApp."""
    app = app or create_app()
    await app.start()
    try:
        yield app
    finally:
        await app.stop()
