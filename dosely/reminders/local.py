"""In-process notification center driven by the asyncio event loop.

Pending notifications live in memory.  ``deliver_due()`` fires everything
whose trigger time has passed; ``run()`` calls it on a fixed poll interval
until cancelled.  Delivery hands each notification to the ``on_deliver``
callback (a desktop notifier, a push relay, a test spy).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from dosely.models.base import utc_now
from dosely.reminders.base import (
    NotificationAuthorizationError,
    NotificationCenter,
    NotificationContent,
    PendingNotification,
)

logger = logging.getLogger("dosely.reminders.local")

DeliverCallback = Callable[[PendingNotification], Awaitable[None] | None]


def _next_occurrence(trigger_at: datetime, interval: timedelta, moment: datetime) -> datetime:
    """First repeat of ``trigger_at`` after ``moment``.

    Steps are taken on the local wall clock, so a 09:00 weekly reminder stays
    at 09:00 when the UTC offset changes between occurrences.
    """
    wall = trigger_at.astimezone().replace(tzinfo=None)
    next_at = trigger_at
    while next_at <= moment:
        wall += interval
        next_at = wall.astimezone()
    return next_at


class LocalNotificationCenter(NotificationCenter):
    """Notification center that keeps its pending set in memory.

    Usage::

        center = LocalNotificationCenter(on_deliver=notifier.show)
        await center.request_authorization()
        runner = asyncio.create_task(center.run())
        ...
        runner.cancel()
    """

    def __init__(
        self,
        on_deliver: DeliverCallback | None = None,
        grant_authorization: bool = True,
        poll_interval_seconds: float = 30.0,
    ) -> None:
        self._on_deliver = on_deliver
        self._grant = grant_authorization
        self._authorized = False
        self._poll_interval = poll_interval_seconds
        self._pending: dict[str, PendingNotification] = {}
        self._lock = asyncio.Lock()
        self.delivered: list[PendingNotification] = []

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    async def request_authorization(self) -> bool:
        self._authorized = self._grant
        if self._authorized:
            logger.info("Notification authorization granted")
        else:
            logger.warning("Notification authorization denied")
        return self._authorized

    def revoke_authorization(self) -> None:
        self._authorized = False

    async def schedule_at(
        self,
        identifier: str,
        trigger_at: datetime,
        content: NotificationContent,
        repeat_interval: timedelta | None = None,
    ) -> PendingNotification:
        if not self._authorized:
            raise NotificationAuthorizationError("Notifications not authorized")
        pending = PendingNotification(
            identifier=identifier,
            trigger_at=trigger_at,
            content=content,
            repeat_interval=repeat_interval,
        )
        async with self._lock:
            self._pending[identifier] = pending
        logger.debug("Scheduled %s for %s", identifier, trigger_at.isoformat())
        return pending

    async def cancel_by_prefix(self, prefix: str) -> list[str]:
        async with self._lock:
            removed = [i for i in self._pending if i.startswith(prefix)]
            for identifier in removed:
                del self._pending[identifier]
        logger.debug("Cancelled %d notifications with prefix %s", len(removed), prefix)
        return removed

    async def cancel_all(self) -> None:
        async with self._lock:
            count = len(self._pending)
            self._pending.clear()
        logger.info("All %d notifications cancelled", count)

    async def list_pending(self) -> list[PendingNotification]:
        async with self._lock:
            return sorted(self._pending.values(), key=lambda p: p.trigger_at)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver_due(self, now: datetime | None = None) -> list[PendingNotification]:
        """Fire every notification whose trigger time is at or before ``now``.

        Repeating notifications are re-armed one interval past ``now``'s
        most recent occurrence; one-shot notifications are removed.
        """
        moment = now or utc_now()
        async with self._lock:
            due = [p for p in self._pending.values() if p.trigger_at <= moment]
            for pending in due:
                if pending.repeat_interval:
                    next_at = _next_occurrence(pending.trigger_at, pending.repeat_interval, moment)
                    self._pending[pending.identifier] = PendingNotification(
                        identifier=pending.identifier,
                        trigger_at=next_at,
                        content=pending.content,
                        repeat_interval=pending.repeat_interval,
                    )
                else:
                    del self._pending[pending.identifier]

        for pending in sorted(due, key=lambda p: p.trigger_at):
            self.delivered.append(pending)
            if self._on_deliver is None:
                continue
            try:
                result = self._on_deliver(pending)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Delivering %s failed: %s", pending.identifier, exc)
        return due

    async def run(self) -> None:
        """Deliver due notifications forever; cancel the task to stop."""
        logger.info("Notification delivery loop started (every %.0fs)", self._poll_interval)
        try:
            while True:
                await self.deliver_due()
                await asyncio.sleep(self._poll_interval)
        finally:
            logger.info("Notification delivery loop stopped")
