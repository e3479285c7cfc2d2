"""Local-notification center interface.

Reminders are registered under string identifiers so they can be cancelled
selectively by prefix.  Implementations keep their own pending set; the
reminder scheduler never tracks registrations itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta


class NotificationError(Exception):
    """Registering or cancelling a notification failed."""


class NotificationAuthorizationError(NotificationError):
    """The user has not allowed notifications."""


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str
    badge: int | None = 1
    sound: bool = True


@dataclass(frozen=True)
class PendingNotification:
    """A registered, not yet delivered notification.

    Attributes:
        identifier:      Caller-chosen identifier (unique within the center).
        trigger_at:      When it fires.
        content:         What is shown.
        repeat_interval: Re-arm interval after delivery; None fires once.
    """

    identifier: str
    trigger_at: datetime
    content: NotificationContent
    repeat_interval: timedelta | None = None


class NotificationCenter(ABC):
    """Platform local-notification scheduler."""

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Ask the user for permission. Returns True when granted."""

    @property
    @abstractmethod
    def is_authorized(self) -> bool:
        """Whether notifications may currently be scheduled."""

    @abstractmethod
    async def schedule_at(
        self,
        identifier: str,
        trigger_at: datetime,
        content: NotificationContent,
        repeat_interval: timedelta | None = None,
    ) -> PendingNotification:
        """Register a notification, replacing any with the same identifier.

        Raises:
            NotificationAuthorizationError: If not authorized.
            NotificationError:              For any other registration failure.
        """

    @abstractmethod
    async def cancel_by_prefix(self, prefix: str) -> list[str]:
        """Remove every pending notification whose identifier starts with ``prefix``.

        Returns:
            The identifiers removed.
        """

    @abstractmethod
    async def cancel_all(self) -> None:
        """Remove every pending notification."""

    @abstractmethod
    async def list_pending(self) -> list[PendingNotification]:
        """Pending notifications, earliest trigger first."""
