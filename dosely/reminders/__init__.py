"""Local reminders for medication doses and weigh-ins.

Modules:
    base      — NotificationCenter ABC, content and pending-notification types
    local     — In-process asyncio notification center
    scheduler — Dose trigger arithmetic and cancel-then-reschedule scheduler
"""

from dosely.reminders.base import (
    NotificationAuthorizationError,
    NotificationCenter,
    NotificationContent,
    NotificationError,
    PendingNotification,
)
from dosely.reminders.scheduler import ReminderScheduler, ReminderState, ScheduleResult

__all__ = [
    "NotificationCenter",
    "NotificationContent",
    "NotificationError",
    "NotificationAuthorizationError",
    "PendingNotification",
    "ReminderScheduler",
    "ReminderState",
    "ScheduleResult",
]
