"""Reminder notification services package."""

from paid_ledger.services.notifications.reminders import (
    LoggingReminderNotifier,
    ReminderNotifier,
    ReminderService,
    compose_reminder,
)

__all__ = [
    "LoggingReminderNotifier",
    "ReminderNotifier",
    "ReminderService",
    "compose_reminder",
]
