"""
Reminder scheduling.

Turns ReminderSettings into a set of recurring daily alerts. The actual
delivery mechanism (OS notifications, a push service, a test recorder) is a
ReminderScheduler supplied by the host; arrange() only decides what to
schedule and holds no state of its own.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .models import ReminderSettings, TimeOfDay

logger = logging.getLogger(__name__)

ALERT_TITLE = "Time to Hydrate!"
ALERT_BODY = "Remember to drink {amount}ml of water. Stay healthy!"


@dataclass(frozen=True)
class ReminderAlert:
    """One recurring daily alert.

    Attributes:
        at: Time of day the alert fires, every day
        amount_ml: Suggested amount carried in the payload
        title: Alert title
        body: Alert text
        data: Machine-readable payload
    """

    at: TimeOfDay
    amount_ml: int
    title: str = ALERT_TITLE
    body: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_slot(cls, at: TimeOfDay, amount_ml: int) -> ReminderAlert:
        return cls(
            at=at,
            amount_ml=amount_ml,
            body=ALERT_BODY.format(amount=amount_ml),
            data={"amount_ml": amount_ml},
        )


class ReminderScheduler(ABC):
    """Delivery backend for recurring daily alerts."""

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every alert previously scheduled through this backend."""
        ...

    @abstractmethod
    async def schedule_daily(self, alert: ReminderAlert) -> None:
        """Schedule alert to repeat every day at alert.at."""
        ...


def reminder_times(settings: ReminderSettings) -> list[TimeOfDay]:
    """Slice start times for the reminder window.

    The window [window_start, window_end) is cut into interval_minutes
    slices starting at window_start; a slice that would start at or after
    window_end is omitted.
    """
    start = settings.window_start.minutes
    end = settings.window_end.minutes
    return [
        TimeOfDay.from_minutes(minute)
        for minute in range(start, end, settings.interval_minutes)
    ]


async def arrange(settings: ReminderSettings, scheduler: ReminderScheduler) -> list[ReminderAlert]:
    """Replace all scheduled alerts with the ones settings call for.

    Disabled settings only cancel. Enabled settings are validated first,
    so an invalid configuration leaves existing alerts untouched.

    Returns:
        The alerts that were scheduled

    Raises:
        ValidationError: If enabled settings are not schedulable
    """
    if settings.enabled:
        settings.validate()
    await scheduler.cancel_all()

    if not settings.enabled:
        logger.info("Reminders disabled, cancelled all alerts")
        return []

    alerts = [ReminderAlert.for_slot(at, settings.amount_ml) for at in reminder_times(settings)]
    for alert in alerts:
        await scheduler.schedule_daily(alert)

    logger.info(
        f"Scheduled {len(alerts)} daily reminders between "
        f"{settings.window_start} and {settings.window_end}"
    )
    return alerts
