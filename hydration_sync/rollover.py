"""
Day keys and the day rollover policy.

The current day is always read from an injected Clock so rollover is
deterministic under test. Day keys are ISO dates in process-local time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol

from .models import DailyRecord


class Clock(Protocol):
    """Source of the current wall-clock time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Clock backed by the process-local system time."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


def day_key_for(moment: datetime | date) -> str:
    if isinstance(moment, datetime):
        moment = moment.date()
    return moment.isoformat()


def today_key(clock: Clock) -> str:
    return day_key_for(clock.now())


def day_key_days_ago(clock: Clock, days: int) -> str:
    return day_key_for(clock.now().date() - timedelta(days=days))


def apply_rollover(record: DailyRecord, today: str) -> DailyRecord:
    """Zero a record that belongs to a day other than today.

    The goal survives. A record already keyed to today is returned as is,
    which makes the policy idempotent.
    """
    if record.day_key == today:
        return record
    return record.cleared(today)
