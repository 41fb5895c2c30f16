"""
Data model for hydration tracking.

A DailyRecord is the aggregate for one user on one calendar day. Its
consumed total is always derived from the intake history, so the two can
never disagree no matter which tier produced the record.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .exceptions import ValidationError

DEFAULT_GOAL_ML = 2000

DEFAULT_REMINDER_INTERVAL_MINUTES = 60
DEFAULT_REMINDER_START = "08:00"
DEFAULT_REMINDER_END = "22:00"
DEFAULT_REMINDER_AMOUNT_ML = 250


def _new_event_id() -> str:
    return uuid.uuid4().hex


def _visible_to(owner_id: str | None, pending_sync: bool, user_id: str | None) -> bool:
    if user_id is None or owner_id == user_id:
        return True
    # Unowned snapshots are shared only once nothing in them is unsynced
    return owner_id is None and not pending_sync


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """A wall-clock time within a day, minute resolution."""

    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValidationError("hour", "must be between 0 and 23", str(self.hour))
        if not 0 <= self.minute <= 59:
            raise ValidationError("minute", "must be between 0 and 59", str(self.minute))

    @classmethod
    def parse(cls, value: str) -> TimeOfDay:
        """Parse an "HH:MM" string."""
        try:
            hour_str, minute_str = value.strip().split(":")
            return cls(int(hour_str), int(minute_str))
        except ValueError as e:
            raise ValidationError("time", "expected HH:MM", value) from e

    @classmethod
    def from_minutes(cls, minutes: int) -> TimeOfDay:
        return cls(minutes // 60, minutes % 60)

    @property
    def minutes(self) -> int:
        """Minutes since midnight."""
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class IntakeEvent:
    """One logged drink.

    Attributes:
        amount_ml: Amount consumed, always positive
        occurred_at: When the drink was logged
        event_id: Stable identifier, used to make remote writes idempotent
    """

    amount_ml: int
    occurred_at: datetime
    event_id: str = field(default_factory=_new_event_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "amount_ml": self.amount_ml,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IntakeEvent:
        occurred_at = datetime.fromisoformat(data["occurred_at"])
        amount_ml = int(data["amount_ml"])
        # Older snapshots carried no id; derive a stable one from the content
        event_id = data.get("event_id") or f"{int(occurred_at.timestamp() * 1000)}-{amount_ml}"
        return cls(amount_ml=amount_ml, occurred_at=occurred_at, event_id=event_id)


@dataclass(frozen=True)
class DailyRecord:
    """Aggregate consumption state for one user on one calendar day.

    Attributes:
        day_key: ISO date (YYYY-MM-DD) this record belongs to
        goal_ml: Target for the day, carried across days until changed
        history: Intake events in chronological order
        pending_sync: True when the local snapshot has changes the remote
            store has not acknowledged
        owner_id: Account the local snapshot was written for, None when
            it was written before anyone signed in on this device
    """

    day_key: str
    goal_ml: int = DEFAULT_GOAL_ML
    history: tuple[IntakeEvent, ...] = ()
    pending_sync: bool = False
    owner_id: str | None = None

    @property
    def consumed_ml(self) -> int:
        return sum(event.amount_ml for event in self.history)

    @property
    def remaining_ml(self) -> int:
        return max(self.goal_ml - self.consumed_ml, 0)

    @property
    def progress(self) -> float:
        """Fraction of the goal reached, capped at 1.0."""
        return min(self.consumed_ml / self.goal_ml, 1.0)

    @classmethod
    def empty(cls, day_key: str, goal_ml: int = DEFAULT_GOAL_ML) -> DailyRecord:
        return cls(day_key=day_key, goal_ml=goal_ml)

    def with_intake(self, event: IntakeEvent) -> DailyRecord:
        """Return a copy with the event appended.

        Keeps history non-decreasing in time even if the wall clock stepped
        backwards between two calls.
        """
        if self.history and event.occurred_at < self.history[-1].occurred_at:
            event = replace(event, occurred_at=self.history[-1].occurred_at)
        return replace(self, history=(*self.history, event))

    def with_goal(self, goal_ml: int) -> DailyRecord:
        return replace(self, goal_ml=goal_ml)

    def cleared(self, day_key: str) -> DailyRecord:
        """Return a zeroed record for day_key, keeping the goal."""
        return replace(self, day_key=day_key, history=())

    def with_pending(self, pending: bool) -> DailyRecord:
        return replace(self, pending_sync=pending)

    def with_owner(self, owner_id: str | None) -> DailyRecord:
        return replace(self, owner_id=owner_id)

    def visible_to(self, user_id: str | None) -> bool:
        """Whether this snapshot may be shown to and synced for user_id.

        Signed out, every snapshot is visible. A signed-in user never sees
        another account's snapshot, nor unsynced changes made without one.
        """
        return _visible_to(self.owner_id, self.pending_sync, user_id)

    def event_ids(self) -> tuple[str, ...]:
        return tuple(event.event_id for event in self.history)

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_key": self.day_key,
            "goal_ml": self.goal_ml,
            "consumed_ml": self.consumed_ml,
            "history": [event.to_dict() for event in self.history],
            "pending_sync": self.pending_sync,
            "owner_id": self.owner_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyRecord:
        """Deserialize, recomputing the consumed total from history.

        A stored consumed_ml is informational only.
        """
        history = tuple(IntakeEvent.from_dict(item) for item in data.get("history", []))
        history = tuple(sorted(history, key=lambda e: e.occurred_at))
        return cls(
            day_key=data["day_key"],
            goal_ml=int(data.get("goal_ml") or DEFAULT_GOAL_ML),
            history=history,
            pending_sync=bool(data.get("pending_sync", False)),
            owner_id=data.get("owner_id"),
        )


@dataclass(frozen=True)
class ReminderSettings:
    """Process-wide reminder configuration, not tied to a day."""

    enabled: bool = True
    interval_minutes: int = DEFAULT_REMINDER_INTERVAL_MINUTES
    window_start: TimeOfDay = field(
        default_factory=lambda: TimeOfDay.parse(DEFAULT_REMINDER_START)
    )
    window_end: TimeOfDay = field(default_factory=lambda: TimeOfDay.parse(DEFAULT_REMINDER_END))
    amount_ml: int = DEFAULT_REMINDER_AMOUNT_ML
    pending_sync: bool = False
    owner_id: str | None = None

    def validate(self) -> None:
        """Check the settings are schedulable.

        Raises:
            ValidationError: On a non-positive interval or amount, or an
                empty window
        """
        if self.interval_minutes <= 0:
            raise ValidationError(
                "interval_minutes", "must be positive", str(self.interval_minutes)
            )
        if self.amount_ml <= 0:
            raise ValidationError("amount_ml", "must be positive", str(self.amount_ml))
        if self.window_start >= self.window_end:
            raise ValidationError(
                "window", "start must be before end", f"{self.window_start}-{self.window_end}"
            )

    def with_pending(self, pending: bool) -> ReminderSettings:
        return replace(self, pending_sync=pending)

    def with_owner(self, owner_id: str | None) -> ReminderSettings:
        return replace(self, owner_id=owner_id)

    def visible_to(self, user_id: str | None) -> bool:
        return _visible_to(self.owner_id, self.pending_sync, user_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "interval_minutes": self.interval_minutes,
            "window_start": str(self.window_start),
            "window_end": str(self.window_end),
            "amount_ml": self.amount_ml,
            "pending_sync": self.pending_sync,
            "owner_id": self.owner_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReminderSettings:
        return cls(
            enabled=bool(data.get("enabled", True)),
            interval_minutes=int(data.get("interval_minutes") or DEFAULT_REMINDER_INTERVAL_MINUTES),
            window_start=TimeOfDay.parse(data.get("window_start") or DEFAULT_REMINDER_START),
            window_end=TimeOfDay.parse(data.get("window_end") or DEFAULT_REMINDER_END),
            amount_ml=int(data.get("amount_ml") or DEFAULT_REMINDER_AMOUNT_ML),
            pending_sync=bool(data.get("pending_sync", False)),
            owner_id=data.get("owner_id"),
        )


@dataclass(frozen=True)
class DaySummary:
    """Totals for a past day, as reported by the remote history query."""

    day_key: str
    consumed_ml: int
    goal_ml: int


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a public sync operation.

    Only input validation can make an operation fail; remote problems are
    never reported here.
    """

    success: bool
    error: str | None = None
    field: str | None = None

    @classmethod
    def ok(cls) -> SyncResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: ValidationError) -> SyncResult:
        return cls(success=False, error=error.message, field=error.field)
