"""
Abstract storage interfaces.

Defines the two tiers the sync layer reconciles: an always-available local
key-value store and an authenticated remote document store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import DailyRecord, DaySummary, IntakeEvent, ReminderSettings


class LocalStore(ABC):
    """On-device key-value persistence.

    Implementations must not raise in normal operation: a failed read
    returns None and a failed write is dropped (and logged).
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Read the blob stored under key, or None if absent or unreadable."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store a blob under key, replacing any previous value."""
        ...

    async def close(self) -> None:
        """Release resources (no-op by default)."""


class RemoteStore(ABC):
    """Authenticated document store keyed by user and calendar day.

    Every method may be slow, may hang, and may raise RemoteUnavailableError,
    RemotePermissionError or NotSignedInError. Callers bound every call.
    """

    @abstractmethod
    async def read_day(self, user_id: str, day_key: str) -> DailyRecord | None:
        """Read the user's record for a day.

        Returns:
            The record with history in chronological order, or None if the
            remote holds nothing for that day
        """
        ...

    @abstractmethod
    async def add_intake(
        self, user_id: str, day_key: str, event: IntakeEvent, goal_ml: int
    ) -> None:
        """Record one intake event and bump the day's total.

        Re-sending an event with the same event_id must not duplicate it.
        goal_ml is used only when the day has no remote record yet.
        """
        ...

    @abstractmethod
    async def reset_day(self, user_id: str, day_key: str, goal_ml: int) -> None:
        """Delete the day's intake events and zero its total.

        goal_ml is used only when the day has no remote record yet.
        """
        ...

    @abstractmethod
    async def set_goal(self, user_id: str, day_key: str, goal_ml: int) -> None:
        """Set the goal on the day's record, creating it if needed."""
        ...

    @abstractmethod
    async def replace_day(self, user_id: str, record: DailyRecord) -> None:
        """Make the remote day identical to record (events, goal, total)."""
        ...

    @abstractmethod
    async def read_settings(self, user_id: str) -> ReminderSettings | None:
        """Read the user's reminder settings, or None if never saved."""
        ...

    @abstractmethod
    async def save_settings(self, user_id: str, settings: ReminderSettings) -> None:
        """Overwrite the user's reminder settings."""
        ...

    @abstractmethod
    async def read_history(self, user_id: str, since_day_key: str) -> list[DaySummary]:
        """Daily totals for days on or after since_day_key, newest first."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and cleanup resources."""
        ...
