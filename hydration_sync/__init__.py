"""
Hydration Sync

Local-first data synchronization for a hydration-tracking app.

Provides:
- An always-available local snapshot of today's water data and reminder settings
- Opportunistic, timeout-bounded mirroring to a Cosmos DB remote store
- Remote availability detection with self-healing after outages and sign-in
- Day rollover driven by an injectable clock
- Reminder scheduling over a host-supplied delivery backend

Usage:

    >>> from hydration_sync import SyncOrchestrator, StaticSessionProvider, load_config
    >>> sessions = StaticSessionProvider()
    >>> async with SyncOrchestrator.from_config(load_config(), sessions) as sync:
    ...     sessions.sign_in("user-123")
    ...     await sync.add_intake(250)
    ...     record = await sync.read_today()
    ...     print(record.consumed_ml, record.goal_ml)

Reminders:

    from hydration_sync import arrange
    settings = await sync.read_reminder_settings()
    await arrange(settings, my_scheduler)
"""

# Configuration
from .config import CosmosAuthMethod, SyncConfig, load_config

# Exceptions
from .exceptions import (
    HydrationSyncError,
    NotSignedInError,
    RemotePermissionError,
    RemoteQueryError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    StorageIOError,
    ValidationError,
)

# Identity
from .identity import (
    ConfigFileSessionProvider,
    SessionEvent,
    SessionEventKind,
    SessionProvider,
    StaticSessionProvider,
)

# Models
from .models import (
    DailyRecord,
    DaySummary,
    IntakeEvent,
    ReminderSettings,
    SyncResult,
    TimeOfDay,
)

# Reminders
from .reminders import ReminderAlert, ReminderScheduler, arrange, reminder_times

# Day rollover
from .rollover import Clock, SystemClock, apply_rollover, today_key

# Storage
from .storage import CosmosRemoteStore, FileLocalStore, LocalStore, RemoteStore, SnapshotStore

# Sync
from .sync import AvailabilityState, Completed, SyncOrchestrator, TimedOut, bounded_wait

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "SyncConfig",
    "CosmosAuthMethod",
    "load_config",
    # Exceptions
    "HydrationSyncError",
    "ValidationError",
    "StorageIOError",
    "RemoteUnavailableError",
    "RemoteTimeoutError",
    "RemotePermissionError",
    "NotSignedInError",
    "RemoteQueryError",
    # Identity
    "SessionProvider",
    "SessionEvent",
    "SessionEventKind",
    "StaticSessionProvider",
    "ConfigFileSessionProvider",
    # Models
    "DailyRecord",
    "IntakeEvent",
    "ReminderSettings",
    "TimeOfDay",
    "DaySummary",
    "SyncResult",
    # Reminders
    "ReminderAlert",
    "ReminderScheduler",
    "arrange",
    "reminder_times",
    # Day rollover
    "Clock",
    "SystemClock",
    "apply_rollover",
    "today_key",
    # Storage
    "LocalStore",
    "RemoteStore",
    "FileLocalStore",
    "SnapshotStore",
    "CosmosRemoteStore",
    # Sync
    "SyncOrchestrator",
    "AvailabilityState",
    "bounded_wait",
    "Completed",
    "TimedOut",
]
