"""
Local-first synchronization between the device snapshot and the remote store.

Example:
    >>> from hydration_sync.config import load_config
    >>> from hydration_sync.identity import StaticSessionProvider
    >>> from hydration_sync.sync import SyncOrchestrator
    >>> sessions = StaticSessionProvider("user-123")
    >>> async with SyncOrchestrator.from_config(load_config(), sessions) as sync:
    ...     await sync.add_intake(250)
    ...     record = await sync.read_today()
"""

from .availability import AvailabilityProbe, AvailabilityState
from .orchestrator import SyncOrchestrator
from .timeout import BoundedResult, Completed, TimedOut, abandoned_count, bounded_wait

__all__ = [
    # Orchestration
    "SyncOrchestrator",
    # Availability
    "AvailabilityState",
    "AvailabilityProbe",
    # Timeout race
    "bounded_wait",
    "BoundedResult",
    "Completed",
    "TimedOut",
    "abandoned_count",
]
