"""
Storage tiers for hydration sync.

Provides the always-available local store (files on disk) and the
authenticated remote store (Cosmos DB), behind the interfaces the sync
orchestrator reconciles.

Example:
    >>> from hydration_sync.config import SyncConfig
    >>> from hydration_sync.storage import CosmosRemoteStore, FileLocalStore, SnapshotStore
    >>> config = SyncConfig(cosmos_endpoint="https://example.documents.azure.com:443/")
    >>> snapshots = SnapshotStore(FileLocalStore.from_config(config))
    >>> remote = CosmosRemoteStore(config)
"""

from .base import LocalStore, RemoteStore
from .cosmos import CosmosRemoteStore
from .local import REMINDER_SETTINGS_KEY, WATER_DATA_KEY, FileLocalStore, SnapshotStore

__all__ = [
    # Interfaces
    "LocalStore",
    "RemoteStore",
    # Implementations
    "FileLocalStore",
    "SnapshotStore",
    "CosmosRemoteStore",
    # Snapshot keys
    "WATER_DATA_KEY",
    "REMINDER_SETTINGS_KEY",
]
