"""
Shared test configuration and fixtures.

Provides in-memory stand-ins for both storage tiers and a manual clock so
orchestrator tests are deterministic and never touch the network:

- InMemoryLocalStore: dict-backed LocalStore that counts reads and writes
- FakeRemoteStore: scriptable RemoteStore that records every call and can
  be told to fail or hang per method
- ManualClock: Clock whose time only moves when a test advances it
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest

from hydration_sync.config import SyncConfig
from hydration_sync.identity import StaticSessionProvider
from hydration_sync.models import DailyRecord, DaySummary, IntakeEvent, ReminderSettings
from hydration_sync.storage import LocalStore, RemoteStore, SnapshotStore
from hydration_sync.sync import SyncOrchestrator

logger = logging.getLogger(__name__)

USER_ID = "user-1"

# Fast bounds so timeout paths finish quickly
FAST_TIMEOUT_MS = 50


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


class InMemoryLocalStore(LocalStore):
    """Dict-backed local store."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.reads = 0
        self.writes = 0
        self.closed = False

    async def get(self, key: str) -> bytes | None:
        self.reads += 1
        return self.blobs.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.writes += 1
        self.blobs[key] = value

    async def close(self) -> None:
        self.closed = True


class BrokenLocalStore(LocalStore):
    """Local store whose device storage is unusable: reads miss, writes drop."""

    async def get(self, key: str) -> bytes | None:
        return None

    async def set(self, key: str, value: bytes) -> None:
        logger.error(f"Dropping write to {key}")


class FakeRemoteStore(RemoteStore):
    """Scriptable in-memory remote store.

    Every call is appended to `calls` as (method, args) when it starts.
    Use fail(method, error) to make a method raise, hang(method) to make it
    never settle until release(), and heal() to undo both.
    """

    def __init__(self) -> None:
        self.days: dict[tuple[str, str], DailyRecord] = {}
        self.settings: dict[str, ReminderSettings] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.failures: dict[str, BaseException] = {}
        self.hanging: set[str] = set()
        self.closed = False
        self._released: asyncio.Event | None = None

    # Scripting

    def fail(self, method: str, error: BaseException) -> None:
        self.failures[method] = error

    def hang(self, method: str) -> None:
        self.hanging.add(method)

    def heal(self) -> None:
        self.failures.clear()
        self.hanging.clear()

    def release(self) -> None:
        """Let every hung call finish."""
        if self._released is not None:
            self._released.set()

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def _enter(self, method: str, *args: object) -> None:
        self.calls.append((method, args))
        if method in self.hanging:
            if self._released is None:
                self._released = asyncio.Event()
            await self._released.wait()
        error = self.failures.get(method)
        if error is not None:
            raise error

    # RemoteStore

    async def read_day(self, user_id: str, day_key: str) -> DailyRecord | None:
        await self._enter("read_day", user_id, day_key)
        return self.days.get((user_id, day_key))

    async def add_intake(
        self, user_id: str, day_key: str, event: IntakeEvent, goal_ml: int
    ) -> None:
        await self._enter("add_intake", user_id, day_key, event, goal_ml)
        record = self.days.get((user_id, day_key)) or DailyRecord.empty(day_key, goal_ml)
        if event.event_id not in record.event_ids():
            record = record.with_intake(event)
        self.days[(user_id, day_key)] = record

    async def reset_day(self, user_id: str, day_key: str, goal_ml: int) -> None:
        await self._enter("reset_day", user_id, day_key, goal_ml)
        record = self.days.get((user_id, day_key)) or DailyRecord.empty(day_key, goal_ml)
        self.days[(user_id, day_key)] = record.cleared(day_key)

    async def set_goal(self, user_id: str, day_key: str, goal_ml: int) -> None:
        await self._enter("set_goal", user_id, day_key, goal_ml)
        record = self.days.get((user_id, day_key)) or DailyRecord.empty(day_key)
        self.days[(user_id, day_key)] = record.with_goal(goal_ml)

    async def replace_day(self, user_id: str, record: DailyRecord) -> None:
        await self._enter("replace_day", user_id, record)
        self.days[(user_id, record.day_key)] = record.with_pending(False)

    async def read_settings(self, user_id: str) -> ReminderSettings | None:
        await self._enter("read_settings", user_id)
        return self.settings.get(user_id)

    async def save_settings(self, user_id: str, settings: ReminderSettings) -> None:
        await self._enter("save_settings", user_id, settings)
        self.settings[user_id] = settings.with_pending(False)

    async def read_history(self, user_id: str, since_day_key: str) -> list[DaySummary]:
        await self._enter("read_history", user_id, since_day_key)
        summaries = [
            DaySummary(day_key=day_key, consumed_ml=record.consumed_ml, goal_ml=record.goal_ml)
            for (uid, day_key), record in self.days.items()
            if uid == user_id and day_key >= since_day_key
        ]
        return sorted(summaries, key=lambda s: s.day_key, reverse=True)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> ManualClock:
    """Clock fixed at 09:00 UTC on 2026-10-19."""
    return ManualClock(datetime(2026, 10, 19, 9, 0, tzinfo=UTC))


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    return SyncConfig(
        local_path=str(tmp_path / "store"),
        probe_timeout_ms=FAST_TIMEOUT_MS,
        read_timeout_ms=FAST_TIMEOUT_MS,
        write_timeout_ms=FAST_TIMEOUT_MS,
        settings_timeout_ms=FAST_TIMEOUT_MS,
        history_timeout_ms=FAST_TIMEOUT_MS,
    )


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def snapshots(local_store: InMemoryLocalStore) -> SnapshotStore:
    return SnapshotStore(local_store)


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def session() -> StaticSessionProvider:
    return StaticSessionProvider(USER_ID)


@pytest.fixture
async def orchestrator(
    snapshots: SnapshotStore,
    remote: FakeRemoteStore,
    session: StaticSessionProvider,
    config: SyncConfig,
    clock: ManualClock,
) -> AsyncIterator[SyncOrchestrator]:
    """Orchestrator over the in-memory tiers. The probe has not run yet."""
    orchestrator = SyncOrchestrator(snapshots, remote, session, config=config, clock=clock)
    await orchestrator.start()
    yield orchestrator
    remote.release()
    await orchestrator.close()


@pytest.fixture
async def online(orchestrator: SyncOrchestrator, remote: FakeRemoteStore) -> SyncOrchestrator:
    """Orchestrator whose probe found the remote store available.

    The probe's own call is cleared from the remote call log.
    """
    await orchestrator.wait_for_probe()
    assert orchestrator.state.usable
    remote.calls.clear()
    return orchestrator
