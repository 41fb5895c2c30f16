"""
Sync orchestrator: the read/write facade over the local and remote tiers.

Every operation follows the same pattern:

1. Local first. The local snapshot is read or written and, for writes,
   committed before anything else happens. This is the durability
   boundary callers depend on.
2. Remote opportunistic. If the remote store is known to be usable and a
   user session is active, the change is mirrored in a background task
   bounded by a timeout. Reads race the remote store and, when it answers,
   treat it as authoritative and repair the local snapshot.
3. Remote failures are silent. They only move the AvailabilityState and
   flag the local snapshot as pending; callers never see them.

A snapshot flagged pending is pushed whole the next time the remote store
is usable, before any remote read is allowed to overwrite it. While a
mirror is still in flight, remote reads never overwrite the local snapshot.

Local snapshots remember the account they were written for. A signed-in
user never sees, nor pushes, another account's unsynced snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

from ..config import SyncConfig
from ..exceptions import (
    NotSignedInError,
    RemoteTimeoutError,
    ValidationError,
    availability_failure_kind,
)
from ..identity import SessionEvent, SessionEventKind, SessionProvider, Unsubscribe
from ..logging_utils import SyncLoggerAdapter
from ..models import DailyRecord, DaySummary, IntakeEvent, ReminderSettings, SyncResult
from ..rollover import Clock, SystemClock, apply_rollover, day_key_days_ago, today_key
from ..storage import CosmosRemoteStore, FileLocalStore, RemoteStore, SnapshotStore
from .availability import AvailabilityProbe, AvailabilityState
from .timeout import TimedOut, bounded_wait

logger = logging.getLogger(__name__)

T = TypeVar("T")
SnapshotT = TypeVar("SnapshotT", DailyRecord, ReminderSettings)


def _require_positive(field: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be an integer", repr(value))
    if value <= 0:
        raise ValidationError(field, "must be positive", str(value))


class SyncOrchestrator:
    """Local-first facade for today's water data and reminder settings.

    Architecture:
    - Reads and writes hit the local snapshot store first (always available)
    - Writes are mirrored to the remote store in background tasks
    - Reads race the remote store; a timely answer overwrites the local snapshot
    - A one-shot probe decides whether the remote store is worth trying

    The orchestrator exclusively owns its AvailabilityState. Pass one in to
    observe or pre-seed it under test.
    """

    def __init__(
        self,
        local: SnapshotStore,
        remote: RemoteStore | None,
        session: SessionProvider,
        config: SyncConfig | None = None,
        clock: Clock | None = None,
        state: AvailabilityState | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            local: Snapshot store over the local key-value store
            remote: Remote document store, or None for local-only operation
            session: Source of the signed-in user
            config: Timeouts and defaults
            clock: Source of "now" for day keys and event timestamps
            state: Availability state to own (a fresh untested one by default)
        """
        self.config = config or SyncConfig()
        self.state = state or AvailabilityState()

        self._local = local
        self._remote = remote
        self._session = session
        self._clock = clock or SystemClock()

        self._probe = AvailabilityProbe(
            self.state, self._probe_check, timeout_ms=self.config.probe_timeout_ms
        )
        self._local_lock = asyncio.Lock()
        self._background: set[asyncio.Task[Any]] = set()
        # Mirrors started but not yet settled, per snapshot
        self._day_mirrors = 0
        self._settings_mirrors = 0
        self._unsubscribe: Unsubscribe | None = None
        self._log = SyncLoggerAdapter(
            logger, {"component": "orchestrator", "user_id": session.current_user_id()}
        )

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        session: SessionProvider,
        clock: Clock | None = None,
    ) -> SyncOrchestrator:
        """Build an orchestrator with file-backed local storage and, when an
        endpoint is configured, a Cosmos DB remote store."""
        local = SnapshotStore(FileLocalStore.from_config(config))
        remote = CosmosRemoteStore(config) if config.remote_enabled else None
        return cls(local, remote, session, config=config, clock=clock)

    # Lifecycle

    async def start(self) -> None:
        """Arm the availability probe and listen for session changes.

        Returns immediately; the probe runs in the background.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self._session.on_session_change(self._on_session_change)
        self._ensure_probe()

    async def drain(self) -> None:
        """Wait until all background mirror and refresh tasks have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def wait_for_probe(self) -> None:
        """Wait for the availability probe, starting it if needed."""
        self._ensure_probe()
        await self._probe.wait()

    async def close(self) -> None:
        """Stop listening, finish in-flight work and close both tiers."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        await self.drain()
        await self._probe.cancel()
        await self._local.close()
        if self._remote is not None:
            await self._remote.close()

    async def __aenter__(self) -> SyncOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Daily record

    async def read_today(self) -> DailyRecord:
        """Get today's record. Never raises.

        Returns the remote record when the remote store answers in time,
        otherwise the local snapshot after day rollover.
        """
        self._ensure_probe()
        today = self._today()
        stored = await self._local.load_day()
        visible = self._visible(stored, self._session.current_user_id())
        record = apply_rollover(visible or self._empty_day(today), today)

        user_id = self._remote_user()
        if user_id is None:
            return record

        baseline = stored
        if visible is not None and visible.pending_sync:
            if not await self._push_pending_day(user_id, visible):
                return record
            baseline = visible.with_pending(False)

        try:
            remote_record = await self._remote_call(
                "read_day",
                lambda: self._remote.read_day(user_id, today),  # type: ignore[union-attr]
                self.config.read_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("read_day", e)
            return record

        self._observe_success("read_day")
        if remote_record is None:
            return record

        remote_record = remote_record.with_owner(user_id)
        async with self._local_lock:
            current = await self._local.load_day()
            if current != baseline or self._day_mirrors:
                # Local holds writes the remote may not have yet; keep them
                self._log.debug(
                    "Local day snapshot has unacknowledged writes, keeping local",
                    extra={"day_key": today},
                )
                current = self._visible(current, user_id)
                return apply_rollover(current or self._empty_day(today), today)
            await self._local.save_day(remote_record)

        return remote_record

    async def add_intake(self, amount_ml: int) -> SyncResult:
        """Log a drink.

        Returns as soon as the local snapshot is written; the remote mirror
        starts afterwards in the background.
        """
        try:
            _require_positive("amount_ml", amount_ml)
        except ValidationError as e:
            return SyncResult.failed(e)

        self._ensure_probe()
        user_id = self._remote_user()
        event = IntakeEvent(amount_ml=amount_ml, occurred_at=self._clock.now())

        async with self._local_lock:
            stored, record = await self._load_day_for_write()
            updated = record.with_intake(event)
            updated = updated.with_pending(record.pending_sync or user_id is None)
            await self._local.save_day(updated)

        if user_id is not None:
            today = updated.day_key
            self._start_day_mirror(
                "add_intake",
                user_id,
                lambda: self._remote.add_intake(  # type: ignore[union-attr]
                    user_id, today, event, updated.goal_ml
                ),
                record,
                stored,
            )
        return SyncResult.ok()

    async def reset_today(self) -> SyncResult:
        """Zero today's total and history, keeping the goal."""
        self._ensure_probe()
        user_id = self._remote_user()

        async with self._local_lock:
            stored, record = await self._load_day_for_write()
            today = record.day_key
            updated = record.cleared(today).with_pending(record.pending_sync or user_id is None)
            await self._local.save_day(updated)

        if user_id is not None:
            self._start_day_mirror(
                "reset_day",
                user_id,
                lambda: self._remote.reset_day(  # type: ignore[union-attr]
                    user_id, today, updated.goal_ml
                ),
                record,
                stored,
            )
        return SyncResult.ok()

    async def set_goal(self, goal_ml: int) -> SyncResult:
        """Change the daily goal; it carries over to following days."""
        try:
            _require_positive("goal_ml", goal_ml)
        except ValidationError as e:
            return SyncResult.failed(e)

        self._ensure_probe()
        user_id = self._remote_user()

        async with self._local_lock:
            stored, record = await self._load_day_for_write()
            today = record.day_key
            updated = record.with_goal(goal_ml).with_pending(record.pending_sync or user_id is None)
            await self._local.save_day(updated)

        if user_id is not None:
            self._start_day_mirror(
                "set_goal",
                user_id,
                lambda: self._remote.set_goal(  # type: ignore[union-attr]
                    user_id, today, goal_ml
                ),
                record,
                stored,
            )
        return SyncResult.ok()

    async def read_history(self, days: int = 7) -> list[DaySummary]:
        """Daily totals for the last `days` days including today, newest first.

        Past days live only in the remote store, so this is empty whenever
        the remote store is unusable.
        """
        if days <= 0:
            return []

        self._ensure_probe()
        user_id = self._remote_user()
        if user_id is None:
            return []

        since = day_key_days_ago(self._clock, days - 1)
        try:
            history = await self._remote_call(
                "read_history",
                lambda: self._remote.read_history(user_id, since),  # type: ignore[union-attr]
                self.config.history_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("read_history", e)
            return []

        self._observe_success("read_history")
        return history

    # Reminder settings

    async def read_reminder_settings(self) -> ReminderSettings:
        """Get reminder settings (defaults on first use). Never raises."""
        self._ensure_probe()
        stored = await self._local.load_settings()
        visible = self._visible(stored, self._session.current_user_id())
        settings = visible or ReminderSettings()

        user_id = self._remote_user()
        if user_id is None:
            return settings

        if visible is not None and visible.pending_sync:
            await self._push_pending_settings(user_id, visible)
            return self._visible(await self._local.load_settings(), user_id) or settings

        try:
            remote_settings = await self._remote_call(
                "read_settings",
                lambda: self._remote.read_settings(user_id),  # type: ignore[union-attr]
                self.config.settings_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("read_settings", e)
            return settings

        self._observe_success("read_settings")
        if remote_settings is None:
            return settings

        try:
            remote_settings.validate()
        except ValidationError as e:
            self._log.warning(f"Ignoring unschedulable remote reminder settings: {e.message}")
            return settings

        remote_settings = remote_settings.with_pending(False).with_owner(user_id)
        async with self._local_lock:
            current = await self._local.load_settings()
            if current != stored or self._settings_mirrors:
                return self._visible(current, user_id) or settings
            await self._local.save_settings(remote_settings)

        return remote_settings

    async def save_reminder_settings(self, settings: ReminderSettings) -> SyncResult:
        """Persist reminder settings locally and mirror them remotely."""
        try:
            settings.validate()
        except ValidationError as e:
            return SyncResult.failed(e)

        self._ensure_probe()
        user_id = self._remote_user()
        session_user = self._session.current_user_id()

        async with self._local_lock:
            owner = session_user
            if owner is None:
                stored = await self._local.load_settings()
                owner = stored.owner_id if stored is not None else None
            settings = settings.with_pending(False).with_owner(owner)
            await self._local.save_settings(settings.with_pending(user_id is None))

        if user_id is not None:
            self._settings_mirrors += 1
            self._spawn(self._mirror_settings(user_id, settings), "save_settings")
        return SyncResult.ok()

    # Availability

    async def refresh_availability(self) -> bool:
        """Re-check the remote store with one bounded read.

        The probe only runs once per process; this is how a host re-arms
        sync after sign-in or when the app returns to the foreground.

        Returns:
            Whether the remote store is usable afterwards
        """
        if not self.state.tested:
            await self.wait_for_probe()
            return self.state.usable

        user_id = self._session.current_user_id()
        if self._remote is None or user_id is None:
            return False

        today = self._today()
        try:
            await self._remote_call(
                "refresh",
                lambda: self._remote.read_day(user_id, today),  # type: ignore[union-attr]
                self.config.probe_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("refresh", e)
            return self.state.usable

        self._observe_success("refresh")
        return True

    # Private helpers

    def _today(self) -> str:
        return today_key(self._clock)

    def _empty_day(self, day_key: str) -> DailyRecord:
        return DailyRecord.empty(day_key, self.config.default_goal_ml)

    def _ensure_probe(self) -> None:
        if self._remote is not None and not self._probe.started:
            self._probe.start()

    async def _probe_check(self) -> DailyRecord | None:
        user_id = self._session.current_user_id()
        if self._remote is None or user_id is None:
            raise NotSignedInError()
        return await self._remote.read_day(user_id, self._today())

    def _remote_user(self) -> str | None:
        """The user to sync for, or None when remote calls should be skipped."""
        if self._remote is None or not self.state.usable:
            return None
        return self._session.current_user_id()

    def _visible(self, snapshot: SnapshotT | None, user_id: str | None) -> SnapshotT | None:
        """The snapshot if user_id may see it, otherwise None."""
        if snapshot is None or snapshot.visible_to(user_id):
            return snapshot
        if snapshot.pending_sync:
            self._log.info(
                f"Ignoring unsynced local snapshot of another account ({snapshot.owner_id})"
            )
        return None

    async def _load_day_for_write(self) -> tuple[DailyRecord | None, DailyRecord]:
        """Load the visible stored snapshot and today's view of it, owned by
        the signed-in user. Caller holds the lock."""
        today = self._today()
        session_user = self._session.current_user_id()
        stored = self._visible(await self._local.load_day(), session_user)
        record = apply_rollover(stored or self._empty_day(today), today)
        # Signed out, writes stay with the account that last owned the snapshot
        return stored, record.with_owner(session_user or record.owner_id)

    @staticmethod
    def _stale_pending(stored: DailyRecord | None, today: str) -> DailyRecord | None:
        """A previous day's snapshot the remote never acknowledged."""
        if stored is not None and stored.pending_sync and stored.day_key != today:
            return stored
        return None

    async def _remote_call(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout_ms: int,
    ) -> T:
        result = await bounded_wait(call(), timeout_ms)
        if isinstance(result, TimedOut):
            raise RemoteTimeoutError(operation, timeout_ms)
        return result.value

    def _observe_success(self, operation: str) -> None:
        if self.state.record_success():
            self._log.info(
                f"Remote store reachable again after {operation}, sync resumed",
                extra={"operation": operation},
            )

    def _observe_failure(self, operation: str, error: Exception) -> None:
        kind = availability_failure_kind(error)
        context = {"operation": operation, "failure_kind": kind}
        if kind is None:
            self._log.warning(f"Remote {operation} failed: {error}", extra=context)
            return

        flipped = self.state.record_failure(kind)
        level = logging.WARNING if flipped else logging.DEBUG
        if kind == "permission":
            self._log.log(
                level,
                f"Remote store denied {operation} (permission or session), "
                f"continuing local-only: {error}",
                extra=context,
            )
        else:
            self._log.log(
                level,
                f"Remote store unreachable during {operation}, continuing local-only: {error}",
                extra=context,
            )

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=f"hydration-{name}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _start_day_mirror(
        self,
        operation: str,
        user_id: str,
        send: Callable[[], Awaitable[None]],
        record: DailyRecord,
        stored: DailyRecord | None,
    ) -> None:
        # Counted before the task starts so an immediate read already sees it
        self._day_mirrors += 1
        self._spawn(
            self._mirror_day(
                operation,
                user_id,
                send,
                replay_snapshot=record.pending_sync,
                stale=self._stale_pending(stored, record.day_key),
            ),
            operation,
        )

    async def _mirror_day(
        self,
        operation: str,
        user_id: str,
        send: Callable[[], Awaitable[None]],
        replay_snapshot: bool,
        stale: DailyRecord | None,
    ) -> None:
        """Mirror one local day change to the remote store."""
        try:
            if stale is not None:
                await self._push_stale_day(user_id, stale)

            if replay_snapshot:
                # The remote is missing earlier changes too; one delta won't do
                current = await self._local.load_day()
                if current is not None and current.pending_sync and current.visible_to(user_id):
                    await self._push_pending_day(user_id, current)
                    return

            try:
                await self._remote_call(operation, send, self.config.write_timeout_ms)
            except Exception as e:
                self._observe_failure(operation, e)
                await self._mark_day_pending(user_id)
                return

            self._observe_success(operation)
        finally:
            self._day_mirrors -= 1

    async def _push_pending_day(self, user_id: str, snapshot: DailyRecord) -> bool:
        """Push a whole pending snapshot; clear the flag if it did not change meanwhile."""
        try:
            await self._remote_call(
                "replace_day",
                lambda: self._remote.replace_day(user_id, snapshot),  # type: ignore[union-attr]
                self.config.write_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("replace_day", e)
            return False

        self._observe_success("replace_day")
        async with self._local_lock:
            current = await self._local.load_day()
            if current == snapshot:
                await self._local.save_day(snapshot.with_pending(False))
        self._log.info(
            f"Pushed pending snapshot for {snapshot.day_key}",
            extra={"day_key": snapshot.day_key},
        )
        return True

    async def _push_stale_day(self, user_id: str, stale: DailyRecord) -> None:
        try:
            await self._remote_call(
                "replace_day",
                lambda: self._remote.replace_day(user_id, stale),  # type: ignore[union-attr]
                self.config.write_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("replace_day", e)
            self._log.warning(
                f"Unsynced intake for {stale.day_key} could not be pushed before rollover: {e}"
            )
            return
        self._observe_success("replace_day")

    async def _mark_day_pending(self, user_id: str) -> None:
        async with self._local_lock:
            current = await self._local.load_day()
            if current is None or current.pending_sync or current.owner_id != user_id:
                return
            await self._local.save_day(current.with_pending(True))

    async def _mirror_settings(self, user_id: str, settings: ReminderSettings) -> None:
        try:
            await self._remote_call(
                "save_settings",
                lambda: self._remote.save_settings(  # type: ignore[union-attr]
                    user_id, settings.with_owner(None)
                ),
                self.config.settings_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("save_settings", e)
            async with self._local_lock:
                current = await self._local.load_settings()
                if current is not None and current == settings:
                    await self._local.save_settings(current.with_pending(True))
            return
        finally:
            self._settings_mirrors -= 1

        self._observe_success("save_settings")

    async def _push_pending_settings(self, user_id: str, snapshot: ReminderSettings) -> bool:
        try:
            await self._remote_call(
                "save_settings",
                lambda: self._remote.save_settings(  # type: ignore[union-attr]
                    user_id, snapshot.with_pending(False).with_owner(None)
                ),
                self.config.settings_timeout_ms,
            )
        except Exception as e:
            self._observe_failure("save_settings", e)
            return False

        self._observe_success("save_settings")
        async with self._local_lock:
            if await self._local.load_settings() == snapshot:
                await self._local.save_settings(snapshot.with_pending(False))
        return True

    def _on_session_change(self, event: SessionEvent) -> None:
        self._log.bind(user_id=event.user_id if event.kind is SessionEventKind.STARTED else None)

        if event.kind is SessionEventKind.ENDED:
            if self.state.record_failure("permission"):
                self._log.info("Session ended, remote sync paused")
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._log.debug("Session started outside an event loop, skipping refresh")
            return
        self._spawn(self._refresh_in_background(), "refresh")

    async def _refresh_in_background(self) -> None:
        await self.refresh_availability()
