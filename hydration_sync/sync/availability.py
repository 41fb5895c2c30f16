"""
Remote availability tracking.

AvailabilityState is an explicit value owned by the orchestrator rather
than process-global flags. The probe classifies the remote store once per
process, in the background; afterwards only remote operation outcomes move
the state.

State machine:
    untested --(probe, any outcome)--> tested & available|unavailable
    tested & available --(unreachable/permission failure)--> tested & unavailable
    tested & unavailable --(any remote success)--> tested & available
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..exceptions import RemoteTimeoutError, availability_failure_kind
from .timeout import TimedOut, bounded_wait

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityState:
    """Whether the remote store is worth trying, for this process lifetime.

    Attributes:
        tested: True once the probe has run; never reverts
        available: Meaningful only when tested
        last_failure_kind: "unreachable" or "permission" for the failure
            that last made the remote unavailable
    """

    tested: bool = False
    available: bool = False
    last_failure_kind: str | None = None

    @property
    def usable(self) -> bool:
        return self.tested and self.available

    def record_probe(self, available: bool, failure_kind: str | None = None) -> None:
        self.tested = True
        self.available = available
        self.last_failure_kind = None if available else failure_kind

    def record_success(self) -> bool:
        """Mark the remote available after a successful operation.

        Returns:
            True if this flipped the state from unavailable
        """
        if not self.tested:
            return False
        flipped = not self.available
        self.available = True
        self.last_failure_kind = None
        return flipped

    def record_failure(self, failure_kind: str) -> bool:
        """Mark the remote unavailable after an unreachable/permission failure.

        Returns:
            True if this flipped the state from available
        """
        if not self.tested:
            return False
        flipped = self.available
        self.available = False
        self.last_failure_kind = failure_kind
        return flipped


class AvailabilityProbe:
    """One-shot background check of the remote store.

    The probe runs at most once. start() schedules it without waiting, so
    application startup never pays remote latency.
    """

    def __init__(
        self,
        state: AvailabilityState,
        check: Callable[[], Awaitable[Any]],
        timeout_ms: int = 2000,
    ) -> None:
        """Initialize the probe.

        Args:
            state: The state the outcome is written to
            check: Factory for one representative remote read
            timeout_ms: Bound on the check
        """
        self.state = state
        self._check = check
        self.timeout_ms = timeout_ms
        self._task: asyncio.Task[None] | None = None
        self._attempted = False

    @property
    def started(self) -> bool:
        return self._task is not None or self._attempted

    def start(self) -> asyncio.Task[None] | None:
        """Schedule the probe in the background if it has not run yet."""
        if self.started:
            return self._task
        self._task = asyncio.create_task(self.run(), name="hydration-availability-probe")
        return self._task

    async def wait(self) -> None:
        """Wait for a scheduled probe to finish."""
        if self._task is not None:
            await self._task

    async def run(self) -> None:
        """Run the check once; later calls are no-ops."""
        if self._attempted:
            return
        self._attempted = True

        available = False
        failure_kind: str | None = None
        try:
            result = await bounded_wait(self._check(), self.timeout_ms)
            if isinstance(result, TimedOut):
                raise RemoteTimeoutError("probe", self.timeout_ms)
            available = True
        except Exception as e:
            failure_kind = availability_failure_kind(e) or "error"
            logger.warning(f"Remote store not available, running local-only: {e}")
        finally:
            self.state.record_probe(available, failure_kind)

        if available:
            logger.info("Remote store is available, sync enabled")

    async def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
