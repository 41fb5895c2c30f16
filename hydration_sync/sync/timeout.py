"""
Bounded waits for remote calls.

A hung remote call must never stall its caller. bounded_wait() races an
awaitable against a timer and reports which settled first. On timeout the
underlying call is abandoned, not cancelled: it may still finish later,
but its result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to abandoned calls so they are not garbage collected
# mid-flight; each removes itself when it settles.
_abandoned: set[asyncio.Future] = set()


@dataclass(frozen=True)
class Completed(Generic[T]):
    """The operation settled within the bound."""

    value: T


@dataclass(frozen=True)
class TimedOut:
    """The bound expired first."""

    timeout_ms: int


BoundedResult = Completed[T] | TimedOut


def _discard_late_result(future: asyncio.Future) -> None:
    _abandoned.discard(future)
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.debug(f"Abandoned remote call failed after its bound: {error!r}")
    else:
        logger.debug("Abandoned remote call completed after its bound, result discarded")


def _abandon(future: asyncio.Future) -> None:
    _abandoned.add(future)
    future.add_done_callback(_discard_late_result)


async def bounded_wait(operation: Awaitable[T], timeout_ms: int) -> BoundedResult[T]:
    """Wait for operation for at most timeout_ms milliseconds.

    Args:
        operation: Any awaitable (coroutine, task or future)
        timeout_ms: Bound in milliseconds

    Returns:
        Completed(value) if the operation settled in time, TimedOut otherwise

    Raises:
        Exception: Whatever the operation raised, if it failed within the bound
    """
    future = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({future}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        _abandon(future)
        raise

    if future in done:
        return Completed(future.result())

    _abandon(future)
    return TimedOut(timeout_ms)


def abandoned_count() -> int:
    """Number of abandoned calls still in flight."""
    return len(_abandoned)
