"""
Session types.

A session is the authenticated-user context the remote store needs. The
sync layer only cares whether one is active and whose it is.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class SessionEventKind(Enum):
    """Session lifecycle transitions."""

    STARTED = "started"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionEvent:
    """A session change delivered to listeners.

    Attributes:
        kind: Whether a session started or ended
        user_id: The user the session belongs (or belonged) to
    """

    kind: SessionEventKind
    user_id: str | None


SessionCallback = Callable[[SessionEvent], None]
Unsubscribe = Callable[[], None]
