"""
Session provider abstract interface.

Defines the contract the sync layer consumes from whatever owns
authentication in the host application.
"""

import logging
from abc import ABC, abstractmethod

from .types import SessionCallback, SessionEvent, Unsubscribe

logger = logging.getLogger(__name__)


class SessionProvider(ABC):
    """Abstract authenticated-session provider.

    Implementations answer "who is signed in right now" and notify
    listeners when that changes. Listener bookkeeping is shared here;
    subclasses call _emit() on transitions.
    """

    def __init__(self) -> None:
        self._listeners: list[SessionCallback] = []

    @abstractmethod
    def current_user_id(self) -> str | None:
        """Get the signed-in user's identifier.

        Returns:
            The user ID, or None when no session is active
        """
        ...

    def is_signed_in(self) -> bool:
        return self.current_user_id() is not None

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        """Register a listener for session start/end events.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Session listener raised on {event.kind.value}: {e}")
