"""
In-process session provider.

For host applications that run their own sign-in flow and only need to
tell the sync layer about the outcome.
"""

from .provider import SessionProvider
from .types import SessionEvent, SessionEventKind


class StaticSessionProvider(SessionProvider):
    """Session provider driven explicitly by sign_in() / sign_out()."""

    def __init__(self, user_id: str | None = None) -> None:
        super().__init__()
        self._user_id = user_id

    def current_user_id(self) -> str | None:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        """Start a session for user_id, ending any other user's session first."""
        if self._user_id == user_id:
            return
        if self._user_id is not None:
            self.sign_out()
        self._user_id = user_id
        self._emit(SessionEvent(SessionEventKind.STARTED, user_id))

    def sign_out(self) -> None:
        if self._user_id is None:
            return
        previous = self._user_id
        self._user_id = None
        self._emit(SessionEvent(SessionEventKind.ENDED, previous))
