"""
Session identity for the sync layer.

Provides the authenticated-session interface the remote tier depends on,
plus two providers: one driven by the host's sign-in flow and one backed
by a local config file.
"""

from .config_provider import ConfigFileSessionProvider
from .provider import SessionProvider
from .static_provider import StaticSessionProvider
from .types import SessionCallback, SessionEvent, SessionEventKind, Unsubscribe

__all__ = [
    # Types
    "SessionEvent",
    "SessionEventKind",
    "SessionCallback",
    "Unsubscribe",
    # Providers
    "SessionProvider",
    "StaticSessionProvider",
    "ConfigFileSessionProvider",
]
