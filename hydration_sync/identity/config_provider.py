"""
Config file session provider.

Reads the signed-in user from a local YAML settings file, for development
and single-user offline installs.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from .provider import SessionProvider
from .types import SessionEvent, SessionEventKind

logger = logging.getLogger(__name__)


class ConfigFileSessionProvider(SessionProvider):
    """Session provider that reads the user from local config.

    Configuration in ~/.hydration/settings.yaml:

    ```yaml
    identity:
      user_id: "user-abc123"
    ```

    A missing file or missing user_id means no session is active.
    """

    def __init__(self, config_path: Path | None = None):
        """Initialize the config file provider.

        Args:
            config_path: Path to settings.yaml. Defaults to ~/.hydration/settings.yaml
        """
        super().__init__()
        self.config_path = config_path or Path.home() / ".hydration" / "settings.yaml"
        self._user_id: str | None = self._read_user_id()

    def current_user_id(self) -> str | None:
        return self._user_id

    def reload(self) -> str | None:
        """Re-read the settings file and emit events if the user changed.

        Returns:
            The user ID now in effect
        """
        user_id = self._read_user_id()
        if user_id == self._user_id:
            return user_id

        previous = self._user_id
        self._user_id = user_id
        if previous is not None:
            self._emit(SessionEvent(SessionEventKind.ENDED, previous))
        if user_id is not None:
            self._emit(SessionEvent(SessionEventKind.STARTED, user_id))
        return user_id

    def _read_user_id(self) -> str | None:
        identity = self._load_config().get("identity") or {}
        if not isinstance(identity, dict):
            return None
        user_id = identity.get("user_id")
        return str(user_id) if user_id else None

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            return {}

        try:
            content = self.config_path.read_text()
            loaded = yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read identity from {self.config_path}: {e}")
            return {}
        return loaded if isinstance(loaded, dict) else {}
