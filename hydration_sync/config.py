"""
Configuration for hydration sync.

Settings come from (highest priority first) environment variables, the
``sync:`` section of a YAML settings file, and built-in defaults.

Environment Variables:
    HYDRATION_LOCAL_PATH: Directory for local snapshots
    HYDRATION_DEFAULT_GOAL_ML: Goal used for a fresh install
    HYDRATION_COSMOS_ENDPOINT: Cosmos DB endpoint URL
    HYDRATION_COSMOS_KEY: Cosmos DB key (if using key auth)
    HYDRATION_COSMOS_DATABASE: Database name (default: hydration-db)
    HYDRATION_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
    HYDRATION_PROBE_TIMEOUT_MS / HYDRATION_READ_TIMEOUT_MS /
    HYDRATION_WRITE_TIMEOUT_MS / HYDRATION_SETTINGS_TIMEOUT_MS /
    HYDRATION_HISTORY_TIMEOUT_MS: Bounds for remote calls
    AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET: Service principal
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError
from .models import DEFAULT_GOAL_ML

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".hydration" / "settings.yaml"


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key (development only)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


_TIMEOUT_FIELDS = (
    "probe_timeout_ms",
    "read_timeout_ms",
    "write_timeout_ms",
    "settings_timeout_ms",
    "history_timeout_ms",
)


@dataclass
class SyncConfig:
    """Configuration for the sync layer.

    Attributes:
        local_path: Directory holding the local snapshots
        default_goal_ml: Goal of a fresh install

        cosmos_endpoint: Cosmos DB endpoint URL; remote sync is off without it
        cosmos_auth_method: Authentication method (default: DEFAULT_CREDENTIAL)
        cosmos_key: Cosmos DB key (only for KEY auth method)
        cosmos_database: Cosmos DB database name

        azure_tenant_id: Azure tenant ID (for SERVICE_PRINCIPAL)
        azure_client_id: Azure client/app ID (for SERVICE_PRINCIPAL/MANAGED_IDENTITY)
        azure_client_secret: Azure client secret (for SERVICE_PRINCIPAL)

        probe_timeout_ms: Bound on the one-shot availability probe
        read_timeout_ms: Bound on remote reads of today's record
        write_timeout_ms: Bound on mirrored writes
        settings_timeout_ms: Bound on reminder settings reads and writes
        history_timeout_ms: Bound on the historical query
    """

    local_path: str | None = None
    default_goal_ml: int = DEFAULT_GOAL_ML

    cosmos_endpoint: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None
    cosmos_database: str = "hydration-db"

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    probe_timeout_ms: int = 2000
    read_timeout_ms: int = 3000
    write_timeout_ms: int = 2000
    settings_timeout_ms: int = 2000
    history_timeout_ms: int = 3000

    def __post_init__(self) -> None:
        if isinstance(self.cosmos_auth_method, str):
            self.cosmos_auth_method = _parse_auth_method(self.cosmos_auth_method)
        if self.default_goal_ml <= 0:
            raise ValidationError("default_goal_ml", "must be positive", str(self.default_goal_ml))
        for name in _TIMEOUT_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                raise ValidationError(name, "must be positive", str(value))

    @property
    def remote_enabled(self) -> bool:
        return bool(self.cosmos_endpoint)

    @property
    def resolved_local_path(self) -> Path:
        if self.local_path:
            return Path(self.local_path).expanduser()
        return Path.home() / ".hydration" / "store"

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables only."""
        return cls(**_environment_overrides())


def _parse_auth_method(value: str) -> CosmosAuthMethod:
    try:
        return CosmosAuthMethod(value.lower())
    except ValueError:
        logger.warning(f"Unknown Cosmos auth method {value!r}, using default_credential")
        return CosmosAuthMethod.DEFAULT_CREDENTIAL


def _environment_overrides() -> dict[str, Any]:
    env = os.environ
    overrides: dict[str, Any] = {}

    string_vars = {
        "local_path": "HYDRATION_LOCAL_PATH",
        "cosmos_endpoint": "HYDRATION_COSMOS_ENDPOINT",
        "cosmos_key": "HYDRATION_COSMOS_KEY",
        "cosmos_database": "HYDRATION_COSMOS_DATABASE",
        "cosmos_auth_method": "HYDRATION_COSMOS_AUTH_METHOD",
        "azure_tenant_id": "AZURE_TENANT_ID",
        "azure_client_id": "AZURE_CLIENT_ID",
        "azure_client_secret": "AZURE_CLIENT_SECRET",
    }
    for name, var in string_vars.items():
        if env.get(var):
            overrides[name] = env[var]

    int_vars = {name: f"HYDRATION_{name.upper()}" for name in ("default_goal_ml", *_TIMEOUT_FIELDS)}
    for name, var in int_vars.items():
        raw = env.get(var)
        if not raw:
            continue
        try:
            overrides[name] = int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer {var}={raw!r}")

    return overrides


def _load_settings_file(path: Path) -> dict[str, Any]:
    """Load the ``sync`` section of a YAML settings file."""
    if not path.exists():
        return {}

    try:
        content = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read settings file {path}: {e}")
        return {}

    section = content.get("sync", {}) if isinstance(content, dict) else {}
    if not isinstance(section, dict):
        return {}

    known = {f.name for f in fields(SyncConfig)}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown sync settings: {sorted(unknown)}")
    return {k: v for k, v in section.items() if k in known}


def load_config(config_path: Path | None = None) -> SyncConfig:
    """Load configuration from the settings file and environment.

    Priority: environment variables > settings file > defaults.
    """
    values = _load_settings_file(config_path or DEFAULT_SETTINGS_PATH)
    values.update(_environment_overrides())
    return SyncConfig(**values)
