"""
Cosmos DB remote store.

Stores hydration data in Azure Cosmos DB, one container per document kind,
all partitioned by user so every query stays inside a single partition.

Supports multiple authentication methods:
- Key-based authentication (development)
- Azure AD via DefaultAzureCredential (recommended)
- Azure Managed Identity
- Service Principal
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from ..config import CosmosAuthMethod, SyncConfig
from ..exceptions import (
    HydrationSyncError,
    RemotePermissionError,
    RemoteQueryError,
    RemoteUnavailableError,
)
from ..models import DailyRecord, DaySummary, IntakeEvent, ReminderSettings
from .base import RemoteStore

logger = logging.getLogger(__name__)

# Container names
INTAKE_CONTAINER = "water_intake"
STATS_CONTAINER = "daily_stats"
SETTINGS_CONTAINER = "reminder_settings"

PARTITION_KEY_PATH = "/user_id"

_TRANSIENT_STATUS_CODES = {408, 429, 449, 500, 502, 503, 504}


def _get_credential(config: SyncConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        RemotePermissionError: If credential cannot be created
    """
    endpoint = config.cosmos_endpoint or "cosmos"
    auth_method = config.cosmos_auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise RemotePermissionError(endpoint, "cosmos_key required for KEY authentication")
        return config.cosmos_key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # If client_id is provided, use user-assigned managed identity
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise RemotePermissionError(
                endpoint,
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,  # type: ignore[arg-type]
            client_id=config.azure_client_id,  # type: ignore[arg-type]
            client_secret=config.azure_client_secret,  # type: ignore[arg-type]
        )

    raise RemotePermissionError(endpoint, f"Unsupported auth method: {auth_method}")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _is_missing_index(error: CosmosHttpResponseError) -> bool:
    return error.status_code == 400 and "index" in str(error).lower()


class CosmosRemoteStore(RemoteStore):
    """Cosmos DB remote store.

    Container schema:

    water_intake (one document per IntakeEvent):
    {
        "id": "{event_id}",
        "user_id": "{user_id}",
        "day_key": "YYYY-MM-DD",
        "amount_ml": {int},
        "occurred_at": "{iso_timestamp}",
        "occurred_at_ms": {int}
    }

    daily_stats (one document per user and day):
    {
        "id": "{user_id}_{day_key}",
        "user_id": "{user_id}",
        "day_key": "YYYY-MM-DD",
        "goal_ml": {int},
        "total_ml": {int},
        "last_updated": "{iso_timestamp}"
    }

    reminder_settings (one document per user):
    {
        "id": "{user_id}",
        "user_id": "{user_id}",
        "enabled": {bool},
        "interval_minutes": {int},
        "window_start": "HH:MM",
        "window_end": "HH:MM",
        "amount_ml": {int},
        "last_updated": "{iso_timestamp}"
    }

    The day's consumed total is always recomputed from water_intake;
    total_ml exists for the history query only.
    """

    def __init__(
        self,
        config: SyncConfig,
        containers: dict[str, ContainerProxy] | None = None,
    ) -> None:
        """Initialize Cosmos DB storage.

        Args:
            config: Sync configuration with Cosmos connection info
            containers: Pre-built container proxies keyed by name; skips
                connecting when given
        """
        if not config.cosmos_endpoint and containers is None:
            raise HydrationSyncError("Cosmos endpoint is required")

        self.config = config
        self.endpoint = config.cosmos_endpoint or "cosmos"

        self._credential: Any = None
        self._client: CosmosClient | None = None
        self._database: DatabaseProxy | None = None
        self._containers: dict[str, ContainerProxy] = dict(containers or {})
        self._initialized = containers is not None
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> None:
        """Ensure client and containers are initialized."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            self._credential = _get_credential(self.config)

            with self._translate_errors("connect"):
                client = CosmosClient(self.endpoint, credential=self._credential)
                self._client = client

                self._database = await client.create_database_if_not_exists(
                    id=self.config.cosmos_database
                )
                for name in (INTAKE_CONTAINER, STATS_CONTAINER, SETTINGS_CONTAINER):
                    self._containers[name] = await self._database.create_container_if_not_exists(
                        id=name,
                        partition_key=PartitionKey(path=PARTITION_KEY_PATH),
                    )

            self._initialized = True
            logger.info(
                f"Connected to Cosmos DB: {self.endpoint} "
                f"(database={self.config.cosmos_database}, "
                f"auth={self.config.cosmos_auth_method.value})"
            )

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """Map SDK and transport errors onto the sync error taxonomy."""
        try:
            yield
        except HydrationSyncError:
            raise
        except CosmosHttpResponseError as e:
            if e.status_code in (401, 403):
                raise RemotePermissionError(self.endpoint, str(e)) from e
            if _is_missing_index(e):
                raise RemoteQueryError(operation, e) from e
            if e.status_code in _TRANSIENT_STATUS_CODES:
                raise RemoteUnavailableError(self.endpoint, e) from e
            raise HydrationSyncError(
                f"Cosmos DB error during {operation}: {e.status_code}",
                {"operation": operation, "status_code": e.status_code},
            ) from e
        except (ServiceRequestError, ServiceResponseError, OSError) as e:
            raise RemoteUnavailableError(self.endpoint, e) from e

    def _container(self, name: str) -> ContainerProxy:
        return self._containers[name]

    @staticmethod
    def _stats_id(user_id: str, day_key: str) -> str:
        return f"{user_id}_{day_key}"

    # Day records

    async def read_day(self, user_id: str, day_key: str) -> DailyRecord | None:
        await self._ensure_initialized()

        stats = await self._read_item(STATS_CONTAINER, self._stats_id(user_id, day_key), user_id)
        intake_docs = await self._query_intakes(user_id, day_key)

        if stats is None and not intake_docs:
            return None

        history = tuple(self._document_to_event(doc) for doc in intake_docs)
        goal_ml = (stats or {}).get("goal_ml") or self.config.default_goal_ml
        return DailyRecord(day_key=day_key, goal_ml=int(goal_ml), history=history)

    async def add_intake(
        self, user_id: str, day_key: str, event: IntakeEvent, goal_ml: int
    ) -> None:
        await self._ensure_initialized()

        with self._translate_errors("add_intake"):
            await self._container(INTAKE_CONTAINER).upsert_item(
                self._event_to_document(user_id, day_key, event)
            )

        await self._patch_or_create_stats(
            user_id,
            day_key,
            operations=[
                {"op": "incr", "path": "/total_ml", "value": event.amount_ml},
                {"op": "set", "path": "/last_updated", "value": _now_iso()},
            ],
            goal_ml=goal_ml,
            total_ml=event.amount_ml,
        )

    async def reset_day(self, user_id: str, day_key: str, goal_ml: int) -> None:
        await self._ensure_initialized()

        intake_docs = await self._query_intakes(user_id, day_key)
        await self._delete_intakes(user_id, [doc["id"] for doc in intake_docs])

        await self._patch_or_create_stats(
            user_id,
            day_key,
            operations=[
                {"op": "set", "path": "/total_ml", "value": 0},
                {"op": "set", "path": "/last_updated", "value": _now_iso()},
            ],
            goal_ml=goal_ml,
            total_ml=0,
        )

    async def set_goal(self, user_id: str, day_key: str, goal_ml: int) -> None:
        await self._ensure_initialized()

        with self._translate_errors("set_goal"):
            try:
                await self._container(STATS_CONTAINER).patch_item(
                    item=self._stats_id(user_id, day_key),
                    partition_key=user_id,
                    patch_operations=[
                        {"op": "set", "path": "/goal_ml", "value": goal_ml},
                        {"op": "set", "path": "/last_updated", "value": _now_iso()},
                    ],
                )
                return
            except CosmosResourceNotFoundError:
                pass

        intake_docs = await self._query_intakes(user_id, day_key)
        total = sum(int(doc.get("amount_ml", 0)) for doc in intake_docs)
        await self._upsert_stats(user_id, day_key, goal_ml=goal_ml, total_ml=total)

    async def replace_day(self, user_id: str, record: DailyRecord) -> None:
        await self._ensure_initialized()

        existing = await self._query_intakes(user_id, record.day_key)
        keep = set(record.event_ids())

        with self._translate_errors("replace_day"):
            for event in record.history:
                await self._container(INTAKE_CONTAINER).upsert_item(
                    self._event_to_document(user_id, record.day_key, event)
                )

        stale_ids = [doc["id"] for doc in existing if doc["id"] not in keep]
        await self._delete_intakes(user_id, stale_ids)
        await self._upsert_stats(
            user_id, record.day_key, goal_ml=record.goal_ml, total_ml=record.consumed_ml
        )

    # Reminder settings

    async def read_settings(self, user_id: str) -> ReminderSettings | None:
        await self._ensure_initialized()

        doc = await self._read_item(SETTINGS_CONTAINER, user_id, user_id)
        if doc is None:
            return None
        return ReminderSettings.from_dict(doc)

    async def save_settings(self, user_id: str, settings: ReminderSettings) -> None:
        await self._ensure_initialized()

        doc = settings.to_dict()
        doc.pop("pending_sync", None)
        doc.pop("owner_id", None)
        doc.update({"id": user_id, "user_id": user_id, "last_updated": _now_iso()})

        with self._translate_errors("save_settings"):
            await self._container(SETTINGS_CONTAINER).upsert_item(doc)

    # History

    async def read_history(self, user_id: str, since_day_key: str) -> list[DaySummary]:
        await self._ensure_initialized()

        where = "WHERE c.user_id = @user_id AND c.day_key >= @since"
        params = [
            {"name": "@user_id", "value": user_id},
            {"name": "@since", "value": since_day_key},
        ]
        try:
            docs = await self._query(
                STATS_CONTAINER,
                f"SELECT * FROM c {where} ORDER BY c.day_key DESC",
                params,
                user_id,
            )
        except RemoteQueryError:
            logger.warning("Cosmos index missing for ordered history query, sorting in memory")
            docs = await self._query(STATS_CONTAINER, f"SELECT * FROM c {where}", params, user_id)
            docs.sort(key=lambda d: d["day_key"], reverse=True)

        return [
            DaySummary(
                day_key=doc["day_key"],
                consumed_ml=int(doc.get("total_ml") or 0),
                goal_ml=int(doc.get("goal_ml") or self.config.default_goal_ml),
            )
            for doc in docs
        ]

    async def close(self) -> None:
        """Close the Cosmos client."""
        if self._client:
            await self._client.close()
            self._client = None
            self._database = None
            self._containers = {}
            self._initialized = False

        # Close credential if it has a close method (AAD credentials do)
        if self._credential and hasattr(self._credential, "close"):
            await self._credential.close()
            self._credential = None

    # Private helpers

    async def _read_item(self, container: str, item_id: str, user_id: str) -> dict | None:
        with self._translate_errors(f"read {container}"):
            try:
                return await self._container(container).read_item(
                    item=item_id, partition_key=user_id
                )
            except CosmosResourceNotFoundError:
                return None

    async def _query(
        self,
        container: str,
        query: str,
        parameters: list[dict[str, Any]],
        user_id: str,
    ) -> list[dict[str, Any]]:
        docs: list[dict[str, Any]] = []
        with self._translate_errors(f"query {container}"):
            async for doc in self._container(container).query_items(
                query=query, parameters=parameters, partition_key=user_id
            ):
                docs.append(doc)
        return docs

    async def _query_intakes(self, user_id: str, day_key: str) -> list[dict[str, Any]]:
        """Fetch a day's intake documents in chronological order.

        Falls back to an unordered query sorted in memory when the ordered
        query cannot be served.
        """
        where = "WHERE c.user_id = @user_id AND c.day_key = @day_key"
        params = [
            {"name": "@user_id", "value": user_id},
            {"name": "@day_key", "value": day_key},
        ]
        try:
            return await self._query(
                INTAKE_CONTAINER,
                f"SELECT * FROM c {where} ORDER BY c.occurred_at_ms ASC",
                params,
                user_id,
            )
        except RemoteQueryError:
            logger.warning("Cosmos index missing for ordered intake query, sorting in memory")
            docs = await self._query(INTAKE_CONTAINER, f"SELECT * FROM c {where}", params, user_id)
            docs.sort(key=lambda d: d.get("occurred_at_ms", 0))
            return docs

    async def _delete_intakes(self, user_id: str, item_ids: list[str]) -> None:
        container = self._container(INTAKE_CONTAINER)
        for item_id in item_ids:
            with self._translate_errors("delete_intake"):
                try:
                    await container.delete_item(item=item_id, partition_key=user_id)
                except CosmosResourceNotFoundError:
                    pass  # Already deleted

    async def _patch_or_create_stats(
        self,
        user_id: str,
        day_key: str,
        operations: list[dict[str, Any]],
        goal_ml: int,
        total_ml: int,
    ) -> None:
        with self._translate_errors("patch_stats"):
            try:
                await self._container(STATS_CONTAINER).patch_item(
                    item=self._stats_id(user_id, day_key),
                    partition_key=user_id,
                    patch_operations=operations,
                )
                return
            except CosmosResourceNotFoundError:
                pass

        await self._upsert_stats(user_id, day_key, goal_ml=goal_ml, total_ml=total_ml)

    async def _upsert_stats(self, user_id: str, day_key: str, goal_ml: int, total_ml: int) -> None:
        with self._translate_errors("upsert_stats"):
            await self._container(STATS_CONTAINER).upsert_item(
                {
                    "id": self._stats_id(user_id, day_key),
                    "user_id": user_id,
                    "day_key": day_key,
                    "goal_ml": goal_ml,
                    "total_ml": total_ml,
                    "last_updated": _now_iso(),
                }
            )

    def _event_to_document(self, user_id: str, day_key: str, event: IntakeEvent) -> dict[str, Any]:
        return {
            "id": event.event_id,
            "user_id": user_id,
            "day_key": day_key,
            "amount_ml": event.amount_ml,
            "occurred_at": event.occurred_at.isoformat(),
            "occurred_at_ms": int(event.occurred_at.timestamp() * 1000),
        }

    def _document_to_event(self, doc: dict[str, Any]) -> IntakeEvent:
        return IntakeEvent(
            amount_ml=int(doc["amount_ml"]),
            occurred_at=datetime.fromisoformat(doc["occurred_at"]),
            event_id=doc["id"],
        )
