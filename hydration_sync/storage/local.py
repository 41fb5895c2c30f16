"""
Local file-based key-value storage.

Each key is one small file. Writes go through a temp file and an atomic
rename so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import aiofiles
import aiofiles.os

from ..config import SyncConfig
from ..exceptions import StorageIOError, ValidationError
from ..models import DailyRecord, ReminderSettings
from .base import LocalStore

logger = logging.getLogger(__name__)

WATER_DATA_KEY = "water_data"
REMINDER_SETTINGS_KEY = "reminder_settings"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileLocalStore(LocalStore):
    """Key-value store backed by one file per key.

    Directory structure:
    {base_path}/
      water_data.json
      reminder_settings.json
    """

    def __init__(self, base_path: Path | str) -> None:
        self.base_path = Path(base_path)

    @classmethod
    def from_config(cls, config: SyncConfig) -> FileLocalStore:
        return cls(config.resolved_local_path)

    def _path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key.lstrip("@")) or "_"
        return self.base_path / f"{safe}.json"

    async def get(self, key: str) -> bytes | None:
        try:
            return await self._read(self._path_for(key))
        except StorageIOError as e:
            logger.error(f"Local read failed, treating {key} as absent: {e.message}")
            return None

    async def set(self, key: str, value: bytes) -> None:
        try:
            await self._write(self._path_for(key), value)
        except StorageIOError as e:
            logger.error(f"Local write failed, dropping {key}: {e.message}")

    async def _read(self, path: Path) -> bytes | None:
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageIOError("read", str(path), e) from e

    async def _write(self, path: Path, value: bytes) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StorageIOError("write", str(path), e) from e


class SnapshotStore:
    """JSON codec for the two local snapshots.

    Sits on top of any LocalStore. A blob that fails to decode is treated
    as absent, so callers always get either a valid object or None.
    """

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    async def load_day(self) -> DailyRecord | None:
        data = await self._load_json(WATER_DATA_KEY)
        if data is None:
            return None
        try:
            return DailyRecord.from_dict(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"Discarding malformed local day snapshot: {e}")
            return None

    async def save_day(self, record: DailyRecord) -> None:
        await self._save_json(WATER_DATA_KEY, record.to_dict())

    async def load_settings(self) -> ReminderSettings | None:
        data = await self._load_json(REMINDER_SETTINGS_KEY)
        if data is None:
            return None
        try:
            return ReminderSettings.from_dict(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"Discarding malformed local reminder settings: {e}")
            return None

    async def save_settings(self, settings: ReminderSettings) -> None:
        await self._save_json(REMINDER_SETTINGS_KEY, settings.to_dict())

    async def close(self) -> None:
        await self._store.close()

    async def _load_json(self, key: str) -> dict | None:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Local snapshot {key} is not valid JSON: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Local snapshot {key} is not an object")
            return None
        return data

    async def _save_json(self, key: str, data: dict) -> None:
        await self._store.set(key, json.dumps(data).encode("utf-8"))
