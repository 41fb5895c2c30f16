"""Tests for the local key-value store and snapshot codec."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from hydration_sync.config import SyncConfig
from hydration_sync.models import DailyRecord, IntakeEvent, ReminderSettings, TimeOfDay
from hydration_sync.storage import (
    REMINDER_SETTINGS_KEY,
    WATER_DATA_KEY,
    FileLocalStore,
    SnapshotStore,
)


class TestFileLocalStore:
    """Tests for FileLocalStore."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> FileLocalStore:
        return FileLocalStore(tmp_path / "store")

    async def test_missing_key_reads_none(self, store: FileLocalStore) -> None:
        assert await store.get(WATER_DATA_KEY) is None

    async def test_set_then_get(self, store: FileLocalStore) -> None:
        await store.set(WATER_DATA_KEY, b'{"a": 1}')

        assert await store.get(WATER_DATA_KEY) == b'{"a": 1}'
        assert (store.base_path / "water_data.json").exists()

    async def test_overwrite_leaves_no_temp_file(self, store: FileLocalStore) -> None:
        await store.set(WATER_DATA_KEY, b"first")
        await store.set(WATER_DATA_KEY, b"second")

        assert await store.get(WATER_DATA_KEY) == b"second"
        assert sorted(p.name for p in store.base_path.iterdir()) == ["water_data.json"]

    async def test_key_is_sanitized(self, store: FileLocalStore) -> None:
        await store.set("@water/data", b"x")

        assert (store.base_path / "water_data.json").exists()

    async def test_unwritable_location_is_silent(self, tmp_path: Path) -> None:
        """A write that cannot land is dropped without raising."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileLocalStore(blocker / "store")

        await store.set(WATER_DATA_KEY, b"x")

        assert await store.get(WATER_DATA_KEY) is None

    def test_from_config(self, tmp_path: Path) -> None:
        config = SyncConfig(local_path=str(tmp_path / "custom"))

        assert FileLocalStore.from_config(config).base_path == tmp_path / "custom"


class TestSnapshotStore:
    """Tests for SnapshotStore."""

    @pytest.fixture
    def file_store(self, tmp_path: Path) -> FileLocalStore:
        return FileLocalStore(tmp_path)

    @pytest.fixture
    def snapshots(self, file_store: FileLocalStore) -> SnapshotStore:
        return SnapshotStore(file_store)

    async def test_empty_store(self, snapshots: SnapshotStore) -> None:
        assert await snapshots.load_day() is None
        assert await snapshots.load_settings() is None

    async def test_day_snapshot_persists(self, snapshots: SnapshotStore) -> None:
        record = DailyRecord(
            day_key="2026-10-19",
            goal_ml=2400,
            history=(
                IntakeEvent(
                    amount_ml=250,
                    occurred_at=datetime(2026, 10, 19, 9, 0, tzinfo=UTC),
                    event_id="e1",
                ),
            ),
            pending_sync=True,
        )

        await snapshots.save_day(record)

        assert await snapshots.load_day() == record

    async def test_settings_snapshot_persists(self, snapshots: SnapshotStore) -> None:
        settings = ReminderSettings(
            enabled=False, interval_minutes=45, window_start=TimeOfDay(7, 15)
        )

        await snapshots.save_settings(settings)

        assert await snapshots.load_settings() == settings

    async def test_snapshots_are_independent(
        self, snapshots: SnapshotStore, file_store: FileLocalStore
    ) -> None:
        await snapshots.save_settings(ReminderSettings())

        assert await file_store.get(REMINDER_SETTINGS_KEY) is not None
        assert await snapshots.load_day() is None

    @pytest.mark.parametrize(
        "blob",
        [
            b"not json",
            b"\xff\xfe",
            b"[1, 2]",
            b'{"goal_ml": 2000}',
            b'{"day_key": "x", "goal_ml": "lots"}',
        ],
    )
    async def test_malformed_blob_reads_as_absent(
        self, snapshots: SnapshotStore, file_store: FileLocalStore, blob: bytes
    ) -> None:
        await file_store.set(WATER_DATA_KEY, blob)

        assert await snapshots.load_day() is None

    async def test_legacy_snapshot_without_ids(
        self, snapshots: SnapshotStore, file_store: FileLocalStore
    ) -> None:
        """Snapshots written before events carried ids still load."""
        await file_store.set(
            WATER_DATA_KEY,
            b'{"day_key": "2026-10-19", "goal_ml": 2000, "consumed_ml": 250, '
            b'"history": [{"amount_ml": 250, "occurred_at": "2026-10-19T09:00:00+00:00"}]}',
        )

        record = await snapshots.load_day()

        assert record is not None
        assert record.consumed_ml == 250
        assert record.history[0].event_id

    @pytest.mark.parametrize(
        "blob",
        [
            b'{"window_start": "8am"}',
            b'{"window_end": "25:00"}',
            b'{"interval_minutes": "hourly"}',
            b"[]",
        ],
    )
    async def test_malformed_settings_read_as_absent(
        self, snapshots: SnapshotStore, file_store: FileLocalStore, blob: bytes
    ) -> None:
        await file_store.set(REMINDER_SETTINGS_KEY, blob)

        assert await snapshots.load_settings() is None
