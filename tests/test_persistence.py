"""
Tests for snapshot persistence

Tests cover:
- Loading missing, valid and corrupt snapshots
- Atomic saves through a temp file
- Deterministic serialization
"""
import asyncio
import json

import pytest

from sastatd.core.persistence import PersistenceManager, deserialize, serialize
from sastatd.core.stats import Outcome, StatStore
from sastatd.utils.errors import CorruptSnapshotError, PersistenceError, SnapshotWriteError


@pytest.fixture
def manager(snapshot_path):
    """Persistence manager for a snapshot under tmp_path"""
    return PersistenceManager(snapshot_path)


class TestLoad:
    """Tests for PersistenceManager.load"""

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_empty(self, manager):
        """Test a missing file yields an empty store"""
        store = await manager.load()

        assert isinstance(store, StatStore)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_round_trip(self, manager, populated_store):
        """Test a saved store loads back equal"""
        await manager.save(populated_store)

        assert await manager.load() == populated_store

    @pytest.mark.asyncio
    async def test_missing_fields_default(self, manager, snapshot_path):
        """Test partial records fill in zero counters"""
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text(json.dumps({"alice": {"spam": 2, "score": 18.0}}))

        stats = (await manager.load()).get("alice")

        assert (stats.clean, stats.spam, stats.score) == (0, 2, 18.0)
        assert stats.min is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[1, 2, 3]",
            '{"alice": {"clean": -1}}',
            '{"alice": {"clean": "many"}}',
            '{"alice": 5}',
            '{"alice": {"clean": 1, "score": 3.0, "min": 5.0, "max": 1.0}}',
            '{"alice": {"score": 0.0, "min": 1.0, "max": 1.0}}',
        ],
    )
    async def test_corrupt_snapshot(self, manager, snapshot_path, content):
        """Test undecodable or ill-typed snapshots raise CorruptSnapshotError"""
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text(content)

        with pytest.raises(CorruptSnapshotError) as exc_info:
            await manager.load()

        assert isinstance(exc_info.value, PersistenceError)
        assert exc_info.value.details["path"] == str(snapshot_path)

    @pytest.mark.asyncio
    async def test_undecodable_bytes(self, manager, snapshot_path):
        """Test invalid UTF-8 is reported as corruption"""
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(CorruptSnapshotError):
            await manager.load()


class TestSave:
    """Tests for PersistenceManager.save"""

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, manager, snapshot_path, store):
        """Test the state directory is created on first save"""
        await manager.save(store)

        assert snapshot_path.exists()
        assert json.loads(snapshot_path.read_text()) == {}

    @pytest.mark.asyncio
    async def test_no_temp_file_left(self, manager, populated_store):
        """Test the temp file is renamed away after a save"""
        await manager.save(populated_store)

        assert not manager.tmp_path.exists()

    @pytest.mark.asyncio
    async def test_unchanged_store_is_byte_identical(self, manager, snapshot_path, populated_store):
        """Test saving twice without changes produces the same bytes"""
        await manager.save(populated_store)
        first = snapshot_path.read_bytes()
        await manager.save(populated_store)

        assert snapshot_path.read_bytes() == first

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_snapshot(self, manager, snapshot_path, populated_store):
        """Test a failed temp write leaves the old snapshot in place"""
        await manager.save(populated_store)
        before = snapshot_path.read_bytes()
        manager.tmp_path.mkdir()

        populated_store.record("mallory", Outcome.SPAM, 30.0)
        with pytest.raises(SnapshotWriteError):
            await manager.save(populated_store)

        assert snapshot_path.read_bytes() == before

    @pytest.mark.asyncio
    async def test_save_captures_store_at_call_time(self, manager, populated_store):
        """Test later mutations do not leak into an in-flight save"""
        pending = asyncio.create_task(manager.save(populated_store))
        await asyncio.sleep(0)
        populated_store.reset()
        await pending

        loaded = await manager.load()
        assert loaded.totals() == (3, 2)


class TestSerialization:
    """Tests for the snapshot text form"""

    def test_sorted_keys(self, populated_store):
        """Test users and fields are emitted in sorted order"""
        text = serialize(populated_store)

        assert text.index('"alice@example.com"') < text.index('"bob@example.com"')
        assert text.index('"clean"') < text.index('"max"') < text.index('"spam"')
        assert text.endswith("\n")

    def test_deserialize_rejects_non_object(self):
        """Test a JSON scalar is corruption"""
        with pytest.raises(CorruptSnapshotError):
            deserialize("42")
