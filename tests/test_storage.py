"""
Tests for bksync/storage.py and the StoredValue model.

Each test gets its own SQLite file.
"""
import pytest
from sqlalchemy import select

import bksync.storage as storage_module
from bksync.constants import ACCOUNT_KEY, SNAPSHOT_KEY
from bksync.models import StoredValue
from bksync.snapshot import Snapshot
from bksync.storage import LocalStore, get_store


class TestLocalStore:
    """Test the key-value API."""

    def test_creates_database_file(self, tmp_path):
        path = tmp_path / "nested" / "store.db"
        LocalStore(path=str(path))
        assert path.exists()

    def test_default_path_from_config(self, tmp_path):
        store = LocalStore()
        assert store.path == tmp_path / "bksync.db"

    def test_get_missing_returns_default(self, store):
        assert store.get("missing") is None
        assert store.get("missing", "fallback") == "fallback"

    def test_set_and_get(self, store):
        store.set("key", {"nested": [1, 2, 3]})
        assert store.get("key") == {"nested": [1, 2, 3]}

    def test_set_overwrites(self, store):
        store.set("key", "first")
        store.set("key", "second")

        assert store.get("key") == "second"
        with store.session() as session:
            rows = session.execute(select(StoredValue)).scalars().all()
            assert len(rows) == 1
            assert rows[0].updated_at is not None

    def test_delete(self, store):
        store.set("key", 1)
        assert store.delete("key") is True
        assert store.delete("key") is False
        assert store.get("key") is None

    def test_values_persist_across_instances(self, tmp_path):
        path = str(tmp_path / "persist.db")
        LocalStore(path=path).set("key", [1])
        assert LocalStore(path=path).get("key") == [1]

    def test_session_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.session() as session:
                session.add(StoredValue(key="partial", value=1))
                session.flush()
                raise RuntimeError("boom")

        assert store.get("partial") is None


class TestSnapshotSlot:
    """Test the current snapshot slot and account id."""

    def test_no_snapshot(self, store):
        assert store.load_snapshot() is None

    def test_save_and_load_snapshot(self, store, sample_tree):
        snapshot = Snapshot.create([{"id": "a", "name": "A"}], sample_tree, "Chrome")
        store.save_snapshot(snapshot)

        loaded = store.load_snapshot()
        assert loaded == snapshot
        assert store.get(SNAPSHOT_KEY)["exportedFromBrowser"] == "Chrome"

    def test_save_overwrites_wholesale(self, store):
        store.save_snapshot(Snapshot.create([{"id": "a"}], []))
        store.save_snapshot(Snapshot.create([{"id": "b"}], []))

        assert store.load_snapshot().extensions == [{"id": "b"}]

    def test_malformed_snapshot_ignored(self, store):
        store.set(SNAPSHOT_KEY, ["not", "an", "object"])
        assert store.load_snapshot() is None

    def test_account_id(self, store):
        assert store.get_account_id() is None
        store.set_account_id("abc-123")
        assert store.get_account_id() == "abc-123"
        assert store.get(ACCOUNT_KEY) == "abc-123"


class TestGetStore:
    """Test the global store accessor."""

    def test_returns_same_instance(self):
        assert get_store() is get_store()

    def test_path_forces_new_instance(self, tmp_path):
        first = get_store()
        second = get_store(path=str(tmp_path / "other.db"))

        assert second is not first
        assert storage_module._store is second

    def test_reload(self):
        first = get_store()
        assert get_store(reload=True) is not first
