"""
Tests for key-value storage backends and the record store adapter
"""

import pytest

from dashboard_metrics.models import Scope
from dashboard_metrics.record_store import RecordStore, apply_scope, seed_demo_records
from dashboard_metrics.storage import InMemoryStorage, SQLiteStorage, create_storage

COLLECTIONS = ["rooms", "clients", "bills", "reservations"]


class BrokenStorage:
    """Storage whose reads always fail"""

    def get(self, key):
        raise OSError("disk unavailable")

    def set(self, key, value):
        raise OSError("disk unavailable")

    def metrics(self):
        return {"backend": "broken"}


class TestStorage:
    def test_memory_roundtrip(self):
        storage = InMemoryStorage()
        assert storage.get("rooms") is None
        storage.set("rooms", "[]")
        assert storage.get("rooms") == "[]"
        assert storage.metrics() == {"backend": "memory", "keys": 1}

    def test_sqlite_persists(self, tmp_path):
        path = str(tmp_path / "nested" / "dashboard.db")
        SQLiteStorage(path).set("bills", '[{"amount": "10"}]')

        reopened = SQLiteStorage(path)
        assert reopened.get("bills") == '[{"amount": "10"}]'
        assert reopened.get("missing") is None
        assert reopened.metrics()["keys"] == 1

    def test_create_storage(self, tmp_path):
        assert isinstance(create_storage("memory", "unused"), InMemoryStorage)
        assert isinstance(create_storage("SQLite", str(tmp_path / "db.sqlite")), SQLiteStorage)


class TestRecordStore:
    """Test the never-raising collection reads"""

    def test_missing_collection_is_empty(self, store):
        assert store.read_collection("rooms") == []

    def test_malformed_json_is_empty(self):
        storage = InMemoryStorage()
        storage.set("rooms", "{not json")
        assert RecordStore(storage, COLLECTIONS).read_collection("rooms") == []

    def test_non_list_payload_is_empty(self):
        storage = InMemoryStorage()
        storage.set("rooms", '{"status": "Occupée"}')
        assert RecordStore(storage, COLLECTIONS).read_collection("rooms") == []

    def test_failing_backend_is_empty(self):
        assert RecordStore(BrokenStorage(), COLLECTIONS).read_collection("rooms") == []

    def test_append_assigns_id(self, store):
        record = store.append("clients", {"name": "Awa"})
        assert record["id"]
        assert store.read_collection("clients") == [record]
        assert store.stats()["clients"] == 1

    def test_append_unknown_collection(self, store):
        with pytest.raises(KeyError):
            store.append("invoices", {"amount": "1"})

    def test_preserves_non_ascii(self, store):
        store.append("rooms", {"status": "Occupée"})
        assert "Occupée" in store.storage.get("rooms")


class TestApplyScope:
    def test_restricted_scope_sees_own_records(self, sample_records):
        visible = apply_scope(sample_records["bills"], Scope(username="alice", role="user"))
        assert len(visible) == 2
        assert all(bill["createdBy"] == "alice" for bill in visible)

    def test_privileged_scope_sees_all(self, sample_records):
        assert apply_scope(sample_records["bills"], Scope(username="root", role="admin")) == sample_records["bills"]
        assert apply_scope(sample_records["bills"], None) == sample_records["bills"]

    def test_skips_non_mappings(self):
        records = [None, "x", {"createdBy": "alice"}]
        assert apply_scope(records, Scope(username="alice", role="user")) == [{"createdBy": "alice"}]


class TestSeedDemoRecords:
    def test_seeds_empty_collections_only(self, store):
        store.write_collection("rooms", [{"status": "Occupée"}])

        seeded = seed_demo_records(store, 4)

        assert "rooms" not in seeded
        assert seeded == {"clients": 4, "bills": 4, "reservations": 4}
        assert len(store.read_collection("rooms")) == 1
        assert all(r["createdBy"] == "admin" for r in store.read_collection("reservations"))
