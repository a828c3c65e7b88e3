"""Tests for the SQLite local draft store.

Tests:
- Last-write-wins replacement of drafts
- get() never raising on missing, corrupted or unreadable entries
- Opportunistic purge of corrupted rows
- clear() idempotence
- Tolerating eviction of the database file
- Expiry of abandoned drafts
"""

import json
import sqlite3
from datetime import timedelta

import pytest

from conftest import make_draft, ts
from draftsync.errors import LocalStorageFailure
from draftsync.storage import DraftStorage, SQLiteDraftStore


def _insert_raw(store: SQLiteDraftStore, profile_id: str, payload: str) -> None:
    with sqlite3.connect(store.db_path) as conn:
        conn.execute(
            "INSERT INTO local_drafts (profile_id, payload, saved_at, written_at) VALUES (?, ?, ?, ?)",
            (profile_id, payload, ts(0).isoformat(), ts(0).isoformat()),
        )


class TestBasics:
    def test_satisfies_protocol(self, draft_store):
        assert isinstance(draft_store, DraftStorage)

    def test_get_missing_returns_none(self, draft_store):
        assert draft_store.get("nope") is None

    def test_put_then_get(self, draft_store):
        draft = make_draft(name="Janet", description=None)
        draft_store.put("p1", draft)

        loaded = draft_store.get("p1")
        assert loaded == draft
        assert loaded.is_edited("description")
        assert loaded.fields["description"] is None

    def test_put_replaces_previous_snapshot(self, draft_store):
        """Drafts are snapshots: a second put fully replaces the first."""
        draft_store.put("p1", make_draft(saved_at=ts(10), name="A", biography="first"))
        draft_store.put("p1", make_draft(saved_at=ts(20), name="B"))

        loaded = draft_store.get("p1")
        assert loaded.fields == {"name": "B"}
        assert loaded.saved_at == ts(20)
        assert draft_store.count() == 1

    def test_put_rejects_mismatched_record(self, draft_store):
        with pytest.raises(ValueError):
            draft_store.put("p2", make_draft(profile_id="p1"))

    def test_clear_removes_draft(self, draft_store):
        draft_store.put("p1", make_draft(name="Janet"))
        draft_store.clear("p1")
        assert draft_store.get("p1") is None

    def test_clear_missing_is_noop(self, draft_store):
        draft_store.clear("p1")
        draft_store.clear("p1")
        assert draft_store.get("p1") is None

    def test_drafts_are_keyed_per_record(self, draft_store):
        draft_store.put("p1", make_draft("p1", name="One"))
        draft_store.put("p2", make_draft("p2", name="Two"))
        draft_store.clear("p1")
        assert draft_store.get("p2").fields == {"name": "Two"}

    def test_survives_reopen(self, draft_store):
        draft_store.put("p1", make_draft(name="Janet"))
        reopened = SQLiteDraftStore(db_path=draft_store.db_path)
        assert reopened.get("p1").fields == {"name": "Janet"}


class TestCorruption:
    def test_unparsable_payload_reads_as_absent_and_is_purged(self, draft_store):
        _insert_raw(draft_store, "p1", "{not json")

        assert draft_store.get("p1") is None
        assert draft_store.list_profile_ids() == []

    def test_unknown_field_in_payload_is_purged(self, draft_store):
        payload = json.dumps(
            {"profile_id": "p1", "saved_at": ts(0).isoformat(), "fields": {"shoe_size": 9}}
        )
        _insert_raw(draft_store, "p1", payload)

        assert draft_store.get("p1") is None
        assert draft_store.list_profile_ids() == []

    def test_payload_for_other_record_is_purged(self, draft_store):
        payload = json.dumps(make_draft(profile_id="p2").to_dict())
        _insert_raw(draft_store, "p1", payload)

        assert draft_store.get("p1") is None
        assert "p1" not in draft_store.list_profile_ids()

    def test_missing_saved_at_is_purged(self, draft_store):
        _insert_raw(draft_store, "p1", json.dumps({"profile_id": "p1", "fields": {}}))
        assert draft_store.get("p1") is None


class TestStorageFailures:
    def test_read_failure_degrades_to_absent(self, draft_store, monkeypatch):
        draft_store.put("p1", make_draft(name="Janet"))

        def broken():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(draft_store, "_get_conn", broken)
        assert draft_store.get("p1") is None
        assert draft_store.list_profile_ids() == []

    def test_write_failure_raises_local_storage_failure(self, draft_store, monkeypatch):
        def broken():
            raise sqlite3.OperationalError("database or disk is full")

        monkeypatch.setattr(draft_store, "_get_conn", broken)
        with pytest.raises(LocalStorageFailure) as exc_info:
            draft_store.put("p1", make_draft(name="Janet"))
        assert exc_info.value.operation == "write"
        assert exc_info.value.record_id == "p1"

    def test_evicted_database_file_reads_as_empty(self, draft_store):
        draft_store.put("p1", make_draft(name="Janet"))
        for path in draft_store.db_path.parent.glob(draft_store.db_path.name + "*"):
            path.unlink()

        assert draft_store.get("p1") is None
        draft_store.put("p1", make_draft(name="Again"))
        assert draft_store.get("p1").fields == {"name": "Again"}

    def test_rejects_path_outside_home_and_temp(self):
        with pytest.raises(ValueError):
            SQLiteDraftStore(db_path="/etc/draftsync/drafts.db")


class TestHousekeeping:
    def test_list_profile_ids_oldest_first(self, draft_store):
        draft_store.put("new", make_draft("new", saved_at=ts(50)))
        draft_store.put("old", make_draft("old", saved_at=ts(10)))
        assert draft_store.list_profile_ids() == ["old", "new"]

    def test_purge_expired(self, draft_store):
        now = ts(0) + timedelta(days=40)
        draft_store.put("abandoned", make_draft("abandoned", saved_at=ts(0)))
        draft_store.put("recent", make_draft("recent", saved_at=now - timedelta(days=1)))

        removed = draft_store.purge_expired(timedelta(days=30), now=now)

        assert removed == 1
        assert draft_store.list_profile_ids() == ["recent"]

    def test_purge_expired_nothing_to_do(self, draft_store):
        assert draft_store.purge_expired(timedelta(days=30)) == 0
