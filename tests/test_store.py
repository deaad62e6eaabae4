"""Tests for RecordStore: init/open/add/append/remove/query/sync."""

import os
import uuid

import msgpack
import pytest

from locket import store as store_module
from locket.models import Record
from locket.store import IdCollisionError, RecordStore, StoreDecodeError, StoreExistsError


# ---------------------------------------------------------------------------
# init / open
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_init_creates_empty_store(self, store_path):
        store = RecordStore.init(store_path)
        assert store_path.exists()
        assert store.path == store_path
        assert len(store) == 0
        assert RecordStore.open(store_path).records == {}

    def test_init_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "a" / "b" / "locket.db"
        RecordStore.init(path)
        assert path.exists()

    def test_init_refuses_existing_file_and_keeps_content(self, store_path):
        store_path.write_bytes(b"precious")
        with pytest.raises(StoreExistsError):
            RecordStore.init(store_path)
        assert store_path.read_bytes() == b"precious"

    def test_init_twice_fails(self, store_path):
        RecordStore.init(store_path)
        with pytest.raises(FileExistsError):
            RecordStore.init(store_path)

    def test_open_missing_does_not_create(self, store_path):
        with pytest.raises(FileNotFoundError):
            RecordStore.open(store_path)
        assert not store_path.exists()

    def test_open_zero_length_is_empty(self, store_path):
        store_path.write_bytes(b"")
        store = RecordStore.open(store_path)
        assert store.records == {}
        assert store.query("anything") == []

    def test_open_garbage_fails(self, store_path):
        store_path.write_bytes(b"\xc1\xc1\xc1")
        with pytest.raises(StoreDecodeError):
            RecordStore.open(store_path)

    def test_open_truncated_document_fails(self, store, store_path, github):
        store.add(github)
        store.sync()
        data = store_path.read_bytes()
        store_path.write_bytes(data[: len(data) // 2])
        with pytest.raises(StoreDecodeError):
            RecordStore.open(store_path)

    @pytest.mark.parametrize("doc", [
        [1, 2, 3],
        {"logins": {}},
        {"records": []},
        {"records": {"x": {"name": "n", "username": "u"}}},
        {"records": {"x": {"name": 1, "username": "u", "password": "p"}}},
    ])
    def test_open_wrong_shape_fails(self, store_path, doc):
        store_path.write_bytes(msgpack.packb(doc))
        with pytest.raises(StoreDecodeError):
            RecordStore.open(store_path)

    def test_open_path_comes_from_caller(self, tmp_path, store, github):
        store.add(github)
        store.sync()
        moved = tmp_path / "moved.db"
        store.path.rename(moved)
        reopened = RecordStore.open(moved)
        assert reopened.path == moved


# ---------------------------------------------------------------------------
# add / append / remove
# ---------------------------------------------------------------------------

class TestMutation:
    def test_add_assigns_uuid(self, store, github):
        record_id = store.add(github)
        assert str(uuid.UUID(record_id)) == record_id
        assert store.get(record_id) == github
        assert record_id in store

    def test_add_same_record_twice_gets_distinct_ids(self, store, github):
        first = store.add(github)
        second = store.add(github)
        assert first != second
        assert len(store) == 2

    def test_append_returns_ids_in_order(self, store):
        records = [Record("a", "u1", "p1"), Record("b", "u2", "p2")]
        ids = store.append(records)
        assert [store.get(i) for i in ids] == records

    def test_append_empty(self, store):
        assert store.append([]) == []
        assert len(store) == 0

    def test_remove_is_idempotent(self, store, github):
        record_id = store.add(github)
        assert store.remove(record_id) == github
        assert store.remove(record_id) is None
        assert len(store) == 0

    def test_remove_unknown_is_none(self, store):
        assert store.remove(str(uuid.uuid4())) is None

    def test_remove_keeps_other_ids_stable(self, store):
        ids = store.append([Record("a", "", ""), Record("b", "", ""), Record("c", "", "")])
        store.remove(ids[0])
        assert store.get(ids[1]).name == "b"
        assert store.get(ids[2]).name == "c"

    def test_id_collision_fails_loudly(self, store, github, monkeypatch):
        monkeypatch.setattr(store_module, "new_record_id", lambda: "fixed")
        store.add(github)
        with pytest.raises(IdCollisionError):
            store.add(github)
        assert len(store) == 1


# ---------------------------------------------------------------------------
# query
# ---------------------------------------------------------------------------

class TestQuery:
    def test_empty_store_returns_nothing(self, store):
        assert store.query(None) == []
        assert store.query("") == []
        assert store.query("gh") == []

    @pytest.mark.parametrize("name", [None, ""])
    def test_no_name_returns_everything_once(self, store, name):
        ids = store.append([Record(n, "u", "p") for n in ("github", "gitlab", "bank", "bank")])
        result = store.query(name)
        assert sorted(rid for rid, _ in result) == sorted(ids)

    def test_query_ranks_and_filters(self, store):
        bank = store.add(Record("bank", "u", "p"))
        gh = store.add(Record("github", "u", "p"))
        store.add(Record("mail", "u", "p"))
        result = store.query("b")
        assert [rid for rid, _ in result] == [bank, gh]

    def test_scenario(self, store, store_path, github):
        record_id = store.add(github)
        assert store.query("gh") == [(record_id, github)]
        assert store.query("zz") == []
        assert store.remove(record_id) == github
        assert store.remove(record_id) is None
        store.sync()
        assert msgpack.unpackb(store_path.read_bytes()) == {"records": {}}


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------

class TestSync:
    def test_round_trip(self, store, store_path):
        store.append([
            Record("github", "octocat", "hunter2"),
            Record("bänk", "ünïcode", "pässwörd"),
            Record("", "", ""),
        ])
        store.sync()
        reopened = RecordStore.open(store_path)
        assert reopened.records == store.records

    def test_sync_replaces_whole_file(self, store, store_path):
        ids = store.append([Record(f"r{i}", "u", "p" * 100) for i in range(20)])
        store.sync()
        big = store_path.stat().st_size
        for rid in ids[1:]:
            store.remove(rid)
        store.sync()
        assert store_path.stat().st_size < big
        assert list(RecordStore.open(store_path).records) == [ids[0]]

    def test_sync_does_not_write_path(self, store, store_path, github):
        store.add(github)
        store.sync()
        doc = msgpack.unpackb(store_path.read_bytes())
        assert set(doc) == {"records"}
        assert str(store_path).encode() not in store_path.read_bytes()

    def test_sync_leaves_no_temp_file(self, store, store_path, github):
        store.add(github)
        store.sync()
        assert sorted(p.name for p in store_path.parent.iterdir()) == [store_path.name]

    def test_sync_to_missing_dir_raises(self, store, tmp_path):
        store.path = tmp_path / "gone" / "locket.db"
        with pytest.raises(OSError):
            store.sync()

    def test_failed_sync_removes_temp_file(self, store, store_path, github, monkeypatch):
        before = store_path.read_bytes()
        store.add(github)

        def _fail(fd):
            raise OSError("disk full")

        monkeypatch.setattr(os, "fsync", _fail)
        with pytest.raises(OSError, match="disk full"):
            store.sync()
        assert sorted(p.name for p in store_path.parent.iterdir()) == [store_path.name]
        assert store_path.read_bytes() == before

    def test_passwords_are_stored_verbatim(self, store, store_path):
        store.add(Record("n", "u", "plain-text-secret"))
        store.sync()
        assert b"plain-text-secret" in store_path.read_bytes()
