import json

import pytest

from src.store.record_store import RecordStore


pytestmark = pytest.mark.unit


class TestCrud:
    """Tests for basic store operations."""

    def test_insert_assigns_id_and_timestamps(self, store):
        record = store.insert("things", {"name": "a"})
        assert record["id"]
        assert record["created_at"]
        assert record["updated_at"]

    def test_insert_keeps_given_id(self, store):
        assert store.insert("things", {"id": "t1"})["id"] == "t1"

    def test_get_returns_current_state(self, store):
        store.insert("things", {"id": "t1", "n": 1})
        store.update("things", "t1", {"n": 2})
        assert store.get("things", "t1")["n"] == 2

    def test_get_missing_returns_none(self, store):
        assert store.get("things", "nope") is None

    def test_returned_records_are_copies(self, store):
        store.insert("things", {"id": "t1", "tags": ["a"]})
        fetched = store.get("things", "t1")
        fetched["tags"].append("b")
        assert store.get("things", "t1")["tags"] == ["a"]

    def test_inserted_data_is_copied(self, store):
        data = {"id": "t1", "payload": {"k": "v"}}
        store.insert("things", data)
        data["payload"]["k"] = "mutated"
        assert store.get("things", "t1")["payload"] == {"k": "v"}

    def test_update_cannot_change_id(self, store):
        store.insert("things", {"id": "t1"})
        updated = store.update("things", "t1", {"id": "t2", "n": 1})
        assert updated["id"] == "t1"
        assert store.get("things", "t2") is None

    def test_update_missing_returns_none(self, store):
        assert store.update("things", "nope", {"n": 1}) is None

    def test_find_and_count_with_predicate(self, store):
        for n in range(5):
            store.insert("things", {"n": n})
        assert len(store.find("things", lambda r: r["n"] >= 3)) == 2
        assert store.count("things", lambda r: r["n"] < 2) == 2
        assert store.count("things") == 5

    def test_find_one(self, store):
        store.insert("things", {"id": "t1", "n": 1})
        assert store.find_one("things", lambda r: r["n"] == 1)["id"] == "t1"
        assert store.find_one("things", lambda r: r["n"] == 9) is None

    def test_delete_and_delete_where(self, store):
        store.insert("things", {"id": "t1", "n": 1})
        store.insert("things", {"id": "t2", "n": 2})
        store.insert("things", {"id": "t3", "n": 3})

        assert store.delete("things", "t1")["id"] == "t1"
        assert store.delete("things", "t1") is None
        deleted = store.delete_where("things", lambda r: r["n"] > 1)
        assert {r["id"] for r in deleted} == {"t2", "t3"}
        assert store.count("things") == 0

    def test_collections_are_independent(self, store):
        store.insert("a", {"id": "x"})
        assert store.get("b", "x") is None


class TestCompareAndUpdate:
    """Tests for the optimistic compare-and-update used to claim deliveries."""

    def test_applies_when_expected_fields_match(self, store):
        store.insert("things", {"id": "t1", "status": "pending", "attempt": 1})
        updated = store.compare_and_update(
            "things", "t1", {"status": "pending", "attempt": 1}, {"attempt": 2},
        )
        assert updated["attempt"] == 2

    def test_rejects_when_a_field_changed(self, store):
        store.insert("things", {"id": "t1", "status": "pending", "attempt": 1})
        store.update("things", "t1", {"attempt": 2})
        result = store.compare_and_update("things", "t1", {"attempt": 1}, {"attempt": 3})
        assert result is None
        assert store.get("things", "t1")["attempt"] == 2

    def test_expected_none_matches_missing_field(self, store):
        store.insert("things", {"id": "t1"})
        assert store.compare_and_update("things", "t1", {"lease": None}, {"lease": "x"}) is not None

    def test_missing_record_returns_none(self, store):
        assert store.compare_and_update("things", "nope", {}, {"n": 1}) is None


class TestPersistence:
    """Tests for the JSON file mirror."""

    def test_records_survive_reload(self, tmp_path):
        first = RecordStore(str(tmp_path))
        first.insert("webhooks", {"id": "w1", "target_url": "http://example.com"})
        first.update("webhooks", "w1", {"active": False})

        second = RecordStore(str(tmp_path))

        assert second.get("webhooks", "w1")["active"] is False

    def test_collection_written_as_json_array(self, tmp_path):
        store = RecordStore(str(tmp_path))
        store.insert("webhooks", {"id": "w1"})

        data = json.loads((tmp_path / "webhooks.json").read_text())
        assert [r["id"] for r in data] == ["w1"]

    def test_corrupt_file_loads_as_empty_collection(self, tmp_path):
        (tmp_path / "webhooks.json").write_text("{not json")
        store = RecordStore(str(tmp_path))
        assert store.count("webhooks") == 0

    def test_delete_is_persisted(self, tmp_path):
        first = RecordStore(str(tmp_path))
        first.insert("webhooks", {"id": "w1"})
        first.delete("webhooks", "w1")
        assert RecordStore(str(tmp_path)).get("webhooks", "w1") is None
