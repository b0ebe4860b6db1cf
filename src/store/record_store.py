import copy
import json
import logging
import os
import threading
import uuid
from typing import Callable

from src.utils.clock import to_iso, utc_now

logger = logging.getLogger(__name__)

Predicate = Callable[[dict], bool]


class RecordStore:
    """Thread-safe keyed record store grouped into named collections.

    Records are plain JSON-compatible dicts. Every read returns a copy, so
    callers never share mutable state with the store. When ``data_dir`` is
    given, each collection is mirrored to ``<data_dir>/<collection>.json``
    after every write and reloaded on construction.
    """

    def __init__(self, data_dir: str | None = None):
        self._data_dir = data_dir
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = threading.RLock()
        if data_dir:
            self._load()

    def _load(self) -> None:
        os.makedirs(self._data_dir, exist_ok=True)
        for filename in sorted(os.listdir(self._data_dir)):
            if not filename.endswith(".json"):
                continue
            name = filename[: -len(".json")]
            path = os.path.join(self._data_dir, filename)
            try:
                with open(path, encoding="utf-8") as fh:
                    records = json.load(fh)
            except (OSError, json.JSONDecodeError):
                logger.exception("Could not load collection %s from %s", name, path)
                records = []
            self._collections[name] = {
                r["id"]: r for r in records if isinstance(r, dict) and isinstance(r.get("id"), str)
            }
            logger.info("Loaded %d records into %s", len(self._collections[name]), name)

    def _save(self, name: str) -> None:
        if not self._data_dir:
            return
        path = os.path.join(self._data_dir, f"{name}.json")
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(list(self._collections[name].values()), fh, indent=2, default=str)
        os.replace(tmp_path, path)

    def _collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    def get(self, name: str, record_id: str) -> dict | None:
        with self._lock:
            record = self._collection(name).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def find(self, name: str, predicate: Predicate | None = None) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._collection(name).values()
                if predicate is None or predicate(r)
            ]

    def find_one(self, name: str, predicate: Predicate) -> dict | None:
        with self._lock:
            for record in self._collection(name).values():
                if predicate(record):
                    return copy.deepcopy(record)
            return None

    def count(self, name: str, predicate: Predicate | None = None) -> int:
        with self._lock:
            if predicate is None:
                return len(self._collection(name))
            return sum(1 for r in self._collection(name).values() if predicate(r))

    def insert(self, name: str, data: dict) -> dict:
        now = to_iso(utc_now())
        record = copy.deepcopy(data)
        record["id"] = record.get("id") or str(uuid.uuid4())
        record["created_at"] = record.get("created_at") or now
        record["updated_at"] = record.get("updated_at") or now
        with self._lock:
            self._collection(name)[record["id"]] = record
            self._save(name)
            return copy.deepcopy(record)

    def update(self, name: str, record_id: str, changes: dict) -> dict | None:
        with self._lock:
            return self._apply(name, record_id, changes)

    def compare_and_update(
        self, name: str, record_id: str, expected: dict, changes: dict,
    ) -> dict | None:
        """Apply ``changes`` only if every field in ``expected`` still matches.

        Returns the updated record, or None when the record is gone or a
        concurrent writer changed one of the expected fields first.
        """
        with self._lock:
            current = self._collection(name).get(record_id)
            if current is None:
                return None
            for key, value in expected.items():
                if current.get(key) != value:
                    return None
            return self._apply(name, record_id, changes)

    def _apply(self, name: str, record_id: str, changes: dict) -> dict | None:
        collection = self._collection(name)
        existing = collection.get(record_id)
        if existing is None:
            return None
        updated = {**existing, **copy.deepcopy(changes)}
        updated["id"] = record_id
        updated["updated_at"] = to_iso(utc_now())
        collection[record_id] = updated
        self._save(name)
        return copy.deepcopy(updated)

    def delete(self, name: str, record_id: str) -> dict | None:
        with self._lock:
            existing = self._collection(name).pop(record_id, None)
            if existing is not None:
                self._save(name)
            return existing

    def delete_where(self, name: str, predicate: Predicate) -> list[dict]:
        with self._lock:
            collection = self._collection(name)
            doomed = [rid for rid, r in collection.items() if predicate(r)]
            deleted = [collection.pop(rid) for rid in doomed]
            if deleted:
                self._save(name)
            return deleted
