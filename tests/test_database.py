from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

import pytest

from leadcapture.database import CONTACTS_KEY, SESSION_KEY, Database


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "leadcapture.sqlite3")
    db.initialize()
    return db


def _corrupt(database: Database, key: str, payload: str) -> None:
    conn = sqlite3.connect(database.path)
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO collections (key, payload, updated_at) VALUES (?, ?, ?)",
            (key, payload, "2024-01-01T00:00:00+00:00"),
        )
    conn.close()


def test_missing_collection_reads_as_empty(database: Database) -> None:
    assert database.read_collection(CONTACTS_KEY) == []
    assert database.read_document(SESSION_KEY) is None


def test_write_and_read_collection(database: Database) -> None:
    database.write_collection(CONTACTS_KEY, [{"id": "1"}, {"id": "2"}])
    assert database.read_collection(CONTACTS_KEY) == [{"id": "1"}, {"id": "2"}]


def test_malformed_json_degrades_to_empty(database: Database) -> None:
    _corrupt(database, CONTACTS_KEY, "{not json")
    _corrupt(database, SESSION_KEY, "[1, 2")

    assert database.read_collection(CONTACTS_KEY) == []
    assert database.read_document(SESSION_KEY) is None


def test_wrong_shape_degrades_to_empty(database: Database) -> None:
    _corrupt(database, CONTACTS_KEY, json.dumps({"id": "not-a-list"}))
    _corrupt(database, SESSION_KEY, json.dumps(["not", "an", "object"]))

    assert database.read_collection(CONTACTS_KEY) == []
    assert database.read_document(SESSION_KEY) is None


def test_non_object_items_are_dropped(database: Database) -> None:
    _corrupt(database, CONTACTS_KEY, json.dumps([{"id": "a"}, 5, "x", {"id": "b"}]))
    assert database.read_collection(CONTACTS_KEY) == [{"id": "a"}, {"id": "b"}]


def test_failed_mutation_leaves_collection_untouched(database: Database) -> None:
    database.write_collection(CONTACTS_KEY, [{"id": "keep"}])

    def _explode(items):
        items.append({"id": "lost"})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        database.update_collection(CONTACTS_KEY, _explode)

    assert database.read_collection(CONTACTS_KEY) == [{"id": "keep"}]


def test_concurrent_updates_do_not_lose_writes(database: Database) -> None:
    def _append(index: int) -> None:
        database.update_collection(CONTACTS_KEY, lambda items: [*items, {"id": str(index)}])

    threads = [threading.Thread(target=_append, args=(index,)) for index in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stored = database.read_collection(CONTACTS_KEY)
    assert sorted(int(item["id"]) for item in stored) == list(range(20))


def test_document_round_trip_and_delete(database: Database) -> None:
    database.write_document(SESSION_KEY, {"id": "abc"})
    assert database.read_document(SESSION_KEY) == {"id": "abc"}

    database.delete_document(SESSION_KEY)
    assert database.read_document(SESSION_KEY) is None
