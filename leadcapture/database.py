"""SQLite-backed keyed storage for accounts, sessions and contact records."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger("leadcapture.database")

ACCOUNTS_KEY = "registeredUsers"
SESSION_KEY = "currentUser"
CONTACTS_KEY = "contactSubmissions"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "leadcapture.sqlite3").resolve(strict=False)


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """Persist one JSON document per key inside a single SQLite table.

    Collections are always read and written whole. Mutations go through
    :meth:`update_collection`, which holds a per-key lock and an immediate
    SQLite transaction for the full read-modify-write cycle, so two writers
    can never interleave on the same key.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS collections (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
        logger.debug("Storage tables ready at %s", self._path)

    # ------------------------------------------------------------------
    # Raw payload access
    # ------------------------------------------------------------------
    def _load(self, conn: sqlite3.Connection, key: str) -> Any:
        row = conn.execute(
            "SELECT payload FROM collections WHERE key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except (TypeError, ValueError):
            logger.warning("Discarding malformed persisted state for key %r", key)
            return None

    def _store(self, conn: sqlite3.Connection, key: str, value: Any) -> None:
        conn.execute(
            """
            INSERT INTO collections (key, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), serialize_datetime(current_timestamp())),
        )

    @staticmethod
    def _as_collection(key: str, value: Any) -> List[Dict[str, Any]]:
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning("Persisted state for key %r is not a list; treating as empty", key)
            return []
        return [item for item in value if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    def read_collection(self, key: str) -> List[Dict[str, Any]]:
        """Return every item stored under ``key``; malformed state reads as empty."""

        with self._connect() as conn:
            return self._as_collection(key, self._load(conn, key))

    def write_collection(self, key: str, items: List[Dict[str, Any]]) -> None:
        with self._lock_for(key):
            with self._transaction() as conn:
                self._store(conn, key, list(items))

    def update_collection(
        self,
        key: str,
        mutator: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """Apply ``mutator`` to the current collection and persist its result.

        Exceptions raised by ``mutator`` abort the write and propagate.
        """

        with self._lock_for(key):
            with self._transaction() as conn:
                current = self._as_collection(key, self._load(conn, key))
                updated = list(mutator(current))
                self._store(conn, key, updated)
        return updated

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------
    def read_document(self, key: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            value = self._load(conn, key)
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning("Persisted state for key %r is not an object; ignoring it", key)
            return None
        return value

    def write_document(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock_for(key):
            with self._transaction() as conn:
                self._store(conn, key, value)

    def delete_document(self, key: str) -> None:
        with self._lock_for(key):
            with self._transaction() as conn:
                conn.execute("DELETE FROM collections WHERE key = ?", (key,))


__all__ = [
    "ACCOUNTS_KEY",
    "CONTACTS_KEY",
    "SESSION_KEY",
    "Database",
    "current_timestamp",
    "parse_datetime",
    "resolve_database_path",
    "serialize_datetime",
]
