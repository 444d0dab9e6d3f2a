"""Key-value storage boundary.

Two namespaces exist: a session-scoped one (the current research context,
kept in memory) and a durable one (research history and the scoring API
base-URL override, kept in SQLite). Values are JSON-compatible objects.
"""

import copy
import json
import logging
import os
import sqlite3
import time
from contextlib import closing
from typing import Any, Dict, Optional

from sift.exceptions import StorageError

logger = logging.getLogger(__name__)

HISTORY_KEY = "sift:history"
CONTEXT_KEY = "sift:context"
API_URL_KEY = "sift:apiUrl"


class KeyValueStore:
    """Minimal get/set/delete interface over JSON values."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Session namespace. Values are copied in and out so callers never share state."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
    """Durable namespace backed by a single SQLite table."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_db(self) -> None:
        """Create the database file and schema if missing."""
        if self._ready:
            return
        directory = os.path.dirname(self.db_path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv(
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    );
                    """
                )
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot initialise store at {self.db_path}: {e}") from e
        self._ready = True

    def get(self, key: str) -> Optional[Any]:
        self.ensure_db()
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except ValueError as e:
            raise StorageError(f"Corrupt value stored under {key}") from e

    def set(self, key: str, value: Any) -> None:
        self.ensure_db()
        try:
            payload = json.dumps(value, ensure_ascii=False)
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO kv(key, value, updated_at) VALUES(?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, payload, time.time()),
                )
        except (TypeError, ValueError, sqlite3.Error) as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        self.ensure_db()
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e


def get_api_url_override(store: KeyValueStore) -> Optional[str]:
    """Scoring API base URL saved by the user, if any."""
    try:
        value = store.get(API_URL_KEY)
    except StorageError as e:
        logger.warning(f"Could not read API URL override: {e}")
        return None
    if isinstance(value, str) and value.strip():
        return value.strip().rstrip("/")
    return None
