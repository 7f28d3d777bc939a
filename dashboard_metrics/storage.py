import os
import sqlite3
from typing import Dict, Optional, Protocol


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def metrics(self) -> Dict[str, object]:
        ...


class InMemoryStorage:
    """Process-local string store, lost when the process exits."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def metrics(self) -> Dict[str, object]:
        return {"backend": "memory", "keys": len(self._values)}


class SQLiteStorage:
    """SQLite-backed string store for durable local persistence."""

    def __init__(self, db_path: str):
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self.conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            (key, value),
        )
        self.conn.commit()

    def metrics(self) -> Dict[str, object]:
        row = self.conn.execute("SELECT COUNT(*) as c FROM kv_store").fetchone()
        return {"backend": "sqlite", "keys": row["c"]}


def create_storage(backend: str, path: str) -> KeyValueStorage:
    backend = backend.lower()
    if backend == "sqlite":
        return SQLiteStorage(path)
    return InMemoryStorage()
