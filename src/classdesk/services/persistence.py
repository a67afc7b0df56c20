from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from classdesk.config.settings import settings


class PersistenceError(Exception):
    pass


class CorruptRecordError(PersistenceError):
    def __init__(self, key: str, detail: str) -> None:
        super().__init__(f"Stored value for {key!r} is not valid JSON: {detail}")
        self.key = key


class KeyValueStore(ABC):
    """Durable key -> text storage. Values are JSON documents written by the callers."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise CorruptRecordError(key, str(exc)) from exc

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    def __init__(self, db_path: str = "classdesk.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open {db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    @classmethod
    def from_settings(cls) -> "SqliteKeyValueStore":
        return cls(settings.db_path)

    def _init_schema(self) -> None:
        with self._lock:
            self.conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );
                """
            )
            self.conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                cur = self.conn.execute("SELECT value FROM kv WHERE key=?", (key,))
                row = cur.fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc
        return None if row is None else str(row["value"])

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            try:
                self.conn.execute(
                    """INSERT INTO kv(key, value, updated_at) VALUES(?,?,?)
                       ON CONFLICT(key) DO UPDATE SET
                           value=excluded.value,
                           updated_at=excluded.updated_at""",
                    (key, value, now),
                )
                self.conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self.conn.execute("DELETE FROM kv WHERE key=?", (key,))
                self.conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self.conn.close()
