from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional

from classdesk.config.settings import settings
from classdesk.core.actions import BaseAction
from classdesk.core.applier import Collections, apply_action, count_unread_submissions
from classdesk.core.merge import MERGE_KEYS, merge_collections
from classdesk.services.persistence import KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "subjects",
    "classes",
    "students",
    "tasks",
    "scores",
    "attendance",
    "materials",
    "submissions",
    "returns",
    "schedules",
)


def empty_collections() -> Collections:
    return {name: [] for name in COLLECTIONS}


class LocalStore:
    """In-memory mirror of every collection, backed up to a key-value store.

    Mutations go through :meth:`apply` (user actions) or
    :meth:`merge_from_server` (pull); both persist the whole mirror afterwards
    as ``{"timestamp": <epoch ms>, "data": {...}}``.
    """

    def __init__(self, kv: KeyValueStore, key: Optional[str] = None) -> None:
        self.kv = kv
        self.key = key or settings.store_key
        self._data: Collections = empty_collections()
        self._lock = threading.RLock()
        self.unread_submissions = 0
        self.last_saved_at: Optional[int] = None

    def load(self) -> None:
        with self._lock:
            try:
                backup = self.kv.get_json(self.key)
            except PersistenceError as exc:
                logger.warning("Local backup unreadable, starting empty: %s", exc)
                backup = None

            data = backup.get("data") if isinstance(backup, dict) else None
            if isinstance(data, dict):
                self._data = self._normalize(data)
                timestamp = backup.get("timestamp")
                self.last_saved_at = timestamp if isinstance(timestamp, int) else None
                logger.info("Loaded local backup (%s records)", self.record_count())
            else:
                if backup is not None:
                    logger.warning("Local backup has an unexpected shape, starting empty")
                self._data = empty_collections()
                self.last_saved_at = None
            self.unread_submissions = count_unread_submissions(self._data)

    def persist(self) -> None:
        with self._lock:
            timestamp = int(time.time() * 1000)
            self.kv.set_json(self.key, {"timestamp": timestamp, "data": self._data})
            self.last_saved_at = timestamp

    def apply(self, action: BaseAction) -> None:
        with self._lock:
            apply_action(self._data, action)
            self.unread_submissions = count_unread_submissions(self._data)
            self.persist()

    def merge_from_server(self, server_data: Mapping[str, Any]) -> None:
        with self._lock:
            for name, key_spec in MERGE_KEYS.items():
                self._data[name] = merge_collections(self._data[name], server_data.get(name), key_spec)
            self.unread_submissions = count_unread_submissions(self._data)
            self.persist()

    def clear(self) -> None:
        with self._lock:
            self._data = empty_collections()
            self.unread_submissions = 0
            self.last_saved_at = None
            self.kv.remove(self.key)

    def collection(self, name: str) -> List[Dict[str, Any]]:
        if name not in COLLECTIONS:
            raise KeyError(name)
        with self._lock:
            return copy.deepcopy(self._data[name])

    def snapshot(self) -> Collections:
        with self._lock:
            return copy.deepcopy(self._data)

    def record_count(self) -> int:
        return sum(len(records) for records in self._data.values())

    @staticmethod
    def _normalize(data: Mapping[str, Any]) -> Collections:
        normalized = empty_collections()
        for name in COLLECTIONS:
            records = data.get(name)
            if isinstance(records, list):
                normalized[name] = [r for r in records if isinstance(r, dict)]
        return normalized
