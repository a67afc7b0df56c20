"""
Durable retry queue for actions that could not be pushed.

Stored as one JSON list under a single key::

    [{...action fields, "timestamp": "<ISO>", "attempts": 0, "queueId": "<hex>"}, ...]

Every operation re-reads and rewrites the list under a lock, so progress made
by a drain pass is saved item by item and actions enqueued while a drain is
in flight are never overwritten.

Item lifecycle::

    pending(attempts=0) -> pending(attempts+1)   failure while attempts < max
                        -> removed (synced)      success
                        -> removed (abandoned)   failure reaching max
"""
from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from classdesk.services.persistence import CorruptRecordError, KeyValueStore

logger = logging.getLogger(__name__)

QUEUE_META_FIELDS = ("timestamp", "attempts", "queueId")


def strip_queue_meta(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in item.items() if k not in QUEUE_META_FIELDS}


class RetryQueue:
    def __init__(self, kv: KeyValueStore, key: str = "sync_queue", max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.kv = kv
        self.key = key
        self.max_attempts = max_attempts
        self._lock = threading.Lock()

    def _read(self) -> List[Dict[str, Any]]:
        try:
            stored = self.kv.get_json(self.key)
        except CorruptRecordError as exc:
            logger.warning("Retry queue unreadable, resetting: %s", exc)
            self.kv.set_json(self.key, [])
            return []
        if stored is None:
            return []
        if not isinstance(stored, list):
            logger.warning("Retry queue has an unexpected shape, resetting")
            self.kv.set_json(self.key, [])
            return []

        items = []
        dirty = False
        for item in stored:
            if not isinstance(item, dict):
                dirty = True
                continue
            if not item.get("queueId"):
                item["queueId"] = uuid.uuid4().hex
                dirty = True
            if not isinstance(item.get("attempts"), int):
                item["attempts"] = 0
                dirty = True
            items.append(item)
        if dirty:
            self.kv.set_json(self.key, items)
        return items

    def _write(self, items: List[Dict[str, Any]]) -> None:
        self.kv.set_json(self.key, items)

    def enqueue(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        item = {
            **strip_queue_meta(payload),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "attempts": 0,
            "queueId": uuid.uuid4().hex,
        }
        with self._lock:
            items = self._read()
            items.append(item)
            self._write(items)
        logger.info("Queued %s for retry (%d pending)", item.get("action"), len(items))
        return copy.deepcopy(item)

    def items(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read()

    def __len__(self) -> int:
        return len(self.items())

    def mark_synced(self, queue_id: str) -> None:
        with self._lock:
            items = self._read()
            self._write([item for item in items if item.get("queueId") != queue_id])

    def record_failure(self, queue_id: str) -> Optional[bool]:
        """Count one failed attempt.

        Returns True if the item stays queued, False if it reached the ceiling
        and was dropped, and None if it is no longer in the queue.
        """
        with self._lock:
            items = self._read()
            for index, item in enumerate(items):
                if item.get("queueId") != queue_id:
                    continue
                item["attempts"] = int(item.get("attempts", 0)) + 1
                kept = item["attempts"] < self.max_attempts
                if not kept:
                    del items[index]
                self._write(items)
                return kept
            return None

    def clear(self) -> None:
        with self._lock:
            self._write([])
