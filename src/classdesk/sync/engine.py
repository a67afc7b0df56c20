"""
Sync engine: pull-and-merge, optimistic save, and retry-queue draining.

Flows::

    full_sync()       offline? -> OFFLINE (no request)
                      fetch -> error      -> FAILED (store untouched)
                            -> no data    -> STALE  (store untouched)
                            -> data       -> merge, persist, refresh -> SUCCESS

    handle_save(a)    apply locally -> push -> ok    -> SUCCESS
                                            -> error -> enqueue -> QUEUED

    try_sync_queue()  FIFO over queued items, one at a time; each success is
                      removed, each failure counts an attempt and the item is
                      dropped once it reaches the ceiling.

Gateway errors never escape; callers get a status and an optional message
through ``notify``.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from classdesk.core.actions import BaseAction
from classdesk.services.gateway import GatewayError, RemoteGateway
from classdesk.services.persistence import PersistenceError
from classdesk.state.local_store import COLLECTIONS, LocalStore
from classdesk.sync.connectivity import ConnectivityMonitor
from classdesk.sync.queue import RetryQueue, strip_queue_meta

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


class SyncStatus(str, Enum):
    SUCCESS = "success"
    QUEUED = "queued"
    OFFLINE = "offline"
    STALE = "stale"
    FAILED = "failed"


MESSAGES: Dict[SyncStatus, str] = {
    SyncStatus.SUCCESS: "Data updated from server",
    SyncStatus.QUEUED: "Saved locally, will retry",
    SyncStatus.OFFLINE: "Offline, using local data",
    SyncStatus.STALE: "Server returned no data, using local data",
    SyncStatus.FAILED: "Cannot reach server",
}

LEVELS: Dict[SyncStatus, str] = {
    SyncStatus.SUCCESS: "success",
    SyncStatus.QUEUED: "warning",
    SyncStatus.OFFLINE: "warning",
    SyncStatus.STALE: "info",
    SyncStatus.FAILED: "error",
}


@dataclass(frozen=True)
class SyncResult:
    status: SyncStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.SUCCESS


@dataclass(frozen=True)
class DrainResult:
    synced: int = 0
    retained: int = 0
    abandoned: int = 0
    skipped: bool = False


def extract_server_data(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the flat collections object, or None if the payload is not recognizable."""
    if not isinstance(payload, Mapping):
        return None
    nested = payload.get("data")
    if isinstance(nested, Mapping):
        payload = nested
    if any(name in payload for name in COLLECTIONS):
        return dict(payload)
    return None


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        gateway: RemoteGateway,
        queue: RetryQueue,
        monitor: Optional[ConnectivityMonitor] = None,
        notify: Optional[Notifier] = None,
        on_refresh: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.queue = queue
        self.monitor = monitor or ConnectivityMonitor()
        self._notify = notify
        self._on_refresh = on_refresh
        self._drain_lock = threading.Lock()

    def _report(self, status: SyncStatus, message: Optional[str] = None) -> SyncResult:
        text = message or MESSAGES[status]
        if self._notify is not None:
            try:
                self._notify(LEVELS[status], text)
            except Exception as exc:
                logger.warning("Notifier failed: %s", exc)
        return SyncResult(status, text)

    def _refresh(self) -> None:
        if self._on_refresh is None:
            return
        try:
            self._on_refresh()
        except Exception as exc:
            logger.warning("Refresh callback failed: %s", exc)

    def full_sync(self) -> SyncResult:
        if not self.monitor.is_online:
            logger.info("Skipping sync while offline")
            return self._report(SyncStatus.OFFLINE)

        try:
            payload = self.gateway.fetch_all()
        except GatewayError as exc:
            logger.warning("Sync failed, keeping local data: %s", exc)
            return self._report(SyncStatus.FAILED)

        server_data = extract_server_data(payload)
        if server_data is None:
            logger.warning("Server payload has no known collections, keeping local data")
            return self._report(SyncStatus.STALE)

        self.store.merge_from_server(server_data)
        logger.info("Merged server data (%d local records)", self.store.record_count())
        self._refresh()
        return self._report(SyncStatus.SUCCESS)

    def handle_save(self, action: BaseAction) -> SyncResult:
        self.store.apply(action)
        self._refresh()
        payload = action.to_payload()

        if self.monitor.is_online:
            try:
                self.gateway.send(payload)
            except GatewayError as exc:
                logger.warning("Push of %s failed, queueing: %s", payload["action"], exc)
            else:
                logger.debug("Pushed %s", payload["action"])
                return self._report(SyncStatus.SUCCESS, "Saved")
        else:
            logger.info("Offline, queueing %s", payload["action"])

        self.queue.enqueue(payload)
        return self._report(SyncStatus.QUEUED)

    def try_sync_queue(self) -> DrainResult:
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already in progress")
            return DrainResult(skipped=True)
        try:
            return self._drain()
        finally:
            self._drain_lock.release()

    def _drain(self) -> DrainResult:
        try:
            pending = self.queue.items()
        except PersistenceError as exc:
            logger.warning("Retry queue unavailable, skipping drain: %s", exc)
            return DrainResult()
        if not pending:
            return DrainResult()

        logger.info("Attempting to sync %d queued item(s)", len(pending))
        synced = retained = abandoned = 0
        for item in pending:
            queue_id = item["queueId"]
            try:
                self.gateway.send(strip_queue_meta(item))
            except GatewayError as exc:
                kept = self.queue.record_failure(queue_id)
                if kept is None:
                    logger.debug("Queued %s was removed during the drain", item.get("action"))
                elif kept:
                    retained += 1
                    logger.warning("Queued %s failed again: %s", item.get("action"), exc)
                else:
                    abandoned += 1
                    logger.error(
                        "Giving up on queued %s after %d attempts: %s",
                        item.get("action"),
                        self.queue.max_attempts,
                        strip_queue_meta(item),
                    )
            else:
                self.queue.mark_synced(queue_id)
                synced += 1

        if synced:
            self._report(SyncStatus.SUCCESS, f"Synced {synced} queued item(s)")
        logger.info("Drain done: %d synced, %d retained, %d abandoned", synced, retained, abandoned)
        return DrainResult(synced=synced, retained=retained, abandoned=abandoned)
