from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from classdesk.sync.connectivity import ConnectivityMonitor
from classdesk.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Daemon thread that re-probes connectivity and drains the retry queue.

    Every ``probe_interval`` seconds the monitor is refreshed; every
    ``drain_interval`` seconds, when online, one drain pass runs. A reconnect
    triggers a pull followed by a drain.
    """

    def __init__(
        self,
        engine: SyncEngine,
        monitor: ConnectivityMonitor,
        drain_interval: float = 120,
        probe_interval: float = 30,
    ) -> None:
        self.engine = engine
        self.monitor = monitor
        self.drain_interval = drain_interval
        self.probe_interval = probe_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_drain = 0.0
        monitor.on_reconnect(self._on_reconnect)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._last_drain = time.monotonic()
        self._thread = threading.Thread(target=self._loop, name="classdesk-sync", daemon=True)
        self._thread.start()
        logger.info(
            "Sync scheduler started (drain every %ss, probe every %ss)",
            self.drain_interval,
            self.probe_interval,
        )

    def stop(self, timeout: float = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sync scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[float] = None) -> bool:
        """One tick of the loop. Returns True if a drain pass ran."""
        now = time.monotonic() if now is None else now
        self.monitor.refresh()
        if now - self._last_drain < self.drain_interval:
            return False
        self._last_drain = now
        if not self.monitor.is_online:
            return False
        self.engine.try_sync_queue()
        return True

    def _loop(self) -> None:
        tick = max(0.1, min(self.probe_interval, self.drain_interval))
        while not self._stop.wait(tick):
            try:
                self.run_once()
            except Exception:
                logger.exception("Sync tick failed")

    def _on_reconnect(self) -> None:
        logger.info("Back online, syncing")
        self.engine.full_sync()
        self.engine.try_sync_queue()
