from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Online/offline flag with reconnect callbacks.

    The flag can be driven directly (``set_online``) or by a probe callable
    run on every :meth:`refresh`. Callbacks fire only on offline -> online.
    """

    def __init__(self, probe: Optional[Callable[[], bool]] = None, online: bool = True) -> None:
        self._probe = probe
        self._online = online
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def on_reconnect(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def set_online(self, online: bool) -> None:
        with self._lock:
            was_online = self._online
            self._online = online
        if online == was_online:
            return
        logger.info("Network status changed: %s", "online" if online else "offline")
        if online:
            for callback in list(self._callbacks):
                try:
                    callback()
                except Exception as exc:
                    logger.warning("Reconnect callback failed: %s", exc)

    def refresh(self) -> bool:
        if self._probe is None:
            return self.is_online
        try:
            online = bool(self._probe())
        except Exception as exc:
            logger.debug("Connectivity probe raised: %s", exc)
            online = False
        self.set_online(online)
        return online
