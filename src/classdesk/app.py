import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from classdesk.config.settings import Settings, settings as default_settings
from classdesk.core.actions import BaseAction, parse_action
from classdesk.core.reports import (
    GradeRow,
    StudentDashboard,
    find_student_by_code,
    grade_report,
    smart_schedule_class,
    student_dashboard,
)
from classdesk.services.gateway import AuthError, RemoteGateway
from classdesk.services.persistence import KeyValueStore, SqliteKeyValueStore
from classdesk.state.local_store import LocalStore
from classdesk.state.session_state import SessionState
from classdesk.sync.connectivity import ConnectivityMonitor
from classdesk.sync.engine import DrainResult, Notifier, SyncEngine, SyncResult
from classdesk.sync.queue import RetryQueue
from classdesk.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class ClassroomApp:
    """Owns every piece of client state; the single entry point for a UI."""

    def __init__(
        self,
        kv: KeyValueStore,
        gateway: RemoteGateway,
        config: Settings = default_settings,
        monitor: Optional[ConnectivityMonitor] = None,
        notify: Optional[Notifier] = None,
        on_refresh: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config
        self.kv = kv
        self.gateway = gateway
        self.store = LocalStore(kv, config.store_key)
        self.queue = RetryQueue(kv, config.queue_key, max_attempts=config.max_attempts)
        self.monitor = monitor or ConnectivityMonitor(probe=gateway.probe)
        self.session = SessionState()
        self.engine = SyncEngine(
            self.store,
            gateway,
            self.queue,
            monitor=self.monitor,
            notify=notify,
            on_refresh=on_refresh,
        )
        self.scheduler = SyncScheduler(
            self.engine,
            self.monitor,
            drain_interval=config.drain_interval_seconds,
            probe_interval=config.probe_interval_seconds,
        )

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "ClassroomApp":
        return cls(SqliteKeyValueStore.from_settings(), RemoteGateway.from_settings(), **kwargs)

    def start(self, background: bool = True) -> SyncResult:
        self.store.load()
        self.session.load(self.kv, self.config.session_key)
        pending = len(self.queue)
        if pending:
            logger.info("%d action(s) waiting in the retry queue", pending)
        if background:
            self.scheduler.start()
        result = self.engine.full_sync()
        if self.monitor.is_online and pending:
            self.engine.try_sync_queue()
        return result

    def stop(self) -> None:
        self.scheduler.stop()

    @property
    def is_admin(self) -> bool:
        return self.session.is_authenticated

    def login(self, username: str, password: str) -> bool:
        try:
            token = self.gateway.login(username, password)
        except AuthError as exc:
            logger.warning("Login failed: %s", exc)
            return False
        self.session.token = token
        self.session.save(self.kv, self.config.session_key)
        self.engine.full_sync()
        return True

    def logout(self) -> None:
        self.session.clear(self.kv, self.config.session_key)
        self.store.clear()
        logger.info("Logged out, local backup removed")

    def save(self, action: Union[BaseAction, Dict[str, Any]]) -> SyncResult:
        return self.engine.handle_save(parse_action(action))

    def sync(self) -> SyncResult:
        return self.engine.full_sync()

    def drain(self) -> DrainResult:
        return self.engine.try_sync_queue()

    def student_login(self, code: Any) -> Optional[StudentDashboard]:
        student = find_student_by_code(self.store.collection("students"), code)
        if student is None:
            return None
        return student_dashboard(self.store.snapshot(), student)

    def grade_report(self, class_id: Any) -> List[GradeRow]:
        return grade_report(self.store.snapshot(), class_id)

    def current_class(self, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        return smart_schedule_class(self.store.snapshot(), now or datetime.now())
