import threading
import unittest
from unittest import mock

from fakes import FakeGateway

from classdesk.core.actions import parse_action
from classdesk.services.gateway import GatewayNetworkError, GatewayStatusError
from classdesk.services.persistence import MemoryKeyValueStore, PersistenceError
from classdesk.state.local_store import LocalStore
from classdesk.sync.connectivity import ConnectivityMonitor
from classdesk.sync.engine import SyncEngine, SyncStatus, extract_server_data
from classdesk.sync.queue import RetryQueue

SCORE = {"action": "addScore", "studentId": 100, "taskId": "T1", "score": 7}


class EngineTestCase(unittest.TestCase):
    def setUp(self):
        self.kv = MemoryKeyValueStore()
        self.store = LocalStore(self.kv, "backup")
        self.store.load()
        self.queue = RetryQueue(self.kv, "queue", max_attempts=3)
        self.gateway = FakeGateway()
        self.monitor = ConnectivityMonitor(online=True)
        self.notices = []
        self.refreshes = 0
        self.engine = SyncEngine(
            self.store,
            self.gateway,
            self.queue,
            monitor=self.monitor,
            notify=lambda level, message: self.notices.append((level, message)),
            on_refresh=self._count_refresh,
        )

    def _count_refresh(self):
        self.refreshes += 1


class FullSyncTests(EngineTestCase):
    def test_offline_guard_never_calls_gateway(self):
        self.store.apply(parse_action({"action": "addSubject", "id": 1, "name": "Chinese"}))
        before = self.kv.get("backup")
        self.monitor.set_online(False)

        result = self.engine.full_sync()

        self.assertEqual(result.status, SyncStatus.OFFLINE)
        self.assertEqual(self.gateway.fetch_calls, 0)
        self.assertEqual(self.kv.get("backup"), before)

    def test_merges_flat_payload(self):
        self.store.apply(parse_action({"action": "addSubject", "id": 1, "name": "Draft"}))
        self.gateway.fetch_payload = {
            "subjects": [{"id": 1, "name": "Chinese"}, {"id": 2, "name": "Math"}],
            "students": [{"id": 100, "classId": 10, "no": 1, "code": "S001", "name": "Somchai"}],
        }
        result = self.engine.full_sync()

        self.assertTrue(result.ok)
        self.assertEqual(
            self.store.collection("subjects"),
            [{"id": 1, "name": "Chinese"}, {"id": 2, "name": "Math"}],
        )
        self.assertEqual(len(self.store.collection("students")), 1)
        self.assertEqual(self.refreshes, 1)
        self.assertEqual(self.notices[-1][0], "success")

    def test_unwraps_data_envelope(self):
        self.gateway.fetch_payload = {"data": {"classes": [{"id": 10, "name": "M1/1", "subjectId": 1}]}}
        self.assertEqual(self.engine.full_sync().status, SyncStatus.SUCCESS)
        self.assertEqual(self.store.collection("classes")[0]["name"], "M1/1")

    def test_unrecognized_payload_is_stale(self):
        self.store.apply(parse_action({"action": "addSubject", "id": 1, "name": "Chinese"}))
        before = self.store.snapshot()
        self.gateway.fetch_payload = {"status": "ok"}

        self.assertEqual(self.engine.full_sync().status, SyncStatus.STALE)
        self.assertEqual(self.store.snapshot(), before)
        self.assertEqual(self.refreshes, 0)

    def test_gateway_failure_leaves_store(self):
        self.store.apply(parse_action({"action": "addSubject", "id": 1, "name": "Chinese"}))
        before = self.kv.get("backup")
        for error in (GatewayNetworkError("down"), GatewayStatusError(500)):
            self.gateway.fetch_error = error
            self.assertEqual(self.engine.full_sync().status, SyncStatus.FAILED)
        self.assertEqual(self.kv.get("backup"), before)

    def test_extract_server_data(self):
        self.assertIsNone(extract_server_data(None))
        self.assertIsNone(extract_server_data({}))
        self.assertIsNone(extract_server_data({"data": {"unknown": []}}))
        self.assertEqual(extract_server_data({"returns": []}), {"returns": []})


class HandleSaveTests(EngineTestCase):
    def test_success_pushes_once(self):
        result = self.engine.handle_save(parse_action(SCORE))

        self.assertEqual(result.status, SyncStatus.SUCCESS)
        self.assertEqual(self.gateway.sent, [{"action": "addScore", "studentId": 100, "taskId": "T1", "score": 7.0}])
        self.assertEqual(len(self.queue), 0)
        self.assertEqual(len(self.store.collection("scores")), 1)

    def test_failure_queues_and_keeps_local_change(self):
        self.gateway.send_failures = 1
        result = self.engine.handle_save(parse_action(SCORE))

        self.assertEqual(result.status, SyncStatus.QUEUED)
        self.assertEqual(self.store.collection("scores")[0]["score"], 7)
        items = self.queue.items()
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["attempts"], 0)
        self.assertEqual(items[0]["action"], "addScore")
        self.assertEqual(self.notices[-1][0], "warning")

    def test_offline_save_queues_without_pushing(self):
        self.monitor.set_online(False)
        result = self.engine.handle_save(parse_action(SCORE))

        self.assertEqual(result.status, SyncStatus.QUEUED)
        self.assertEqual(self.gateway.attempts, [])
        self.assertEqual(len(self.store.collection("scores")), 1)


class DrainTests(EngineTestCase):
    def test_empty_queue_is_noop(self):
        result = self.engine.try_sync_queue()
        self.assertEqual((result.synced, result.retained, result.abandoned), (0, 0, 0))
        self.assertEqual(self.gateway.attempts, [])

    def test_drains_in_fifo_order(self):
        self.gateway.always_fail = True
        for i in range(3):
            self.engine.handle_save(parse_action({"action": "addSubject", "id": i, "name": f"S{i}"}))
        self.gateway.always_fail = False
        self.gateway.attempts.clear()

        result = self.engine.try_sync_queue()

        self.assertEqual(result.synced, 3)
        self.assertEqual([p["id"] for p in self.gateway.sent], [0, 1, 2])
        self.assertNotIn("attempts", self.gateway.sent[0])
        self.assertNotIn("queueId", self.gateway.sent[0])
        self.assertEqual(len(self.queue), 0)
        self.assertEqual(self.notices[-1], ("success", "Synced 3 queued item(s)"))

    def test_retry_ceiling(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action(SCORE))

        first = self.engine.try_sync_queue()
        second = self.engine.try_sync_queue()
        self.assertEqual((first.retained, second.retained), (1, 1))
        self.assertEqual(self.queue.items()[0]["attempts"], 2)

        third = self.engine.try_sync_queue()
        self.assertEqual(third.abandoned, 1)
        self.assertEqual(len(self.queue), 0)

        self.gateway.attempts.clear()
        fourth = self.engine.try_sync_queue()
        self.assertEqual(fourth.synced + fourth.retained + fourth.abandoned, 0)
        self.assertEqual(self.gateway.attempts, [])
        self.assertEqual(len(self.store.collection("scores")), 1)

    def test_partial_success(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action({"action": "addSubject", "id": 1, "name": "A"}))
        self.engine.handle_save(parse_action({"action": "addSubject", "id": 2, "name": "B"}))
        self.gateway.always_fail = False
        self.gateway.send_failures = 1

        result = self.engine.try_sync_queue()

        self.assertEqual((result.synced, result.retained), (1, 1))
        remaining = self.queue.items()
        self.assertEqual([item["id"] for item in remaining], [1])
        self.assertEqual(remaining[0]["attempts"], 1)

    def test_concurrent_drain_is_skipped(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action(SCORE))
        self.gateway.always_fail = False

        entered = threading.Event()
        release = threading.Event()
        original_send = self.gateway.send

        def slow_send(payload):
            entered.set()
            release.wait(5)
            return original_send(payload)

        self.gateway.send = slow_send
        results = []
        worker = threading.Thread(target=lambda: results.append(self.engine.try_sync_queue()))
        worker.start()
        self.assertTrue(entered.wait(5))

        self.assertTrue(self.engine.try_sync_queue().skipped)

        release.set()
        worker.join(5)
        self.assertEqual(results[0].synced, 1)

    def test_save_during_drain_is_not_lost(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action({"action": "addSubject", "id": 1, "name": "A"}))
        self.gateway.always_fail = False
        original_send = self.gateway.send

        def send_then_save(payload):
            if payload.get("id") == 1:
                self.gateway.send_failures = 1
                self.gateway.send = original_send
                self.engine.handle_save(parse_action({"action": "addSubject", "id": 2, "name": "B"}))
            return original_send(payload)

        self.gateway.send = send_then_save
        result = self.engine.try_sync_queue()

        self.assertEqual(result.synced, 1)
        self.assertEqual([item["id"] for item in self.queue.items()], [2])

    def test_item_cleared_during_drain_is_not_abandoned(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action(SCORE))
        original_send = self.gateway.send

        def clear_then_fail(payload):
            self.queue.clear()
            return original_send(payload)

        self.gateway.send = clear_then_fail
        with self.assertLogs("classdesk.sync.engine", level="DEBUG") as logs:
            result = self.engine.try_sync_queue()

        self.assertEqual((result.synced, result.retained, result.abandoned), (0, 0, 0))
        self.assertFalse(any("Giving up" in line for line in logs.output))
        self.assertEqual(len(self.queue), 0)

    def test_unreadable_queue_skips_drain(self):
        self.gateway.always_fail = True
        self.engine.handle_save(parse_action(SCORE))
        self.gateway.attempts.clear()
        with mock.patch.object(self.queue, "items", side_effect=PersistenceError("database is locked")):
            result = self.engine.try_sync_queue()
        self.assertEqual((result.synced, result.retained, result.abandoned), (0, 0, 0))
        self.assertEqual(self.gateway.attempts, [])
        self.assertEqual(len(self.queue), 1)


if __name__ == "__main__":
    unittest.main()
