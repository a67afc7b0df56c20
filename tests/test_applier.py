import unittest

from classdesk.core.actions import parse_action
from classdesk.core.applier import apply_action, count_unread_submissions
from classdesk.state.local_store import empty_collections


def apply(collections, payload):
    apply_action(collections, parse_action(payload))


class ApplierTests(unittest.TestCase):
    def setUp(self):
        self.data = empty_collections()

    def test_score_upsert_is_idempotent(self):
        payload = {"action": "addScore", "studentId": 1, "taskId": "T1", "score": 5}
        apply(self.data, payload)
        apply(self.data, payload)
        self.assertEqual(self.data["scores"], [{"studentId": 1, "taskId": "T1", "score": 5.0}])

        apply(self.data, {**payload, "score": 8})
        self.assertEqual(len(self.data["scores"]), 1)
        self.assertEqual(self.data["scores"][0]["score"], 8)

    def test_attendance_upsert_per_student_and_date(self):
        base = {"action": "addAttendance", "studentId": 1, "classId": 10, "date": "2024-05-01"}
        apply(self.data, {**base, "status": "present"})
        apply(self.data, {**base, "status": "leave"})
        apply(self.data, {**base, "date": "2024-05-02", "status": "absent"})
        self.assertEqual(len(self.data["attendance"]), 2)
        self.assertEqual(self.data["attendance"][0]["status"], "leave")

    def test_attendance_keys_with_separator_stay_distinct(self):
        apply(self.data, {"action": "addAttendance", "studentId": "a|b", "classId": 10, "date": "c", "status": "present"})
        apply(self.data, {"action": "addAttendance", "studentId": "a", "classId": 10, "date": "b|c", "status": "absent"})
        self.assertEqual(len(self.data["attendance"]), 2)
        self.assertEqual(self.data["attendance"][0]["status"], "present")

    def test_submission_fans_out_and_overwrites(self):
        payload = {
            "action": "submitTask",
            "taskId": "T1",
            "studentIds": [1, 2],
            "link": "https://a",
            "comment": "",
            "timestampISO": "2024-05-01T08:00:00Z",
        }
        apply(self.data, payload)
        apply(self.data, payload)
        self.assertEqual(len(self.data["submissions"]), 2)

        apply(self.data, {**payload, "studentIds": [2], "link": "https://b", "comment": "v2"})
        second = [s for s in self.data["submissions"] if s["studentId"] == 2][0]
        self.assertEqual(second["link"], "https://b")
        self.assertEqual(second["comment"], "v2")
        self.assertEqual(len(self.data["submissions"]), 2)

    def test_task_expands_per_class(self):
        payload = {
            "action": "addTask",
            "id": "hw",
            "classIds": [10, 11, 12],
            "subjectId": 1,
            "category": "accum",
            "chapter": "1,2",
            "name": "Worksheet",
            "maxScore": 10,
            "dueDateISO": "2024-06-01",
        }
        apply(self.data, payload)
        apply(self.data, payload)
        self.assertEqual([t["id"] for t in self.data["tasks"]], ["hw-0", "hw-1", "hw-2"])
        self.assertEqual([t["classId"] for t in self.data["tasks"]], [10, 11, 12])

    def test_id_keyed_adds_upsert(self):
        apply(self.data, {"action": "addSubject", "id": 1, "name": "Chinese"})
        apply(self.data, {"action": "addSubject", "id": "1", "name": "Chinese II"})
        self.assertEqual(self.data["subjects"], [{"id": "1", "name": "Chinese II"}])

    def test_delete_material_and_schedule(self):
        apply(self.data, {"action": "addMaterial", "id": "m1", "subjectId": 1, "title": "Slides", "link": "x"})
        apply(self.data, {"action": "addMaterial", "id": "m2", "subjectId": 1, "title": "Notes", "link": "y"})
        apply(self.data, {"action": "addSchedule", "id": 5, "day": 0, "period": 1, "classId": 10})
        apply(self.data, {"action": "deleteMaterial", "id": "m1"})
        apply(self.data, {"action": "deleteSchedule", "id": "5"})
        apply(self.data, {"action": "deleteSchedule", "id": "missing"})
        self.assertEqual([m["id"] for m in self.data["materials"]], ["m2"])
        self.assertEqual(self.data["schedules"], [])

    def test_unread_submissions(self):
        apply(
            self.data,
            {"action": "submitTask", "taskId": "T1", "studentIds": [1, 2], "link": "l", "timestampISO": "t"},
        )
        self.assertEqual(count_unread_submissions(self.data), 2)
        apply(self.data, {"action": "addScore", "studentId": "2", "taskId": "T1", "score": 4})
        self.assertEqual(count_unread_submissions(self.data), 1)

    def test_classroom_setup_scenario(self):
        apply(self.data, {"action": "addSubject", "id": 1, "name": "Chinese"})
        apply(self.data, {"action": "addClass", "id": 10, "name": "M1/1", "subjectId": 1})
        apply(
            self.data,
            {"action": "addStudent", "id": 100, "classId": 10, "no": 1, "code": "S001", "name": "Somchai"},
        )
        score = {"action": "addScore", "studentId": 100, "taskId": "T1", "score": 7}
        apply(self.data, score)
        apply(self.data, score)

        self.assertEqual(len(self.data["subjects"]), 1)
        self.assertEqual(len(self.data["classes"]), 1)
        self.assertEqual(len(self.data["students"]), 1)
        self.assertEqual(len(self.data["scores"]), 1)
        self.assertEqual(self.data["scores"][0]["score"], 7)


if __name__ == "__main__":
    unittest.main()
