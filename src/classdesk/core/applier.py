from __future__ import annotations

import logging
from typing import Any, Dict, List

from classdesk.core.actions import (
    AddAttendance,
    AddClass,
    AddMaterial,
    AddSchedule,
    AddScore,
    AddStudent,
    AddSubject,
    AddTask,
    BaseAction,
    DeleteMaterial,
    DeleteSchedule,
    SubmitTask,
)
from classdesk.core.merge import KeySpec, find_index, record_key

logger = logging.getLogger(__name__)

Collections = Dict[str, List[Dict[str, Any]]]

SCORE_KEY: KeySpec = ("studentId", "taskId")
ATTENDANCE_KEY: KeySpec = ("studentId", "date")


def _upsert(records: List[Dict[str, Any]], key_spec: KeySpec, record: Dict[str, Any]) -> None:
    index = find_index(records, key_spec, record_key(record, key_spec))
    if index >= 0:
        records[index] = {**records[index], **record}
    else:
        records.append(record)


def _remove(records: List[Dict[str, Any]], record_id: Any) -> int:
    target = record_key({"id": record_id}, "id")
    kept = [r for r in records if record_key(r, "id") != target]
    removed = len(records) - len(kept)
    records[:] = kept
    return removed


def apply_action(collections: Collections, action: BaseAction) -> None:
    """Apply one action in place.

    Keyed mutations are upserts, so applying an action twice leaves the same
    state as applying it once.
    """
    if isinstance(action, AddSubject):
        _upsert(collections["subjects"], "id", {"id": action.id, "name": action.name})

    elif isinstance(action, AddClass):
        _upsert(
            collections["classes"],
            "id",
            {"id": action.id, "name": action.name, "subjectId": action.subject_id},
        )

    elif isinstance(action, AddStudent):
        _upsert(
            collections["students"],
            "id",
            {
                "id": action.id,
                "classId": action.class_id,
                "no": action.no,
                "code": action.code,
                "name": action.name,
            },
        )

    elif isinstance(action, AddTask):
        for index, class_id in enumerate(action.class_ids):
            _upsert(
                collections["tasks"],
                "id",
                {
                    "id": action.expanded_id(index),
                    "classId": class_id,
                    "subjectId": action.subject_id,
                    "category": action.category,
                    "chapter": action.chapter,
                    "name": action.name,
                    "maxScore": action.max_score,
                    "dueDateISO": action.due_date_iso,
                },
            )

    elif isinstance(action, AddScore):
        _upsert(
            collections["scores"],
            SCORE_KEY,
            {"studentId": action.student_id, "taskId": action.task_id, "score": action.score},
        )

    elif isinstance(action, AddAttendance):
        _upsert(
            collections["attendance"],
            ATTENDANCE_KEY,
            {
                "studentId": action.student_id,
                "classId": action.class_id,
                "date": action.date,
                "status": action.status,
            },
        )

    elif isinstance(action, SubmitTask):
        for student_id in action.student_ids:
            _upsert(
                collections["submissions"],
                SCORE_KEY,
                {
                    "taskId": action.task_id,
                    "studentId": student_id,
                    "link": action.link,
                    "timestampISO": action.timestamp_iso,
                    "comment": action.comment,
                },
            )

    elif isinstance(action, AddSchedule):
        _upsert(
            collections["schedules"],
            "id",
            {"id": action.id, "day": action.day, "period": action.period, "classId": action.class_id},
        )

    elif isinstance(action, AddMaterial):
        _upsert(
            collections["materials"],
            "id",
            {"id": action.id, "subjectId": action.subject_id, "title": action.title, "link": action.link},
        )

    elif isinstance(action, DeleteMaterial):
        if not _remove(collections["materials"], action.id):
            logger.debug("deleteMaterial: no material with id %s", action.id)

    elif isinstance(action, DeleteSchedule):
        if not _remove(collections["schedules"], action.id):
            logger.debug("deleteSchedule: no schedule with id %s", action.id)

    else:
        raise TypeError(f"Unsupported action type: {type(action).__name__}")


def count_unread_submissions(collections: Collections) -> int:
    scored = {record_key(s, SCORE_KEY) for s in collections.get("scores", []) if isinstance(s, dict)}
    return sum(
        1
        for sub in collections.get("submissions", [])
        if isinstance(sub, dict) and record_key(sub, SCORE_KEY) not in scored
    )
