from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from classdesk.core.grading import ScoreSummary, calculate_scores, grade_point
from classdesk.core.merge import record_key

Collections = Mapping[str, Sequence[Mapping[str, Any]]]

# (period, start, end) of the school day
PERIODS: Tuple[Tuple[int, time, time], ...] = (
    (1, time(8, 30), time(9, 20)),
    (2, time(9, 20), time(10, 10)),
    (3, time(10, 10), time(11, 0)),
    (4, time(11, 0), time(11, 50)),
    (5, time(11, 50), time(12, 40)),
    (6, time(12, 40), time(13, 30)),
    (7, time(13, 30), time(14, 20)),
    (8, time(14, 20), time(15, 10)),
)

RECENT_ATTENDANCE_LIMIT = 10


@dataclass(frozen=True)
class GradeRow:
    student: Dict[str, Any]
    summary: ScoreSummary
    grade: float


@dataclass(frozen=True)
class TaskStatus:
    task: Dict[str, Any]
    state: str  # "scored", "submitted" or "missing"
    score: Optional[float] = None


@dataclass
class StudentDashboard:
    student: Dict[str, Any]
    class_: Dict[str, Any]
    subject: Dict[str, Any]
    summary: ScoreSummary
    grade: float
    tasks: List[TaskStatus] = field(default_factory=list)
    recent_attendance: List[Dict[str, Any]] = field(default_factory=list)


def _same(a: Any, b: Any) -> bool:
    return record_key({"k": a}, "k") == record_key({"k": b}, "k")


def _find(records: Sequence[Mapping[str, Any]], **match: Any) -> Optional[Dict[str, Any]]:
    for record in records:
        if all(_same(record.get(k), v) for k, v in match.items()):
            return dict(record)
    return None


def _roll_number(student: Mapping[str, Any]) -> float:
    try:
        return float(student.get("no"))
    except (TypeError, ValueError):
        return float("inf")


def class_roster(collections: Collections, class_id: Any) -> List[Dict[str, Any]]:
    students = [dict(s) for s in collections.get("students", []) if _same(s.get("classId"), class_id)]
    return sorted(students, key=_roll_number)


def find_student_by_code(students: Sequence[Mapping[str, Any]], code: Any) -> Optional[Dict[str, Any]]:
    wanted = str(code).strip()
    if not wanted:
        return None
    for student in students:
        if str(student.get("code", "")).strip() == wanted:
            return dict(student)
    try:
        wanted_number = float(wanted)
    except ValueError:
        return None
    for student in students:
        try:
            if float(student.get("code")) == wanted_number:
                return dict(student)
        except (TypeError, ValueError):
            continue
    return None


def grade_report(collections: Collections, class_id: Any) -> List[GradeRow]:
    tasks = [t for t in collections.get("tasks", []) if _same(t.get("classId"), class_id)]
    scores = collections.get("scores", [])
    rows = []
    for student in class_roster(collections, class_id):
        summary = calculate_scores(student.get("id"), tasks, scores)
        rows.append(GradeRow(student=student, summary=summary, grade=grade_point(summary.total)))
    return rows


def student_dashboard(collections: Collections, student: Mapping[str, Any]) -> Optional[StudentDashboard]:
    class_ = _find(collections.get("classes", []), id=student.get("classId"))
    if class_ is None:
        return None
    subject = _find(collections.get("subjects", []), id=class_.get("subjectId"))
    if subject is None:
        return None

    tasks = [
        dict(t)
        for t in collections.get("tasks", [])
        if _same(t.get("classId"), student.get("classId")) and _same(t.get("subjectId"), subject.get("id"))
    ]
    scores = collections.get("scores", [])
    submissions = collections.get("submissions", [])
    summary = calculate_scores(student.get("id"), tasks, scores)

    statuses = []
    for task in tasks:
        score = _find(scores, studentId=student.get("id"), taskId=task.get("id"))
        if score is not None:
            statuses.append(TaskStatus(task=task, state="scored", score=score.get("score")))
        elif _find(submissions, studentId=student.get("id"), taskId=task.get("id")) is not None:
            statuses.append(TaskStatus(task=task, state="submitted"))
        else:
            statuses.append(TaskStatus(task=task, state="missing"))

    attendance = [dict(a) for a in collections.get("attendance", []) if _same(a.get("studentId"), student.get("id"))]
    attendance.sort(key=lambda a: str(a.get("date", "")), reverse=True)

    return StudentDashboard(
        student=dict(student),
        class_=class_,
        subject=subject,
        summary=summary,
        grade=grade_point(summary.total),
        tasks=statuses,
        recent_attendance=attendance[:RECENT_ATTENDANCE_LIMIT],
    )


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _to_csv(header: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    # BOM so spreadsheet apps pick UTF-8
    return "\ufeff" + buffer.getvalue()


def export_grades_csv(collections: Collections, class_id: Any) -> str:
    header = [
        "No", "Code", "Name",
        "Ch1", "Ch2", "Ch3", "Ch4", "Ch5", "Ch6",
        "Midterm", "Final", "Special", "Total", "Grade",
    ]
    rows = []
    for row in grade_report(collections, class_id):
        s = row.summary
        rows.append(
            [
                row.student.get("no"),
                row.student.get("code"),
                row.student.get("name"),
                *(_format_number(c) for c in s.chap_scores),
                _format_number(s.midterm),
                _format_number(s.final),
                _format_number(s.special),
                _format_number(s.total),
                _format_number(row.grade),
            ]
        )
    return _to_csv(header, rows)


def export_attendance_csv(collections: Collections, class_id: Any, date: str) -> str:
    header = ["No", "Code", "Name", "Status", "Date"]
    attendance = collections.get("attendance", [])
    rows = []
    for student in class_roster(collections, class_id):
        record = next(
            (
                a
                for a in attendance
                if _same(a.get("studentId"), student.get("id")) and str(a.get("date", "")).startswith(date)
            ),
            None,
        )
        status = record.get("status") if record else "not recorded"
        rows.append([student.get("no"), student.get("code"), student.get("name"), status, date])
    return _to_csv(header, rows)


def current_period(now: datetime) -> Optional[int]:
    moment = now.time().replace(second=0, microsecond=0)
    for period, start, end in PERIODS:
        if start <= moment <= end:
            return period
    return None


def smart_schedule_class(collections: Collections, now: datetime) -> Optional[Dict[str, Any]]:
    """Class timetabled for the current period, if any. Schedule days count from Monday = 0."""
    period = current_period(now)
    if period is None:
        return None
    slot = _find(collections.get("schedules", []), day=now.weekday(), period=period)
    if slot is None:
        return None
    return _find(collections.get("classes", []), id=slot.get("classId"))
