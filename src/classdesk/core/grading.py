from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from classdesk.core.merge import record_key

CHAPTER_COUNT = 6
CHAPTER_SCALE = 10.0

GRADE_THRESHOLDS: Tuple[Tuple[float, float], ...] = (
    (80, 4.0),
    (75, 3.5),
    (70, 3.0),
    (65, 2.5),
    (60, 2.0),
    (55, 1.5),
    (50, 1.0),
)


@dataclass
class ChapterTally:
    earned: float = 0.0
    max: float = 0.0


@dataclass(frozen=True)
class ScoreSummary:
    chap_scores: Tuple[float, ...] = field(default=(0.0,) * CHAPTER_COUNT)
    midterm: float = 0.0
    final: float = 0.0
    special: float = 0.0
    total: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "chapScores": list(self.chap_scores),
            "midterm": self.midterm,
            "final": self.final,
            "total": self.total,
        }


def _to_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if number != number else number


def parse_chapters(chapter: Any) -> List[int]:
    """Chapter numbers from a comma list; blanks and non-numbers are dropped."""
    if chapter is None:
        return []
    parts = chapter if isinstance(chapter, (list, tuple)) else str(chapter).split(",")
    chapters = []
    for part in parts:
        text = str(part).strip()
        if not text:
            continue
        try:
            chapters.append(int(float(text)))
        except ValueError:
            continue
    return chapters


def calculate_scores(
    student_id: Any,
    tasks: Iterable[Mapping[str, Any]],
    scores: Iterable[Mapping[str, Any]],
) -> ScoreSummary:
    """
    Aggregate one student's scores over ``tasks``.

    ``accum`` tasks spread both the earned score and the max score evenly over
    their chapters (1..6; other numbers are ignored). Each chapter is then
    scaled to 0..10. ``midterm``, ``final`` and ``special`` are raw sums.
    """
    if tasks is None or scores is None:
        return ScoreSummary()

    earned_by_task: Dict[Tuple[str, ...], float] = {}
    for record in scores:
        if isinstance(record, Mapping):
            earned_by_task.setdefault(record_key(record, ("studentId", "taskId")), _to_number(record.get("score")))

    chapters = [ChapterTally() for _ in range(CHAPTER_COUNT)]
    midterm = 0.0
    final = 0.0
    special = 0.0

    for task in tasks:
        if not task:
            continue
        key = record_key({"studentId": student_id, "taskId": task.get("id")}, ("studentId", "taskId"))
        earned = earned_by_task.get(key, 0.0)
        max_score = _to_number(task.get("maxScore"))
        category = task.get("category")

        if category == "accum":
            task_chapters = parse_chapters(task.get("chapter"))
            if not task_chapters or max_score <= 0:
                continue
            earned_share = earned / len(task_chapters)
            max_share = max_score / len(task_chapters)
            for chapter in task_chapters:
                if 1 <= chapter <= CHAPTER_COUNT:
                    chapters[chapter - 1].earned += earned_share
                    chapters[chapter - 1].max += max_share
        elif category == "midterm":
            midterm += earned
        elif category == "final":
            final += earned
        elif category == "special":
            special += earned

    chap_scores = tuple(
        round(tally.earned / tally.max * CHAPTER_SCALE, 1) if tally.max > 0 else 0.0 for tally in chapters
    )
    total = round(sum(chap_scores) + midterm + final + special, 1)
    return ScoreSummary(chap_scores=chap_scores, midterm=midterm, final=final, special=special, total=total)


def grade_point(total: Any) -> float:
    try:
        score = float(total)
    except (TypeError, ValueError):
        return 0.0
    if score != score:
        return 0.0
    for threshold, point in GRADE_THRESHOLDS:
        if score >= threshold:
            return point
    return 0.0
