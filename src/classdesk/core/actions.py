"""Typed mutation actions.

Every write the client makes is one of these models. On the wire an action is
a flat JSON object tagged by ``action`` with camelCase field names, e.g.
``{"action": "addScore", "studentId": 100, "taskId": "T1", "score": 7}``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

Key = Union[int, str]


class ActionValidationError(ValueError):
    def __init__(self, message: str, errors: List[Dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class BaseAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class AddSubject(BaseAction):
    action: Literal["addSubject"] = "addSubject"
    id: Key
    name: str


class AddClass(BaseAction):
    action: Literal["addClass"] = "addClass"
    id: Key
    name: str
    subject_id: Key = Field(alias="subjectId")


class AddStudent(BaseAction):
    action: Literal["addStudent"] = "addStudent"
    id: Key
    class_id: Key = Field(alias="classId")
    no: int
    code: str
    name: str

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, value: Any) -> Any:
        # codes are typed by hand and often look numeric
        return str(value).strip() if isinstance(value, (int, str)) else value


class AddTask(BaseAction):
    action: Literal["addTask"] = "addTask"
    id: Key
    class_ids: List[Key] = Field(alias="classIds", min_length=1)
    subject_id: Key = Field(alias="subjectId")
    category: Literal["accum", "midterm", "final", "special"]
    chapter: str = ""
    name: str
    max_score: float = Field(alias="maxScore", ge=0)
    due_date_iso: str = Field(alias="dueDateISO", default="")

    @field_validator("chapter", mode="before")
    @classmethod
    def _join_chapters(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ",".join(str(v).strip() for v in value)
        if isinstance(value, int):
            return str(value)
        return value

    def expanded_id(self, index: int) -> str:
        return f"{self.id}-{index}"


class AddScore(BaseAction):
    action: Literal["addScore"] = "addScore"
    student_id: Key = Field(alias="studentId")
    task_id: Key = Field(alias="taskId")
    score: float


class AddAttendance(BaseAction):
    action: Literal["addAttendance"] = "addAttendance"
    student_id: Key = Field(alias="studentId")
    class_id: Key = Field(alias="classId")
    date: str
    status: Literal["present", "leave", "absent"]


class SubmitTask(BaseAction):
    action: Literal["submitTask"] = "submitTask"
    task_id: Key = Field(alias="taskId")
    student_ids: List[Key] = Field(alias="studentIds", min_length=1)
    link: str
    comment: str = ""
    timestamp_iso: str = Field(alias="timestampISO", default_factory=_now_iso)


class AddSchedule(BaseAction):
    action: Literal["addSchedule"] = "addSchedule"
    id: Key
    day: int = Field(ge=0, le=6)
    period: int = Field(ge=1, le=8)
    class_id: Key = Field(alias="classId")


class AddMaterial(BaseAction):
    action: Literal["addMaterial"] = "addMaterial"
    id: Key
    subject_id: Key = Field(alias="subjectId")
    title: str
    link: str


class DeleteMaterial(BaseAction):
    action: Literal["deleteMaterial"] = "deleteMaterial"
    id: Key


class DeleteSchedule(BaseAction):
    action: Literal["deleteSchedule"] = "deleteSchedule"
    id: Key


Action = Annotated[
    Union[
        AddSubject,
        AddClass,
        AddStudent,
        AddTask,
        AddScore,
        AddAttendance,
        SubmitTask,
        AddSchedule,
        AddMaterial,
        DeleteMaterial,
        DeleteSchedule,
    ],
    Field(discriminator="action"),
]

ACTION_KINDS = (
    "addSubject",
    "addClass",
    "addStudent",
    "addTask",
    "addScore",
    "addAttendance",
    "submitTask",
    "addSchedule",
    "addMaterial",
    "deleteMaterial",
    "deleteSchedule",
)

_adapter: TypeAdapter = TypeAdapter(Action)


def parse_action(payload: Any) -> BaseAction:
    if isinstance(payload, BaseAction):
        return payload
    if not isinstance(payload, dict):
        raise ActionValidationError(f"Action must be an object, got {type(payload).__name__}")
    kind = payload.get("action")
    if kind not in ACTION_KINDS:
        raise ActionValidationError(f"Unsupported action: {kind!r}")
    try:
        return _adapter.validate_python(payload)
    except ValidationError as exc:
        raise ActionValidationError(f"Invalid {kind} action: {exc.error_count()} error(s)", exc.errors()) from exc
