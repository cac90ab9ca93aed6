"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import ClassVar, NoReturn, TypeVar, assert_never, cast

from teamwork.constants import (
    DEFAULT_ROLE,
    PROJECT_SCHEMA_VERSION,
    TASK_SCHEMA_VERSION,
    WAVES_SCHEMA_VERSION,
)
from teamwork.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_TITLE = 512
_MAX_OUTPUT = 64 * 1024
_MAX_COLLECTION = 4096


class TaskStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class WaveStatus(StrEnum):
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFIED = "verified"
    FAILED = "failed"


class EvidenceType(StrEnum):
    COMMAND = "command"
    FILE = "file"
    TEST = "test"
    NOTE = "note"


class FileAction(StrEnum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class VerificationStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class CheckStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def to_iso8601z(value: datetime) -> str:
    """Render a timezone-aware datetime as ``YYYY-MM-DDTHH:MM:SS.ffffffZ``."""
    return _datetime_to_iso8601z(value)


def parse_iso8601z(value: object, path: str = "datetime") -> datetime:
    return _as_datetime(value, path)


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        if not is_dataclass(self):
            _fail(self.__class__.__name__, "canonical models must be dataclasses")
        out: dict[str, JSONValue] = {}
        for model_field in fields(self):
            out[model_field.name] = _serialize_value(
                getattr(self, model_field.name),
                f"{self.__class__.__name__}.{model_field.name}",
            )
        return out

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


# ---------------------------------------------------------------------------
# Evidence (tagged union on ``type``)
# ---------------------------------------------------------------------------


class _EvidenceBase(CanonicalModel):
    kind: ClassVar[EvidenceType]

    def to_dict(self) -> dict[str, JSONValue]:
        out = super().to_dict()
        out["type"] = self.kind.value
        return out


@dataclass(slots=True, kw_only=True)
class CommandEvidence(_EvidenceBase):
    kind: ClassVar[EvidenceType] = EvidenceType.COMMAND

    command: str
    timestamp: datetime
    output: str = ""
    exit_code: int | None = None

    def __post_init__(self) -> None:
        self.command = _as_str(self.command, "CommandEvidence.command")
        self.timestamp = _as_datetime(self.timestamp, "CommandEvidence.timestamp")
        self.output = _as_str(
            self.output, "CommandEvidence.output", min_len=0, max_len=_MAX_OUTPUT, strip=False
        )
        self.exit_code = _as_optional_int(self.exit_code, "CommandEvidence.exit_code")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CommandEvidence:
        parsed = _expect_object(
            data,
            "CommandEvidence",
            required={"type", "command", "timestamp"},
            optional={"output", "exit_code"},
        )
        return cls(
            command=cast("str", parsed["command"]),
            timestamp=_as_datetime(parsed["timestamp"], "CommandEvidence.timestamp"),
            output=cast("str", parsed.get("output", "")),
            exit_code=cast("int | None", parsed.get("exit_code")),
        )


@dataclass(slots=True, kw_only=True)
class FileEvidence(_EvidenceBase):
    kind: ClassVar[EvidenceType] = EvidenceType.FILE

    path: str
    timestamp: datetime
    action: FileAction = FileAction.MODIFIED

    def __post_init__(self) -> None:
        self.path = _as_str(self.path, "FileEvidence.path", max_len=4096)
        if "\x00" in self.path:
            _fail("FileEvidence.path", "must not contain NUL bytes")
        self.timestamp = _as_datetime(self.timestamp, "FileEvidence.timestamp")
        self.action = _as_enum(FileAction, self.action, "FileEvidence.action")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FileEvidence:
        parsed = _expect_object(
            data,
            "FileEvidence",
            required={"type", "path", "timestamp"},
            optional={"action"},
        )
        return cls(
            path=cast("str", parsed["path"]),
            timestamp=_as_datetime(parsed["timestamp"], "FileEvidence.timestamp"),
            action=_as_enum(FileAction, parsed.get("action", "modified"), "FileEvidence.action"),
        )


@dataclass(slots=True, kw_only=True)
class TestEvidence(_EvidenceBase):
    kind: ClassVar[EvidenceType] = EvidenceType.TEST
    __test__: ClassVar[bool] = False

    command: str
    timestamp: datetime
    passed: int = 0
    failed: int = 0
    total: int | None = None
    output: str = ""
    exit_code: int | None = None
    test_file: str | None = None

    def __post_init__(self) -> None:
        self.command = _as_str(self.command, "TestEvidence.command")
        self.timestamp = _as_datetime(self.timestamp, "TestEvidence.timestamp")
        self.passed = _as_int(self.passed, "TestEvidence.passed", minimum=0)
        self.failed = _as_int(self.failed, "TestEvidence.failed", minimum=0)
        self.total = _as_optional_int(self.total, "TestEvidence.total", minimum=0)
        if self.total is not None and self.total < self.passed + self.failed:
            _fail("TestEvidence.total", "must be >= passed + failed")
        self.output = _as_str(
            self.output, "TestEvidence.output", min_len=0, max_len=_MAX_OUTPUT, strip=False
        )
        self.exit_code = _as_optional_int(self.exit_code, "TestEvidence.exit_code")
        self.test_file = _as_optional_str(self.test_file, "TestEvidence.test_file")

    @property
    def succeeded(self) -> bool:
        if self.exit_code is not None and self.exit_code != 0:
            return False
        return self.failed == 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TestEvidence:
        parsed = _expect_object(
            data,
            "TestEvidence",
            required={"type", "command", "timestamp"},
            optional={"passed", "failed", "total", "output", "exit_code", "test_file"},
        )
        return cls(
            command=cast("str", parsed["command"]),
            timestamp=_as_datetime(parsed["timestamp"], "TestEvidence.timestamp"),
            passed=cast("int", parsed.get("passed", 0)),
            failed=cast("int", parsed.get("failed", 0)),
            total=cast("int | None", parsed.get("total")),
            output=cast("str", parsed.get("output", "")),
            exit_code=cast("int | None", parsed.get("exit_code")),
            test_file=cast("str | None", parsed.get("test_file")),
        )


@dataclass(slots=True, kw_only=True)
class NoteEvidence(_EvidenceBase):
    kind: ClassVar[EvidenceType] = EvidenceType.NOTE

    text: str
    timestamp: datetime
    author: str | None = None

    def __post_init__(self) -> None:
        self.text = _as_str(self.text, "NoteEvidence.text")
        self.timestamp = _as_datetime(self.timestamp, "NoteEvidence.timestamp")
        self.author = _as_optional_str(self.author, "NoteEvidence.author", max_len=128)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NoteEvidence:
        parsed = _expect_object(
            data,
            "NoteEvidence",
            required={"type", "text", "timestamp"},
            optional={"author"},
        )
        return cls(
            text=cast("str", parsed["text"]),
            timestamp=_as_datetime(parsed["timestamp"], "NoteEvidence.timestamp"),
            author=cast("str | None", parsed.get("author")),
        )


Evidence = CommandEvidence | FileEvidence | TestEvidence | NoteEvidence

_EvidenceClass = type[CommandEvidence] | type[FileEvidence] | type[TestEvidence] | type[NoteEvidence]

_EVIDENCE_TYPES: dict[EvidenceType, _EvidenceClass] = {
    EvidenceType.COMMAND: CommandEvidence,
    EvidenceType.FILE: FileEvidence,
    EvidenceType.TEST: TestEvidence,
    EvidenceType.NOTE: NoteEvidence,
}


def evidence_from_dict(data: Mapping[str, object], path: str = "Evidence") -> Evidence:
    """Decode one evidence record, dispatching on its ``type`` tag."""
    if not isinstance(data, Mapping):
        _fail(path, f"expected object, got {type(data).__name__}")
    kind = _as_enum(EvidenceType, data.get("type"), f"{path}.type")
    try:
        return _EVIDENCE_TYPES[kind].from_dict(data)
    except ValueError as exc:
        raise ValueError(f"{path}: {exc}") from exc


def evidence_timestamp(item: Evidence) -> datetime:
    match item:
        case CommandEvidence() | FileEvidence() | TestEvidence() | NoteEvidence():
            return item.timestamp
        case _:
            assert_never(item)


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Task(CanonicalModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    role: str = DEFAULT_ROLE
    status: TaskStatus = TaskStatus.OPEN
    blocked_by: tuple[str, ...] = ()
    wave: int | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    resolved_by: str | None = None
    completed_at: datetime | None = None
    evidence: tuple[Evidence, ...] = ()
    version: int = 1
    schema_version: int = TASK_SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_int(self.schema_version, "Task.schema_version", minimum=1)
        self.id = _as_name(self.id, "Task.id", domain_ids.validate_task_id)
        self.title = _as_str(self.title, "Task.title", max_len=_MAX_TITLE)
        self.description = _as_str(self.description, "Task.description", min_len=0)
        self.role = _as_str(self.role, "Task.role", max_len=128)
        self.status = _as_enum(TaskStatus, self.status, "Task.status")

        blocked_by = _as_str_tuple(self.blocked_by, "Task.blocked_by")
        for index, dependency in enumerate(blocked_by):
            _as_name(dependency, f"Task.blocked_by[{index}]", domain_ids.validate_task_id)
        if self.id in blocked_by:
            _fail("Task.blocked_by", "a task cannot block itself")
        self.blocked_by = tuple(sorted(set(blocked_by)))

        self.wave = _as_optional_int(self.wave, "Task.wave", minimum=1)
        self.claimed_by = _as_optional_str(self.claimed_by, "Task.claimed_by", max_len=128)
        self.claimed_at = _as_optional_datetime(self.claimed_at, "Task.claimed_at")
        self.resolved_by = _as_optional_str(self.resolved_by, "Task.resolved_by", max_len=128)
        self.completed_at = _as_optional_datetime(self.completed_at, "Task.completed_at")
        self.evidence = _as_evidence_tuple(self.evidence, "Task.evidence")
        self.created_at = _as_datetime(self.created_at, "Task.created_at")
        self.updated_at = _as_datetime(self.updated_at, "Task.updated_at")
        self.version = _as_int(self.version, "Task.version", minimum=1)

        claimed = (self.claimed_by is not None, self.claimed_at is not None)
        if self.status is TaskStatus.IN_PROGRESS:
            if claimed != (True, True):
                _fail("Task", "in_progress tasks must carry claimed_by and claimed_at")
        elif claimed != (False, False):
            _fail("Task", f"{self.status.value} tasks must not carry claimed_by or claimed_at")

        completion = (self.resolved_by is not None, self.completed_at is not None)
        if self.status is TaskStatus.RESOLVED:
            if completion != (True, True):
                _fail("Task", "resolved tasks must carry resolved_by and completed_at")
        elif completion != (False, False):
            _fail("Task", "only resolved tasks may carry resolved_by or completed_at")

    @property
    def is_claimed(self) -> bool:
        return self.claimed_by is not None

    def unresolved_dependencies(self, resolved_ids: set[str] | frozenset[str]) -> tuple[str, ...]:
        return tuple(dep for dep in self.blocked_by if dep not in resolved_ids)

    def last_activity(self) -> datetime | None:
        """Newest of ``claimed_at`` and the evidence timestamps."""
        if self.claimed_at is None:
            return None
        moments = [self.claimed_at, *(evidence_timestamp(item) for item in self.evidence)]
        return max(moments)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Task:
        parsed = _expect_object(
            data,
            "Task",
            required={"id", "title", "status", "created_at", "updated_at"},
            optional={
                "description",
                "role",
                "blocked_by",
                "wave",
                "claimed_by",
                "claimed_at",
                "resolved_by",
                "completed_at",
                "evidence",
                "version",
                "schema_version",
            },
        )
        evidence_items = _as_sequence(parsed.get("evidence", []), "Task.evidence")
        return cls(
            id=cast("str", parsed["id"]),
            title=cast("str", parsed["title"]),
            description=cast("str", parsed.get("description", "")),
            role=cast("str", parsed.get("role", DEFAULT_ROLE)),
            status=_as_enum(TaskStatus, parsed["status"], "Task.status"),
            blocked_by=tuple(_as_str_tuple(parsed.get("blocked_by", []), "Task.blocked_by")),
            wave=cast("int | None", parsed.get("wave")),
            claimed_by=cast("str | None", parsed.get("claimed_by")),
            claimed_at=_as_optional_datetime(parsed.get("claimed_at"), "Task.claimed_at"),
            resolved_by=cast("str | None", parsed.get("resolved_by")),
            completed_at=_as_optional_datetime(parsed.get("completed_at"), "Task.completed_at"),
            evidence=tuple(
                evidence_from_dict(_as_mapping(item, f"Task.evidence[{index}]"), f"Task.evidence[{index}]")
                for index, item in enumerate(evidence_items)
            ),
            created_at=_as_datetime(parsed["created_at"], "Task.created_at"),
            updated_at=_as_datetime(parsed["updated_at"], "Task.updated_at"),
            version=cast("int", parsed.get("version", 1)),
            schema_version=cast("int", parsed.get("schema_version", TASK_SCHEMA_VERSION)),
        )


# ---------------------------------------------------------------------------
# Waves and verification
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Wave(CanonicalModel):
    id: int
    tasks: tuple[str, ...]
    status: WaveStatus = WaveStatus.PLANNING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    verified_at: datetime | None = None

    def __post_init__(self) -> None:
        self.id = _as_int(self.id, "Wave.id", minimum=1)
        self.tasks = tuple(sorted(set(_as_str_tuple(self.tasks, "Wave.tasks"))))
        self.status = _as_enum(WaveStatus, self.status, "Wave.status")
        self.started_at = _as_optional_datetime(self.started_at, "Wave.started_at")
        self.completed_at = _as_optional_datetime(self.completed_at, "Wave.completed_at")
        self.verified_at = _as_optional_datetime(self.verified_at, "Wave.verified_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Wave:
        parsed = _expect_object(
            data,
            "Wave",
            required={"id", "tasks", "status"},
            optional={"started_at", "completed_at", "verified_at"},
        )
        return cls(
            id=cast("int", parsed["id"]),
            tasks=_as_str_tuple(parsed["tasks"], "Wave.tasks"),
            status=_as_enum(WaveStatus, parsed["status"], "Wave.status"),
            started_at=_as_optional_datetime(parsed.get("started_at"), "Wave.started_at"),
            completed_at=_as_optional_datetime(parsed.get("completed_at"), "Wave.completed_at"),
            verified_at=_as_optional_datetime(parsed.get("verified_at"), "Wave.verified_at"),
        )


@dataclass(slots=True)
class WavePlan(CanonicalModel):
    waves: tuple[Wave, ...]
    current_wave: int
    created_at: datetime
    updated_at: datetime
    total_waves: int = 0
    schema_version: int = WAVES_SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_int(self.schema_version, "WavePlan.schema_version", minimum=1)
        waves = tuple(self.waves)
        for index, wave in enumerate(waves):
            if not isinstance(wave, Wave):
                _fail(f"WavePlan.waves[{index}]", f"expected Wave, got {type(wave).__name__}")
            if wave.id != index + 1:
                _fail(f"WavePlan.waves[{index}]", f"wave ids must be consecutive from 1 (got {wave.id})")
        self.waves = waves

        seen: set[str] = set()
        for wave in waves:
            overlap = seen.intersection(wave.tasks)
            if overlap:
                _fail("WavePlan.waves", f"tasks assigned to more than one wave: {sorted(overlap)}")
            seen.update(wave.tasks)

        self.total_waves = len(waves)
        self.current_wave = _as_int(self.current_wave, "WavePlan.current_wave", minimum=0)
        if waves and not 1 <= self.current_wave <= len(waves):
            _fail("WavePlan.current_wave", f"must be between 1 and {len(waves)}")
        if not waves and self.current_wave != 0:
            _fail("WavePlan.current_wave", "must be 0 when there are no waves")
        self.created_at = _as_datetime(self.created_at, "WavePlan.created_at")
        self.updated_at = _as_datetime(self.updated_at, "WavePlan.updated_at")

    def wave(self, wave_id: int) -> Wave | None:
        if 1 <= wave_id <= len(self.waves):
            return self.waves[wave_id - 1]
        return None

    def wave_of(self, task_id: str) -> Wave | None:
        for wave in self.waves:
            if task_id in wave.tasks:
                return wave
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WavePlan:
        parsed = _expect_object(
            data,
            "WavePlan",
            required={"waves", "current_wave", "created_at", "updated_at"},
            optional={"total_waves", "schema_version"},
        )
        raw_waves = _as_sequence(parsed["waves"], "WavePlan.waves")
        plan = cls(
            waves=tuple(
                Wave.from_dict(_as_mapping(item, f"WavePlan.waves[{index}]"))
                for index, item in enumerate(raw_waves)
            ),
            current_wave=cast("int", parsed["current_wave"]),
            created_at=_as_datetime(parsed["created_at"], "WavePlan.created_at"),
            updated_at=_as_datetime(parsed["updated_at"], "WavePlan.updated_at"),
            schema_version=cast("int", parsed.get("schema_version", WAVES_SCHEMA_VERSION)),
        )
        declared = parsed.get("total_waves")
        if declared is not None and declared != plan.total_waves:
            _fail("WavePlan.total_waves", f"declares {declared} but lists {plan.total_waves} waves")
        return plan


@dataclass(slots=True)
class VerificationCheck(CanonicalModel):
    type: str
    description: str
    status: CheckStatus
    timestamp: datetime
    output: str = ""
    exit_code: int | None = None

    def __post_init__(self) -> None:
        self.type = _as_str(self.type, "VerificationCheck.type", max_len=64)
        self.description = _as_str(self.description, "VerificationCheck.description")
        self.status = _as_enum(CheckStatus, self.status, "VerificationCheck.status")
        self.timestamp = _as_datetime(self.timestamp, "VerificationCheck.timestamp")
        self.output = _as_str(
            self.output, "VerificationCheck.output", min_len=0, max_len=_MAX_OUTPUT, strip=False
        )
        self.exit_code = _as_optional_int(self.exit_code, "VerificationCheck.exit_code")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> VerificationCheck:
        parsed = _expect_object(
            data,
            "VerificationCheck",
            required={"type", "description", "status", "timestamp"},
            optional={"output", "exit_code"},
        )
        return cls(
            type=cast("str", parsed["type"]),
            description=cast("str", parsed["description"]),
            status=_as_enum(CheckStatus, parsed["status"], "VerificationCheck.status"),
            timestamp=_as_datetime(parsed["timestamp"], "VerificationCheck.timestamp"),
            output=cast("str", parsed.get("output", "")),
            exit_code=cast("int | None", parsed.get("exit_code")),
        )


@dataclass(slots=True)
class VerificationRecord(CanonicalModel):
    wave_id: int
    status: VerificationStatus
    verified_at: datetime
    tasks_verified: tuple[str, ...] = ()
    checks: tuple[VerificationCheck, ...] = ()
    issues: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.wave_id = _as_int(self.wave_id, "VerificationRecord.wave_id", minimum=1)
        self.status = _as_enum(VerificationStatus, self.status, "VerificationRecord.status")
        self.verified_at = _as_datetime(self.verified_at, "VerificationRecord.verified_at")
        self.tasks_verified = tuple(
            sorted(set(_as_str_tuple(self.tasks_verified, "VerificationRecord.tasks_verified")))
        )
        self.checks = tuple(self.checks)
        self.issues = _as_str_tuple(self.issues, "VerificationRecord.issues")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> VerificationRecord:
        parsed = _expect_object(
            data,
            "VerificationRecord",
            required={"wave_id", "status", "verified_at"},
            optional={"tasks_verified", "checks", "issues"},
        )
        raw_checks = _as_sequence(parsed.get("checks", []), "VerificationRecord.checks")
        return cls(
            wave_id=cast("int", parsed["wave_id"]),
            status=_as_enum(VerificationStatus, parsed["status"], "VerificationRecord.status"),
            verified_at=_as_datetime(parsed["verified_at"], "VerificationRecord.verified_at"),
            tasks_verified=_as_str_tuple(
                parsed.get("tasks_verified", []), "VerificationRecord.tasks_verified"
            ),
            checks=tuple(
                VerificationCheck.from_dict(_as_mapping(item, f"VerificationRecord.checks[{index}]"))
                for index, item in enumerate(raw_checks)
            ),
            issues=_as_str_tuple(parsed.get("issues", []), "VerificationRecord.issues"),
        )


# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ProjectStats(CanonicalModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0

    def __post_init__(self) -> None:
        for name in ("total", "open", "in_progress", "resolved"):
            setattr(self, name, _as_int(getattr(self, name), f"ProjectStats.{name}", minimum=0))
        if self.open + self.in_progress + self.resolved != self.total:
            _fail("ProjectStats", "open + in_progress + resolved must equal total")

    @classmethod
    def from_tasks(cls, tasks: tuple[Task, ...] | list[Task]) -> ProjectStats:
        counts = {status: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status] += 1
        return cls(
            total=len(tasks),
            open=counts[TaskStatus.OPEN],
            in_progress=counts[TaskStatus.IN_PROGRESS],
            resolved=counts[TaskStatus.RESOLVED],
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ProjectStats:
        parsed = _expect_object(
            data,
            "ProjectStats",
            required={"total", "open", "in_progress", "resolved"},
        )
        return cls(
            total=cast("int", parsed["total"]),
            open=cast("int", parsed["open"]),
            in_progress=cast("int", parsed["in_progress"]),
            resolved=cast("int", parsed["resolved"]),
        )


@dataclass(slots=True)
class Project(CanonicalModel):
    project: str
    team: str
    created_at: datetime
    updated_at: datetime
    goal: str = ""
    stats: ProjectStats = field(default_factory=ProjectStats)
    cleaned_at: datetime | None = None
    schema_version: int = PROJECT_SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_int(self.schema_version, "Project.schema_version", minimum=1)
        self.project = _as_name(self.project, "Project.project", domain_ids.validate_name)
        self.team = _as_name(self.team, "Project.team", domain_ids.validate_name)
        self.goal = _as_str(self.goal, "Project.goal", min_len=0)
        if not isinstance(self.stats, ProjectStats):
            _fail("Project.stats", f"expected ProjectStats, got {type(self.stats).__name__}")
        self.created_at = _as_datetime(self.created_at, "Project.created_at")
        self.updated_at = _as_datetime(self.updated_at, "Project.updated_at")
        self.cleaned_at = _as_optional_datetime(self.cleaned_at, "Project.cleaned_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Project:
        parsed = _expect_object(
            data,
            "Project",
            required={"project", "team", "created_at", "updated_at"},
            optional={"goal", "stats", "cleaned_at", "schema_version"},
        )
        raw_stats = parsed.get("stats")
        return cls(
            project=cast("str", parsed["project"]),
            team=cast("str", parsed["team"]),
            goal=cast("str", parsed.get("goal", "")),
            created_at=_as_datetime(parsed["created_at"], "Project.created_at"),
            updated_at=_as_datetime(parsed["updated_at"], "Project.updated_at"),
            stats=(
                ProjectStats()
                if raw_stats is None
                else ProjectStats.from_dict(_as_mapping(raw_stats, "Project.stats"))
            ),
            cleaned_at=_as_optional_datetime(parsed.get("cleaned_at"), "Project.cleaned_at"),
            schema_version=cast("int", parsed.get("schema_version", PROJECT_SCHEMA_VERSION)),
        )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return cast("Mapping[str, object]", value)


def _as_name(value: object, path: str, validator: Callable[[str], str]) -> str:
    text = _as_str(value, path, strip=False, max_len=128)
    try:
        validator(text)
    except ValueError as exc:
        _fail(path, str(exc))
    return text


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_int(value: object, path: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, minimum=minimum)


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _as_optional_datetime(value: object, path: str) -> datetime | None:
    if value is None:
        return None
    return _as_datetime(value, path)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    if len(values) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")
    return tuple(_as_str(item, f"{path}[{index}]") for index, item in enumerate(values))


def _as_evidence_tuple(value: object, path: str) -> tuple[Evidence, ...]:
    items = _as_sequence(value, path)
    for index, item in enumerate(items):
        if not isinstance(item, (CommandEvidence, FileEvidence, TestEvidence, NoteEvidence)):
            _fail(f"{path}[{index}]", f"expected evidence record, got {type(item).__name__}")
    return cast("tuple[Evidence, ...]", tuple(items))


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, CanonicalModel):
        return cast("JSONValue", value.to_dict())
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


__all__ = [
    "CanonicalModel",
    "Clock",
    "CheckStatus",
    "CommandEvidence",
    "Evidence",
    "EvidenceType",
    "FileAction",
    "FileEvidence",
    "JSONValue",
    "NoteEvidence",
    "Project",
    "ProjectStats",
    "Task",
    "TaskStatus",
    "TestEvidence",
    "VerificationCheck",
    "VerificationRecord",
    "VerificationStatus",
    "Wave",
    "WavePlan",
    "WaveStatus",
    "evidence_from_dict",
    "evidence_timestamp",
    "parse_iso8601z",
    "to_iso8601z",
    "utc_now",
]
