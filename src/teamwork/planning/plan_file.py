"""
Bulk task import from a YAML (or JSON) plan file.

Accepted shapes are a top-level list of task entries or a mapping with a ``tasks`` list:

    tasks:
      - id: schema
        title: Define the storage schema
        role: backend
      - id: api
        title: Expose the API
        blocked_by: [schema]

The whole file is validated (field types, duplicate ids, ids already present in the
store, unknown dependencies and cycles) before the first task is written.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from teamwork.constants import DEFAULT_ROLE
from teamwork.domain.errors import CycleError, TeamworkError
from teamwork.domain.ids import validate_task_id
from teamwork.domain.models import Task
from teamwork.persistence.task_store import TaskStore
from teamwork.planning.task_graph import TaskGraph

_ENTRY_FIELDS = frozenset({"id", "title", "description", "role", "blocked_by"})


class PlanFileError(TeamworkError):
    """A plan file failed validation; ``issues`` lists every problem found."""

    code = "invalid_plan"

    def __init__(self, path: str, issues: Sequence[str]) -> None:
        self.path = path
        self.issues = tuple(issues)
        preview = "; ".join(self.issues[:5])
        suffix = f" (+{len(self.issues) - 5} more)" if len(self.issues) > 5 else ""
        super().__init__(f"{path}: {preview}{suffix}")


@dataclass(frozen=True, slots=True)
class PlannedTask:
    id: str
    title: str
    description: str = ""
    role: str = DEFAULT_ROLE
    blocked_by: tuple[str, ...] = field(default_factory=tuple)


def load_plan_file(path: Path | str) -> list[PlannedTask]:
    """Parse and shape-check ``path``; raises ``PlanFileError`` listing all issues."""
    plan_path = Path(path)
    try:
        with plan_path.open("r", encoding="utf-8") as handle:
            loaded: object = yaml.safe_load(handle)
    except OSError as exc:
        raise PlanFileError(plan_path.as_posix(), [f"cannot read file ({exc})"]) from exc
    except yaml.YAMLError as exc:
        raise PlanFileError(plan_path.as_posix(), [f"invalid YAML ({exc})"]) from exc
    return parse_plan(loaded, source=plan_path.as_posix())


def parse_plan(payload: object, *, source: str = "<plan>") -> list[PlannedTask]:
    records: Sequence[object]
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, Mapping) and isinstance(payload.get("tasks"), list):
        records = payload["tasks"]
    else:
        raise PlanFileError(source, ["must be a list or contain a 'tasks' list"])

    issues: list[str] = []
    planned: list[PlannedTask] = []
    seen: set[str] = set()
    for index, record in enumerate(records):
        location = f"tasks[{index}]"
        try:
            entry = _parse_entry(record, location)
        except ValueError as exc:
            issues.append(str(exc))
            continue
        if entry.id in seen:
            issues.append(f"{location}: duplicate task id {entry.id!r}")
            continue
        seen.add(entry.id)
        planned.append(entry)

    if not records:
        issues.append("plan contains no tasks")
    if issues:
        raise PlanFileError(source, issues)
    return planned


def import_plan(
    store: TaskStore,
    planned: Sequence[PlannedTask],
    owner: str,
    *,
    source: str = "<plan>",
    logger: Any | None = None,
) -> list[Task]:
    """
    Create every planned task, dependencies first.

    Dependencies may name tasks already in the store. Cycles across the combined graph
    raise ``CycleError`` before anything is written.
    """
    log = logger if logger is not None else structlog.get_logger(__name__)
    existing = {task.id: task for task in store.list()}
    planned_ids = {entry.id for entry in planned}

    issues: list[str] = []
    for entry in planned:
        if entry.id in existing:
            issues.append(f"task {entry.id!r} already exists")
        for dependency in entry.blocked_by:
            if dependency not in planned_ids and dependency not in existing:
                issues.append(f"task {entry.id!r} depends on unknown task {dependency!r}")
    if issues:
        raise PlanFileError(source, issues)

    graph = TaskGraph(nodes=[*existing, *planned_ids])
    for task in existing.values():
        for dependency in task.blocked_by:
            if dependency in existing:
                graph.add_edge(dependency, task.id)
    for entry in planned:
        for dependency in entry.blocked_by:
            graph.add_edge(dependency, entry.id)
    cycles = graph.detect_cycles()
    if cycles:
        raise CycleError(cycles)

    by_id = {entry.id: entry for entry in planned}
    created: list[Task] = []
    for task_id in graph.topological_sort():
        entry = by_id.get(task_id)
        if entry is None:
            continue
        created.append(
            store.create(
                entry.id,
                entry.title,
                owner=owner,
                description=entry.description,
                role=entry.role,
                blocked_by=entry.blocked_by,
            )
        )
    log.info("plan_imported", source=source, owner=owner, task_count=len(created))
    return created


def _parse_entry(record: object, location: str) -> PlannedTask:
    if not isinstance(record, Mapping):
        raise ValueError(f"{location}: must be an object")
    unknown = sorted(str(key) for key in record if key not in _ENTRY_FIELDS)
    if unknown:
        raise ValueError(f"{location}: unknown field(s) {', '.join(unknown)}")

    task_id = record.get("id")
    title = record.get("title")
    if not isinstance(task_id, str):
        raise ValueError(f"{location}.id: must be a string")
    validate_task_id(task_id)
    if not isinstance(title, str) or not title.strip():
        raise ValueError(f"{location}.title: must be a non-empty string")

    description = record.get("description", "")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise ValueError(f"{location}.description: must be a string")

    role = record.get("role", DEFAULT_ROLE)
    if not isinstance(role, str) or not role.strip():
        raise ValueError(f"{location}.role: must be a non-empty string")

    raw_blocked_by = record.get("blocked_by", [])
    if raw_blocked_by is None:
        raw_blocked_by = []
    if not isinstance(raw_blocked_by, list) or not all(
        isinstance(item, str) for item in raw_blocked_by
    ):
        raise ValueError(f"{location}.blocked_by: must be a list of task ids")
    if task_id in raw_blocked_by:
        raise ValueError(f"{location}.blocked_by: task {task_id!r} cannot depend on itself")

    return PlannedTask(
        id=task_id,
        title=title.strip(),
        description=description,
        role=role,
        blocked_by=tuple(sorted(set(raw_blocked_by))),
    )


__all__ = ["PlanFileError", "PlannedTask", "import_plan", "load_plan_file", "parse_plan"]
