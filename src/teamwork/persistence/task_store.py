"""
Task store: one JSON record per task under ``tasks/``.

`TaskStore.update` is the single serialization point for task mutations. It validates
every proposed change against the task invariants before the atomic write:
- identity, role, dependencies and creation time never change,
- resolved tasks are immutable,
- status moves only along open -> in_progress -> {open, resolved},
- evidence is append-only,
- title, description and wave are editable only while the task is open.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from teamwork.constants import DEFAULT_ROLE
from teamwork.domain.errors import InvalidTransitionError, NotFoundError
from teamwork.domain.models import Clock, Task, TaskStatus, utc_now
from teamwork.persistence.backend import FileSystemBackend, StorageBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockManager
from teamwork.persistence.records import RecordStore

TaskMutator = Callable[[Task], Task]

_ALLOWED_TRANSITIONS: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset(
    {
        (TaskStatus.OPEN, TaskStatus.OPEN),
        (TaskStatus.OPEN, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.OPEN),
        (TaskStatus.IN_PROGRESS, TaskStatus.RESOLVED),
    }
)


@dataclass(frozen=True, slots=True)
class TaskFilter:
    """Selection criteria for ``TaskStore.list``; ``available`` means claimable now."""

    status: TaskStatus | None = None
    role: str | None = None
    claimed_by: str | None = None
    wave: int | None = None
    available: bool = False

    def matches(self, task: Task, resolved_ids: frozenset[str]) -> bool:
        if self.status is not None and task.status is not self.status:
            return False
        if self.role is not None and task.role != self.role:
            return False
        if self.claimed_by is not None and task.claimed_by != self.claimed_by:
            return False
        if self.wave is not None and task.wave != self.wave:
            return False
        if self.available:
            return task.status is TaskStatus.OPEN and not task.unresolved_dependencies(resolved_ids)
        return True


@dataclass(frozen=True, slots=True)
class TaskDeletion:
    task: Task
    orphaned_dependents: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "deleted": self.task.id,
            "orphaned_dependents": list(self.orphaned_dependents),
        }


class TaskStore:
    def __init__(
        self,
        layout: ProjectLayout,
        locks: LockManager,
        *,
        backend: StorageBackend | None = None,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._layout = layout
        self._clock = clock
        self._records: RecordStore[Task] = RecordStore(
            backend if backend is not None else FileSystemBackend(layout.tasks_dir),
            locks,
            decode=Task.from_dict,
            encode=Task.to_dict,
            label="task",
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def layout(self) -> ProjectLayout:
        return self._layout

    def create(
        self,
        task_id: str,
        title: str,
        *,
        owner: str,
        description: str = "",
        role: str = DEFAULT_ROLE,
        blocked_by: Iterable[str] = (),
        wave: int | None = None,
    ) -> Task:
        now = self._clock()
        task = Task(
            id=task_id,
            title=title,
            description=description,
            role=role,
            blocked_by=tuple(blocked_by),
            wave=wave,
            created_at=now,
            updated_at=now,
        )
        self._records.create(task.id, task, owner)
        self._logger.info("task_created", task_id=task.id, owner=owner, blocked_by=list(task.blocked_by))
        return task

    def get(self, task_id: str) -> Task:
        return self._records.require(task_id)

    def find(self, task_id: str) -> Task | None:
        return self._records.read(task_id)

    def list(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """All tasks ordered by id; a corrupt record aborts the listing."""
        tasks = self._records.read_all()
        if task_filter is None:
            return tasks
        resolved = resolved_ids(tasks)
        return [task for task in tasks if task_filter.matches(task, resolved)]

    def update(self, task_id: str, mutator: TaskMutator, owner: str) -> Task:
        def apply(current: Task) -> Task:
            proposed = mutator(current)
            if proposed is current:
                return current
            validate_task_change(current, proposed)
            return dataclasses.replace(
                proposed,
                updated_at=self._clock(),
                version=current.version + 1,
            )

        return self._records.update(task_id, apply, owner)

    def delete(self, task_id: str, owner: str, *, force: bool = False) -> TaskDeletion:
        """Administrative removal of an open, unclaimed task during planning."""
        dependents = tuple(task.id for task in self._records.read_all() if task_id in task.blocked_by)

        def guard(task: Task) -> None:
            if task.status is not TaskStatus.OPEN:
                raise InvalidTransitionError(
                    f"task {task_id} is {task.status.value}; only open tasks can be deleted"
                )
            if dependents and not force:
                raise InvalidTransitionError(
                    f"task {task_id} blocks {', '.join(dependents)}; pass force to delete anyway"
                )

        try:
            deleted = self._records.delete(task_id, owner, guard=guard)
        except NotFoundError:
            raise NotFoundError(f"task {task_id} not found") from None
        self._logger.info(
            "task_deleted", task_id=task_id, owner=owner, orphaned_dependents=list(dependents)
        )
        return TaskDeletion(deleted, dependents)


def resolved_ids(tasks: Sequence[Task]) -> frozenset[str]:
    return frozenset(task.id for task in tasks if task.status is TaskStatus.RESOLVED)


def validate_task_change(current: Task, proposed: Task) -> None:
    """Raise ``InvalidTransitionError`` when ``proposed`` is not a legal successor."""
    if current.status is TaskStatus.RESOLVED:
        raise InvalidTransitionError(f"task {current.id} is resolved and can no longer change")

    for name in ("id", "role", "blocked_by", "created_at", "schema_version"):
        if getattr(proposed, name) != getattr(current, name):
            raise InvalidTransitionError(f"task {current.id}: field {name!r} is immutable")

    if (current.status, proposed.status) not in _ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(
            f"task {current.id}: illegal status change "
            f"{current.status.value} -> {proposed.status.value}"
        )

    if proposed.evidence[: len(current.evidence)] != current.evidence:
        raise InvalidTransitionError(f"task {current.id}: evidence is append-only")

    if current.status is not TaskStatus.OPEN:
        for name in ("title", "description", "wave"):
            if getattr(proposed, name) != getattr(current, name):
                raise InvalidTransitionError(
                    f"task {current.id}: {name!r} can only change while the task is open"
                )

    if (
        current.status is TaskStatus.IN_PROGRESS
        and proposed.status is TaskStatus.IN_PROGRESS
        and (proposed.claimed_by, proposed.claimed_at) != (current.claimed_by, current.claimed_at)
    ):
        raise InvalidTransitionError(
            f"task {current.id}: claims are transferred by releasing, not by overwriting"
        )


__all__ = [
    "TaskDeletion",
    "TaskFilter",
    "TaskMutator",
    "TaskStore",
    "resolved_ids",
    "validate_task_change",
]
