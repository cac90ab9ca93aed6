"""Project metadata (``project.json``) lifecycle: create, read, stats refresh and clean."""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from teamwork.domain.errors import AlreadyExistsError, InvalidTransitionError, NotFoundError
from teamwork.domain.models import Clock, Project, ProjectStats, Task, TaskStatus, utc_now
from teamwork.persistence.backend import FileSystemBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockManager
from teamwork.persistence.records import RecordStore
from teamwork.utils.fs import ensure_directory, safe_delete

_PROJECT_KEY = "project"
_WAVES_KEY = "waves"


@dataclass(frozen=True, slots=True)
class CleanResult:
    project: Project
    removed: tuple[str, ...]
    already_clean: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "project": self.project.to_dict(),
            "removed": list(self.removed),
            "already_clean": self.already_clean,
        }


class ProjectStore:
    def __init__(
        self,
        layout: ProjectLayout,
        locks: LockManager,
        *,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._layout = layout
        self._locks = locks
        self._clock = clock
        self._records: RecordStore[Project] = RecordStore(
            FileSystemBackend(layout.root),
            locks,
            decode=Project.from_dict,
            encode=Project.to_dict,
            label="project",
        )
        self._tasks: RecordStore[Task] = RecordStore(
            FileSystemBackend(layout.tasks_dir),
            locks,
            decode=Task.from_dict,
            encode=Task.to_dict,
            label="task",
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def layout(self) -> ProjectLayout:
        return self._layout

    def exists(self) -> bool:
        return self._layout.exists()

    def create(self, owner: str, *, goal: str = "") -> Project:
        if self.exists():
            raise AlreadyExistsError(
                f"project {self._layout.project}/{self._layout.team} already exists"
            )
        self._layout.ensure()
        now = self._clock()
        project = Project(
            project=self._layout.project,
            team=self._layout.team,
            goal=goal,
            created_at=now,
            updated_at=now,
        )
        try:
            self._records.create(_PROJECT_KEY, project, owner)
        except AlreadyExistsError:
            raise AlreadyExistsError(
                f"project {self._layout.project}/{self._layout.team} already exists"
            ) from None
        self._logger.info(
            "project_created", project=project.project, team=project.team, owner=owner
        )
        return project

    def get(self) -> Project:
        project = self._records.read(_PROJECT_KEY)
        if project is None:
            raise NotFoundError(
                f"project {self._layout.project}/{self._layout.team} not found"
            )
        return project

    def require(self) -> Project:
        """Like ``get`` but also ensures the working directories exist."""
        project = self.get()
        self._layout.ensure()
        return project

    def refresh_stats(self, tasks: Sequence[Task], owner: str) -> Project:
        stats = ProjectStats.from_tasks(list(tasks))

        def apply(current: Project) -> Project:
            if current.stats == stats:
                return current
            return dataclasses.replace(current, stats=stats, updated_at=self._clock())

        self.get()
        return self._records.update(_PROJECT_KEY, apply, owner)

    def clean(self, owner: str) -> CleanResult:
        """
        Remove task, verification and wave data while keeping project metadata.

        Cleaning is a planning-time operation: it is refused while any task is claimed.
        Task locks are not taken, so workers must not claim while a clean runs.
        Cleaning again with nothing left to remove is a no-op that reports the original
        ``cleaned_at``.
        """
        with self._records.locked(_PROJECT_KEY, owner):
            project = self.get()
            claimed = sorted(
                task.id for task in self._tasks.read_all() if task.status is TaskStatus.IN_PROGRESS
            )
            if claimed:
                raise InvalidTransitionError(
                    f"cannot clean project {project.project}/{project.team}: "
                    f"tasks in progress: {', '.join(claimed)}"
                )
            waves_path = FileSystemBackend(self._layout.root).resource(_WAVES_KEY)
            if project.cleaned_at is not None and not self._has_data(waves_path):
                return CleanResult(project, (), already_clean=True)

            removed: list[str] = []
            for target in (self._layout.tasks_dir, self._layout.verification_dir):
                if target.exists():
                    safe_delete(target, self._layout.root)
                    removed.append(target.name)
            if waves_path.exists():
                safe_delete(waves_path, self._layout.root)
                removed.append(waves_path.name)
            ensure_directory(self._layout.tasks_dir)
            ensure_directory(self._layout.verification_dir)

            now = self._clock()
            cleaned = self._records.update(
                _PROJECT_KEY,
                lambda current: dataclasses.replace(
                    current, stats=ProjectStats(), cleaned_at=now, updated_at=now
                ),
                owner,
            )

        self._logger.info(
            "project_cleaned",
            project=project.project,
            team=project.team,
            owner=owner,
            removed=removed,
        )
        return CleanResult(cleaned, tuple(removed))

    def _has_data(self, waves_path: Path) -> bool:
        if waves_path.exists():
            return True
        return any(
            directory.exists() and any(directory.iterdir())
            for directory in (self._layout.tasks_dir, self._layout.verification_dir)
        )


__all__ = ["CleanResult", "ProjectStore"]
