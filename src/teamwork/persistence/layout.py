"""Directory layout of one (project, team) namespace on the shared filesystem."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from teamwork.constants import (
    INBOXES_DIR,
    LOGS_DIR,
    PROJECT_FILE,
    RECORD_SUFFIX,
    TASKS_DIR,
    VERIFICATION_DIR,
    WAVES_FILE,
)
from teamwork.domain import ids as domain_ids
from teamwork.utils.fs import ensure_directory


@dataclass(frozen=True, slots=True)
class ProjectLayout:
    """
    Paths beneath ``<base_dir>/<project>/<team>``::

        project.json
        waves.json
        tasks/<task-id>.json
        inboxes/<actor-id>.json
        verification/wave-<n>.json
    """

    base_dir: Path
    project: str
    team: str

    def __post_init__(self) -> None:
        domain_ids.validate_name(self.project, "project")
        domain_ids.validate_name(self.team, "team")
        object.__setattr__(self, "base_dir", Path(self.base_dir).expanduser())

    @property
    def root(self) -> Path:
        return self.base_dir / self.project / self.team

    @property
    def project_file(self) -> Path:
        return self.root / PROJECT_FILE

    @property
    def waves_file(self) -> Path:
        return self.root / WAVES_FILE

    @property
    def tasks_dir(self) -> Path:
        return self.root / TASKS_DIR

    @property
    def inboxes_dir(self) -> Path:
        return self.root / INBOXES_DIR

    @property
    def verification_dir(self) -> Path:
        return self.root / VERIFICATION_DIR

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / LOGS_DIR

    def task_path(self, task_id: str) -> Path:
        return self.tasks_dir / f"{domain_ids.validate_task_id(task_id)}{RECORD_SUFFIX}"

    def inbox_path(self, actor_id: str) -> Path:
        return self.inboxes_dir / f"{domain_ids.validate_actor_id(actor_id)}{RECORD_SUFFIX}"

    def verification_key(self, wave_id: int) -> str:
        if wave_id <= 0:
            raise ValueError("wave_id must be >= 1")
        return f"wave-{wave_id}"

    def exists(self) -> bool:
        return self.project_file.is_file()

    def ensure(self) -> None:
        for directory in (self.root, self.tasks_dir, self.inboxes_dir, self.verification_dir):
            ensure_directory(directory)


__all__ = ["ProjectLayout"]
