"""Wiring of one project/team: stores, claim protocol, scheduler, reclaimer and mailbox."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from teamwork.config.schema import default_config
from teamwork.control_plane.claims import ClaimProtocol
from teamwork.control_plane.reclaimer import ReclaimPolicy, StaleClaimReclaimer
from teamwork.domain.models import Clock, TaskStatus, to_iso8601z, utc_now
from teamwork.mailbox import Mailbox
from teamwork.persistence import (
    LockManager,
    ProjectLayout,
    ProjectStore,
    TaskStore,
    WaveStore,
)
from teamwork.persistence.task_store import resolved_ids
from teamwork.planning.waves import WaveScheduler
from teamwork.utils.concurrency import RetryPolicy


class TeamCoordinator:
    """
    All coordination components for one ``<project>/<team>`` directory.

    Components share one ``LockManager`` and clock; ``config`` uses the sections of
    ``teamwork.toml`` (missing sections fall back to defaults).
    """

    def __init__(
        self,
        project: str,
        team: str,
        *,
        config: Mapping[str, Any] | None = None,
        base_dir: Path | str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        settings: Mapping[str, Any] = config if config is not None else default_config()
        defaults = default_config()
        paths = settings.get("paths", defaults["paths"])
        locks = settings.get("locks", defaults["locks"])
        claims = settings.get("claims", defaults["claims"])
        mailbox = settings.get("mailbox", defaults["mailbox"])

        root = base_dir if base_dir is not None else paths["base_dir"]
        self.layout = ProjectLayout(Path(root), project, team)
        self.locks = LockManager(
            timeout_seconds=float(locks["timeout_seconds"]),
            poll_interval_seconds=float(locks["poll_interval_seconds"]),
            stale_after_seconds=float(locks["stale_after_seconds"]),
            clock=clock,
        )
        self.projects = ProjectStore(self.layout, self.locks, clock=clock)
        self.tasks = TaskStore(self.layout, self.locks, clock=clock)
        self.waves = WaveStore(self.layout, self.locks)
        self.claims = ClaimProtocol(
            self.tasks,
            retry_policy=RetryPolicy(
                max_attempts=int(claims["max_attempts"]),
                initial_delay_seconds=float(claims["retry_delay_seconds"]),
                max_delay_seconds=max(2.0, float(claims["retry_delay_seconds"])),
            ),
            require_evidence=bool(claims["require_evidence"]),
            clock=clock,
        )
        self.scheduler = WaveScheduler(self.tasks, self.waves, clock=clock)
        self.reclaimer = StaleClaimReclaimer(
            self.claims,
            stale_after_seconds=float(claims["stale_after_seconds"]),
            policy=ReclaimPolicy(claims["reclaim_policy"]),
            clock=clock,
        )
        self.mailbox = Mailbox(
            self.layout,
            self.locks,
            poll_interval_seconds=float(mailbox["poll_interval_seconds"]),
            clock=clock,
        )
        self._clock = clock

    def status_report(self, owner: str) -> dict[str, object]:
        """
        Progress snapshot: task counts by status and role, active workers, blocked tasks,
        waves and verification records. Also refreshes the cached stats in ``project.json``.
        """
        tasks = self.tasks.list()
        project = self.projects.refresh_stats(tasks, owner)
        resolved = resolved_ids(tasks)

        by_role: dict[str, dict[str, int]] = {}
        for role, count in sorted(Counter(task.role for task in tasks).items()):
            by_role[role] = {
                "total": count,
                "resolved": sum(
                    1 for task in tasks if task.role == role and task.status is TaskStatus.RESOLVED
                ),
            }

        active_workers = [
            {
                "worker": task.claimed_by,
                "task_id": task.id,
                "title": task.title,
                "claimed_at": to_iso8601z(task.claimed_at) if task.claimed_at else None,
            }
            for task in tasks
            if task.status is TaskStatus.IN_PROGRESS
        ]
        blocked = {
            task.id: list(task.unresolved_dependencies(resolved))
            for task in tasks
            if task.status is TaskStatus.OPEN and task.unresolved_dependencies(resolved)
        }

        stats = project.stats
        plan = self.waves.get()
        return {
            "project": project.to_dict(),
            "stats": {
                **stats.to_dict(),
                "progress": round(stats.resolved * 100 / stats.total) if stats.total else 0,
                "by_role": by_role,
            },
            "active_workers": active_workers,
            "blocked": blocked,
            "waves": plan.to_dict() if plan is not None else None,
            "verification": [record.to_dict() for record in self.waves.list_verifications()],
            "generated_at": to_iso8601z(self._clock()),
        }


__all__ = ["TeamCoordinator"]
