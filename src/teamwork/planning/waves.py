"""
Wave scheduling: partition tasks into dependency layers and track per-wave progress.

Wave lifecycle:

    planning --> in_progress --> completed --> verified
        |             |              |
        +-----> failed <-------------+
                  |
                  +--> in_progress (reopen)

Waves are derived from ``blocked_by``; the plan itself is advisory. Claimability is
always decided from dependency states, never from wave membership.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog

from teamwork.domain.errors import InvalidTransitionError, NotFoundError
from teamwork.domain.models import (
    Clock,
    Task,
    TaskStatus,
    VerificationRecord,
    VerificationStatus,
    Wave,
    WavePlan,
    WaveStatus,
    utc_now,
)
from teamwork.persistence.task_store import TaskMutator, TaskStore
from teamwork.persistence.wave_store import WaveStore
from teamwork.planning.task_graph import TaskGraph

_WAVE_TRANSITIONS: frozenset[tuple[WaveStatus, WaveStatus]] = frozenset(
    {
        (WaveStatus.PLANNING, WaveStatus.IN_PROGRESS),
        (WaveStatus.PLANNING, WaveStatus.FAILED),
        (WaveStatus.IN_PROGRESS, WaveStatus.COMPLETED),
        (WaveStatus.IN_PROGRESS, WaveStatus.FAILED),
        (WaveStatus.COMPLETED, WaveStatus.VERIFIED),
        (WaveStatus.COMPLETED, WaveStatus.FAILED),
        (WaveStatus.FAILED, WaveStatus.IN_PROGRESS),
    }
)

_module_logger = structlog.get_logger(__name__)


def compute_waves(tasks: Iterable[Task], *, logger: Any | None = None) -> tuple[Wave, ...]:
    """
    Deterministic Kahn layering of ``tasks`` over their ``blocked_by`` edges.

    Raises ``CycleError`` (carrying the cycle paths) when the graph is not acyclic.
    """
    log = logger if logger is not None else _module_logger
    graph = TaskGraph.from_tasks(tasks)
    missing = graph.missing_dependencies
    if missing:
        log.warning(
            "wave_dependencies_missing",
            missing={task_id: list(deps) for task_id, deps in missing.items()},
        )
    return tuple(
        Wave(id=index, tasks=layer) for index, layer in enumerate(graph.layers(), start=1)
    )


def check_wave_transition(wave: Wave, status: WaveStatus) -> None:
    if (wave.status, status) not in _WAVE_TRANSITIONS:
        raise InvalidTransitionError(
            f"wave {wave.id}: illegal status change {wave.status.value} -> {status.value}"
        )


class WaveScheduler:
    def __init__(
        self,
        tasks: TaskStore,
        waves: WaveStore,
        *,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._tasks = tasks
        self._waves = waves
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def plan(self, owner: str) -> WavePlan:
        """
        Compute waves for the current task set, persist ``waves.json`` and stamp each task.

        Planning is refused once any task has left ``open``.
        """
        tasks = self._tasks.list()
        if not tasks:
            layout = self._tasks.layout
            raise NotFoundError(f"no tasks to schedule in {layout.project}/{layout.team}")
        started = sorted(task.id for task in tasks if task.status is not TaskStatus.OPEN)
        if started:
            raise InvalidTransitionError(
                f"waves cannot be recalculated after execution started ({', '.join(started)})"
            )

        waves = compute_waves(tasks, logger=self._logger)
        for wave in waves:
            for task_id in wave.tasks:
                self._tasks.update(task_id, _stamp_wave(wave.id), owner)

        now = self._clock()
        plan = WavePlan(waves=waves, current_wave=1, created_at=now, updated_at=now)
        saved = self._waves.save(plan, owner)
        self._logger.info(
            "waves_calculated",
            owner=owner,
            total_waves=saved.total_waves,
            sizes=[len(wave.tasks) for wave in saved.waves],
        )
        return saved

    def status(self) -> WavePlan:
        return self._waves.require()

    def update_status(self, wave_id: int, status: WaveStatus, owner: str) -> WavePlan:
        target = WaveStatus(status)
        previous: list[WaveStatus] = []

        def apply(plan: WavePlan) -> WavePlan:
            wave = _require_wave(plan, wave_id)
            previous.append(wave.status)
            if wave.status is target:
                return plan
            check_wave_transition(wave, target)
            return self._replace_wave(plan, _advance(wave, target, self._clock()))

        plan = self._waves.update(apply, owner)
        self._logger.info(
            "wave_status_updated",
            wave_id=wave_id,
            owner=owner,
            previous=previous[-1].value if previous else None,
            status=target.value,
        )
        return plan

    def sync(self, owner: str) -> WavePlan:
        """
        Derive wave progress from task states.

        A planning wave whose tasks have started moves to ``in_progress``; an in-progress
        wave whose tasks are all resolved moves to ``completed``.
        """
        by_id = {task.id: task for task in self._tasks.list()}

        def apply(plan: WavePlan) -> WavePlan:
            now = self._clock()
            updated = plan
            for wave in plan.waves:
                members = [by_id[task_id] for task_id in wave.tasks if task_id in by_id]
                if not members:
                    continue
                current = wave
                if current.status is WaveStatus.PLANNING and any(
                    task.status is not TaskStatus.OPEN for task in members
                ):
                    current = _advance(current, WaveStatus.IN_PROGRESS, now)
                if current.status is WaveStatus.IN_PROGRESS and all(
                    task.status is TaskStatus.RESOLVED for task in members
                ):
                    current = _advance(current, WaveStatus.COMPLETED, now)
                if current is not wave:
                    updated = self._replace_wave(updated, current)
            active = [wave.id for wave in updated.waves if wave.status is WaveStatus.IN_PROGRESS]
            if active and updated.current_wave != active[0]:
                updated = dataclasses.replace(updated, current_wave=active[0], updated_at=now)
            return updated

        plan = self._waves.update(apply, owner)
        self._logger.info(
            "waves_synced",
            owner=owner,
            statuses={str(wave.id): wave.status.value for wave in plan.waves},
        )
        return plan

    def attach_task(self, wave_id: int, task_id: str, owner: str) -> WavePlan:
        """
        Add a fix-up task to an existing wave.

        All of the task's dependencies must already sit in earlier waves. Attaching to a
        failed wave reopens it.
        """
        task = self._tasks.get(task_id)

        def apply(plan: WavePlan) -> WavePlan:
            wave = _require_wave(plan, wave_id)
            assigned = plan.wave_of(task_id)
            if assigned is not None:
                if assigned.id == wave_id:
                    return plan
                raise InvalidTransitionError(f"task {task_id} already belongs to wave {assigned.id}")
            if wave.status in (WaveStatus.COMPLETED, WaveStatus.VERIFIED):
                raise InvalidTransitionError(
                    f"wave {wave_id} is {wave.status.value}; tasks can no longer be attached"
                )
            for dependency in task.blocked_by:
                dependency_wave = plan.wave_of(dependency)
                if dependency_wave is None or dependency_wave.id >= wave_id:
                    raise InvalidTransitionError(
                        f"task {task_id} depends on {dependency}, which is not in a wave before {wave_id}"
                    )
            attached = dataclasses.replace(wave, tasks=(*wave.tasks, task_id))
            if attached.status is WaveStatus.FAILED:
                attached = _advance(attached, WaveStatus.IN_PROGRESS, self._clock())
            return self._replace_wave(plan, attached)

        plan = self._waves.update(apply, owner)
        if task.status is TaskStatus.OPEN and task.wave != wave_id:
            self._tasks.update(task_id, _stamp_wave(wave_id), owner)
        self._logger.info("wave_task_attached", wave_id=wave_id, task_id=task_id, owner=owner)
        return plan

    def record_verification(self, record: VerificationRecord, owner: str) -> WavePlan:
        """
        Persist ``record`` and move its wave to ``verified`` or ``failed``.

        An ``in_progress`` record is stored without touching the wave.
        """
        self._waves.require()
        if record.status is VerificationStatus.PASSED:
            target: WaveStatus | None = WaveStatus.VERIFIED
        elif record.status is VerificationStatus.FAILED:
            target = WaveStatus.FAILED
        else:
            target = None

        # Validate the transition before the record is written.
        if target is not None:
            wave = _require_wave(self._waves.require(), record.wave_id)
            if wave.status is not target:
                check_wave_transition(wave, target)

        self._waves.put_verification(record, owner)
        self._logger.info(
            "wave_verification_recorded",
            wave_id=record.wave_id,
            owner=owner,
            status=record.status.value,
            issues=len(record.issues),
        )
        if target is None:
            return self._waves.require()
        return self.update_status(record.wave_id, target, owner)

    def _replace_wave(self, plan: WavePlan, wave: Wave) -> WavePlan:
        waves = tuple(wave if existing.id == wave.id else existing for existing in plan.waves)
        current_wave = plan.current_wave
        if wave.status is WaveStatus.IN_PROGRESS:
            current_wave = wave.id
        elif wave.status is WaveStatus.VERIFIED and current_wave == wave.id:
            current_wave = min(wave.id + 1, plan.total_waves)
        return dataclasses.replace(
            plan, waves=waves, current_wave=current_wave, updated_at=self._clock()
        )


def _require_wave(plan: WavePlan, wave_id: int) -> Wave:
    wave = plan.wave(wave_id)
    if wave is None:
        raise NotFoundError(f"wave {wave_id} not found; available waves: 1-{plan.total_waves}")
    return wave


def _advance(wave: Wave, status: WaveStatus, now: datetime) -> Wave:
    changes: dict[str, object] = {"status": status}
    if status is WaveStatus.IN_PROGRESS and wave.started_at is None:
        changes["started_at"] = now
    elif status is WaveStatus.COMPLETED and wave.completed_at is None:
        changes["completed_at"] = now
    elif status is WaveStatus.VERIFIED and wave.verified_at is None:
        changes["verified_at"] = now
    return dataclasses.replace(wave, **changes)


def _stamp_wave(wave_id: int) -> TaskMutator:
    def apply(task: Task) -> Task:
        if task.status is not TaskStatus.OPEN:
            raise InvalidTransitionError(
                f"task {task.id} is {task.status.value}; waves are assigned to open tasks only"
            )
        if task.wave == wave_id:
            return task
        return dataclasses.replace(task, wave=wave_id)

    return apply


__all__ = ["WaveScheduler", "check_wave_transition", "compute_waves"]
