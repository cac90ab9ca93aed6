"""Unit tests for planning.waves."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from teamwork.domain.errors import CycleError, InvalidTransitionError, NotFoundError
from teamwork.domain.models import (
    CheckStatus,
    CommandEvidence,
    Task,
    TaskStatus,
    VerificationCheck,
    VerificationRecord,
    VerificationStatus,
    WaveStatus,
)
from teamwork.persistence import LockManager, ProjectLayout, TaskStore, WaveStore
from teamwork.planning.waves import WaveScheduler, compute_waves

_T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


def _task(task_id: str, *blocked_by: str) -> Task:
    return Task(id=task_id, title=task_id, created_at=_T0, updated_at=_T0, blocked_by=blocked_by)


def _scheduler(tmp_path: Path) -> WaveScheduler:
    layout = ProjectLayout(tmp_path, "app", "core")
    layout.ensure()
    locks = LockManager()
    return WaveScheduler(
        TaskStore(layout, locks, clock=lambda: _T0), WaveStore(layout, locks), clock=lambda: _T0
    )


def _seed(scheduler: WaveScheduler) -> TaskStore:
    store = scheduler._tasks
    store.create("schema", "Schema", owner="lead")
    store.create("api", "API", owner="lead", blocked_by=("schema",))
    store.create("ui", "UI", owner="lead")
    store.create("e2e", "E2E", owner="lead", blocked_by=("api", "ui"))
    return store


def _finish(store: TaskStore, task_id: str) -> None:
    def claim(task: Task) -> Task:
        return dataclasses.replace(
            task, status=TaskStatus.IN_PROGRESS, claimed_by="alice", claimed_at=_T0
        )

    def resolve(task: Task) -> Task:
        return dataclasses.replace(
            task,
            status=TaskStatus.RESOLVED,
            claimed_by=None,
            claimed_at=None,
            resolved_by="alice",
            completed_at=_T0,
            evidence=(CommandEvidence(command="make", timestamp=_T0),),
        )

    store.update(task_id, claim, "alice")
    store.update(task_id, resolve, "alice")


@st.composite
def _dags(draw: st.DrawFn) -> list[Task]:
    size = draw(st.integers(min_value=1, max_value=25))
    ids = [f"t{index:02d}" for index in range(size)]
    tasks: list[Task] = []
    for index, task_id in enumerate(ids):
        blockers = draw(st.lists(st.sampled_from(ids[:index]), unique=True)) if index else []
        tasks.append(_task(task_id, *blockers))
    return draw(st.permutations(tasks))


@settings(max_examples=75, deadline=None)
@given(_dags())
def test_every_dependency_sits_in_an_earlier_wave(tasks: list[Task]) -> None:
    waves = compute_waves(tasks)

    wave_of = {task_id: wave.id for wave in waves for task_id in wave.tasks}
    assert sorted(wave_of) == sorted(task.id for task in tasks)
    for task in tasks:
        for dependency in task.blocked_by:
            assert wave_of[dependency] < wave_of[task.id]
    for wave in waves:
        assert list(wave.tasks) == sorted(wave.tasks)
    # Each task is in the earliest wave its dependencies allow.
    for task in tasks:
        earliest = max((wave_of[dep] for dep in task.blocked_by), default=0) + 1
        assert wave_of[task.id] == earliest


def test_compute_waves_rejects_cycles() -> None:
    with pytest.raises(CycleError) as error:
        compute_waves([_task("a", "b"), _task("b", "a"), _task("c")])

    assert error.value.cycles == (("a", "b", "a"),)


def test_plan_persists_waves_and_stamps_tasks(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    store = _seed(scheduler)

    plan = scheduler.plan("lead")

    assert [wave.tasks for wave in plan.waves] == [("schema", "ui"), ("api",), ("e2e",)]
    assert plan.current_wave == 1
    assert all(wave.status is WaveStatus.PLANNING for wave in plan.waves)
    assert {task.id: task.wave for task in store.list()} == {
        "api": 2,
        "e2e": 3,
        "schema": 1,
        "ui": 1,
    }
    assert scheduler.status() == plan


def test_plan_refused_without_tasks_or_after_start(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    with pytest.raises(NotFoundError):
        scheduler.plan("lead")

    store = _seed(scheduler)
    store.update(
        "schema",
        lambda task: dataclasses.replace(
            task, status=TaskStatus.IN_PROGRESS, claimed_by="alice", claimed_at=_T0
        ),
        "alice",
    )
    with pytest.raises(InvalidTransitionError, match="after execution started"):
        scheduler.plan("lead")


def test_status_before_planning_is_not_found(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _scheduler(tmp_path).status()


def test_update_status_follows_lifecycle(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    _seed(scheduler)
    scheduler.plan("lead")

    plan = scheduler.update_status(1, WaveStatus.IN_PROGRESS, "lead")
    assert plan.waves[0].status is WaveStatus.IN_PROGRESS
    assert plan.waves[0].started_at == _T0

    with pytest.raises(InvalidTransitionError, match="in_progress -> verified"):
        scheduler.update_status(1, WaveStatus.VERIFIED, "lead")
    with pytest.raises(NotFoundError):
        scheduler.update_status(9, WaveStatus.IN_PROGRESS, "lead")

    again = scheduler.update_status(1, WaveStatus.IN_PROGRESS, "lead")
    assert again == plan


def test_sync_derives_wave_progress_from_tasks(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    store = _seed(scheduler)
    scheduler.plan("lead")

    _finish(store, "schema")
    plan = scheduler.sync("lead")
    assert plan.waves[0].status is WaveStatus.IN_PROGRESS
    assert plan.current_wave == 1

    _finish(store, "ui")
    plan = scheduler.sync("lead")
    assert plan.waves[0].status is WaveStatus.COMPLETED
    assert plan.waves[0].completed_at == _T0
    assert plan.waves[1].status is WaveStatus.PLANNING


def test_verification_moves_wave_to_verified_or_failed(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    store = _seed(scheduler)
    scheduler.plan("lead")
    _finish(store, "schema")
    _finish(store, "ui")
    scheduler.sync("lead")

    record = VerificationRecord(
        wave_id=1,
        status=VerificationStatus.PASSED,
        verified_at=_T0,
        tasks_verified=("schema", "ui"),
        checks=(
            VerificationCheck(
                type="tests", description="unit suite", status=CheckStatus.PASSED, timestamp=_T0
            ),
        ),
    )
    plan = scheduler.record_verification(record, "lead")

    assert plan.waves[0].status is WaveStatus.VERIFIED
    assert plan.current_wave == 2
    assert scheduler._waves.get_verification(1) == record

    with pytest.raises(InvalidTransitionError):
        scheduler.record_verification(
            VerificationRecord(wave_id=2, status=VerificationStatus.PASSED, verified_at=_T0),
            "lead",
        )
    assert scheduler._waves.get_verification(2) is None


def test_attach_task_to_failed_wave_reopens_it(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    store = _seed(scheduler)
    scheduler.plan("lead")
    scheduler.update_status(2, WaveStatus.FAILED, "lead")
    store.create("fix", "Fix API", owner="lead", blocked_by=("schema",))

    plan = scheduler.attach_task(2, "fix", "lead")

    assert plan.waves[1].tasks == ("api", "fix")
    assert plan.waves[1].status is WaveStatus.IN_PROGRESS
    assert store.get("fix").wave == 2
    assert scheduler.attach_task(2, "fix", "lead") == plan


def test_attach_task_checks_dependency_order(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path)
    store = _seed(scheduler)
    scheduler.plan("lead")
    store.create("late", "Late", owner="lead", blocked_by=("e2e",))

    with pytest.raises(InvalidTransitionError, match="not in a wave before 2"):
        scheduler.attach_task(2, "late", "lead")
    with pytest.raises(InvalidTransitionError, match="already belongs to wave 1"):
        scheduler.attach_task(2, "schema", "lead")
