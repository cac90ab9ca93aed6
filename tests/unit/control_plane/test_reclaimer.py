"""Unit tests for control_plane.reclaimer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from teamwork.control_plane import ClaimProtocol, ReclaimPolicy, StaleClaimReclaimer
from teamwork.domain.models import CommandEvidence, NoteEvidence, TaskStatus
from teamwork.persistence import LockManager, ProjectLayout, TaskStore
from teamwork.utils.concurrency import CancellationToken

_T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


class _Clock:
    def __init__(self) -> None:
        self.now = _T0

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _setup(
    tmp_path: Path,
    *,
    stale_after: float = 3600,
    policy: ReclaimPolicy = ReclaimPolicy.CLAIM_AGE,
) -> tuple[ClaimProtocol, StaleClaimReclaimer, _Clock]:
    clock = _Clock()
    layout = ProjectLayout(tmp_path, "app", "core")
    layout.ensure()
    claims = ClaimProtocol(TaskStore(layout, LockManager(), clock=clock), clock=clock)
    reclaimer = StaleClaimReclaimer(
        claims, stale_after_seconds=stale_after, policy=policy, clock=clock
    )
    return claims, reclaimer, clock


def test_sweep_releases_only_claims_past_threshold(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(tmp_path)
    for task_id in ("t1", "t2", "t3"):
        claims.store.create(task_id, task_id, owner="lead")
    claims.claim("t1", "alice")
    clock.advance(1800)
    claims.claim("t2", "bob")
    clock.advance(1801)

    result = reclaimer.sweep()

    assert result.released == ("t1",)
    assert result.skipped == ()
    t1 = claims.store.get("t1")
    assert t1.status is TaskStatus.OPEN
    assert t1.claimed_by is None
    note = t1.evidence[-1]
    assert isinstance(note, NoteEvidence)
    assert "alice" in note.text
    assert note.author is not None and note.author.startswith("teamwork-reclaimer-")
    assert claims.store.get("t2").claimed_by == "bob"
    assert claims.store.get("t3").status is TaskStatus.OPEN


def test_sweep_is_idempotent(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(tmp_path, stale_after=10)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    clock.advance(11)

    assert reclaimer.sweep().released == ("t1",)
    assert reclaimer.sweep().released == ()


def test_zero_threshold_disables_reclamation(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(tmp_path, stale_after=0)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    clock.advance(10**6)

    assert reclaimer.enabled is False
    assert reclaimer.sweep().released == ()
    assert claims.store.get("t1").status is TaskStatus.IN_PROGRESS


def test_last_activity_policy_counts_evidence(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(
        tmp_path, stale_after=100, policy=ReclaimPolicy.LAST_ACTIVITY
    )
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    clock.advance(90)
    claims.add_evidence(
        "t1", "alice", [CommandEvidence(command="make", exit_code=0, timestamp=clock())]
    )
    clock.advance(90)

    task = claims.store.get("t1")
    assert reclaimer.claim_age(task, clock()) == pytest.approx(90)
    assert reclaimer.sweep().released == ()

    clock.advance(11)
    assert reclaimer.sweep().released == ("t1",)


def test_claim_age_policy_ignores_evidence(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(tmp_path, stale_after=100)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    clock.advance(90)
    claims.add_evidence(
        "t1", "alice", [CommandEvidence(command="make", exit_code=0, timestamp=clock())]
    )
    clock.advance(11)

    assert reclaimer.sweep().released == ("t1",)


def test_reclaimed_task_can_be_claimed_again(tmp_path: Path) -> None:
    claims, reclaimer, clock = _setup(tmp_path, stale_after=5)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    clock.advance(6)
    reclaimer.sweep()

    task = claims.claim("t1", "bob")

    assert task.claimed_by == "bob"
    assert task.claimed_at == clock()


def test_watch_stops_after_max_sweeps(tmp_path: Path) -> None:
    _claims, reclaimer, _clock = _setup(tmp_path)
    seen: list[object] = []

    results = reclaimer.watch(interval_seconds=0.001, max_sweeps=3, on_sweep=seen.append)

    assert len(results) == 3
    assert seen == results


def test_watch_honours_cancellation(tmp_path: Path) -> None:
    _claims, reclaimer, _clock = _setup(tmp_path)
    token = CancellationToken()

    results = reclaimer.watch(
        interval_seconds=0.001, cancel_token=token, on_sweep=lambda _result: token.cancel()
    )

    assert len(results) == 1


def test_invalid_arguments_are_rejected(tmp_path: Path) -> None:
    claims, reclaimer, _clock = _setup(tmp_path)

    with pytest.raises(ValueError):
        StaleClaimReclaimer(claims, stale_after_seconds=-1)
    with pytest.raises(ValueError):
        reclaimer.watch(interval_seconds=0)
    with pytest.raises(ValueError):
        reclaimer.watch(interval_seconds=1, max_sweeps=0)
