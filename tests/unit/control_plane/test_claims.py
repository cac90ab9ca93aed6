"""
teamwork — unit tests for the claim protocol

File: tests/unit/control_plane/test_claims.py
Last updated: 2026-10-19

Purpose
- Validate the open -> in_progress -> resolved state machine and its error taxonomy.

What this test file should cover
- Exactly one winner among concurrent claimants.
- Dependency gating, role filtering and claim-next ordering.
- Release, resolve and evidence rules.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

import pytest

from teamwork.control_plane.claims import ClaimProtocol
from teamwork.domain.errors import (
    AlreadyClaimedError,
    BlockedError,
    ContentionError,
    InvalidTransitionError,
    NotFoundError,
    OwnershipError,
    RoleMismatchError,
)
from teamwork.domain.models import CommandEvidence, NoteEvidence, TaskStatus
from teamwork.persistence import LockManager, ProjectLayout, TaskStore
from teamwork.planning.waves import compute_waves
from teamwork.utils.concurrency import RetryPolicy

_T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


def _protocol(tmp_path: Path, **kwargs: object) -> ClaimProtocol:
    layout = ProjectLayout(tmp_path, "app", "core")
    layout.ensure()
    store = TaskStore(layout, LockManager(timeout_seconds=10, poll_interval_seconds=0.001))
    return ClaimProtocol(
        store,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_seconds=0.0),
        sleep=lambda _seconds: None,
        **kwargs,  # type: ignore[arg-type]
    )


def _evidence() -> CommandEvidence:
    return CommandEvidence(command="pytest -q", output="3 passed", exit_code=0, timestamp=_T0)


def test_claim_sets_claim_fields(tmp_path: Path) -> None:
    claims = _protocol(tmp_path, clock=lambda: _T0)
    claims.store.create("t1", "One", owner="lead")

    task = claims.claim("t1", "alice")

    assert task.status is TaskStatus.IN_PROGRESS
    assert task.claimed_by == "alice"
    assert task.claimed_at == _T0
    assert claims.store.get("t1") == task


def test_reclaim_by_current_claimant_is_idempotent(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    first = claims.claim("t1", "alice")

    again = claims.claim("t1", "alice")

    assert again == first
    assert again.version == first.version


def test_second_claimant_loses_with_already_claimed(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")

    with pytest.raises(AlreadyClaimedError) as error:
        claims.claim("t1", "bob")

    assert isinstance(error.value, ContentionError)
    assert error.value.claimed_by == "alice"


def test_concurrent_claimants_have_exactly_one_winner(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    barrier = threading.Barrier(8)
    winners: list[str] = []
    losers: list[str] = []
    guard = threading.Lock()

    def contend(owner: str) -> None:
        barrier.wait()
        try:
            claims.claim("t1", owner)
        except AlreadyClaimedError:
            with guard:
                losers.append(owner)
        else:
            with guard:
                winners.append(owner)

    threads = [threading.Thread(target=contend, args=(f"w{index}",)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert len(losers) == 7
    assert claims.store.get("t1").claimed_by == winners[0]


def test_concurrent_claim_next_hands_out_distinct_tasks(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    for index in range(5):
        claims.store.create(f"t{index}", f"Task {index}", owner="lead")
    barrier = threading.Barrier(5)
    claimed: list[str] = []
    guard = threading.Lock()

    def work(owner: str) -> None:
        barrier.wait()
        task = claims.claim_next(owner)
        if task is not None:
            with guard:
                claimed.append(task.id)

    threads = [threading.Thread(target=work, args=(f"w{index}",)) for index in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(claimed) == sorted(set(claimed))
    in_progress = [task for task in claims.store.list() if task.status is TaskStatus.IN_PROGRESS]
    assert len(in_progress) == len(claimed)
    assert len(claimed) >= 1


def test_blocked_task_cannot_be_claimed(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    claims.store.create("t2", "Two", owner="lead", blocked_by=("t1",))

    with pytest.raises(BlockedError) as error:
        claims.claim("t2", "alice")
    assert error.value.unresolved == ("t1",)

    claims.claim("t1", "alice")
    claims.add_evidence("t1", "alice", [_evidence()])
    claims.resolve("t1", "alice")
    assert claims.claim("t2", "alice").status is TaskStatus.IN_PROGRESS


def test_two_wave_project_unblocks_second_wave_after_first_resolves(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "Schema", owner="lead")
    claims.store.create("t2", "API", owner="lead", blocked_by=("t1",))

    waves = compute_waves(claims.store.list())
    assert [wave.tasks for wave in waves] == [("t1",), ("t2",)]

    with pytest.raises(BlockedError, match="blocked by: t1"):
        claims.claim("t2", "worker-2")
    assert claims.store.get("t2").status is TaskStatus.OPEN

    claims.claim("t1", "worker-1")
    claims.add_evidence("t1", "worker-1", [_evidence()])
    claims.resolve("t1", "worker-1")

    second = claims.claim("t2", "worker-2")
    assert second.status is TaskStatus.IN_PROGRESS
    assert second.claimed_by == "worker-2"


def test_missing_and_resolved_tasks_are_not_claimable(tmp_path: Path) -> None:
    claims = _protocol(tmp_path, require_evidence=False)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    claims.resolve("t1", "alice")

    with pytest.raises(NotFoundError):
        claims.claim("nope", "alice")
    with pytest.raises(InvalidTransitionError, match="already resolved"):
        claims.claim("t1", "bob")


def test_strict_role_mismatch_is_rejected(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead", role="backend")

    with pytest.raises(RoleMismatchError):
        claims.claim("t1", "alice", role="frontend", strict=True)
    assert claims.store.get("t1").status is TaskStatus.OPEN


def test_lenient_role_mismatch_records_a_note(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead", role="backend")

    task = claims.claim("t1", "alice", role="frontend")

    assert task.status is TaskStatus.IN_PROGRESS
    assert len(task.evidence) == 1
    note = task.evidence[0]
    assert isinstance(note, NoteEvidence)
    assert "role mismatch" in note.text


def test_claim_next_prefers_role_then_wave_then_id(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    store = claims.store
    store.create("a", "A", owner="lead", role="frontend", wave=1)
    store.create("b", "B", owner="lead", role="backend", wave=2)
    store.create("c", "C", owner="lead", role="backend", wave=1)
    store.create("d", "D", owner="lead", blocked_by=("a",), role="backend", wave=1)

    assert [task.id for task in claims.candidates(role="backend")] == ["c", "b", "a"]
    assert [task.id for task in claims.candidates(role="backend", strict=True)] == ["c", "b"]
    assert claims.claim_next("w1", role="backend").id == "c"  # type: ignore[union-attr]
    assert claims.claim_next("w2", role="backend").id == "b"  # type: ignore[union-attr]
    assert claims.claim_next("w3", role="backend", strict=True) is None


def test_claim_next_returns_none_when_nothing_is_ready(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    assert claims.claim_next("alice") is None


def test_release_keeps_evidence_and_reopens(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")
    claims.add_evidence("t1", "alice", [_evidence()])

    task = claims.release("t1", "alice")

    assert task.status is TaskStatus.OPEN
    assert task.claimed_by is None and task.claimed_at is None
    assert len(task.evidence) == 1


def test_release_by_other_requires_force(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")

    with pytest.raises(OwnershipError):
        claims.release("t1", "bob")

    task = claims.release("t1", "lead", force=True, reason="worker vanished")
    assert task.status is TaskStatus.OPEN
    assert isinstance(task.evidence[-1], NoteEvidence)
    assert task.evidence[-1].text == "worker vanished"


def test_release_of_open_task_is_invalid(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")

    with pytest.raises(InvalidTransitionError):
        claims.release("t1", "alice", force=True)


def test_resolve_requires_claimant_and_evidence(tmp_path: Path) -> None:
    claims = _protocol(tmp_path, clock=lambda: _T0)
    claims.store.create("t1", "One", owner="lead")

    with pytest.raises(OwnershipError, match="status is open"):
        claims.resolve("t1", "alice")

    claims.claim("t1", "alice")

    with pytest.raises(OwnershipError):
        claims.resolve("t1", "bob")
    with pytest.raises(InvalidTransitionError, match="evidence"):
        claims.resolve("t1", "alice")

    claims.add_evidence("t1", "alice", [_evidence()])
    task = claims.resolve("t1", "alice")

    assert task.status is TaskStatus.RESOLVED
    assert task.completed_at == _T0
    assert task.resolved_by == "alice"
    assert task.claimed_by is None
    with pytest.raises(OwnershipError, match="status is resolved"):
        claims.resolve("t1", "alice")


def test_resolve_without_evidence_when_not_required(tmp_path: Path) -> None:
    claims = _protocol(tmp_path, require_evidence=False)
    claims.store.create("t1", "One", owner="lead")
    claims.claim("t1", "alice")

    assert claims.resolve("t1", "alice").status is TaskStatus.RESOLVED


def test_evidence_only_from_claimant(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")

    with pytest.raises(OwnershipError, match="status is open"):
        claims.add_evidence("t1", "alice", [_evidence()])
    claims.claim("t1", "alice")
    with pytest.raises(OwnershipError):
        claims.add_evidence("t1", "bob", [_evidence()])
    with pytest.raises(ValueError):
        claims.add_evidence("t1", "alice", [])


def test_edit_only_while_open(tmp_path: Path) -> None:
    claims = _protocol(tmp_path)
    claims.store.create("t1", "One", owner="lead")

    edited = claims.edit("t1", "lead", title="Renamed", description="details")
    assert (edited.title, edited.description) == ("Renamed", "details")
    assert claims.edit("t1", "lead", title="Renamed").version == edited.version

    claims.claim("t1", "alice")
    with pytest.raises(InvalidTransitionError, match="only open tasks"):
        claims.edit("t1", "lead", title="Too late")


def test_lock_contention_is_retried_then_raised(tmp_path: Path) -> None:
    layout = ProjectLayout(tmp_path, "app", "core")
    layout.ensure()
    locks = LockManager(timeout_seconds=0)
    store = TaskStore(layout, locks)
    store.create("t1", "One", owner="lead")
    sleeps: list[float] = []
    claims = ClaimProtocol(
        store,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_seconds=0.5),
        sleep=sleeps.append,
    )
    locks.acquire(layout.task_path("t1"), "someone-else")

    with pytest.raises(ContentionError):
        claims.claim("t1", "alice")
    assert sleeps == [0.5, 1.0]
