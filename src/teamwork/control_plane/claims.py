"""
Claim protocol: the task status state machine on top of ``TaskStore``.

    open --claim--> in_progress --resolve--> resolved
      ^                  |
      +----release-------+

Every transition is one locked ``TaskStore.update``; the task's own status is always
re-checked inside the critical section, so of N concurrent claimants exactly one wins
and the rest observe ``AlreadyClaimedError``. Dependency states are read outside the
lock: resolution is permanent, so a stale read can only under-report readiness.

It integrates with:
- `RetryPolicy` for bounded, backed-off retries on lock contention
- `structlog` for machine-parseable claim decision logs
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog

from teamwork.domain.errors import (
    AlreadyClaimedError,
    BlockedError,
    ContentionError,
    InvalidTransitionError,
    NotFoundError,
    OwnershipError,
    RoleMismatchError,
)
from teamwork.domain.models import Clock, Evidence, NoteEvidence, Task, TaskStatus, utc_now
from teamwork.persistence.task_store import TaskStore, resolved_ids
from teamwork.utils.concurrency import RetryPolicy, Sleeper

StalenessCheck = Callable[[Task], bool]


class ClaimProtocol:
    def __init__(
        self,
        store: TaskStore,
        *,
        retry_policy: RetryPolicy | None = None,
        require_evidence: bool = True,
        clock: Clock = utc_now,
        sleep: Sleeper = time.sleep,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._require_evidence = require_evidence
        self._clock = clock
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def store(self) -> TaskStore:
        return self._store

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    def claim(
        self,
        task_id: str,
        owner: str,
        *,
        role: str | None = None,
        strict: bool = False,
    ) -> Task:
        """
        Claim one specific task.

        Lock timeouts are retried per the retry policy; losing the race to another
        claimant (``AlreadyClaimedError``) is final.
        """
        attempts = self._retry_policy.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._claim_once(task_id, owner, role=role, strict=strict)
            except AlreadyClaimedError:
                raise
            except ContentionError:
                if attempt == attempts:
                    raise
                delay = self._retry_policy.delay_for(attempt)
                self._logger.info(
                    "task_claim_retry", task_id=task_id, owner=owner, attempt=attempt, delay=delay
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    def claim_next(
        self,
        owner: str,
        *,
        role: str | None = None,
        strict: bool = False,
    ) -> Task | None:
        """
        Claim the first available task, or return ``None`` when nothing is claimable.

        Candidates matching ``role`` come first, then lower waves, then ids. A candidate lost
        to a concurrent claimant is skipped; when every candidate was contended the listing
        is retried with backoff.
        """
        attempts = self._retry_policy.max_attempts
        for attempt in range(1, attempts + 1):
            contended: list[str] = []
            for candidate in self.candidates(role=role, strict=strict):
                try:
                    return self._claim_once(candidate.id, owner, role=role, strict=strict)
                except (ContentionError, BlockedError, InvalidTransitionError, NotFoundError):
                    contended.append(candidate.id)
            if not contended:
                self._logger.info("task_claim_no_candidates", owner=owner, role=role)
                return None
            self._logger.info(
                "task_claim_contended", owner=owner, attempt=attempt, task_ids=contended
            )
            if attempt < attempts:
                self._sleep(self._retry_policy.delay_for(attempt))
        return None

    def candidates(self, *, role: str | None = None, strict: bool = False) -> list[Task]:
        tasks = self._store.list()
        resolved = resolved_ids(tasks)
        ready = [
            task
            for task in tasks
            if task.status is TaskStatus.OPEN and not task.unresolved_dependencies(resolved)
        ]
        if role is not None and strict:
            ready = [task for task in ready if task.role == role]
        return sorted(
            ready,
            key=lambda task: (
                role is not None and task.role != role,
                task.wave if task.wave is not None else 0,
                task.id,
            ),
        )

    def _claim_once(self, task_id: str, owner: str, *, role: str | None, strict: bool) -> Task:
        resolved = resolved_ids(self._store.list())
        now = self._clock()

        def apply(current: Task) -> Task:
            if current.status is TaskStatus.RESOLVED:
                raise InvalidTransitionError(f"task {current.id} is already resolved")
            if current.status is TaskStatus.IN_PROGRESS:
                if current.claimed_by == owner:
                    return current
                raise AlreadyClaimedError(current.id, current.claimed_by)
            unresolved = current.unresolved_dependencies(resolved)
            if unresolved:
                raise BlockedError(current.id, unresolved)

            evidence: tuple[Evidence, ...] = current.evidence
            if role is not None and role != current.role:
                if strict:
                    raise RoleMismatchError(current.id, current.role, role)
                evidence = (
                    *evidence,
                    NoteEvidence(
                        text=(
                            f"role mismatch: task expects {current.role!r}, "
                            f"claimed with role {role!r}"
                        ),
                        author=owner,
                        timestamp=now,
                    ),
                )
            return dataclasses.replace(
                current,
                status=TaskStatus.IN_PROGRESS,
                claimed_by=owner,
                claimed_at=now,
                evidence=evidence,
            )

        task = self._store.update(task_id, apply, owner)
        self._logger.info("task_claimed", task_id=task.id, owner=owner, role=role)
        return task

    # ------------------------------------------------------------------
    # Progress and completion
    # ------------------------------------------------------------------

    def add_evidence(self, task_id: str, owner: str, evidence: Sequence[Evidence]) -> Task:
        if not evidence:
            raise ValueError("evidence must not be empty")

        def apply(current: Task) -> Task:
            self._require_claimant(current, owner, action="add evidence to")
            return dataclasses.replace(current, evidence=(*current.evidence, *evidence))

        task = self._store.update(task_id, apply, owner)
        self._logger.info(
            "task_evidence_added",
            task_id=task_id,
            owner=owner,
            evidence_types=[item.kind.value for item in evidence],
        )
        return task

    def edit(
        self,
        task_id: str,
        owner: str,
        *,
        title: str | None = None,
        description: str | None = None,
    ) -> Task:
        """Change title or description of a task that has not been claimed yet."""

        def apply(current: Task) -> Task:
            if current.status is not TaskStatus.OPEN:
                raise InvalidTransitionError(
                    f"task {current.id} is {current.status.value}; only open tasks can be edited"
                )
            changes: dict[str, str] = {}
            if title is not None and title != current.title:
                changes["title"] = title
            if description is not None and description != current.description:
                changes["description"] = description
            if not changes:
                return current
            return dataclasses.replace(current, **changes)

        return self._store.update(task_id, apply, owner)

    def resolve(self, task_id: str, owner: str) -> Task:
        now = self._clock()

        def apply(current: Task) -> Task:
            self._require_claimant(current, owner, action="resolve")
            if self._require_evidence and not current.evidence:
                raise InvalidTransitionError(
                    f"task {current.id} needs at least one evidence record before it can be resolved"
                )
            return dataclasses.replace(
                current,
                status=TaskStatus.RESOLVED,
                claimed_by=None,
                claimed_at=None,
                resolved_by=owner,
                completed_at=now,
            )

        task = self._store.update(task_id, apply, owner)
        self._logger.info(
            "task_resolved", task_id=task_id, owner=owner, evidence_count=len(task.evidence)
        )
        return task

    def release(
        self,
        task_id: str,
        owner: str,
        *,
        force: bool = False,
        reason: str | None = None,
    ) -> Task:
        """
        Return an in-progress task to ``open``; evidence is kept.

        ``force`` is the administrative path used by reclamation and lets a non-claimant
        release; ``reason`` is then recorded as a note.
        """
        now = self._clock()

        def apply(current: Task) -> Task:
            if current.status is not TaskStatus.IN_PROGRESS:
                raise InvalidTransitionError(
                    f"task {current.id} is {current.status.value}; only in_progress tasks can be released"
                )
            if current.claimed_by != owner and not force:
                raise OwnershipError(
                    f"task {current.id} is claimed by {current.claimed_by}, not {owner}"
                )
            return _released(current, owner, now, reason)

        task = self._store.update(task_id, apply, owner)
        self._logger.info("task_released", task_id=task_id, owner=owner, forced=force)
        return task

    def reclaim_if(
        self,
        task_id: str,
        owner: str,
        is_stale: StalenessCheck,
        *,
        reason: str,
    ) -> bool:
        """
        Release ``task_id`` when it is still in progress and ``is_stale`` holds inside the lock.

        A task released or re-claimed since it was listed is left untouched.
        """
        now = self._clock()
        reclaimed = False

        def apply(current: Task) -> Task:
            nonlocal reclaimed
            if current.status is not TaskStatus.IN_PROGRESS or not is_stale(current):
                return current
            reclaimed = True
            return _released(current, owner, now, reason)

        self._store.update(task_id, apply, owner)
        return reclaimed

    @staticmethod
    def _require_claimant(task: Task, owner: str, *, action: str) -> None:
        # Not holding the claim is an ownership failure whatever the current status.
        if task.status is not TaskStatus.IN_PROGRESS:
            raise OwnershipError(
                f"cannot {action} task {task.id}: status is {task.status.value}, not in_progress"
            )
        if task.claimed_by != owner:
            raise OwnershipError(
                f"cannot {action} task {task.id}: claimed by {task.claimed_by}, not {owner}"
            )


def _released(task: Task, owner: str, now: datetime, reason: str | None) -> Task:
    evidence: tuple[Evidence, ...] = task.evidence
    if reason:
        evidence = (*evidence, NoteEvidence(text=reason, author=owner, timestamp=now))
    return dataclasses.replace(
        task,
        status=TaskStatus.OPEN,
        claimed_by=None,
        claimed_at=None,
        evidence=evidence,
    )


__all__ = ["ClaimProtocol", "StalenessCheck"]
