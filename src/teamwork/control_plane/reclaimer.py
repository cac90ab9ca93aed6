"""Stale-claim reclamation: release in-progress tasks whose claimants went silent."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

import structlog

from teamwork.constants import DEFAULT_CLAIM_STALE_AFTER_SECONDS
from teamwork.control_plane.claims import ClaimProtocol
from teamwork.domain.errors import ContentionError, NotFoundError
from teamwork.domain.models import Clock, Task, TaskStatus, to_iso8601z, utc_now
from teamwork.persistence.task_store import TaskFilter
from teamwork.utils.concurrency import CancellationToken

RECLAIMER_OWNER = "teamwork-reclaimer"


class ReclaimPolicy(StrEnum):
    """How the age of a claim is measured."""

    CLAIM_AGE = "claim_age"
    LAST_ACTIVITY = "last_activity"


@dataclass(frozen=True, slots=True)
class SweepResult:
    released: tuple[str, ...]
    skipped: tuple[str, ...]
    swept_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "released": list(self.released),
            "skipped": list(self.skipped),
            "swept_at": to_iso8601z(self.swept_at),
        }


class StaleClaimReclaimer:
    """
    Periodic sweep releasing claims older than ``stale_after_seconds``.

    A zero threshold disables reclamation. Active workers are not exempt under the default
    ``claim_age`` policy; ``last_activity`` measures from the newest evidence instead. Sweeps
    are idempotent: a second sweep with no intervening claims releases nothing.
    """

    def __init__(
        self,
        claims: ClaimProtocol,
        *,
        stale_after_seconds: float = DEFAULT_CLAIM_STALE_AFTER_SECONDS,
        policy: ReclaimPolicy = ReclaimPolicy.CLAIM_AGE,
        owner: str | None = None,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        if stale_after_seconds < 0:
            raise ValueError("stale_after_seconds must be >= 0")
        self._claims = claims
        self._stale_after_seconds = stale_after_seconds
        self._policy = ReclaimPolicy(policy)
        self._owner = owner if owner is not None else f"{RECLAIMER_OWNER}-{os.getpid()}"
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return self._stale_after_seconds > 0

    def claim_age(self, task: Task, now: datetime) -> float | None:
        if self._policy is ReclaimPolicy.LAST_ACTIVITY:
            reference = task.last_activity()
        else:
            reference = task.claimed_at
        if reference is None:
            return None
        return (now - reference).total_seconds()

    def is_stale(self, task: Task, now: datetime) -> bool:
        if not self.enabled or task.status is not TaskStatus.IN_PROGRESS:
            return False
        age = self.claim_age(task, now)
        return age is not None and age > self._stale_after_seconds

    def sweep(self) -> SweepResult:
        now = self._clock()
        if not self.enabled:
            return SweepResult((), (), now)

        in_progress = self._claims.store.list(TaskFilter(status=TaskStatus.IN_PROGRESS))

        def stale_check(task: Task) -> bool:
            return self.is_stale(task, now)

        released: list[str] = []
        skipped: list[str] = []
        for task in in_progress:
            if not stale_check(task):
                continue
            reason = (
                f"claim by {task.claimed_by} reclaimed after exceeding "
                f"{self._stale_after_seconds:g}s ({self._policy.value})"
            )
            try:
                if self._claims.reclaim_if(task.id, self._owner, stale_check, reason=reason):
                    released.append(task.id)
                    self._logger.warning(
                        "stale_claim_reclaimed",
                        task_id=task.id,
                        previous_owner=task.claimed_by,
                        policy=self._policy.value,
                    )
            except (ContentionError, NotFoundError) as exc:
                skipped.append(task.id)
                self._logger.info("stale_claim_skipped", task_id=task.id, reason=str(exc))

        return SweepResult(tuple(sorted(released)), tuple(sorted(skipped)), now)

    def watch(
        self,
        *,
        interval_seconds: float,
        max_sweeps: int | None = None,
        cancel_token: CancellationToken | None = None,
        on_sweep: Callable[[SweepResult], None] | None = None,
    ) -> list[SweepResult]:
        """Run ``sweep`` every ``interval_seconds`` until cancelled or ``max_sweeps`` ran."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if max_sweeps is not None and max_sweeps <= 0:
            raise ValueError("max_sweeps must be > 0")
        token = cancel_token if cancel_token is not None else CancellationToken()
        results: list[SweepResult] = []
        while not token.is_cancelled:
            result = self.sweep()
            results.append(result)
            if on_sweep is not None:
                on_sweep(result)
            if max_sweeps is not None and len(results) >= max_sweeps:
                break
            if token.wait(interval_seconds):
                break
        return results


__all__ = ["RECLAIMER_OWNER", "ReclaimPolicy", "StaleClaimReclaimer", "SweepResult"]
