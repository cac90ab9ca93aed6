"""Normalized error taxonomy shared by the lock manager, stores and protocols."""

from __future__ import annotations

from collections.abc import Iterable, Sequence


class TeamworkError(RuntimeError):
    """Base coordination error with a machine-readable code and retry hint."""

    code: str = "error"
    retryable: bool = False

    def __init__(self, detail: str) -> None:
        self.detail = detail.strip() or self.code
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "detail": self.detail,
            "retryable": self.retryable,
        }


class ContentionError(TeamworkError):
    """A lock could not be obtained in time; retry later."""

    code = "contention"
    retryable = True

    def __init__(self, detail: str, *, resource: str | None = None) -> None:
        self.resource = resource
        super().__init__(detail)


class AlreadyClaimedError(ContentionError):
    """Another actor won the race for a task."""

    code = "already_claimed"

    def __init__(self, task_id: str, claimed_by: str | None) -> None:
        self.task_id = task_id
        self.claimed_by = claimed_by
        holder = claimed_by if claimed_by is not None else "another actor"
        super().__init__(f"task {task_id} is already claimed by {holder}")


class BlockedError(TeamworkError):
    """The task still has unresolved dependencies."""

    code = "blocked"
    retryable = True

    def __init__(self, task_id: str, unresolved: Iterable[str]) -> None:
        self.task_id = task_id
        self.unresolved = tuple(sorted(unresolved))
        super().__init__(f"task {task_id} is blocked by: {', '.join(self.unresolved)}")


class OwnershipError(TeamworkError):
    """The caller is not the lock holder or task claimant."""

    code = "ownership"


class NotFoundError(TeamworkError):
    """A referenced project, task, wave or inbox does not exist."""

    code = "not_found"


class AlreadyExistsError(TeamworkError):
    code = "already_exists"


class InvalidTransitionError(TeamworkError):
    """A state-machine step that is never legal from the current state."""

    code = "invalid_transition"


class RoleMismatchError(TeamworkError):
    code = "role_mismatch"

    def __init__(self, task_id: str, task_role: str, requested_role: str) -> None:
        self.task_id = task_id
        self.task_role = task_role
        self.requested_role = requested_role
        super().__init__(
            f"task {task_id} requires role {task_role!r}, requested role is {requested_role!r}"
        )


class CycleError(TeamworkError, ValueError):
    """Raised when a cycle is detected in the dependency graph."""

    code = "cycle"

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        normalized: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        self.cycles = normalized

        if not normalized:
            message = "Task graph contains at least one cycle."
        else:
            preview = ", ".join(" -> ".join(path) for path in normalized[:3])
            suffix = "..." if len(normalized) > 3 else ""
            message = f"Task graph contains cycle(s): {preview}{suffix}"
        super().__init__(message)


class CorruptStateError(TeamworkError):
    """A persisted file could not be parsed or violates its schema."""

    code = "corrupt_state"

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"corrupt state in {path}: {detail}")


__all__ = [
    "AlreadyClaimedError",
    "AlreadyExistsError",
    "BlockedError",
    "ContentionError",
    "CorruptStateError",
    "CycleError",
    "InvalidTransitionError",
    "NotFoundError",
    "OwnershipError",
    "RoleMismatchError",
    "TeamworkError",
]
