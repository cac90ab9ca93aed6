"""Synchronous concurrency primitives for inter-process coordination loops."""

from __future__ import annotations

import errno
import os
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

Sleeper = Callable[[float], None]
MonotonicClock = Callable[[], float]


class CancellationToken:
    """Cooperative cancellation token backed by ``threading.Event``."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout_seconds: float) -> bool:
        """Sleep up to ``timeout_seconds``; return ``True`` if cancelled meanwhile."""
        return self._event.wait(timeout_seconds)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Bounded retry schedule.

    ``delay_for(attempt)`` grows geometrically from ``initial_delay_seconds`` and is
    capped at ``max_delay_seconds``; ``max_attempts`` bounds the total number of tries.
    """

    max_attempts: int = 3
    initial_delay_seconds: float = 0.1
    max_delay_seconds: float = 2.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based)."""
        if attempt <= 0:
            raise ValueError("attempt must be >= 1")
        delay = self.initial_delay_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)

    def delays(self) -> Iterator[float]:
        """Yield the sleeps between consecutive attempts (``max_attempts - 1`` values)."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_for(attempt)


@dataclass(slots=True)
class Deadline:
    """Monotonic deadline used by polling loops."""

    timeout_seconds: float
    clock: MonotonicClock = time.monotonic
    _expires_at: float = field(init=False)

    def __post_init__(self) -> None:
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0")
        self._expires_at = self.clock() + self.timeout_seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.clock() >= self._expires_at

    def next_sleep(self, interval_seconds: float) -> float:
        """Clamp ``interval_seconds`` so a sleep never overshoots the deadline."""
        return min(interval_seconds, self.remaining)


def pid_is_alive(pid: int) -> bool:
    """
    Return ``True`` when a process with ``pid`` exists on this host.

    ``EPERM`` means the process exists but belongs to another user.
    """

    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError as exc:
        return exc.errno == errno.EPERM
    return True


__all__ = [
    "CancellationToken",
    "Deadline",
    "MonotonicClock",
    "RetryPolicy",
    "Sleeper",
    "pid_is_alive",
]
