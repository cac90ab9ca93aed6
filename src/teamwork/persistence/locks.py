"""
Directory-based inter-process lock manager.

A lock on ``<resource>`` is the directory ``<resource>.lock``; ``mkdir`` is the atomic
create-if-absent primitive. The directory holds ``holder.json`` describing the owner,
its process id and host, an acquisition token and the acquisition time.

Guarantees:
- at most one owner holds a given resource at a time,
- re-acquisition by the current owner succeeds immediately without a second holder record,
- a holder whose process died on this host, whose lock outlived the staleness threshold,
  or whose metadata never appeared within a short grace period is forcibly removed,
- a failure while writing holder metadata removes the lock directory before propagating,
- only the recorded owner may release; releasing an absent lock is a no-op.

It integrates with:
- `utils.fs.atomic_write_json` for torn-write-free holder metadata
- `utils.concurrency` for deadlines, backoff and process liveness probes
- `structlog` for machine-parseable lock decision logs
"""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import socket
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from teamwork.constants import (
    DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
    DEFAULT_LOCK_STALE_AFTER_SECONDS,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    LOCK_BREAK_SUFFIX,
    LOCK_HOLDER_FILE,
    LOCK_HOLDER_GRACE_SECONDS,
    LOCK_SUFFIX,
)
from teamwork.domain.errors import ContentionError, OwnershipError
from teamwork.domain.ids import generate_lock_token
from teamwork.domain.models import Clock, parse_iso8601z, to_iso8601z, utc_now
from teamwork.utils.concurrency import (
    Deadline,
    MonotonicClock,
    RetryPolicy,
    Sleeper,
    pid_is_alive,
)
from teamwork.utils.fs import atomic_write_json, ensure_directory

PathLike = str | os.PathLike[str]


@dataclass(frozen=True, slots=True)
class LockHolder:
    owner: str
    pid: int
    hostname: str
    token: str
    acquired_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.acquired_at).total_seconds()

    def to_dict(self) -> dict[str, object]:
        return {
            "owner": self.owner,
            "pid": self.pid,
            "hostname": self.hostname,
            "token": self.token,
            "acquired_at": to_iso8601z(self.acquired_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> LockHolder:
        owner = data.get("owner")
        pid = data.get("pid")
        token = data.get("token")
        if not isinstance(owner, str) or not owner:
            raise ValueError("holder.owner must be a non-empty string")
        if isinstance(pid, bool) or not isinstance(pid, int):
            raise ValueError("holder.pid must be an integer")
        if not isinstance(token, str) or not token:
            raise ValueError("holder.token must be a non-empty string")
        hostname = data.get("hostname", "")
        return cls(
            owner=owner,
            pid=pid,
            hostname=hostname if isinstance(hostname, str) else "",
            token=token,
            acquired_at=parse_iso8601z(data.get("acquired_at"), "holder.acquired_at"),
        )


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Result of one ``acquire`` call; ``reentrant`` handles do not own the release."""

    resource: Path
    owner: str
    token: str
    reentrant: bool = False


class LockManager:
    """Exclusive, reentrant, crash-tolerant locks over filesystem resources."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
        stale_after_seconds: float = DEFAULT_LOCK_STALE_AFTER_SECONDS,
        holder_grace_seconds: float = LOCK_HOLDER_GRACE_SECONDS,
        clock: Clock = utc_now,
        monotonic: MonotonicClock = time.monotonic,
        sleep: Sleeper = time.sleep,
        pid: int | None = None,
        hostname: str | None = None,
        logger: Any | None = None,
    ) -> None:
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0")
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        if stale_after_seconds <= 0:
            raise ValueError("stale_after_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._stale_after_seconds = stale_after_seconds
        self._holder_grace_seconds = min(holder_grace_seconds, stale_after_seconds)
        self._backoff = RetryPolicy(
            initial_delay_seconds=poll_interval_seconds,
            max_delay_seconds=poll_interval_seconds * 5,
            multiplier=1.5,
        )
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._pid = os.getpid() if pid is None else pid
        self._hostname = socket.gethostname() if hostname is None else hostname
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @staticmethod
    def lock_path(resource: PathLike) -> Path:
        return Path(f"{os.fspath(resource)}{LOCK_SUFFIX}")

    def acquire(
        self,
        resource: PathLike,
        owner: str,
        *,
        timeout_seconds: float | None = None,
    ) -> LockHandle:
        """Block until ``owner`` holds ``resource`` or raise ``ContentionError`` on timeout."""
        if not isinstance(owner, str) or not owner.strip():
            raise ValueError("lock owner must be a non-empty string")
        resource_path = Path(resource)
        lock_dir = self.lock_path(resource_path)
        deadline = Deadline(
            self._timeout_seconds if timeout_seconds is None else timeout_seconds,
            clock=self._monotonic,
        )

        attempt = 0
        while True:
            attempt += 1
            handle = self._try_create(lock_dir, resource_path, owner)
            if handle is not None:
                return handle

            holder = self._read_holder(lock_dir)
            if holder is not None and holder.owner == owner:
                self._logger.debug("lock_reentered", resource=str(resource_path), owner=owner)
                return LockHandle(resource_path, owner, holder.token, reentrant=True)

            if self._is_stale(lock_dir, holder, self._stale_after_seconds) and self._break_stale(
                lock_dir, holder
            ):
                continue

            if deadline.expired:
                current = holder.owner if holder is not None else "unknown"
                self._logger.warning(
                    "lock_contention_timeout",
                    resource=str(resource_path),
                    owner=owner,
                    holder=current,
                    attempts=attempt,
                )
                raise ContentionError(
                    f"timed out acquiring lock on {resource_path} (held by {current})",
                    resource=str(resource_path),
                )
            self._sleep(deadline.next_sleep(self._backoff.delay_for(attempt)))

    def release(self, resource: PathLike, owner: str) -> bool:
        """
        Remove the lock if ``owner`` holds it.

        Returns ``False`` when no lock exists. Raises ``OwnershipError`` for any other holder.
        """
        lock_dir = self.lock_path(resource)
        holder = self._read_holder(lock_dir)
        if holder is None:
            if not lock_dir.exists():
                return False
            raise OwnershipError(f"lock on {resource} has no holder metadata; refusing release")
        if holder.owner != owner:
            raise OwnershipError(f"lock on {resource} is held by {holder.owner}, not {owner}")
        self._remove_lock_dir(lock_dir)
        self._logger.debug("lock_released", resource=os.fspath(resource), owner=owner)
        return True

    def release_handle(self, handle: LockHandle) -> None:
        if handle.reentrant:
            return
        self.release(handle.resource, handle.owner)

    @contextmanager
    def locked(
        self,
        resource: PathLike,
        owner: str,
        *,
        timeout_seconds: float | None = None,
    ) -> Iterator[LockHandle]:
        handle = self.acquire(resource, owner, timeout_seconds=timeout_seconds)
        try:
            yield handle
        finally:
            self.release_handle(handle)

    def holder(self, resource: PathLike) -> LockHolder | None:
        return self._read_holder(self.lock_path(resource))

    def is_stale(self, resource: PathLike, stale_after_seconds: float | None = None) -> bool:
        lock_dir = self.lock_path(resource)
        if not lock_dir.exists():
            return False
        threshold = self._stale_after_seconds if stale_after_seconds is None else stale_after_seconds
        return self._is_stale(lock_dir, self._read_holder(lock_dir), threshold)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _try_create(self, lock_dir: Path, resource: Path, owner: str) -> LockHandle | None:
        try:
            lock_dir.mkdir()
        except FileExistsError:
            return None
        except FileNotFoundError:
            ensure_directory(lock_dir.parent)
            return self._try_create(lock_dir, resource, owner)

        holder = LockHolder(
            owner=owner,
            pid=self._pid,
            hostname=self._hostname,
            token=generate_lock_token(),
            acquired_at=self._clock(),
        )
        try:
            atomic_write_json(lock_dir / LOCK_HOLDER_FILE, holder.to_dict())
        except Exception:
            shutil.rmtree(lock_dir, ignore_errors=True)
            raise
        self._logger.debug("lock_acquired", resource=str(resource), owner=owner)
        return LockHandle(resource, owner, holder.token)

    def _read_holder(self, lock_dir: Path) -> LockHolder | None:
        try:
            raw = (lock_dir / LOCK_HOLDER_FILE).read_text(encoding="utf-8")
        except (FileNotFoundError, NotADirectoryError):
            return None
        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                return None
            return LockHolder.from_dict(parsed)
        except ValueError:
            # Unreadable metadata is treated like missing metadata and expires after the grace period.
            return None

    def _is_stale(self, lock_dir: Path, holder: LockHolder | None, threshold: float) -> bool:
        now = self._clock()
        if holder is None:
            try:
                created = lock_dir.stat().st_mtime
            except FileNotFoundError:
                return False
            return now.timestamp() - created > self._holder_grace_seconds
        if holder.age_seconds(now) > threshold:
            return True
        return holder.hostname == self._hostname and not pid_is_alive(holder.pid)

    def _break_stale(self, lock_dir: Path, observed: LockHolder | None) -> bool:
        """Remove a stale lock; serialized by a sibling ``.break`` directory."""
        break_dir = Path(f"{lock_dir}{LOCK_BREAK_SUFFIX}")
        try:
            break_dir.mkdir()
        except FileExistsError:
            self._clear_abandoned_break(break_dir)
            return False
        except FileNotFoundError:
            return False

        try:
            current = self._read_holder(lock_dir)
            if (current is None) != (observed is None):
                return False
            if current is not None and observed is not None and current.token != observed.token:
                return False
            if not self._is_stale(lock_dir, current, self._stale_after_seconds):
                return False
            if not self._remove_lock_dir(lock_dir):
                return False
            self._logger.warning(
                "stale_lock_broken",
                resource=str(lock_dir)[: -len(LOCK_SUFFIX)],
                holder=current.owner if current is not None else None,
                holder_pid=current.pid if current is not None else None,
            )
            return True
        finally:
            with contextlib.suppress(FileNotFoundError):
                break_dir.rmdir()

    def _clear_abandoned_break(self, break_dir: Path) -> None:
        try:
            age = self._clock().timestamp() - break_dir.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self._stale_after_seconds:
            with contextlib.suppress(OSError):
                break_dir.rmdir()

    def _remove_lock_dir(self, lock_dir: Path) -> bool:
        # Rename first so observers never see a half-deleted lock directory.
        tombstone = lock_dir.with_name(f".{lock_dir.name}.{generate_lock_token()}.released")
        try:
            os.rename(lock_dir, tombstone)
        except FileNotFoundError:
            return False
        shutil.rmtree(tombstone)
        return True


__all__ = ["LockHandle", "LockHolder", "LockManager"]
