"""
Locked read-modify-write record store.

Every mutation of a persisted record goes through ``RecordStore``: acquire the record's
lock, read the current value, apply the caller's mutator, validate, write atomically
and release. Reads are lock-free and rely on the backend's atomic writes.

Callers pass the bare actor id; the lock itself is held by ``<actor>@<pid>.<thread>``
so two threads or processes acting as the same actor still exclude each other.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Generic, TypeVar

from teamwork.domain.errors import AlreadyExistsError, CorruptStateError, NotFoundError
from teamwork.persistence.backend import StorageBackend
from teamwork.persistence.locks import LockHandle, LockManager

TRecord = TypeVar("TRecord")


class RecordStore(Generic[TRecord]):
    """Typed records over a ``StorageBackend`` with one serialization point per key."""

    def __init__(
        self,
        backend: StorageBackend,
        locks: LockManager,
        *,
        decode: Callable[[Mapping[str, object]], TRecord],
        encode: Callable[[TRecord], Mapping[str, object]],
        label: str,
    ) -> None:
        self._backend = backend
        self._locks = locks
        self._decode = decode
        self._encode = encode
        self._label = label

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def read(self, key: str) -> TRecord | None:
        raw = self._backend.read(key)
        if raw is None:
            return None
        return self._parse(key, raw)

    def require(self, key: str) -> TRecord:
        record = self.read(key)
        if record is None:
            raise NotFoundError(f"{self._label} {key} not found")
        return record

    def read_all(self) -> list[TRecord]:
        records: list[TRecord] = []
        for key in self._backend.keys():
            record = self.read(key)
            if record is not None:
                records.append(record)
        return records

    def exists(self, key: str) -> bool:
        return self._backend.read(key) is not None

    @contextmanager
    def locked(self, key: str, owner: str) -> Iterator[LockHandle]:
        with self._locks.locked(self._backend.resource(key), lock_owner(owner)) as handle:
            yield handle

    def create(self, key: str, record: TRecord, owner: str) -> TRecord:
        with self.locked(key, owner):
            if self._backend.read(key) is not None:
                raise AlreadyExistsError(f"{self._label} {key} already exists")
            self._write(key, record)
        return record

    def update(self, key: str, mutator: Callable[[TRecord], TRecord], owner: str) -> TRecord:
        """
        Apply ``mutator`` to the current record under its lock.

        A mutator returning the very object it received signals "no change" and skips the write.
        """
        with self.locked(key, owner):
            current = self.require(key)
            updated = mutator(current)
            if updated is current:
                return current
            self._write(key, updated)
        return updated

    def upsert(self, key: str, mutator: Callable[[TRecord | None], TRecord], owner: str) -> TRecord:
        with self.locked(key, owner):
            current = self.read(key)
            updated = mutator(current)
            if updated is current:
                return updated
            self._write(key, updated)
        return updated

    def delete(
        self,
        key: str,
        owner: str,
        *,
        guard: Callable[[TRecord], None] | None = None,
    ) -> TRecord:
        with self.locked(key, owner):
            current = self.require(key)
            if guard is not None:
                guard(current)
            self._backend.delete(key)
        return current

    def _write(self, key: str, record: TRecord) -> None:
        payload = dict(self._encode(record))
        text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        self._backend.write(key, text)

    def _parse(self, key: str, raw: str) -> TRecord:
        location = str(self._backend.resource(key))
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStateError(location, f"invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise CorruptStateError(location, "JSON root must be an object")
        try:
            return self._decode(parsed)
        except ValueError as exc:
            raise CorruptStateError(location, str(exc)) from exc


def lock_owner(actor: str) -> str:
    """Per-thread lock identity for ``actor``; actor ids are shared across processes."""
    return f"{actor}@{os.getpid()}.{threading.get_ident()}"


__all__ = ["RecordStore", "lock_owner"]
